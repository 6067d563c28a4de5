"""Shared fixtures: an in-memory SQLite database per test and an API client."""

from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import campus_finance.models  # noqa: F401
from campus_finance.auth_utils import create_access_token
from campus_finance.database import Base, get_db, get_session_factory
from campus_finance.models.payment import PaymentMethod
from campus_finance.seed_gl import seed_gl_data
from campus_finance.services import fee_service, payment_service


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db):
    """Session with the default chart of accounts in place."""
    await seed_gl_data(db)
    return db


# ── Domain factories ─────────────────────────────────────


@pytest.fixture
def make_fee(db):
    async def _make(*, student_id=1, amount=50000, due_date=date(2026, 4, 1), **kw):
        kw.setdefault("description", "Spring tuition")
        kw.setdefault("today", date(2026, 3, 15))
        return await fee_service.create_fee(
            db, student_id=student_id, amount=amount, due_date=due_date, **kw
        )
    return _make


@pytest.fixture
def make_payment(db):
    async def _make(*, student_id=1, amount=50000, **kw):
        kw.setdefault("payment_date", date(2026, 3, 10))
        kw.setdefault("payment_method", PaymentMethod.BANK_TRANSFER)
        return await payment_service.record_payment(
            db, student_id=student_id, amount=amount, **kw
        )
    return _make


# ── API ──────────────────────────────────────────────────


@pytest.fixture
def headers_for():
    def _headers(role: str = "admin", user_id: int = 7) -> dict[str, str]:
        token = create_access_token({"sub": str(user_id), "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin_headers(headers_for):
    return headers_for("admin")


@pytest_asyncio.fixture
async def client(session_factory):
    from campus_finance.database import async_session
    from campus_finance.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.session_factory = session_factory
    async with session_factory() as session:
        await seed_gl_data(session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.session_factory = async_session
