"""Async SQLAlchemy engine, session factory and transaction helpers."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from campus_finance.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes worth retrying: serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}

# unique_violation is retried only on numbers generated as max + 1: a
# concurrent insert took the number and a fresh attempt reads past it
_UNIQUE_VIOLATION = "23505"
_GENERATED_NUMBER_CONSTRAINTS = {
    "gl_journal_entries_entry_number_key",
    "payments_payment_number_key",
}


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("postgresql"):
        return {
            "pool_size": settings.db_pool_size,
            "pool_pre_ping": True,
            "connect_args": {
                "server_settings": {
                    "statement_timeout": str(settings.db_statement_timeout_ms),
                }
            },
        }
    return {}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session: commit on success, roll back on any error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency hook for endpoints that manage their own transaction."""
    return async_session


def _violated_constraint(orig) -> str | None:
    # asyncpg's own exception is the cause of the DBAPI adapter error
    return getattr(getattr(orig, "__cause__", None), "constraint_name", None)


def _is_retryable(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _UNIQUE_VIOLATION:
        return _violated_constraint(orig) in _GENERATED_NUMBER_CONSTRAINTS
    return code in _RETRYABLE_SQLSTATES


async def run_in_transaction(
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    attempts: int | None = None,
) -> T:
    """Run *fn* inside one transaction, retrying on serialization failures,
    deadlocks and collisions on generated entry or payment numbers.

    *fn* must be safe to re-run from scratch: every attempt gets a fresh
    session and nothing from a failed attempt is kept.
    """
    factory = session_factory or async_session
    max_attempts = attempts or settings.db_retry_attempts

    for attempt in range(1, max_attempts + 1):
        async with factory() as db:
            try:
                result = await fn(db)
                await db.commit()
                return result
            except DBAPIError as exc:
                await db.rollback()
                if attempt >= max_attempts or not _is_retryable(exc):
                    raise
                logger.warning(
                    "Transaction conflict (attempt %d/%d), retrying: %s",
                    attempt, max_attempts, exc.orig,
                )
            except Exception:
                await db.rollback()
                raise
        await asyncio.sleep(0.05 * attempt)

    raise RuntimeError("unreachable")  # pragma: no cover
