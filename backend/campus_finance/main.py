"""Campus Finance API - FastAPI entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import campus_finance.models  # noqa: F401  registers every table on Base.metadata
from campus_finance import __version__
from campus_finance.api import (
    audit, donors, endowments, fees, gl, payment_plans, payments, scholarships,
)
from campus_finance.api.deps import limiter
from campus_finance.config import settings
from campus_finance.database import Base, async_session, engine
from campus_finance.middleware.error_capture import ErrorCaptureMiddleware
from campus_finance.seed_gl import seed_gl_data
from campus_finance.services.errors import FinanceError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed the chart of accounts on startup (dev only);
    in prod use Alembic migrations."""
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session() as db:
            await seed_gl_data(db)
    yield
    await engine.dispose()


app = FastAPI(
    title="Campus Finance API",
    description="Fee invoicing, collections, scholarships, donors and general ledger",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.state.session_factory = async_session
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    request.state.finance_error = exc
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Security headers middleware ──────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# Error capture middleware (outermost, catches everything)
app.add_middleware(ErrorCaptureMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(fees.router, prefix="/api", tags=["Fees"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(payment_plans.router, prefix="/api", tags=["Payment Plans"])
app.include_router(scholarships.router, prefix="/api", tags=["Scholarships"])
app.include_router(donors.router, prefix="/api", tags=["Donors"])
app.include_router(endowments.router, prefix="/api", tags=["Endowments"])
app.include_router(gl.router, prefix="/api/gl", tags=["General Ledger"])
app.include_router(audit.router, prefix="/api", tags=["Audit"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "campus-finance-api", "version": __version__}
