"""Persist failures to error_logs and the Python logger.

Rejected finance commands (:class:`FinanceError`) are stored as warnings
with their ``kind`` and context, so the admin console can answer "which
allocations were refused as OverAllocation this week" without parsing
messages.  Anything else is an error with a traceback.

Writing an error log never raises.
"""

from __future__ import annotations

import logging
import traceback as tb_module
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.models.error_log import ErrorLog, ErrorSeverity
from campus_finance.services.errors import FinanceError

logger = logging.getLogger("campus_finance.errors")


def _clean(value: object, max_len: int) -> str:
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in str(value))
    return text[:max_len]


def classify(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, FinanceError):
        return ErrorSeverity.WARNING
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ErrorSeverity.CRITICAL
    return ErrorSeverity.ERROR


def describe(exc: BaseException) -> dict[str, Any]:
    """Column values that depend only on the exception."""
    if isinstance(exc, FinanceError):
        return {
            "error_type": type(exc).__name__,
            "error_kind": exc.kind,
            "message": _clean(exc.message, 2000),
            "context": dict(exc.context) or None,
            "traceback": None,
        }
    return {
        "error_type": type(exc).__name__,
        "error_kind": None,
        "message": _clean(exc, 2000),
        "context": None,
        "traceback": _clean(
            "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)), 10000
        ),
    }


async def log_error(
    exc: BaseException,
    *,
    db: Optional[AsyncSession] = None,
    severity: Optional[ErrorSeverity] = None,
    source: Optional[str] = None,
    request_method: Optional[str] = None,
    request_path: Optional[str] = None,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
    user_id: Optional[int] = None,
) -> Optional[ErrorLog]:
    """Log to the Python logger and, when a session is given, stage an ErrorLog row."""
    severity = severity or classify(exc)
    fields = describe(exc)

    where = f"{request_method or '?'} {request_path}" if request_path else (source or "-")
    label = fields["error_kind"] or fields["error_type"]
    if severity == ErrorSeverity.WARNING:
        logger.warning("%s rejected: %s: %s", where, label, fields["message"])
    else:
        logger.error("%s failed: %s: %s", where, label, fields["message"], exc_info=exc)

    if db is None:
        return None

    try:
        entry = ErrorLog(
            severity=severity,
            source=_clean(source, 300) if source else None,
            request_method=request_method,
            request_path=_clean(request_path, 500) if request_path else None,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            **fields,
        )
        db.add(entry)
        await db.flush()
        return entry
    except Exception as db_err:
        logger.warning("Failed to persist error log to DB: %s", db_err)
        return None


async def log_error_standalone(
    exc: BaseException,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    **fields: Any,
) -> Optional[ErrorLog]:
    """Log in a session of its own so the row survives the failed transaction's rollback."""
    if session_factory is None:
        from campus_finance.database import async_session as session_factory

    try:
        async with session_factory() as db:
            entry = await log_error(exc, db=db, **fields)
            await db.commit()
            return entry
    except Exception as db_err:
        logger.warning("Failed standalone error log: %s", db_err)
        return None


async def list_error_logs(
    db: AsyncSession,
    *,
    error_kind: Optional[str] = None,
    severity: Optional[ErrorSeverity] = None,
    request_path: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ErrorLog], int]:
    filters = []
    if error_kind:
        filters.append(ErrorLog.error_kind == error_kind)
    if severity is not None:
        filters.append(ErrorLog.severity == severity)
    if request_path:
        filters.append(ErrorLog.request_path.ilike(f"%{request_path}%"))

    total = (await db.execute(
        select(func.count()).select_from(ErrorLog).where(*filters)
    )).scalar() or 0
    rows = (await db.execute(
        select(ErrorLog)
        .where(*filters)
        .order_by(ErrorLog.created_at.desc(), ErrorLog.id.desc())
        .offset(offset)
        .limit(limit)
    )).scalars().all()
    return list(rows), total
