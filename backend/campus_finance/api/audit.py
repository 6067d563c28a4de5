"""Audit trail and error log views."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.auth_utils import COLLECTIONS_ROLES, OVERRIDE_ROLES, CurrentUser, require_roles
from campus_finance.database import get_db
from campus_finance.models.error_log import ErrorSeverity
from campus_finance.schemas import (
    AuditEntryResponse,
    AuditTrailResponse,
    ErrorLogPage,
    ErrorLogResponse,
)
from campus_finance.services.audit import audit_trail
from campus_finance.services.error_logger import list_error_logs

router = APIRouter()


@router.get("/audit-log", response_model=AuditTrailResponse)
async def get_audit_trail(
    student_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    """A student's or an entity's change history, newest first."""
    rows, total = await audit_trail(
        db, student_id=student_id, entity_type=entity_type, entity_id=entity_id,
        limit=limit, offset=offset,
    )
    return AuditTrailResponse(
        entries=[AuditEntryResponse.model_validate(r) for r in rows], total=total
    )


@router.get("/error-logs", response_model=ErrorLogPage)
async def get_error_logs(
    kind: Optional[str] = None,
    severity: Optional[ErrorSeverity] = None,
    path: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*OVERRIDE_ROLES)),
):
    rows, total = await list_error_logs(
        db, error_kind=kind, severity=severity, request_path=path, limit=limit, offset=offset
    )
    return ErrorLogPage(entries=[ErrorLogResponse.model_validate(r) for r in rows], total=total)
