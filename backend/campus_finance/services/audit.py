"""Append-only audit trail helper shared by the finance services."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.audit import AuditLog


def record_audit(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    student_id: int | None = None,
    user_id: int | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    details: str | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction."""
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        student_id=student_id,
        action=action,
        user_id=user_id,
        old_values=old_values,
        new_values=new_values,
        details=details,
    )
    db.add(entry)
    return entry


async def audit_trail(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    """Newest first, with the unpaginated total."""
    filters = []
    if student_id is not None:
        filters.append(AuditLog.student_id == student_id)
    if entity_type is not None:
        filters.append(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        filters.append(AuditLog.entity_id == entity_id)

    total = (await db.execute(
        select(func.count()).select_from(AuditLog).where(*filters)
    )).scalar() or 0
    rows = (await db.execute(
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
    )).scalars().all()
    return list(rows), total
