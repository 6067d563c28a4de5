"""Fee structures, student fees and the fee status machine.

A fee's ``status`` is never set directly: it is re-derived from
``paid_amount``, ``amount`` and ``due_date`` by :func:`compute_fee_status`
whenever one of them changes.  ``paid_amount`` moves only through the
allocation engine and the audited administrative override in this module.
"""

import enum
import logging
from datetime import date, datetime, timezone

from sqlalchemy import and_, func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from campus_finance.config import settings
from campus_finance.models.fees import (
    FeeOverride,
    FeeOverrideAction,
    FeeStatus,
    FeeStructure,
    FeeType,
    StudentFee,
)
from campus_finance.models.gl import JournalSourceType
from campus_finance.models.payment import PaymentAllocation
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    AlreadyPosted,
    FeeHasAllocations,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from campus_finance.services.gl.journal_engine import post_transfer
from campus_finance.services.money import require_positive

logger = logging.getLogger(__name__)


class BulkFeeAction(str, enum.Enum):
    MARK_PAID = "paid"
    DELETE = "delete"


# ── Status machine ──────────────────────────────────────────


def compute_fee_status(
    amount: int, paid_amount: int, due_date: date, today: date | None = None
) -> FeeStatus:
    """Derive a fee's status.

    Partially paid fees stay ``partial`` past their due date; only untouched
    fees become ``overdue``.
    """
    today = today or date.today()
    if paid_amount >= amount:
        return FeeStatus.PAID
    if paid_amount > 0:
        return FeeStatus.PARTIAL
    if due_date < today:
        return FeeStatus.OVERDUE
    return FeeStatus.PENDING


def refresh_status(fee: StudentFee, today: date | None = None) -> FeeStatus:
    fee.status = compute_fee_status(fee.amount, fee.paid_amount, fee.due_date, today)
    return fee.status


def derive_status_on_read(fees, today: date | None = None) -> None:
    """Show the derived status on loaded fees without marking them dirty.

    The stored column is a cache kept by the write paths; reads never write it.
    """
    for fee in fees:
        set_committed_value(
            fee, "status", compute_fee_status(fee.amount, fee.paid_amount, fee.due_date, today)
        )


def status_clause(status: FeeStatus, today: date | None = None):
    """SQL predicate matching ``compute_fee_status(...) == status``."""
    today = today or date.today()
    if status == FeeStatus.PAID:
        return StudentFee.paid_amount >= StudentFee.amount
    if status == FeeStatus.PARTIAL:
        return and_(StudentFee.paid_amount > 0, StudentFee.paid_amount < StudentFee.amount)
    if status == FeeStatus.OVERDUE:
        return and_(StudentFee.paid_amount <= 0, StudentFee.due_date < today)
    return and_(StudentFee.paid_amount <= 0, StudentFee.due_date >= today)


# ── Fee structures ──────────────────────────────────────────


async def create_fee_structure(
    db: AsyncSession,
    *,
    fee_type: FeeType,
    amount: int,
    academic_period_id: int,
    due_date: date,
    class_id: int | None = None,
    program_id: int | None = None,
    is_per_credit: bool = False,
    description: str | None = None,
    created_by: int | None = None,
) -> FeeStructure:
    require_positive(amount)
    if class_id is None and program_id is None:
        raise ValidationError("A fee structure needs a class_id or a program_id")

    structure = FeeStructure(
        class_id=class_id,
        program_id=program_id,
        fee_type=fee_type,
        amount=amount,
        is_per_credit=is_per_credit,
        academic_period_id=academic_period_id,
        due_date=due_date,
        description=description,
        created_by=created_by,
    )
    db.add(structure)
    await db.flush()
    await db.refresh(structure)
    return structure


async def list_fee_structures(
    db: AsyncSession,
    *,
    academic_period_id: int | None = None,
    class_id: int | None = None,
    program_id: int | None = None,
) -> list[FeeStructure]:
    q = select(FeeStructure).order_by(FeeStructure.id)
    if academic_period_id is not None:
        q = q.where(FeeStructure.academic_period_id == academic_period_id)
    if class_id is not None:
        q = q.where(FeeStructure.class_id == class_id)
    if program_id is not None:
        q = q.where(FeeStructure.program_id == program_id)
    result = await db.execute(q)
    return list(result.scalars().all())


async def assign_fee_structure(
    db: AsyncSession,
    structure_id: int,
    student_ids: list[int],
    *,
    credits: dict[int, int] | None = None,
    created_by: int | None = None,
) -> dict:
    """Create one StudentFee per student from a structure.

    Per-credit structures bill ``amount × credits[student]``.  Students that
    already hold an unarchived fee from this structure are skipped.
    """
    structure = await db.get(FeeStructure, structure_id)
    if structure is None:
        raise NotFoundError(f"Fee structure {structure_id} not found")
    if not student_ids:
        raise ValidationError("student_ids must not be empty")

    unique_ids = list(dict.fromkeys(student_ids))
    credits = credits or {}
    if structure.is_per_credit:
        missing = [sid for sid in unique_ids if (credits.get(sid) or 0) <= 0]
        if missing:
            raise ValidationError(
                "Per-credit fee structures need a positive credit count per student",
                student_ids=missing,
            )

    result = await db.execute(
        select(StudentFee.student_id).where(
            StudentFee.fee_structure_id == structure_id,
            StudentFee.student_id.in_(unique_ids),
            StudentFee.is_archived.is_(False),
        )
    )
    already = set(result.scalars().all())

    created: list[StudentFee] = []
    for student_id in unique_ids:
        if student_id in already:
            continue
        amount = structure.amount
        if structure.is_per_credit:
            amount = structure.amount * credits[student_id]
        fee = StudentFee(
            student_id=student_id,
            fee_structure_id=structure.id,
            fee_type=structure.fee_type,
            amount=amount,
            paid_amount=0,
            due_date=structure.due_date,
            description=structure.description or f"{structure.fee_type.value.title()} fee",
            created_by=created_by,
        )
        refresh_status(fee)
        db.add(fee)
        created.append(fee)

    await db.flush()
    for fee in created:
        await db.refresh(fee)

    logger.info(
        "Assigned fee structure %d: created=%d skipped=%d",
        structure_id, len(created), len(already),
    )
    return {"created": created, "skipped_student_ids": sorted(already)}


# ── Student fees ────────────────────────────────────────────


async def create_fee(
    db: AsyncSession,
    *,
    student_id: int,
    amount: int,
    due_date: date,
    description: str,
    fee_type: FeeType = FeeType.OTHER,
    notes: str | None = None,
    fee_structure_id: int | None = None,
    penalized_fee_id: int | None = None,
    created_by: int | None = None,
    today: date | None = None,
) -> StudentFee:
    require_positive(amount)
    if not (description or "").strip():
        raise ValidationError("description is required")

    fee = StudentFee(
        student_id=student_id,
        fee_structure_id=fee_structure_id,
        fee_type=fee_type,
        amount=amount,
        paid_amount=0,
        due_date=due_date,
        description=description.strip(),
        notes=notes,
        penalized_fee_id=penalized_fee_id,
        created_by=created_by,
    )
    refresh_status(fee, today)
    db.add(fee)
    await db.flush()
    await db.refresh(fee)
    return fee


async def get_fee(
    db: AsyncSession, fee_id: int, *, today: date | None = None
) -> StudentFee | None:
    fee = await db.get(StudentFee, fee_id)
    if fee is not None:
        derive_status_on_read([fee], today)
    return fee


async def require_fee(
    db: AsyncSession, fee_id: int, *, today: date | None = None
) -> StudentFee:
    fee = await get_fee(db, fee_id, today=today)
    if fee is None:
        raise NotFoundError(f"Student fee {fee_id} not found", fee_id=fee_id)
    return fee


async def list_fees(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    status: FeeStatus | None = None,
    fee_type: FeeType | None = None,
    include_archived: bool = False,
    limit: int = 100,
    offset: int = 0,
    today: date | None = None,
) -> list[StudentFee]:
    """Fees with their status derived as of ``today``; the status filter is too."""
    q = (
        select(StudentFee)
        .order_by(StudentFee.due_date, StudentFee.id)
        .limit(limit)
        .offset(offset)
    )
    if student_id is not None:
        q = q.where(StudentFee.student_id == student_id)
    if status is not None:
        q = q.where(status_clause(status, today))
    if fee_type is not None:
        q = q.where(StudentFee.fee_type == fee_type)
    if not include_archived:
        q = q.where(StudentFee.is_archived.is_(False))
    result = await db.execute(q)
    fees = list(result.scalars().all())
    derive_status_on_read(fees, today)
    return fees


async def refresh_overdue_statuses(db: AsyncSession, today: date | None = None) -> int:
    """Re-derive status for every open fee; returns how many changed."""
    today = today or date.today()
    result = await db.execute(
        select(StudentFee).where(
            StudentFee.is_archived.is_(False),
            StudentFee.status != FeeStatus.PAID,
        )
        .execution_options(populate_existing=True)
    )
    changed = 0
    for fee in result.scalars().all():
        before = fee.status
        if refresh_status(fee, today) != before:
            changed += 1
    if changed:
        await db.flush()
        logger.info("Refreshed fee statuses: %d changed", changed)
    return changed


async def lock_fees(db: AsyncSession, fee_ids: list[int]) -> list[StudentFee]:
    """Lock the given fees in id order; every id must exist."""
    ids = sorted(set(fee_ids))
    if not ids:
        raise ValidationError("ids must not be empty")
    result = await db.execute(
        select(StudentFee)
        .where(StudentFee.id.in_(ids))
        .order_by(StudentFee.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    fees = list(result.scalars().all())
    found = {f.id for f in fees}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError("Some student fees were not found", fee_ids=missing)
    return fees


# ── Administrative override and bulk actions ───────────────


async def mark_fees_paid(
    db: AsyncSession,
    fee_ids: list[int],
    *,
    performed_by: int | None = None,
    reason: str | None = None,
) -> list[StudentFee]:
    """Administratively clear fees without recording a collection.

    No Payment or PaymentAllocation rows are created.  Each cleared fee gets a
    FeeOverride row and an ``admin_mark_paid`` audit entry so cleared money is
    never confused with collected money.
    """
    fees = await lock_fees(db, fee_ids)
    archived = [f.id for f in fees if f.is_archived]
    if archived:
        raise InvalidStatusTransition("Archived fees cannot be marked paid", fee_ids=archived)

    cleared = []
    for fee in fees:
        if fee.paid_amount >= fee.amount:
            continue
        previous = fee.paid_amount
        amount_cleared = fee.amount - previous
        db.add(FeeOverride(
            student_fee_id=fee.id,
            action=FeeOverrideAction.MARK_PAID,
            amount_cleared=amount_cleared,
            previous_paid_amount=previous,
            performed_by=performed_by,
            reason=reason,
        ))
        old_status = fee.status
        fee.paid_amount = fee.amount
        refresh_status(fee)
        record_audit(
            db,
            entity_type="student_fee",
            entity_id=fee.id,
            student_id=fee.student_id,
            action="admin_mark_paid",
            user_id=performed_by,
            old_values={"paid_amount": previous, "status": old_status.value},
            new_values={"paid_amount": fee.paid_amount, "status": fee.status.value},
            details=reason,
        )
        cleared.append(fee)

    await db.flush()
    if cleared:
        logger.warning(
            "Administrative mark-paid by user %s cleared %d fee(s): %s",
            performed_by, len(cleared), [f.id for f in cleared],
        )
    return cleared


async def archive_fees(
    db: AsyncSession,
    fee_ids: list[int],
    *,
    performed_by: int | None = None,
    reason: str | None = None,
) -> list[StudentFee]:
    """Soft-delete fees.  Refused for the whole batch if any has allocations."""
    fees = await lock_fees(db, fee_ids)
    result = await db.execute(
        select(PaymentAllocation.student_fee_id)
        .where(PaymentAllocation.student_fee_id.in_([f.id for f in fees]))
        .distinct()
    )
    referenced = sorted(result.scalars().all())
    if referenced:
        raise FeeHasAllocations(
            "Fees with payment allocations cannot be deleted",
            fee_ids=referenced,
        )

    now = datetime.now(timezone.utc)
    archived = []
    for fee in fees:
        if fee.is_archived:
            continue
        archived.append(fee)
        fee.is_archived = True
        fee.archived_at = now
        record_audit(
            db,
            entity_type="student_fee",
            entity_id=fee.id,
            student_id=fee.student_id,
            action="archive",
            user_id=performed_by,
            details=reason,
        )
    await db.flush()
    logger.info("Archived %d fee(s): %s", len(archived), [f.id for f in archived])
    return archived


async def bulk_action(
    db: AsyncSession,
    action: BulkFeeAction,
    fee_ids: list[int],
    *,
    performed_by: int | None = None,
    reason: str | None = None,
) -> dict:
    """Apply one action to a batch of fees; all of them or none.

    ``affected`` counts only fees the action changed.  Fees already paid (or
    already archived) are reported in ``skipped_ids``.
    """
    if action == BulkFeeAction.MARK_PAID:
        fees = await mark_fees_paid(db, fee_ids, performed_by=performed_by, reason=reason)
    elif action == BulkFeeAction.DELETE:
        fees = await archive_fees(db, fee_ids, performed_by=performed_by, reason=reason)
    else:
        raise ValidationError(f"Unsupported bulk action: {action}")
    changed = [f.id for f in fees]
    return {
        "action": action.value,
        "affected": len(changed),
        "fee_ids": changed,
        "skipped_ids": sorted(set(fee_ids) - set(changed)),
    }


async def fee_collection_breakdown(db: AsyncSession, fee_id: int) -> dict:
    """Split a fee's paid amount into collected vs administratively cleared."""
    fee = await require_fee(db, fee_id)
    collected = (await db.execute(
        select(sa_func.coalesce(sa_func.sum(PaymentAllocation.amount), 0))
        .where(PaymentAllocation.student_fee_id == fee_id)
    )).scalar_one()
    cleared = (await db.execute(
        select(sa_func.coalesce(sa_func.sum(FeeOverride.amount_cleared), 0))
        .where(FeeOverride.student_fee_id == fee_id)
    )).scalar_one()
    return {
        "fee_id": fee.id,
        "amount": fee.amount,
        "paid_amount": fee.paid_amount,
        "collected": int(collected),
        "administratively_cleared": int(cleared),
        "balance": fee.balance,
        "status": fee.status.value,
    }


# ── GL ─────────────────────────────────────────────────────


async def post_fee_to_gl(
    db: AsyncSession, fee_id: int, *, posted_by: int | None = None
):
    """Recognise a fee as receivable: DR receivable / CR (late-)fee revenue."""
    result = await db.execute(
        select(StudentFee)
        .where(StudentFee.id == fee_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    fee = result.scalar_one_or_none()
    if fee is None:
        raise NotFoundError(f"Student fee {fee_id} not found", fee_id=fee_id)
    if fee.gl_journal_entry_id is not None:
        raise AlreadyPosted(
            f"Fee {fee_id} is already posted to the general ledger",
            journal_entry_id=fee.gl_journal_entry_id,
        )
    if fee.is_archived:
        raise InvalidStatusTransition("Archived fees cannot be posted", fee_id=fee_id)

    revenue_code = (
        settings.gl_late_fee_revenue_account_code
        if fee.fee_type == FeeType.LATE
        else settings.gl_fee_revenue_account_code
    )
    entry = await post_transfer(
        db,
        debit_account_code=settings.gl_receivable_account_code,
        credit_account_code=revenue_code,
        amount=fee.amount,
        description=f"Student fee #{fee.id}: {fee.description}",
        source_type=JournalSourceType.FEE,
        source_reference=f"student_fee:{fee.id}",
        created_by=posted_by,
    )
    fee.gl_journal_entry_id = entry.id
    record_audit(
        db,
        entity_type="student_fee",
        entity_id=fee.id,
        student_id=fee.student_id,
        action="post_to_gl",
        user_id=posted_by,
        new_values={"gl_journal_entry_id": entry.id},
    )
    await db.flush()
    return entry
