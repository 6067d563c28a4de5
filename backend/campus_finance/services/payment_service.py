"""Payment recording, status transitions and GL posting of collections."""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.config import settings
from campus_finance.models.gl import JournalSourceType
from campus_finance.models.payment import (
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
)
from campus_finance.services.allocation_engine import allocated_total
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    AlreadyPosted,
    DuplicateReference,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from campus_finance.services.gl.journal_engine import post_transfer, reverse_journal_entry
from campus_finance.services.money import require_positive

logger = logging.getLogger(__name__)

# Allowed payment status transitions
PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


async def _next_payment_number(db: AsyncSession) -> str:
    """PAY-YYYY-NNNNNN, sequential within the year."""
    year = datetime.now(timezone.utc).year
    prefix = f"PAY-{year}-"
    result = await db.execute(
        select(sa_func.max(Payment.payment_number))
        .where(Payment.payment_number.like(f"{prefix}%"))
    )
    last = result.scalar_one_or_none()
    seq = 1
    if last:
        try:
            seq = int(last.replace(prefix, "")) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:06d}"


async def record_payment(
    db: AsyncSession,
    *,
    student_id: int,
    amount: int,
    payment_date: date,
    payment_method: PaymentMethod,
    payment_number: str | None = None,
    status: PaymentStatus = PaymentStatus.COMPLETED,
    notes: str | None = None,
    recorded_by: int | None = None,
) -> Payment:
    require_positive(amount)
    if status not in (PaymentStatus.PENDING, PaymentStatus.COMPLETED):
        raise ValidationError("A new payment must be pending or completed")

    if payment_number:
        payment_number = payment_number.strip()
        existing = await db.execute(
            select(Payment.id).where(Payment.payment_number == payment_number)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateReference(
                f"Payment number '{payment_number}' already exists",
                payment_number=payment_number,
            )
    else:
        payment_number = await _next_payment_number(db)

    payment = Payment(
        student_id=student_id,
        amount=amount,
        payment_date=payment_date,
        payment_method=payment_method,
        status=status,
        payment_number=payment_number,
        notes=notes,
        recorded_by=recorded_by,
    )
    db.add(payment)
    await db.flush()
    await db.refresh(payment)
    logger.info(
        "Recorded payment %s for student %d: %d (%s)",
        payment.payment_number, student_id, amount, payment_method.value,
    )
    return payment


async def get_payment(db: AsyncSession, payment_id: int) -> Payment | None:
    return await db.get(Payment, payment_id)


async def require_payment(db: AsyncSession, payment_id: int) -> Payment:
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    return payment


async def list_payments(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    status: PaymentStatus | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Payment]:
    q = (
        select(Payment)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if student_id is not None:
        q = q.where(Payment.student_id == student_id)
    if status is not None:
        q = q.where(Payment.status == status)
    result = await db.execute(q)
    return list(result.scalars().all())


async def payment_balance(db: AsyncSession, payment_id: int) -> dict:
    payment = await require_payment(db, payment_id)
    allocated = await allocated_total(db, payment.id)
    return {
        "payment_id": payment.id,
        "amount": payment.amount,
        "allocated": allocated,
        "unallocated": payment.amount - allocated,
    }


async def update_payment_status(
    db: AsyncSession,
    payment_id: int,
    new_status: PaymentStatus,
    *,
    user_id: int | None = None,
    reason: str | None = None,
) -> Payment:
    """Move a payment along pending → completed|failed, completed → refunded.

    Refunds are only accepted while nothing is allocated from the payment.
    A refunded payment that was posted to the GL has its entry reversed.
    """
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)

    old_status = payment.status
    if new_status not in PAYMENT_TRANSITIONS[old_status]:
        raise InvalidStatusTransition(
            f"Cannot move payment from {old_status.value} to {new_status.value}",
            current_status=old_status.value,
        )

    if new_status == PaymentStatus.REFUNDED:
        count = (await db.execute(
            select(sa_func.count(PaymentAllocation.id))
            .where(PaymentAllocation.payment_id == payment.id)
        )).scalar_one()
        if count:
            raise InvalidStatusTransition(
                "Payments with allocations cannot be refunded",
                payment_id=payment.id,
                allocation_count=count,
            )
        if payment.gl_journal_entry_id is not None:
            await reverse_journal_entry(
                db,
                payment.gl_journal_entry_id,
                reason=reason or f"Refund of payment {payment.payment_number}",
                created_by=user_id,
            )

    payment.status = new_status
    record_audit(
        db,
        entity_type="payment",
        entity_id=payment.id,
        student_id=payment.student_id,
        action="status_change",
        user_id=user_id,
        old_values={"status": old_status.value},
        new_values={"status": new_status.value},
        details=reason,
    )
    await db.flush()
    logger.info(
        "Payment %s status %s -> %s", payment.payment_number, old_status.value, new_status.value
    )
    return payment


async def post_payment_to_gl(
    db: AsyncSession, payment_id: int, *, posted_by: int | None = None
):
    """DR cash / CR receivable for a completed payment; posts at most once."""
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    if payment.gl_journal_entry_id is not None:
        raise AlreadyPosted(
            f"Payment {payment.payment_number} is already posted to the general ledger",
            journal_entry_id=payment.gl_journal_entry_id,
        )
    if payment.status != PaymentStatus.COMPLETED:
        raise InvalidStatusTransition(
            f"Only completed payments can be posted; payment is {payment.status.value}"
        )

    entry = await post_transfer(
        db,
        debit_account_code=settings.gl_cash_account_code,
        credit_account_code=settings.gl_receivable_account_code,
        amount=payment.amount,
        description=f"Payment {payment.payment_number} from student {payment.student_id}",
        source_type=JournalSourceType.PAYMENT,
        source_reference=payment.payment_number,
        entry_date=payment.payment_date,
        created_by=posted_by,
    )
    payment.gl_journal_entry_id = entry.id
    record_audit(
        db,
        entity_type="payment",
        entity_id=payment.id,
        student_id=payment.student_id,
        action="post_to_gl",
        user_id=posted_by,
        new_values={"gl_journal_entry_id": entry.id},
    )
    await db.flush()
    return entry
