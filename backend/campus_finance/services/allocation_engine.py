"""Payment allocation engine.

Applies part of a received payment to one student fee.  The caller picks the
target fee explicitly; there is no automatic oldest-first ordering.

Concurrency: the payment row and then the fee row are locked ``FOR UPDATE``
(always in that order) before the balances are read, so two concurrent
allocations cannot both pass the balance checks.
"""

import logging
from datetime import date

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.fees import StudentFee
from campus_finance.models.payment import Payment, PaymentAllocation, PaymentStatus
from campus_finance.services.errors import (
    FeeAlreadySettled,
    InsufficientPaymentBalance,
    InvalidStatusTransition,
    NotFoundError,
    OverAllocation,
    ValidationError,
)
from campus_finance.services.fee_service import refresh_status
from campus_finance.services.money import require_positive

logger = logging.getLogger(__name__)


async def allocated_total(db: AsyncSession, payment_id: int) -> int:
    result = await db.execute(
        select(sa_func.coalesce(sa_func.sum(PaymentAllocation.amount), 0))
        .where(PaymentAllocation.payment_id == payment_id)
    )
    return int(result.scalar_one())


async def _lock(db: AsyncSession, model, row_id: int):
    result = await db.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def allocate(
    db: AsyncSession,
    *,
    payment_id: int,
    student_fee_id: int,
    amount: int,
    allocated_by: int | None = None,
    today: date | None = None,
) -> PaymentAllocation:
    """Allocate ``amount`` of a payment to a fee.

    Raises FeeAlreadySettled, InsufficientPaymentBalance or OverAllocation with
    the remaining balances in the error context so the operator can retry.
    """
    require_positive(amount)

    payment = await _lock(db, Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    if payment.status != PaymentStatus.COMPLETED:
        raise InvalidStatusTransition(
            f"Only completed payments can be allocated; payment is {payment.status.value}",
            payment_id=payment_id,
        )

    fee = await _lock(db, StudentFee, student_fee_id)
    if fee is None:
        raise NotFoundError(f"Student fee {student_fee_id} not found", fee_id=student_fee_id)
    if fee.is_archived:
        raise InvalidStatusTransition("Archived fees cannot receive allocations", fee_id=fee.id)
    if fee.student_id != payment.student_id:
        raise ValidationError(
            "Payment and fee belong to different students",
            payment_student_id=payment.student_id,
            fee_student_id=fee.student_id,
        )

    unallocated = payment.amount - await allocated_total(db, payment.id)
    remaining = fee.amount - fee.paid_amount

    if remaining <= 0:
        raise FeeAlreadySettled(
            f"Fee {fee.id} is already fully paid",
            fee_id=fee.id,
            remaining_fee_balance=0,
            unallocated_payment_amount=unallocated,
        )
    if amount > unallocated:
        raise InsufficientPaymentBalance(
            f"Allocation of {amount} exceeds the unallocated payment amount {unallocated}",
            unallocated_payment_amount=unallocated,
            remaining_fee_balance=remaining,
        )
    if amount > remaining:
        raise OverAllocation(
            f"Allocation of {amount} exceeds the fee's remaining balance {remaining}",
            remaining_fee_balance=remaining,
            unallocated_payment_amount=unallocated,
        )

    allocation = PaymentAllocation(
        payment_id=payment.id,
        student_fee_id=fee.id,
        amount=amount,
        allocated_by=allocated_by,
    )
    db.add(allocation)
    fee.paid_amount += amount
    refresh_status(fee, today)
    await db.flush()
    await db.refresh(allocation)

    logger.info(
        "Allocated %d from payment %s to fee %d (fee now %s, %d/%d)",
        amount, payment.payment_number, fee.id, fee.status.value, fee.paid_amount, fee.amount,
    )
    return allocation


async def list_allocations(
    db: AsyncSession,
    *,
    payment_id: int | None = None,
    student_fee_id: int | None = None,
) -> list[PaymentAllocation]:
    q = select(PaymentAllocation).order_by(PaymentAllocation.id)
    if payment_id is not None:
        q = q.where(PaymentAllocation.payment_id == payment_id)
    if student_fee_id is not None:
        q = q.where(PaymentAllocation.student_fee_id == student_fee_id)
    result = await db.execute(q)
    return list(result.scalars().all())
