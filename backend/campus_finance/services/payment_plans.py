"""Payment plan generator: splits a total into dated installments."""

import logging
from datetime import date, datetime, timezone

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from campus_finance.models.payment_plan import (
    InstallmentStatus,
    PaymentPlan,
    PaymentPlanInstallment,
    PlanFrequency,
    PlanStatus,
)
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    InvalidStatusTransition,
    InvariantViolation,
    NotFoundError,
    SettledError,
    ValidationError,
)
from campus_finance.services.money import require_positive

logger = logging.getLogger(__name__)

MIN_INSTALLMENTS = 1
MAX_INSTALLMENTS = 12

PLAN_TRANSITIONS: dict[PlanStatus, set[PlanStatus]] = {
    PlanStatus.ACTIVE: {PlanStatus.COMPLETED, PlanStatus.CANCELLED},
    PlanStatus.COMPLETED: set(),
    PlanStatus.CANCELLED: set(),
}

_MONTHS_PER_PERIOD = {
    PlanFrequency.MONTHLY: 1,
    PlanFrequency.QUARTERLY: 3,
}


def build_installments(
    total_amount: int,
    start_date: date,
    frequency: PlanFrequency,
    installments_count: int,
) -> list[tuple[date, int]]:
    """Return ``[(due_date, amount), ...]``.

    Every installment gets ``total // count``; the first one also takes the
    remainder.  ``1000`` over 3 gives ``[334, 333, 333]``.
    """
    require_positive(total_amount, "total_amount")
    if not MIN_INSTALLMENTS <= installments_count <= MAX_INSTALLMENTS:
        raise ValidationError(
            f"installments_count must be between {MIN_INSTALLMENTS} and {MAX_INSTALLMENTS}"
        )
    if frequency not in _MONTHS_PER_PERIOD:
        raise ValidationError(f"Unsupported frequency: {frequency}")
    if total_amount < installments_count:
        raise ValidationError(
            "total_amount is too small to give every installment a positive amount",
            total_amount=total_amount,
            installments_count=installments_count,
        )

    per_installment, remainder = divmod(total_amount, installments_count)
    step = _MONTHS_PER_PERIOD[frequency]
    schedule = []
    for i in range(installments_count):
        amount = per_installment + remainder if i == 0 else per_installment
        schedule.append((start_date + relativedelta(months=i * step), amount))

    if sum(amount for _, amount in schedule) != total_amount:
        raise InvariantViolation("Installments do not sum to the plan total")
    return schedule


async def create_plan(
    db: AsyncSession,
    *,
    student_id: int,
    total_amount: int,
    start_date: date,
    frequency: PlanFrequency,
    installments_count: int,
    created_by: int | None = None,
) -> PaymentPlan:
    schedule = build_installments(total_amount, start_date, frequency, installments_count)

    plan = PaymentPlan(
        student_id=student_id,
        total_amount=total_amount,
        start_date=start_date,
        end_date=schedule[-1][0],
        frequency=frequency,
        installments_count=installments_count,
        status=PlanStatus.ACTIVE,
        created_by=created_by,
        installments=[
            PaymentPlanInstallment(
                installment_number=n,
                due_date=due,
                amount=amount,
                status=InstallmentStatus.PENDING,
            )
            for n, (due, amount) in enumerate(schedule, start=1)
        ],
    )
    db.add(plan)
    await db.flush()
    await db.refresh(plan)
    await db.refresh(plan, ["installments"])
    logger.info(
        "Created payment plan %d for student %d: %d over %d %s installments",
        plan.id, student_id, total_amount, installments_count, frequency.value,
    )
    return plan


def installment_status(
    installment: PaymentPlanInstallment, today: date | None = None
) -> InstallmentStatus:
    if installment.status == InstallmentStatus.PAID:
        return InstallmentStatus.PAID
    if installment.due_date < (today or date.today()):
        return InstallmentStatus.OVERDUE
    return InstallmentStatus.PENDING


def _derive_on_read(plans, today: date | None) -> None:
    for plan in plans:
        if plan.status != PlanStatus.ACTIVE:
            continue
        for inst in plan.installments:
            set_committed_value(inst, "status", installment_status(inst, today))


async def get_plan(
    db: AsyncSession, plan_id: int, *, today: date | None = None
) -> PaymentPlan | None:
    result = await db.execute(
        select(PaymentPlan)
        .where(PaymentPlan.id == plan_id)
        .options(selectinload(PaymentPlan.installments))
    )
    plan = result.scalar_one_or_none()
    if plan is not None:
        _derive_on_read([plan], today)
    return plan


async def require_plan(
    db: AsyncSession, plan_id: int, *, today: date | None = None
) -> PaymentPlan:
    plan = await get_plan(db, plan_id, today=today)
    if plan is None:
        raise NotFoundError(f"Payment plan {plan_id} not found")
    return plan


async def list_plans(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    status: PlanStatus | None = None,
    today: date | None = None,
) -> list[PaymentPlan]:
    q = (
        select(PaymentPlan)
        .options(selectinload(PaymentPlan.installments))
        .order_by(PaymentPlan.id.desc())
    )
    if student_id is not None:
        q = q.where(PaymentPlan.student_id == student_id)
    if status is not None:
        q = q.where(PaymentPlan.status == status)
    result = await db.execute(q)
    plans = list(result.scalars().all())
    _derive_on_read(plans, today)
    return plans


# ── Lifecycle ───────────────────────────────────────────────


async def _lock_plan(db: AsyncSession, plan_id: int) -> PaymentPlan:
    result = await db.execute(
        select(PaymentPlan)
        .where(PaymentPlan.id == plan_id)
        .options(selectinload(PaymentPlan.installments))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise NotFoundError(f"Payment plan {plan_id} not found")
    return plan


def _set_plan_status(
    db: AsyncSession,
    plan: PaymentPlan,
    new_status: PlanStatus,
    *,
    user_id: int | None,
    reason: str | None,
) -> None:
    old = plan.status
    plan.status = new_status
    record_audit(
        db,
        entity_type="payment_plan",
        entity_id=plan.id,
        student_id=plan.student_id,
        action="status_change",
        user_id=user_id,
        old_values={"status": old.value},
        new_values={"status": new_status.value},
        details=reason,
    )
    logger.info("Payment plan %d status %s -> %s", plan.id, old.value, new_status.value)


async def update_plan_status(
    db: AsyncSession,
    plan_id: int,
    new_status: PlanStatus,
    *,
    user_id: int | None = None,
    reason: str | None = None,
) -> PaymentPlan:
    """Complete or cancel an active plan.

    Completing requires every installment to be paid.  Completed and
    cancelled plans are final.
    """
    plan = await _lock_plan(db, plan_id)
    if new_status not in PLAN_TRANSITIONS[plan.status]:
        raise InvalidStatusTransition(
            f"Cannot move payment plan from {plan.status.value} to {new_status.value}",
            current_status=plan.status.value,
        )
    if new_status == PlanStatus.COMPLETED:
        unpaid = [
            i.installment_number for i in plan.installments
            if i.status != InstallmentStatus.PAID
        ]
        if unpaid:
            raise InvalidStatusTransition(
                "Payment plan still has unpaid installments",
                installment_numbers=unpaid,
            )
    _set_plan_status(db, plan, new_status, user_id=user_id, reason=reason)
    await db.flush()
    return plan


async def mark_installment_paid(
    db: AsyncSession,
    plan_id: int,
    installment_number: int,
    *,
    user_id: int | None = None,
) -> PaymentPlan:
    """Mark one installment paid; the plan completes with its last installment."""
    plan = await _lock_plan(db, plan_id)
    if plan.status != PlanStatus.ACTIVE:
        raise InvalidStatusTransition(
            f"Payment plan {plan.id} is {plan.status.value}",
            current_status=plan.status.value,
        )
    installment = next(
        (i for i in plan.installments if i.installment_number == installment_number), None
    )
    if installment is None:
        raise NotFoundError(
            f"Installment {installment_number} not found on payment plan {plan.id}"
        )
    if installment.status == InstallmentStatus.PAID:
        raise SettledError(
            f"Installment {installment_number} is already paid",
            kind="InstallmentAlreadyPaid",
            installment_number=installment_number,
        )

    old = installment.status
    installment.status = InstallmentStatus.PAID
    installment.paid_at = datetime.now(timezone.utc)
    installment.paid_by = user_id
    record_audit(
        db,
        entity_type="payment_plan_installment",
        entity_id=installment.id,
        student_id=plan.student_id,
        action="mark_paid",
        user_id=user_id,
        old_values={"status": old.value},
        new_values={"status": InstallmentStatus.PAID.value},
    )
    if all(i.status == InstallmentStatus.PAID for i in plan.installments):
        _set_plan_status(
            db, plan, PlanStatus.COMPLETED, user_id=user_id, reason="All installments paid"
        )
    await db.flush()
    return plan


async def refresh_installment_statuses(db: AsyncSession, today: date | None = None) -> int:
    """Persist overdue/pending for installments of active plans; returns how many changed."""
    today = today or date.today()
    result = await db.execute(
        select(PaymentPlanInstallment)
        .join(PaymentPlan, PaymentPlanInstallment.payment_plan_id == PaymentPlan.id)
        .where(
            PaymentPlan.status == PlanStatus.ACTIVE,
            PaymentPlanInstallment.status != InstallmentStatus.PAID,
        )
        .execution_options(populate_existing=True)
    )
    changed = 0
    for inst in result.scalars().all():
        derived = installment_status(inst, today)
        if derived != inst.status:
            inst.status = derived
            changed += 1
    if changed:
        await db.flush()
        logger.info("Refreshed installment statuses: %d changed", changed)
    return changed
