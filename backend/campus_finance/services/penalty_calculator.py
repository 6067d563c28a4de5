"""Late-fee penalty calculator.

Operator-triggered batch: every open fee past its due date (plus grace) is
examined and, unless it was already penalised for the current cycle, gets a
new ``late`` StudentFee.  The (original fee, cycle date) pair is recorded in
``late_fee_penalties`` and is unique, so re-running never double-charges.
"""

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.config import LateFeeMode, LateFeePolicy, settings
from campus_finance.models.fees import FeeType, LateFeePenalty, StudentFee
from campus_finance.services.audit import record_audit
from campus_finance.services.fee_service import create_fee, refresh_overdue_statuses
from campus_finance.services.money import apply_bps

logger = logging.getLogger(__name__)


def penalty_amount(
    balance: int,
    *,
    mode: LateFeeMode,
    fixed_amount: int,
    rate_bps: int,
) -> int:
    """Penalty for an unpaid balance.  Percentage mode charges on the balance."""
    if balance <= 0:
        return 0
    if mode == LateFeeMode.PERCENTAGE:
        return apply_bps(balance, rate_bps)
    return fixed_amount


def cycle_date_for(
    due_date: date,
    today: date,
    *,
    policy: LateFeePolicy,
    cycle_days: int,
) -> date:
    """Start date of the overdue cycle ``today`` falls in.

    With the ``once`` policy there is a single cycle starting at the due date.
    """
    if policy == LateFeePolicy.ONCE:
        return due_date
    days_overdue = max((today - due_date).days, 0)
    return due_date + timedelta(days=(days_overdue // cycle_days) * cycle_days)


async def calculate_penalties(
    db: AsyncSession,
    *,
    today: date | None = None,
    performed_by: int | None = None,
) -> dict:
    """Apply late fees to overdue fees.  Returns ``{"processed", "applied"}``."""
    today = today or date.today()
    await refresh_overdue_statuses(db, today)

    cutoff = today - timedelta(days=settings.late_fee_grace_days)
    result = await db.execute(
        select(StudentFee)
        .where(
            StudentFee.is_archived.is_(False),
            StudentFee.fee_type != FeeType.LATE,
            StudentFee.paid_amount < StudentFee.amount,
            StudentFee.due_date < cutoff,
        )
        .order_by(StudentFee.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    candidates = list(result.scalars().all())
    if not candidates:
        return {"processed": 0, "applied": 0}

    existing = await db.execute(
        select(LateFeePenalty.original_fee_id, LateFeePenalty.cycle_date)
        .where(LateFeePenalty.original_fee_id.in_([f.id for f in candidates]))
    )
    already = {(row.original_fee_id, row.cycle_date) for row in existing.all()}

    applied = 0
    for fee in candidates:
        cycle = cycle_date_for(
            fee.due_date, today,
            policy=settings.late_fee_policy,
            cycle_days=settings.late_fee_cycle_days,
        )
        if (fee.id, cycle) in already:
            continue

        amount = penalty_amount(
            fee.balance,
            mode=settings.late_fee_mode,
            fixed_amount=settings.late_fee_fixed_amount,
            rate_bps=settings.late_fee_rate_bps,
        )
        if amount <= 0:
            continue

        penalty = await create_fee(
            db,
            student_id=fee.student_id,
            amount=amount,
            due_date=today + timedelta(days=settings.late_fee_due_days),
            description=f"Late fee for #{fee.id}: {fee.description}",
            fee_type=FeeType.LATE,
            penalized_fee_id=fee.id,
            created_by=performed_by,
            today=today,
        )
        db.add(LateFeePenalty(
            original_fee_id=fee.id,
            cycle_date=cycle,
            penalty_fee_id=penalty.id,
            amount=amount,
            rule=settings.late_fee_mode.value,
        ))
        record_audit(
            db,
            entity_type="student_fee",
            entity_id=fee.id,
            student_id=fee.student_id,
            action="penalty_applied",
            user_id=performed_by,
            new_values={
                "penalty_fee_id": penalty.id,
                "amount": amount,
                "cycle_date": cycle.isoformat(),
            },
        )
        already.add((fee.id, cycle))
        applied += 1

    await db.flush()
    logger.info("Penalty run %s: processed=%d applied=%d", today, len(candidates), applied)
    return {"processed": len(candidates), "applied": applied}
