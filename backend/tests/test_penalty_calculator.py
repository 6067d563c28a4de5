"""Late-fee penalty calculation: amounts, cycles and idempotent runs."""

from datetime import date

import pytest
from sqlalchemy import select

from campus_finance.config import LateFeeMode, LateFeePolicy, settings
from campus_finance.models.fees import FeeType, LateFeePenalty, StudentFee
from campus_finance.services.penalty_calculator import (
    calculate_penalties,
    cycle_date_for,
    penalty_amount,
)

TODAY = date(2026, 3, 15)


@pytest.fixture
def late_fee_settings(monkeypatch):
    """Pin the late-fee knobs so tests don't depend on the environment."""
    monkeypatch.setattr(settings, "late_fee_mode", LateFeeMode.FIXED)
    monkeypatch.setattr(settings, "late_fee_fixed_amount", 2500)
    monkeypatch.setattr(settings, "late_fee_rate_bps", 500)
    monkeypatch.setattr(settings, "late_fee_policy", LateFeePolicy.ONCE)
    monkeypatch.setattr(settings, "late_fee_cycle_days", 30)
    monkeypatch.setattr(settings, "late_fee_due_days", 14)
    monkeypatch.setattr(settings, "late_fee_grace_days", 0)
    return monkeypatch


async def _late_fees(db):
    result = await db.execute(
        select(StudentFee).where(StudentFee.fee_type == FeeType.LATE).order_by(StudentFee.id)
    )
    return list(result.scalars().all())


# ===================================================================
# Pure helpers
# ===================================================================


class TestPenaltyAmount:

    def test_fixed(self):
        assert penalty_amount(30000, mode=LateFeeMode.FIXED, fixed_amount=2500, rate_bps=500) == 2500

    def test_percentage_charges_the_unpaid_balance(self):
        assert penalty_amount(
            30000, mode=LateFeeMode.PERCENTAGE, fixed_amount=2500, rate_bps=500
        ) == 1500

    def test_nothing_owed(self):
        assert penalty_amount(0, mode=LateFeeMode.FIXED, fixed_amount=2500, rate_bps=500) == 0


class TestCycleDate:

    def test_once_policy_always_uses_due_date(self):
        due = date(2026, 1, 1)
        assert cycle_date_for(due, date(2026, 6, 1), policy=LateFeePolicy.ONCE, cycle_days=30) == due

    def test_per_cycle_steps_forward(self):
        due = date(2026, 1, 1)
        kw = {"policy": LateFeePolicy.PER_CYCLE, "cycle_days": 30}
        assert cycle_date_for(due, date(2026, 1, 20), **kw) == due
        assert cycle_date_for(due, date(2026, 1, 31), **kw) == date(2026, 1, 31)
        assert cycle_date_for(due, date(2026, 3, 5), **kw) == date(2026, 3, 2)


# ===================================================================
# Penalty runs
# ===================================================================


class TestCalculatePenalties:

    @pytest.mark.asyncio
    async def test_second_run_applies_nothing(self, db, make_fee, late_fee_settings):
        fee = await make_fee(amount=50000, due_date=date(2026, 3, 1))

        first = await calculate_penalties(db, today=TODAY)
        assert first == {"processed": 1, "applied": 1}
        second = await calculate_penalties(db, today=TODAY)
        assert second == {"processed": 1, "applied": 0}

        late = await _late_fees(db)
        assert len(late) == 1
        assert late[0].amount == 2500
        assert late[0].penalized_fee_id == fee.id
        assert late[0].due_date == date(2026, 3, 29)
        assert late[0].description.startswith(f"Late fee for #{fee.id}")

    @pytest.mark.asyncio
    async def test_percentage_uses_remaining_balance(self, db, make_fee, late_fee_settings):
        late_fee_settings.setattr(settings, "late_fee_mode", LateFeeMode.PERCENTAGE)
        fee = await make_fee(amount=50000, due_date=date(2026, 3, 1))
        fee.paid_amount = 20000
        await db.flush()

        await calculate_penalties(db, today=TODAY)
        late = await _late_fees(db)
        assert [f.amount for f in late] == [1500]

    @pytest.mark.asyncio
    async def test_paid_and_not_yet_due_fees_are_skipped(self, db, make_fee, late_fee_settings):
        paid = await make_fee(amount=1000, due_date=date(2026, 3, 1))
        paid.paid_amount = 1000
        await make_fee(amount=1000, due_date=date(2026, 4, 1))
        await db.flush()

        result = await calculate_penalties(db, today=TODAY)
        assert result == {"processed": 0, "applied": 0}

    @pytest.mark.asyncio
    async def test_grace_period(self, db, make_fee, late_fee_settings):
        late_fee_settings.setattr(settings, "late_fee_grace_days", 30)
        await make_fee(due_date=date(2026, 3, 1))
        assert (await calculate_penalties(db, today=TODAY))["applied"] == 0
        assert (await calculate_penalties(db, today=date(2026, 4, 5)))["applied"] == 1

    @pytest.mark.asyncio
    async def test_late_fees_are_not_penalised_again(self, db, make_fee, late_fee_settings):
        await make_fee(due_date=date(2026, 1, 1))
        await calculate_penalties(db, today=TODAY)
        # the late fee itself is now overdue as well
        result = await calculate_penalties(db, today=date(2026, 6, 1))
        assert result["applied"] == 0
        assert len(await _late_fees(db)) == 1

    @pytest.mark.asyncio
    async def test_per_cycle_policy_charges_each_cycle_once(self, db, make_fee, late_fee_settings):
        late_fee_settings.setattr(settings, "late_fee_policy", LateFeePolicy.PER_CYCLE)
        fee = await make_fee(due_date=date(2026, 3, 1))

        assert (await calculate_penalties(db, today=TODAY))["applied"] == 1
        assert (await calculate_penalties(db, today=date(2026, 3, 20)))["applied"] == 0
        assert (await calculate_penalties(db, today=date(2026, 4, 5)))["applied"] == 1

        cycles = (await db.execute(
            select(LateFeePenalty.cycle_date)
            .where(LateFeePenalty.original_fee_id == fee.id)
            .order_by(LateFeePenalty.cycle_date)
        )).scalars().all()
        assert cycles == [date(2026, 3, 1), date(2026, 3, 31)]
