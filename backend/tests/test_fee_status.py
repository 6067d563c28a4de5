"""Fee status derivation and fee creation/listing."""

from datetime import date

import pytest

from campus_finance.models.fees import FeeStatus, FeeType
from campus_finance.services import fee_service
from campus_finance.services.allocation_engine import allocate
from campus_finance.services.errors import NotFoundError, ValidationError
from campus_finance.services.fee_service import compute_fee_status

TODAY = date(2026, 3, 15)


# ===================================================================
# compute_fee_status
# ===================================================================


class TestComputeFeeStatus:

    def test_untouched_before_due_is_pending(self):
        assert compute_fee_status(1000, 0, date(2026, 4, 1), TODAY) == FeeStatus.PENDING

    def test_due_today_is_still_pending(self):
        assert compute_fee_status(1000, 0, TODAY, TODAY) == FeeStatus.PENDING

    def test_untouched_past_due_is_overdue(self):
        assert compute_fee_status(1000, 0, date(2026, 3, 1), TODAY) == FeeStatus.OVERDUE

    def test_partial_stays_partial_past_due(self):
        assert compute_fee_status(1000, 1, date(2026, 1, 1), TODAY) == FeeStatus.PARTIAL

    def test_fully_paid(self):
        assert compute_fee_status(1000, 1000, date(2026, 1, 1), TODAY) == FeeStatus.PAID


# ===================================================================
# Fees and structures
# ===================================================================


class TestCreateFee:

    @pytest.mark.asyncio
    async def test_new_fee_starts_with_nothing_paid(self, make_fee):
        fee = await make_fee(amount=50000, today=TODAY)
        assert fee.id is not None
        assert fee.paid_amount == 0
        assert fee.balance == 50000
        assert fee.status == FeeStatus.PENDING

    @pytest.mark.asyncio
    async def test_fee_already_past_due_is_overdue(self, make_fee):
        fee = await make_fee(due_date=date(2026, 2, 1), today=TODAY)
        assert fee.status == FeeStatus.OVERDUE

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, make_fee):
        with pytest.raises(ValidationError):
            await make_fee(amount=0)

    @pytest.mark.asyncio
    async def test_require_fee_missing(self, db):
        with pytest.raises(NotFoundError):
            await fee_service.require_fee(db, 999)

    @pytest.mark.asyncio
    async def test_refresh_overdue_statuses(self, db, make_fee):
        fee = await make_fee(due_date=date(2026, 3, 20), today=TODAY)
        assert fee.status == FeeStatus.PENDING
        changed = await fee_service.refresh_overdue_statuses(db, date(2026, 3, 25))
        assert changed == 1
        assert fee.status == FeeStatus.OVERDUE


class TestStatusOnRead:

    @pytest.mark.asyncio
    async def test_past_due_fee_reads_as_overdue_without_refresh(self, db, make_fee):
        fee = await make_fee(due_date=date(2020, 2, 1), today=date(2020, 1, 1))
        assert fee.status == FeeStatus.PENDING

        got = await fee_service.require_fee(db, fee.id, today=date(2020, 3, 1))
        assert got.status == FeeStatus.OVERDUE

        overdue = await fee_service.list_fees(
            db, status=FeeStatus.OVERDUE, today=date(2020, 3, 1)
        )
        assert [f.id for f in overdue] == [fee.id]
        pending = await fee_service.list_fees(
            db, status=FeeStatus.PENDING, today=date(2020, 3, 1)
        )
        assert pending == []

    @pytest.mark.asyncio
    async def test_read_does_not_write_status(self, db, make_fee):
        fee = await make_fee(due_date=date(2020, 2, 1), today=date(2020, 1, 1))
        await fee_service.require_fee(db, fee.id, today=date(2020, 3, 1))
        assert fee not in db.dirty

    @pytest.mark.asyncio
    async def test_status_filter_matches_derivation(self, db, make_fee, make_payment):
        today = date(2026, 3, 15)
        pending = await make_fee(due_date=date(2026, 4, 1))
        overdue = await make_fee(due_date=date(2026, 3, 1))
        partial = await make_fee(due_date=date(2026, 3, 1), amount=1000)
        paid = await make_fee(due_date=date(2026, 4, 1), amount=1000)
        payment = await make_payment(amount=1500)
        await allocate(db, payment_id=payment.id, student_fee_id=partial.id, amount=500, today=today)
        await allocate(db, payment_id=payment.id, student_fee_id=paid.id, amount=1000, today=today)

        for status, expected in [
            (FeeStatus.PENDING, pending),
            (FeeStatus.OVERDUE, overdue),
            (FeeStatus.PARTIAL, partial),
            (FeeStatus.PAID, paid),
        ]:
            rows = await fee_service.list_fees(db, status=status, today=today)
            assert [f.id for f in rows] == [expected.id]
            assert rows[0].status == status


class TestFeeStructures:

    @pytest.mark.asyncio
    async def test_structure_needs_class_or_program(self, db):
        with pytest.raises(ValidationError):
            await fee_service.create_fee_structure(
                db, fee_type=FeeType.TUITION, amount=1000,
                academic_period_id=1, due_date=date(2026, 9, 1),
            )

    @pytest.mark.asyncio
    async def test_assign_skips_students_already_billed(self, db):
        structure = await fee_service.create_fee_structure(
            db, fee_type=FeeType.LAB, amount=7500, academic_period_id=1,
            due_date=date(2026, 9, 1), class_id=3,
        )
        first = await fee_service.assign_fee_structure(db, structure.id, [1, 2, 2])
        assert [f.student_id for f in first["created"]] == [1, 2]
        assert first["skipped_student_ids"] == []

        second = await fee_service.assign_fee_structure(db, structure.id, [2, 3])
        assert [f.student_id for f in second["created"]] == [3]
        assert second["skipped_student_ids"] == [2]
        assert all(f.amount == 7500 for f in first["created"] + second["created"])

    @pytest.mark.asyncio
    async def test_per_credit_structure_multiplies_amount(self, db):
        structure = await fee_service.create_fee_structure(
            db, fee_type=FeeType.TUITION, amount=20000, academic_period_id=1,
            due_date=date(2026, 9, 1), program_id=4, is_per_credit=True,
        )
        result = await fee_service.assign_fee_structure(
            db, structure.id, [10], credits={10: 15}
        )
        assert result["created"][0].amount == 300000

    @pytest.mark.asyncio
    async def test_per_credit_structure_requires_credits(self, db):
        structure = await fee_service.create_fee_structure(
            db, fee_type=FeeType.TUITION, amount=20000, academic_period_id=1,
            due_date=date(2026, 9, 1), program_id=4, is_per_credit=True,
        )
        with pytest.raises(ValidationError) as exc:
            await fee_service.assign_fee_structure(db, structure.id, [10, 11], credits={10: 3})
        assert exc.value.context["student_ids"] == [11]
