"""Bulk fee actions and the administrative mark-paid override."""

import pytest
from sqlalchemy import func, select

from campus_finance.models.audit import AuditLog
from campus_finance.models.fees import FeeOverride, FeeStatus
from campus_finance.models.payment import PaymentAllocation
from campus_finance.services import fee_service
from campus_finance.services.allocation_engine import allocate
from campus_finance.services.errors import (
    FeeHasAllocations,
    InvalidStatusTransition,
    NotFoundError,
)
from campus_finance.services.fee_service import BulkFeeAction


class TestMarkPaid:

    @pytest.mark.asyncio
    async def test_clears_fees_without_allocations(self, db, make_fee):
        a = await make_fee(amount=10000)
        b = await make_fee(amount=25000)

        result = await fee_service.bulk_action(
            db, BulkFeeAction.MARK_PAID, [b.id, a.id], performed_by=7, reason="Waived by board"
        )
        assert result == {
            "action": "paid", "affected": 2, "fee_ids": [a.id, b.id], "skipped_ids": [],
        }
        assert a.status == FeeStatus.PAID and b.status == FeeStatus.PAID

        overrides = (await db.execute(select(FeeOverride).order_by(FeeOverride.id))).scalars().all()
        assert [(o.student_fee_id, o.amount_cleared) for o in overrides] == [
            (a.id, 10000), (b.id, 25000),
        ]
        allocations = (await db.execute(select(func.count(PaymentAllocation.id)))).scalar_one()
        assert allocations == 0

        actions = (await db.execute(select(AuditLog.action))).scalars().all()
        assert actions.count("admin_mark_paid") == 2

    @pytest.mark.asyncio
    async def test_breakdown_separates_collected_from_cleared(self, db, make_fee, make_payment):
        fee = await make_fee(amount=50000)
        payment = await make_payment(amount=20000)
        await allocate(db, payment_id=payment.id, student_fee_id=fee.id, amount=20000)
        await fee_service.mark_fees_paid(db, [fee.id], performed_by=7)

        breakdown = await fee_service.fee_collection_breakdown(db, fee.id)
        assert breakdown["collected"] == 20000
        assert breakdown["administratively_cleared"] == 30000
        assert breakdown["balance"] == 0
        assert breakdown["status"] == "paid"

    @pytest.mark.asyncio
    async def test_already_paid_fee_is_left_alone(self, db, make_fee):
        fee = await make_fee(amount=1000)
        await fee_service.mark_fees_paid(db, [fee.id])
        await fee_service.mark_fees_paid(db, [fee.id])
        count = (await db.execute(select(func.count(FeeOverride.id)))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_affected_excludes_fees_already_paid(self, db, make_fee):
        done = await make_fee(amount=1000)
        open_fee = await make_fee(amount=2000)
        await fee_service.mark_fees_paid(db, [done.id])

        result = await fee_service.bulk_action(db, BulkFeeAction.MARK_PAID, [done.id, open_fee.id])
        assert result["affected"] == 1
        assert result["fee_ids"] == [open_fee.id]
        assert result["skipped_ids"] == [done.id]

    @pytest.mark.asyncio
    async def test_archived_fee_cannot_be_marked_paid(self, db, make_fee):
        fee = await make_fee()
        await fee_service.archive_fees(db, [fee.id])
        with pytest.raises(InvalidStatusTransition):
            await fee_service.mark_fees_paid(db, [fee.id])


class TestDelete:

    @pytest.mark.asyncio
    async def test_archives_unreferenced_fees(self, db, make_fee):
        fee = await make_fee()
        result = await fee_service.bulk_action(db, BulkFeeAction.DELETE, [fee.id])
        assert result["affected"] == 1
        assert fee.is_archived is True
        assert fee.archived_at is not None
        assert await fee_service.list_fees(db) == []
        assert len(await fee_service.list_fees(db, include_archived=True)) == 1

    @pytest.mark.asyncio
    async def test_already_archived_fee_is_skipped(self, db, make_fee):
        old = await make_fee()
        new = await make_fee()
        await fee_service.archive_fees(db, [old.id])

        result = await fee_service.bulk_action(db, BulkFeeAction.DELETE, [old.id, new.id])
        assert result["affected"] == 1
        assert result["fee_ids"] == [new.id]
        assert result["skipped_ids"] == [old.id]

    @pytest.mark.asyncio
    async def test_refuses_whole_batch_when_one_fee_has_allocations(
        self, db, make_fee, make_payment
    ):
        clean = await make_fee()
        used = await make_fee()
        payment = await make_payment(amount=100)
        await allocate(db, payment_id=payment.id, student_fee_id=used.id, amount=100)

        with pytest.raises(FeeHasAllocations) as exc:
            await fee_service.bulk_action(db, BulkFeeAction.DELETE, [clean.id, used.id])
        assert exc.value.context["fee_ids"] == [used.id]
        assert clean.is_archived is False
        assert used.is_archived is False

    @pytest.mark.asyncio
    async def test_missing_id_fails_the_batch(self, db, make_fee):
        fee = await make_fee()
        with pytest.raises(NotFoundError) as exc:
            await fee_service.bulk_action(db, BulkFeeAction.DELETE, [fee.id, 404])
        assert exc.value.context["fee_ids"] == [404]
        assert fee.is_archived is False
