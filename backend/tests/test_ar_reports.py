"""Receivables aging and student statements."""

from datetime import date

import pytest

from campus_finance.services.allocation_engine import allocate
from campus_finance.services.ar_reports import aging_bucket, aging_report, student_statement

TODAY = date(2026, 6, 30)


class TestAgingBucket:

    @pytest.mark.parametrize("due,expected", [
        (date(2026, 7, 15), "current"),
        (date(2026, 6, 30), "current"),
        (date(2026, 6, 29), "1-30"),
        (date(2026, 5, 31), "1-30"),
        (date(2026, 5, 30), "31-60"),
        (date(2026, 4, 1), "61-90"),
        (date(2026, 1, 1), "90+"),
    ])
    def test_buckets(self, due, expected):
        assert aging_bucket(due, TODAY) == expected


class TestAgingReport:

    @pytest.mark.asyncio
    async def test_groups_open_balances(self, db, make_fee, make_payment):
        a = await make_fee(student_id=1, amount=10000, due_date=date(2026, 6, 20))
        await make_fee(student_id=2, amount=20000, due_date=date(2026, 1, 1))
        await make_fee(student_id=2, amount=5000, due_date=date(2026, 7, 1))
        payment = await make_payment(student_id=1, amount=4000)
        await allocate(db, payment_id=payment.id, student_fee_id=a.id, amount=4000)

        report = await aging_report(db, today=TODAY)
        buckets = {b["bucket"]: b for b in report["buckets"]}
        assert buckets["1-30"]["amount"] == 6000
        assert buckets["90+"]["amount"] == 20000
        assert buckets["current"]["amount"] == 5000
        assert report["total_outstanding"] == 31000
        assert [s["student_id"] for s in report["students"]] == [1, 2]


class TestStudentStatement:

    @pytest.mark.asyncio
    async def test_totals(self, db, make_fee, make_payment):
        fee = await make_fee(student_id=4, amount=30000)
        payment = await make_payment(student_id=4, amount=50000)
        await allocate(db, payment_id=payment.id, student_fee_id=fee.id, amount=30000)

        statement = await student_statement(db, 4)
        assert statement["total_billed"] == 30000
        assert statement["total_paid"] == 30000
        assert statement["outstanding_balance"] == 0
        assert statement["unallocated_credit"] == 20000
        assert statement["payments"][0]["allocated"] == 30000
