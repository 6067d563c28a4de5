"""Trial balance, balance sheet, income statement and account balances."""

from datetime import date

import pytest
import pytest_asyncio

from campus_finance.models.gl import JournalSourceType
from campus_finance.services.errors import ValidationError
from campus_finance.services.gl import reports_service
from campus_finance.services.gl.coa_service import require_account_by_code
from campus_finance.services.gl.journal_engine import post_transfer, reverse_journal_entry


async def _transfer(db, dr, cr, amount, on, ref):
    return await post_transfer(
        db,
        debit_account_code=dr,
        credit_account_code=cr,
        amount=amount,
        description=ref,
        source_type=JournalSourceType.MANUAL,
        source_reference=ref,
        entry_date=on,
    )


@pytest_asyncio.fixture
async def ledger(seeded_db):
    db = seeded_db
    await _transfer(db, "1100", "4000", 500000, date(2026, 1, 10), "bill")
    await _transfer(db, "1000", "1100", 300000, date(2026, 2, 1), "collect")
    await _transfer(db, "1000", "4200", 100000, date(2026, 2, 15), "gift")
    await _transfer(db, "5200", "1000", 40000, date(2026, 3, 1), "supplies")
    return db


class TestTrialBalance:

    @pytest.mark.asyncio
    async def test_balances(self, ledger):
        tb = await reports_service.trial_balance(ledger)
        assert tb["is_balanced"] is True
        assert tb["total_debits"] == tb["total_credits"] == 600000
        by_code = {r["account_code"]: r for r in tb["rows"]}
        assert by_code["1000"]["debit_balance"] == 360000
        assert by_code["1100"]["debit_balance"] == 200000
        assert by_code["4000"]["credit_balance"] == 500000

    @pytest.mark.asyncio
    async def test_as_of_date_excludes_later_entries(self, ledger):
        tb = await reports_service.trial_balance(ledger, as_of_date=date(2026, 1, 31))
        assert [r["account_code"] for r in tb["rows"]] == ["1100", "4000"]
        assert tb["total_debits"] == 500000


class TestBalanceSheet:

    @pytest.mark.asyncio
    async def test_assets_equal_liabilities_plus_equity(self, ledger):
        bs = await reports_service.balance_sheet(ledger, as_of_date=date(2026, 12, 31))
        assert bs["total_assets"] == 560000
        assert bs["total_liabilities"] == 0
        assert bs["equity"] == [
            {"account_code": None, "account_name": "Current earnings", "balance": 560000}
        ]
        assert bs["balance_check"] is True


class TestIncomeStatement:

    @pytest.mark.asyncio
    async def test_period_totals(self, ledger):
        stmt = await reports_service.income_statement(
            ledger, start_date=date(2026, 2, 1), end_date=date(2026, 3, 31)
        )
        assert stmt["total_revenue"] == 100000
        assert stmt["total_expenses"] == 40000
        assert stmt["net_income"] == 60000

    @pytest.mark.asyncio
    async def test_inverted_range_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await reports_service.income_statement(
                ledger, start_date=date(2026, 3, 1), end_date=date(2026, 2, 1)
            )


class TestAccountBalance:

    @pytest.mark.asyncio
    async def test_reversal_nets_to_zero(self, seeded_db):
        entry = await _transfer(seeded_db, "1000", "4200", 9000, date(2026, 4, 1), "gift")
        await reverse_journal_entry(seeded_db, entry.id, reason="Bounced", entry_date=date(2026, 4, 2))

        cash = await require_account_by_code(seeded_db, "1000")
        before = await reports_service.get_account_balance(
            seeded_db, cash.id, as_of_date=date(2026, 4, 1)
        )
        after = await reports_service.get_account_balance(seeded_db, cash.id)
        assert before["balance"] == 9000
        assert (after["debit_total"], after["credit_total"], after["balance"]) == (9000, 9000, 0)
