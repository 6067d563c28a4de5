"""Tests for the double-entry journal engine.

Covers:
- Line validation (shape, integer amounts, balance)
- Posting against inactive / unknown accounts
- Reversal: mirror lines, linkage, double-reversal refused
"""

import pytest

from campus_finance.models.gl import JournalEntryStatus, JournalSourceType
from campus_finance.services.errors import (
    AccountInactive,
    InvalidJournalLine,
    NotFoundError,
    SettledError,
    UnbalancedEntry,
)
from campus_finance.services.gl.coa_service import require_account_by_code, set_account_active
from campus_finance.services.gl.journal_engine import (
    list_journal_entries,
    post_journal_entry,
    post_transfer,
    reverse_journal_entry,
    validate_lines,
)


# ===================================================================
# validate_lines
# ===================================================================


class TestValidateLines:

    def test_balanced_entry_returns_totals(self):
        lines = [
            {"account_id": 1, "debit": 1500, "credit": 0},
            {"account_id": 2, "debit": 0, "credit": 1000},
            {"account_id": 3, "debit": 0, "credit": 500},
        ]
        assert validate_lines(lines) == (1500, 1500)

    def test_single_line_rejected(self):
        with pytest.raises(InvalidJournalLine):
            validate_lines([{"account_id": 1, "debit": 100, "credit": 0}])

    def test_both_sides_rejected(self):
        with pytest.raises(InvalidJournalLine) as exc:
            validate_lines([
                {"account_id": 1, "debit": 100, "credit": 100},
                {"account_id": 2, "debit": 0, "credit": 0},
            ])
        assert exc.value.context["line_number"] == 1

    def test_empty_line_rejected(self):
        with pytest.raises(InvalidJournalLine):
            validate_lines([
                {"account_id": 1, "debit": 100, "credit": 0},
                {"account_id": 2, "debit": 0, "credit": 0},
            ])

    def test_fractional_amount_rejected(self):
        with pytest.raises(InvalidJournalLine):
            validate_lines([
                {"account_id": 1, "debit": 10.5, "credit": 0},
                {"account_id": 2, "debit": 0, "credit": 10.5},
            ])

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidJournalLine):
            validate_lines([
                {"account_id": 1, "debit": -5, "credit": 0},
                {"account_id": 2, "debit": 0, "credit": -5},
            ])

    def test_unbalanced_reports_totals(self):
        with pytest.raises(UnbalancedEntry) as exc:
            validate_lines([
                {"account_id": 1, "debit": 100, "credit": 0},
                {"account_id": 2, "debit": 0, "credit": 99},
            ])
        assert exc.value.context == {"total_debit": 100, "total_credit": 99}


# ===================================================================
# Posting
# ===================================================================


class TestPostJournalEntry:

    @pytest.mark.asyncio
    async def test_transfer_posts_two_lines(self, seeded_db):
        entry = await post_transfer(
            seeded_db,
            debit_account_code="5200",
            credit_account_code="1000",
            amount=12000,
            description="Printer toner",
            source_type=JournalSourceType.MANUAL,
            source_reference="INV-1",
        )
        assert entry.entry_number.startswith("JE-")
        assert entry.status == JournalEntryStatus.POSTED
        assert [(ln.line_number, ln.debit, ln.credit) for ln in entry.lines] == [
            (1, 12000, 0), (2, 0, 12000),
        ]

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, seeded_db):
        cash = await require_account_by_code(seeded_db, "1000")
        await set_account_active(seeded_db, cash.id, False)
        with pytest.raises(AccountInactive):
            await post_transfer(
                seeded_db,
                debit_account_code="5200",
                credit_account_code="1000",
                amount=100,
                description="x",
                source_type=JournalSourceType.MANUAL,
                source_reference="x",
            )
        assert await list_journal_entries(seeded_db) == []

    @pytest.mark.asyncio
    async def test_unknown_account_rejected(self, seeded_db):
        with pytest.raises(NotFoundError):
            await post_journal_entry(
                seeded_db,
                lines=[
                    {"account_id": 9999, "debit": 100, "credit": 0},
                    {"account_id": 9998, "debit": 0, "credit": 100},
                ],
                description="Ghost accounts",
            )


class TestReversal:

    @pytest.mark.asyncio
    async def test_reversal_mirrors_lines_and_links_both_ways(self, seeded_db):
        original = await post_transfer(
            seeded_db,
            debit_account_code="1000",
            credit_account_code="4000",
            amount=5000,
            description="Tuition",
            source_type=JournalSourceType.MANUAL,
            source_reference="T-1",
        )
        reversal = await reverse_journal_entry(seeded_db, original.id, reason="Keyed twice")

        assert reversal.source_type == JournalSourceType.REVERSAL
        assert reversal.reversal_of_id == original.id
        assert original.reversed_by_id == reversal.id
        assert original.status == JournalEntryStatus.REVERSED
        assert [(ln.account_id, ln.debit, ln.credit) for ln in reversal.lines] == [
            (ln.account_id, ln.credit, ln.debit) for ln in original.lines
        ]

        with pytest.raises(SettledError) as exc:
            await reverse_journal_entry(seeded_db, original.id, reason="again")
        assert exc.value.kind == "AlreadyReversed"

    @pytest.mark.asyncio
    async def test_reason_required(self, seeded_db):
        entry = await post_transfer(
            seeded_db,
            debit_account_code="1000",
            credit_account_code="4000",
            amount=5000,
            description="Tuition",
            source_type=JournalSourceType.MANUAL,
            source_reference="T-2",
        )
        with pytest.raises(InvalidJournalLine):
            await reverse_journal_entry(seeded_db, entry.id, reason="  ")
