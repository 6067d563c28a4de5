"""Donors, donations and posting donations to the general ledger."""

from datetime import date

import pytest
from sqlalchemy import func, select

from campus_finance.models.donor import DonationMethod
from campus_finance.models.gl import JournalEntry, JournalSourceType
from campus_finance.services import donor_service
from campus_finance.services.errors import (
    AlreadyPosted,
    DuplicateReference,
    NotFoundError,
    ValidationError,
)


async def _donor(db, code="d-001"):
    return await donor_service.create_donor(db, donor_code=code, name="Ada Lovelace")


async def _donate(db, donor, amount=100000, on=date(2026, 2, 1)):
    return await donor_service.record_donation(
        db, donor_id=donor.id, amount=amount, donation_date=on,
        payment_method=DonationMethod.BANK_TRANSFER,
    )


class TestDonors:

    @pytest.mark.asyncio
    async def test_code_unique(self, db):
        donor = await _donor(db)
        assert donor.donor_code == "D-001"
        with pytest.raises(DuplicateReference):
            await _donor(db, "D-001")

    @pytest.mark.asyncio
    async def test_donations_roll_into_totals(self, db):
        donor = await _donor(db)
        await _donate(db, donor, 100000, date(2026, 2, 1))
        await _donate(db, donor, 50000, date(2026, 1, 10))
        assert donor.total_donations == 150000
        assert donor.last_donation_date == date(2026, 2, 1)

    @pytest.mark.asyncio
    async def test_inactive_donor_rejected(self, db):
        donor = await _donor(db)
        await donor_service.set_donor_active(db, donor.id, False)
        with pytest.raises(ValidationError):
            await _donate(db, donor)
        assert donor.total_donations == 0

    @pytest.mark.asyncio
    async def test_recompute_repairs_drift(self, db):
        donor = await _donor(db)
        await _donate(db, donor, 7000)
        donor.total_donations = 1
        await db.flush()
        repaired = await donor_service.recompute_donor_totals(db, donor.id)
        assert repaired.total_donations == 7000

    @pytest.mark.asyncio
    async def test_missing_donor(self, db):
        with pytest.raises(NotFoundError):
            await donor_service.require_donor(db, 12)


class TestPostDonation:

    @pytest.mark.asyncio
    async def test_posts_exactly_once(self, seeded_db):
        db = seeded_db
        donor = await _donor(db)
        donation = await _donate(db, donor, 250000)

        entry = await donor_service.post_donation_to_gl(db, donation.id, posted_by=7)
        assert entry.source_type == JournalSourceType.DONATION
        assert entry.source_reference == f"donation:{donation.id}"
        assert entry.total_debits == entry.total_credits == 250000
        assert donation.gl_journal_entry_id == entry.id

        with pytest.raises(AlreadyPosted) as exc:
            await donor_service.post_donation_to_gl(db, donation.id)
        assert exc.value.context["journal_entry_id"] == entry.id

        count = (await db.execute(select(func.count(JournalEntry.id)))).scalar_one()
        assert count == 1

        assert await donor_service.list_donations(db, posted=False) == []
        assert len(await donor_service.list_donations(db, posted=True)) == 1

    @pytest.mark.asyncio
    async def test_missing_posting_account_leaves_donation_unposted(self, db):
        donor = await _donor(db)
        donation = await _donate(db, donor)
        with pytest.raises(NotFoundError):
            await donor_service.post_donation_to_gl(db, donation.id)
        assert donation.gl_journal_entry_id is None
