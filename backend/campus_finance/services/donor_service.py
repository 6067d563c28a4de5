"""Donors and donations, including GL posting of donations."""

import logging
from datetime import date

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.config import settings
from campus_finance.models.donor import DonationMethod, Donation, Donor, DonorType
from campus_finance.models.gl import JournalEntry, JournalSourceType
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    AlreadyPosted,
    DuplicateReference,
    NotFoundError,
    ValidationError,
)
from campus_finance.services.gl.journal_engine import post_transfer
from campus_finance.services.money import require_positive

logger = logging.getLogger(__name__)


async def create_donor(
    db: AsyncSession,
    *,
    donor_code: str,
    name: str,
    donor_type: DonorType = DonorType.INDIVIDUAL,
    email: str | None = None,
    phone: str | None = None,
) -> Donor:
    donor_code = donor_code.strip().upper()
    if not donor_code or not name.strip():
        raise ValidationError("donor_code and name are required")
    existing = await db.execute(select(Donor.id).where(Donor.donor_code == donor_code))
    if existing.scalar_one_or_none() is not None:
        raise DuplicateReference(f"Donor code '{donor_code}' already exists", donor_code=donor_code)

    donor = Donor(
        donor_code=donor_code,
        name=name.strip(),
        donor_type=donor_type,
        email=email,
        phone=phone,
        total_donations=0,
        is_active=True,
    )
    db.add(donor)
    await db.flush()
    await db.refresh(donor)
    return donor


async def require_donor(db: AsyncSession, donor_id: int) -> Donor:
    donor = await db.get(Donor, donor_id)
    if donor is None:
        raise NotFoundError(f"Donor {donor_id} not found", donor_id=donor_id)
    return donor


async def list_donors(db: AsyncSession, *, active_only: bool = False) -> list[Donor]:
    q = select(Donor).order_by(Donor.donor_code)
    if active_only:
        q = q.where(Donor.is_active.is_(True))
    result = await db.execute(q)
    return list(result.scalars().all())


async def set_donor_active(db: AsyncSession, donor_id: int, is_active: bool) -> Donor:
    donor = await require_donor(db, donor_id)
    donor.is_active = is_active
    await db.flush()
    return donor


async def record_donation(
    db: AsyncSession,
    *,
    donor_id: int,
    amount: int,
    donation_date: date,
    payment_method: DonationMethod,
    purpose: str | None = None,
    recorded_by: int | None = None,
) -> Donation:
    """Insert a donation and roll it into the donor's totals atomically."""
    require_positive(amount)
    result = await db.execute(
        select(Donor)
        .where(Donor.id == donor_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    donor = result.scalar_one_or_none()
    if donor is None:
        raise NotFoundError(f"Donor {donor_id} not found", donor_id=donor_id)
    if not donor.is_active:
        raise ValidationError(f"Donor {donor.donor_code} is inactive")

    donation = Donation(
        donor_id=donor.id,
        amount=amount,
        donation_date=donation_date,
        purpose=purpose,
        payment_method=payment_method,
        recorded_by=recorded_by,
    )
    db.add(donation)
    donor.total_donations += amount
    if donor.last_donation_date is None or donation_date > donor.last_donation_date:
        donor.last_donation_date = donation_date
    await db.flush()
    await db.refresh(donation)
    logger.info("Recorded donation %d from donor %s: %d", donation.id, donor.donor_code, amount)
    return donation


async def list_donations(
    db: AsyncSession, *, donor_id: int | None = None, posted: bool | None = None
) -> list[Donation]:
    q = select(Donation).order_by(Donation.donation_date.desc(), Donation.id.desc())
    if donor_id is not None:
        q = q.where(Donation.donor_id == donor_id)
    if posted is True:
        q = q.where(Donation.gl_journal_entry_id.is_not(None))
    elif posted is False:
        q = q.where(Donation.gl_journal_entry_id.is_(None))
    result = await db.execute(q)
    return list(result.scalars().all())


async def recompute_donor_totals(db: AsyncSession, donor_id: int) -> Donor:
    """Re-derive total_donations and last_donation_date from donation rows."""
    result = await db.execute(
        select(Donor)
        .where(Donor.id == donor_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    donor = result.scalar_one_or_none()
    if donor is None:
        raise NotFoundError(f"Donor {donor_id} not found", donor_id=donor_id)

    row = (await db.execute(
        select(
            sa_func.coalesce(sa_func.sum(Donation.amount), 0).label("total"),
            sa_func.max(Donation.donation_date).label("last"),
        ).where(Donation.donor_id == donor_id)
    )).one()
    total, last = int(row.total), row.last
    if total != donor.total_donations:
        logger.warning(
            "Donor %s total drifted: stored=%d actual=%d",
            donor.donor_code, donor.total_donations, total,
        )
    donor.total_donations = total
    donor.last_donation_date = last
    await db.flush()
    return donor


async def post_donation_to_gl(
    db: AsyncSession, donation_id: int, *, posted_by: int | None = None
) -> JournalEntry:
    """DR cash / CR donation revenue, stamped on the donation in one transaction.

    A second call raises AlreadyPosted and creates nothing.
    """
    result = await db.execute(
        select(Donation)
        .where(Donation.id == donation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    donation = result.scalar_one_or_none()
    if donation is None:
        raise NotFoundError(f"Donation {donation_id} not found", donation_id=donation_id)
    if donation.gl_journal_entry_id is not None:
        raise AlreadyPosted(
            f"Donation {donation_id} is already posted to the general ledger",
            journal_entry_id=donation.gl_journal_entry_id,
        )

    entry = await post_transfer(
        db,
        debit_account_code=settings.gl_cash_account_code,
        credit_account_code=settings.gl_donation_revenue_account_code,
        amount=donation.amount,
        description=f"Donation #{donation.id}" + (f": {donation.purpose}" if donation.purpose else ""),
        source_type=JournalSourceType.DONATION,
        source_reference=f"donation:{donation.id}",
        entry_date=donation.donation_date,
        created_by=posted_by,
    )
    donation.gl_journal_entry_id = entry.id
    record_audit(
        db,
        entity_type="donation",
        entity_id=donation.id,
        action="post_to_gl",
        user_id=posted_by,
        new_values={"gl_journal_entry_id": entry.id},
    )
    await db.flush()
    logger.info("Posted donation %d to GL as %s", donation.id, entry.entry_number)
    return entry
