"""Core double-entry journal engine.

Every module that posts to the general ledger goes through
:func:`post_journal_entry`.  The fundamental invariant is
**total debits == total credits** for every journal entry, enforced at three
layers:

1. Database CHECK constraint on line amounts (debit xor credit)
2. Application-level validation before persist (this module)
3. API-level validation on input schemas

Journal entries are immutable once posted.  Corrections are made exclusively
via reversing entries.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campus_finance.models.gl import (
    ChartOfAccount,
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    JournalSourceType,
)
from campus_finance.services.errors import (
    AccountInactive,
    InvalidJournalLine,
    InvalidStatusTransition,
    NotFoundError,
    SettledError,
    UnbalancedEntry,
)
from campus_finance.services.gl.coa_service import require_account_by_code

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Entry-number generation
# ---------------------------------------------------------------------------

async def _next_entry_number(db: AsyncSession) -> str:
    """Generate the next sequential entry number: JE-YYYY-NNNNNN."""
    year = datetime.now(timezone.utc).year
    prefix = f"JE-{year}-"

    result = await db.execute(
        select(sa_func.max(JournalEntry.entry_number))
        .where(JournalEntry.entry_number.like(f"{prefix}%"))
    )
    last = result.scalar_one_or_none()
    seq = int(last.replace(prefix, "")) + 1 if last else 1
    return f"{prefix}{seq:06d}"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _as_amount(value: Any, line_no: int, side: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidJournalLine(
            f"Line {line_no}: {side} must be an integer number of minor units",
            line_number=line_no,
        )
    if value < 0:
        raise InvalidJournalLine(
            f"Line {line_no}: {side} cannot be negative", line_number=line_no
        )
    return value


def validate_lines(lines: list[dict[str, Any]]) -> tuple[int, int]:
    """Check line shape and balance.  Returns (total_debit, total_credit).

    Rejects entries with fewer than two lines, lines with both or neither
    side non-zero, and entries whose debits differ from their credits.
    """
    if not lines or len(lines) < 2:
        raise InvalidJournalLine("A journal entry requires at least two lines")

    total_dr = 0
    total_cr = 0
    for idx, ln in enumerate(lines, start=1):
        dr = _as_amount(ln.get("debit", 0), idx, "debit")
        cr = _as_amount(ln.get("credit", 0), idx, "credit")
        if dr and cr:
            raise InvalidJournalLine(
                f"Line {idx} has both a debit and a credit", line_number=idx
            )
        if not dr and not cr:
            raise InvalidJournalLine(
                f"Line {idx} has neither a debit nor a credit", line_number=idx
            )
        total_dr += dr
        total_cr += cr

    if total_dr != total_cr:
        raise UnbalancedEntry(
            f"Entry is not balanced: debits={total_dr}, credits={total_cr}",
            total_debit=total_dr,
            total_credit=total_cr,
        )
    return total_dr, total_cr


async def _validate_accounts(db: AsyncSession, account_ids: list[int]) -> None:
    """Check all accounts exist and are active."""
    result = await db.execute(
        select(ChartOfAccount).where(ChartOfAccount.id.in_(set(account_ids)))
    )
    accounts = {a.id: a for a in result.scalars().all()}
    for aid in account_ids:
        acct = accounts.get(aid)
        if acct is None:
            raise NotFoundError(f"GL account {aid} not found", account_id=aid)
        if not acct.is_active:
            raise AccountInactive(
                f"GL account {acct.account_code} ({acct.account_name}) is inactive",
                account_id=aid,
            )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def post_journal_entry(
    db: AsyncSession,
    *,
    lines: list[dict[str, Any]],
    description: str,
    source_type: JournalSourceType = JournalSourceType.MANUAL,
    source_reference: str | None = None,
    entry_date: date | None = None,
    created_by: int | None = None,
) -> JournalEntry:
    """Validate and persist a posted journal entry.

    Parameters
    ----------
    lines : list of dicts
        Each dict has ``account_id``, ``debit``, ``credit`` (minor units,
        exactly one of them non-zero) and optionally ``description``.

    Nothing is written unless every check passes; the caller's transaction
    decides whether the entry is committed.
    """
    validate_lines(lines)
    await _validate_accounts(db, [ln["account_id"] for ln in lines])

    entry = JournalEntry(
        entry_number=await _next_entry_number(db),
        entry_date=entry_date or date.today(),
        description=description,
        source_type=source_type,
        source_reference=source_reference,
        status=JournalEntryStatus.POSTED,
        created_by=created_by,
        lines=[
            JournalEntryLine(
                line_number=idx,
                account_id=ln["account_id"],
                debit=ln.get("debit") or 0,
                credit=ln.get("credit") or 0,
                description=ln.get("description"),
            )
            for idx, ln in enumerate(lines, start=1)
        ],
    )
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    await db.refresh(entry, ["lines"])
    logger.info(
        "Posted journal entry %s (%s %s) total=%d",
        entry.entry_number, source_type.value, source_reference or "-", entry.total_debits,
    )
    return entry


async def get_journal_entry(db: AsyncSession, entry_id: int) -> JournalEntry | None:
    """Load a journal entry with its lines."""
    result = await db.execute(
        select(JournalEntry)
        .where(JournalEntry.id == entry_id)
        .options(selectinload(JournalEntry.lines))
    )
    return result.scalar_one_or_none()


async def list_journal_entries(
    db: AsyncSession,
    *,
    source_type: JournalSourceType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[JournalEntry]:
    q = (
        select(JournalEntry)
        .options(selectinload(JournalEntry.lines))
        .order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if source_type:
        q = q.where(JournalEntry.source_type == source_type)
    if date_from:
        q = q.where(JournalEntry.entry_date >= date_from)
    if date_to:
        q = q.where(JournalEntry.entry_date <= date_to)
    result = await db.execute(q)
    return list(result.scalars().all())


async def reverse_journal_entry(
    db: AsyncSession,
    entry_id: int,
    *,
    reason: str,
    created_by: int | None = None,
    entry_date: date | None = None,
) -> JournalEntry:
    """Reverse a posted entry by posting its mirror image.

    The original is marked REVERSED and linked both ways to the reversal.
    """
    result = await db.execute(
        select(JournalEntry)
        .where(JournalEntry.id == entry_id)
        .options(selectinload(JournalEntry.lines))
        .with_for_update()
    )
    original = result.scalar_one_or_none()
    if original is None:
        raise NotFoundError(f"Journal entry {entry_id} not found")
    if original.reversed_by_id is not None:
        raise SettledError(
            f"Entry {original.entry_number} has already been reversed",
            kind="AlreadyReversed",
            reversed_by_id=original.reversed_by_id,
        )
    if original.status != JournalEntryStatus.POSTED:
        raise InvalidStatusTransition(
            f"Cannot reverse: entry is {original.status.value}, expected posted"
        )
    if not (reason or "").strip():
        raise InvalidJournalLine("A reversal reason is required")

    reversal = await post_journal_entry(
        db,
        lines=[
            {
                "account_id": ln.account_id,
                "debit": ln.credit,
                "credit": ln.debit,
                "description": f"Reversal: {ln.description or ''}".strip(),
            }
            for ln in original.lines
        ],
        description=f"Reversal of {original.entry_number}: {reason}",
        source_type=JournalSourceType.REVERSAL,
        source_reference=original.entry_number,
        entry_date=entry_date,
        created_by=created_by,
    )

    reversal.reversal_of_id = original.id
    original.reversed_by_id = reversal.id
    original.status = JournalEntryStatus.REVERSED
    await db.flush()

    logger.info("Reversed %s → %s", original.entry_number, reversal.entry_number)
    return reversal


async def post_transfer(
    db: AsyncSession,
    *,
    debit_account_code: str,
    credit_account_code: str,
    amount: int,
    description: str,
    source_type: JournalSourceType,
    source_reference: str,
    entry_date: date | None = None,
    created_by: int | None = None,
) -> JournalEntry:
    """Post a two-line entry moving ``amount`` between two accounts by code."""
    debit_account = await require_account_by_code(db, debit_account_code)
    credit_account = await require_account_by_code(db, credit_account_code)
    return await post_journal_entry(
        db,
        lines=[
            {"account_id": debit_account.id, "debit": amount, "credit": 0,
             "description": description},
            {"account_id": credit_account.id, "debit": 0, "credit": amount,
             "description": description},
        ],
        description=description,
        source_type=source_type,
        source_reference=source_reference,
        entry_date=entry_date,
        created_by=created_by,
    )
