"""Financial statements derived from the journal.

All figures are computed on read from journal lines; nothing here is cached.
Reversed entries stay in the ledger next to their mirror reversals, so both
are included and net to zero.
"""

import logging
from datetime import date

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.gl import (
    AccountType,
    ChartOfAccount,
    JournalEntry,
    JournalEntryLine,
    NormalBalance,
)
from campus_finance.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _signed_balance(normal: NormalBalance, debit: int, credit: int) -> int:
    return debit - credit if normal == NormalBalance.DEBIT else credit - debit


async def _account_totals(
    db: AsyncSession,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[tuple[ChartOfAccount, int, int]]:
    """(account, Σdebit, Σcredit) for every account with activity in range."""
    q = (
        select(
            ChartOfAccount,
            sa_func.coalesce(sa_func.sum(JournalEntryLine.debit), 0).label("dr"),
            sa_func.coalesce(sa_func.sum(JournalEntryLine.credit), 0).label("cr"),
        )
        .join(JournalEntryLine, JournalEntryLine.account_id == ChartOfAccount.id)
        .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
        .group_by(ChartOfAccount.id)
        .order_by(ChartOfAccount.account_code)
    )
    if date_from:
        q = q.where(JournalEntry.entry_date >= date_from)
    if date_to:
        q = q.where(JournalEntry.entry_date <= date_to)
    result = await db.execute(q)
    return [(row[0], int(row.dr), int(row.cr)) for row in result.all()]


async def get_account_balance(
    db: AsyncSession, account_id: int, *, as_of_date: date | None = None
) -> dict:
    """Running balance in the account's normal direction."""
    account = await db.get(ChartOfAccount, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")

    q = (
        select(
            sa_func.coalesce(sa_func.sum(JournalEntryLine.debit), 0).label("dr"),
            sa_func.coalesce(sa_func.sum(JournalEntryLine.credit), 0).label("cr"),
        )
        .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
        .where(JournalEntryLine.account_id == account_id)
    )
    if as_of_date:
        q = q.where(JournalEntry.entry_date <= as_of_date)
    row = (await db.execute(q)).one()
    dr_total, cr_total = int(row.dr), int(row.cr)

    return {
        "account_id": account.id,
        "account_code": account.account_code,
        "account_name": account.account_name,
        "normal_balance": account.normal_balance.value,
        "debit_total": dr_total,
        "credit_total": cr_total,
        "balance": _signed_balance(account.normal_balance, dr_total, cr_total),
    }


async def trial_balance(db: AsyncSession, *, as_of_date: date | None = None) -> dict:
    rows = []
    total_dr = total_cr = 0
    for account, dr, cr in await _account_totals(db, date_to=as_of_date):
        net = dr - cr
        debit_balance = net if net > 0 else 0
        credit_balance = -net if net < 0 else 0
        total_dr += debit_balance
        total_cr += credit_balance
        rows.append({
            "account_id": account.id,
            "account_code": account.account_code,
            "account_name": account.account_name,
            "account_type": account.account_type.value,
            "debit_balance": debit_balance,
            "credit_balance": credit_balance,
        })
    return {
        "as_of_date": as_of_date.isoformat() if as_of_date else None,
        "rows": rows,
        "total_debits": total_dr,
        "total_credits": total_cr,
        "is_balanced": total_dr == total_cr,
    }


async def balance_sheet(db: AsyncSession, *, as_of_date: date) -> dict:
    """Assets = Liabilities + Equity, with net income to date shown in equity."""
    sections: dict[AccountType, list[dict]] = {
        AccountType.ASSET: [], AccountType.LIABILITY: [], AccountType.EQUITY: [],
    }
    net_income = 0
    for account, dr, cr in await _account_totals(db, date_to=as_of_date):
        if account.account_type == AccountType.REVENUE:
            net_income += cr - dr
            continue
        if account.account_type == AccountType.EXPENSE:
            net_income -= dr - cr
            continue
        balance = _signed_balance(account.normal_balance, dr, cr)
        if account.account_type == AccountType.ASSET and account.normal_balance == NormalBalance.CREDIT:
            # contra-asset: reduces total assets
            balance = dr - cr
        if balance == 0:
            continue
        sections[account.account_type].append({
            "account_code": account.account_code,
            "account_name": account.account_name,
            "balance": balance,
        })

    if net_income:
        sections[AccountType.EQUITY].append({
            "account_code": None,
            "account_name": "Current earnings",
            "balance": net_income,
        })

    total_assets = sum(i["balance"] for i in sections[AccountType.ASSET])
    total_liabilities = sum(i["balance"] for i in sections[AccountType.LIABILITY])
    total_equity = sum(i["balance"] for i in sections[AccountType.EQUITY])
    return {
        "as_of_date": as_of_date.isoformat(),
        "assets": sections[AccountType.ASSET],
        "liabilities": sections[AccountType.LIABILITY],
        "equity": sections[AccountType.EQUITY],
        "total_assets": total_assets,
        "total_liabilities": total_liabilities,
        "total_equity": total_equity,
        "balance_check": total_assets == total_liabilities + total_equity,
    }


async def income_statement(db: AsyncSession, *, start_date: date, end_date: date) -> dict:
    if end_date < start_date:
        raise ValidationError("end_date must not precede start_date")

    revenue: list[dict] = []
    expenses: list[dict] = []
    for account, dr, cr in await _account_totals(db, date_from=start_date, date_to=end_date):
        if account.account_type == AccountType.REVENUE:
            amount = cr - dr
            target = revenue
        elif account.account_type == AccountType.EXPENSE:
            amount = dr - cr
            target = expenses
        else:
            continue
        if amount:
            target.append({
                "account_code": account.account_code,
                "account_name": account.account_name,
                "amount": amount,
            })

    total_revenue = sum(r["amount"] for r in revenue)
    total_expenses = sum(e["amount"] for e in expenses)
    return {
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "revenue": revenue,
        "expenses": expenses,
        "total_revenue": total_revenue,
        "total_expenses": total_expenses,
        "net_income": total_revenue - total_expenses,
    }
