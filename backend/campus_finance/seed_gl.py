"""Seed the default chart of accounts (idempotent).

The posting accounts referenced by settings (cash, receivable, fee revenue,
late-fee revenue, donation revenue) are always created.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.config import settings
from campus_finance.models.gl import NORMAL_BALANCE_BY_TYPE, AccountType, ChartOfAccount

logger = logging.getLogger(__name__)


def default_accounts() -> list[tuple[str, str, AccountType]]:
    return [
        (settings.gl_cash_account_code, "Cash and Bank", AccountType.ASSET),
        (settings.gl_receivable_account_code, "Student Accounts Receivable", AccountType.ASSET),
        ("1500", "Endowment Investments", AccountType.ASSET),
        ("2000", "Accounts Payable", AccountType.LIABILITY),
        ("2100", "Deferred Tuition Revenue", AccountType.LIABILITY),
        ("3000", "Unrestricted Net Assets", AccountType.EQUITY),
        ("3100", "Endowment Net Assets", AccountType.EQUITY),
        (settings.gl_fee_revenue_account_code, "Tuition and Fee Revenue", AccountType.REVENUE),
        (settings.gl_late_fee_revenue_account_code, "Late Fee Revenue", AccountType.REVENUE),
        (settings.gl_donation_revenue_account_code, "Donation Revenue", AccountType.REVENUE),
        ("5000", "Salaries and Wages", AccountType.EXPENSE),
        ("5100", "Scholarship Expense", AccountType.EXPENSE),
        ("5200", "Operating Expenses", AccountType.EXPENSE),
    ]


async def _get_or_create_account(
    db: AsyncSession, *, code: str, name: str, account_type: AccountType
) -> tuple[ChartOfAccount, bool]:
    result = await db.execute(
        select(ChartOfAccount).where(ChartOfAccount.account_code == code)
    )
    acct = result.scalar_one_or_none()
    if acct:
        return acct, False
    acct = ChartOfAccount(
        account_code=code,
        account_name=name,
        account_type=account_type,
        normal_balance=NORMAL_BALANCE_BY_TYPE[account_type],
        is_active=True,
    )
    db.add(acct)
    await db.flush()
    return acct, True


async def seed_gl_data(db: AsyncSession) -> int:
    """Create missing default accounts and commit.  Returns how many were created."""
    created = 0
    for code, name, account_type in default_accounts():
        _, is_new = await _get_or_create_account(
            db, code=code, name=name, account_type=account_type
        )
        created += int(is_new)
    await db.commit()
    if created:
        logger.info("Seeded %d chart-of-accounts entries", created)
    return created
