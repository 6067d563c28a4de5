"""Chart of Accounts service.

The normal balance of an account follows from its type (asset/expense are
debit-normal; liability/equity/revenue are credit-normal).  A differing
normal balance is only accepted with an explicit override reason, which is
logged and audited.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.gl import (
    NORMAL_BALANCE_BY_TYPE,
    AccountType,
    ChartOfAccount,
    NormalBalance,
)
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    DuplicateAccountCode,
    NormalBalanceMismatch,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def expected_normal_balance(account_type: AccountType) -> NormalBalance:
    return NORMAL_BALANCE_BY_TYPE[account_type]


async def list_accounts(
    db: AsyncSession,
    *,
    account_type: AccountType | None = None,
    active_only: bool = False,
    search: str | None = None,
) -> list[ChartOfAccount]:
    q = select(ChartOfAccount).order_by(ChartOfAccount.account_code)
    if account_type:
        q = q.where(ChartOfAccount.account_type == account_type)
    if active_only:
        q = q.where(ChartOfAccount.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        q = q.where(
            ChartOfAccount.account_name.ilike(pattern)
            | ChartOfAccount.account_code.ilike(pattern)
        )
    result = await db.execute(q)
    return list(result.scalars().all())


async def get_account(db: AsyncSession, account_id: int) -> ChartOfAccount | None:
    return await db.get(ChartOfAccount, account_id)


async def get_account_by_code(db: AsyncSession, code: str) -> ChartOfAccount | None:
    result = await db.execute(
        select(ChartOfAccount).where(ChartOfAccount.account_code == code)
    )
    return result.scalar_one_or_none()


async def require_account_by_code(db: AsyncSession, code: str) -> ChartOfAccount:
    account = await get_account_by_code(db, code)
    if account is None:
        raise NotFoundError(
            f"GL account '{code}' is not configured in the chart of accounts",
            account_code=code,
        )
    return account


async def create_account(
    db: AsyncSession,
    *,
    account_code: str,
    account_name: str,
    account_type: AccountType,
    normal_balance: NormalBalance | None = None,
    override_reason: str | None = None,
    description: str | None = None,
    created_by: int | None = None,
) -> ChartOfAccount:
    """Create a GL account, deriving its normal balance from its type."""
    code = (account_code or "").strip()
    if not code:
        raise ValidationError("Account code is required")
    if not (account_name or "").strip():
        raise ValidationError("Account name is required")

    if await get_account_by_code(db, code):
        raise DuplicateAccountCode(
            f"Account code '{code}' already exists", account_code=code
        )

    expected = expected_normal_balance(account_type)
    balance = normal_balance or expected
    reason = None
    if balance != expected:
        if not (override_reason or "").strip():
            raise NormalBalanceMismatch(
                f"A {account_type.value} account is {expected.value}-normal; "
                f"'{balance.value}' requires an explicit override reason",
                account_type=account_type.value,
                expected_normal_balance=expected.value,
            )
        reason = override_reason.strip()
        logger.warning(
            "Normal balance override on %s: %s account set %s-normal (%s)",
            code, account_type.value, balance.value, reason,
        )

    account = ChartOfAccount(
        account_code=code,
        account_name=account_name.strip(),
        description=description,
        account_type=account_type,
        normal_balance=balance,
        normal_balance_override_reason=reason,
        is_active=True,
        created_by=created_by,
    )
    db.add(account)
    await db.flush()
    await db.refresh(account)

    if reason:
        record_audit(
            db,
            entity_type="gl_account",
            entity_id=account.id,
            action="normal_balance_override",
            user_id=created_by,
            new_values={"normal_balance": balance.value, "account_type": account_type.value},
            details=reason,
        )
    logger.info("Created GL account %s: %s", account.account_code, account.account_name)
    return account


async def set_account_active(
    db: AsyncSession, account_id: int, is_active: bool, *, user_id: int | None = None
) -> ChartOfAccount:
    """Activate or deactivate an account.  Inactive accounts reject postings."""
    account = await get_account(db, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    if account.is_active != is_active:
        record_audit(
            db,
            entity_type="gl_account",
            entity_id=account.id,
            action="activate" if is_active else "deactivate",
            user_id=user_id,
            old_values={"is_active": account.is_active},
            new_values={"is_active": is_active},
        )
        account.is_active = is_active
        await db.flush()
    return account
