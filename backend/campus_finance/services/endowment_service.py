"""Endowment funds and their investments.

``EndowmentFund.current_value`` is a cache of Σ active investment values,
rewritten in the same transaction as every investment write.  Summaries sum
the investments afresh without touching the cache, and the spendable amount
is never stored.
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.donor import EndowmentFund, Investment, InvestmentType
from campus_finance.services.errors import DuplicateReference, NotFoundError, ValidationError
from campus_finance.services.money import BPS_DENOMINATOR, apply_bps

logger = logging.getLogger(__name__)


def investment_value(quantity: Decimal | int | str, price: int) -> int:
    """``quantity × price`` in minor units, rounded half up."""
    try:
        qty = Decimal(str(quantity))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid quantity: {quantity!r}") from exc
    if qty < 0 or price < 0:
        raise ValidationError("quantity and price must not be negative")
    return int((qty * price).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check_rate(spending_rate: int) -> None:
    if not 0 <= spending_rate <= BPS_DENOMINATOR:
        raise ValidationError(
            f"spending_rate must be between 0 and {BPS_DENOMINATOR} basis points"
        )


async def _lock_fund(db: AsyncSession, fund_id: int) -> EndowmentFund:
    result = await db.execute(
        select(EndowmentFund)
        .where(EndowmentFund.id == fund_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    fund = result.scalar_one_or_none()
    if fund is None:
        raise NotFoundError(f"Endowment fund {fund_id} not found", fund_id=fund_id)
    return fund


async def _active_holdings(db: AsyncSession, fund_id: int) -> tuple[int, int]:
    """(value, count) of the fund's active investments."""
    total, count = (await db.execute(
        select(
            sa_func.coalesce(sa_func.sum(Investment.current_value), 0),
            sa_func.count(Investment.id),
        )
        .where(Investment.endowment_fund_id == fund_id, Investment.is_active.is_(True))
    )).one()
    return int(total), int(count)


async def _recompute_value(db: AsyncSession, fund: EndowmentFund) -> int:
    """Rewrite the cached value; only investment writes call this."""
    await db.flush()
    fund.current_value, _ = await _active_holdings(db, fund.id)
    return fund.current_value


async def create_fund(
    db: AsyncSession,
    *,
    fund_code: str,
    fund_name: str,
    principal: int,
    spending_rate: int = 500,
    restrictions: str | None = None,
) -> EndowmentFund:
    fund_code = fund_code.strip().upper()
    if principal < 0:
        raise ValidationError("principal must not be negative")
    _check_rate(spending_rate)
    existing = await db.execute(
        select(EndowmentFund.id).where(EndowmentFund.fund_code == fund_code)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateReference(f"Fund code '{fund_code}' already exists", fund_code=fund_code)

    fund = EndowmentFund(
        fund_code=fund_code,
        fund_name=fund_name,
        principal=principal,
        current_value=0,
        spending_rate=spending_rate,
        restrictions=restrictions,
        is_active=True,
    )
    db.add(fund)
    await db.flush()
    await db.refresh(fund)
    return fund


async def list_funds(db: AsyncSession, *, active_only: bool = False) -> list[EndowmentFund]:
    q = select(EndowmentFund).order_by(EndowmentFund.fund_code)
    if active_only:
        q = q.where(EndowmentFund.is_active.is_(True))
    result = await db.execute(q)
    return list(result.scalars().all())


async def set_spending_rate(db: AsyncSession, fund_id: int, spending_rate: int) -> EndowmentFund:
    _check_rate(spending_rate)
    fund = await _lock_fund(db, fund_id)
    fund.spending_rate = spending_rate
    await db.flush()
    return fund


async def add_investment(
    db: AsyncSession,
    *,
    fund_id: int,
    name: str,
    quantity: Decimal,
    cost_basis: int,
    current_price: int,
    investment_type: InvestmentType = InvestmentType.STOCK,
    purchase_date: date | None = None,
) -> Investment:
    fund = await _lock_fund(db, fund_id)
    if not fund.is_active:
        raise ValidationError(f"Fund {fund.fund_code} is inactive")
    if cost_basis < 0:
        raise ValidationError("cost_basis must not be negative")

    investment = Investment(
        endowment_fund_id=fund.id,
        name=name,
        investment_type=investment_type,
        quantity=Decimal(str(quantity)),
        cost_basis=cost_basis,
        current_price=current_price,
        current_value=investment_value(quantity, current_price),
        purchase_date=purchase_date,
        is_active=True,
    )
    db.add(investment)
    await _recompute_value(db, fund)
    await db.flush()
    await db.refresh(investment)
    logger.info(
        "Added investment %s to fund %s: value=%d (fund now %d)",
        name, fund.fund_code, investment.current_value, fund.current_value,
    )
    return investment


async def _require_investment(db: AsyncSession, investment_id: int) -> Investment:
    investment = await db.get(Investment, investment_id)
    if investment is None:
        raise NotFoundError(f"Investment {investment_id} not found", investment_id=investment_id)
    return investment


async def update_investment_price(
    db: AsyncSession, investment_id: int, current_price: int
) -> Investment:
    """Manually enter a new unit price and re-derive values."""
    investment = await _require_investment(db, investment_id)
    fund = await _lock_fund(db, investment.endowment_fund_id)
    investment.current_price = current_price
    investment.current_value = investment_value(investment.quantity, current_price)
    await _recompute_value(db, fund)
    await db.flush()
    return investment


async def deactivate_investment(db: AsyncSession, investment_id: int) -> Investment:
    investment = await _require_investment(db, investment_id)
    fund = await _lock_fund(db, investment.endowment_fund_id)
    investment.is_active = False
    await _recompute_value(db, fund)
    await db.flush()
    return investment


async def list_investments(db: AsyncSession, fund_id: int) -> list[Investment]:
    result = await db.execute(
        select(Investment)
        .where(Investment.endowment_fund_id == fund_id)
        .order_by(Investment.id)
    )
    return list(result.scalars().all())


async def fund_summary(db: AsyncSession, fund_id: int) -> dict:
    """Current value and spendable amount, summed from investments.

    Read-only: the cached ``fund.current_value`` is left alone.
    """
    fund = await db.get(EndowmentFund, fund_id)
    if fund is None:
        raise NotFoundError(f"Endowment fund {fund_id} not found", fund_id=fund_id)
    current_value, count = await _active_holdings(db, fund.id)
    return {
        "fund_id": fund.id,
        "fund_code": fund.fund_code,
        "fund_name": fund.fund_name,
        "principal": fund.principal,
        "current_value": current_value,
        "spending_rate": fund.spending_rate,
        "spendable_amount": apply_bps(current_value, fund.spending_rate),
        "unrealized_gain": current_value - fund.principal,
        "investment_count": count,
        "is_active": fund.is_active,
    }
