"""Endowment funds and investments."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import run_command
from campus_finance.auth_utils import ANY_STAFF, LEDGER_ROLES, CurrentUser, require_roles
from campus_finance.database import get_db, get_session_factory
from campus_finance.schemas import (
    EndowmentFundCreate,
    EndowmentFundResponse,
    FundSummaryResponse,
    InvestmentCreate,
    InvestmentPriceUpdate,
    InvestmentResponse,
)
from campus_finance.services import endowment_service

router = APIRouter()


@router.post("/endowment-funds", response_model=EndowmentFundResponse, status_code=201)
async def create_fund(
    data: EndowmentFundCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _create(db: AsyncSession):
        fund = await endowment_service.create_fund(db, **data.model_dump())
        return EndowmentFundResponse.model_validate(fund)

    return await run_command(
        factory, _create, module="api.endowments", function_name="create_fund", user_id=user.id
    )


@router.get("/endowment-funds", response_model=list[EndowmentFundResponse])
async def list_funds(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    funds = await endowment_service.list_funds(db, active_only=active_only)
    return [EndowmentFundResponse.model_validate(f) for f in funds]


@router.get("/endowment-funds/{fund_id}/summary", response_model=FundSummaryResponse)
async def fund_summary(
    fund_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return FundSummaryResponse(**await endowment_service.fund_summary(db, fund_id))


@router.get("/endowment-funds/{fund_id}/investments", response_model=list[InvestmentResponse])
async def list_investments(
    fund_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    investments = await endowment_service.list_investments(db, fund_id)
    return [InvestmentResponse.model_validate(i) for i in investments]


@router.post("/investments", response_model=InvestmentResponse, status_code=201)
async def add_investment(
    data: InvestmentCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _add(db: AsyncSession):
        investment = await endowment_service.add_investment(
            db,
            fund_id=data.endowment_fund_id,
            name=data.name,
            investment_type=data.investment_type,
            quantity=data.quantity,
            cost_basis=data.cost_basis,
            current_price=data.current_price,
            purchase_date=data.purchase_date,
        )
        return InvestmentResponse.model_validate(investment)

    return await run_command(
        factory, _add, module="api.endowments", function_name="add_investment", user_id=user.id
    )


@router.patch("/investments/{investment_id}/price", response_model=InvestmentResponse)
async def update_investment_price(
    investment_id: int,
    data: InvestmentPriceUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _update(db: AsyncSession):
        investment = await endowment_service.update_investment_price(
            db, investment_id, data.current_price
        )
        return InvestmentResponse.model_validate(investment)

    return await run_command(
        factory, _update, module="api.endowments", function_name="update_investment_price",
        user_id=user.id,
    )


@router.post("/investments/{investment_id}/deactivate", response_model=InvestmentResponse)
async def deactivate_investment(
    investment_id: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _deactivate(db: AsyncSession):
        investment = await endowment_service.deactivate_investment(db, investment_id)
        return InvestmentResponse.model_validate(investment)

    return await run_command(
        factory, _deactivate, module="api.endowments", function_name="deactivate_investment",
        user_id=user.id,
    )
