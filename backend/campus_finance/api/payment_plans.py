"""Payment plans and their installments."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import run_command
from campus_finance.auth_utils import ANY_STAFF, COLLECTIONS_ROLES, CurrentUser, require_roles
from campus_finance.database import get_db, get_session_factory
from campus_finance.models.payment_plan import PlanStatus
from campus_finance.schemas import PaymentPlanCreate, PaymentPlanResponse, PlanStatusUpdate
from campus_finance.services import payment_plans

router = APIRouter()


@router.post("/payment-plans", response_model=PaymentPlanResponse, status_code=201)
async def create_payment_plan(
    data: PaymentPlanCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _create(db: AsyncSession):
        plan = await payment_plans.create_plan(db, **data.model_dump(), created_by=user.id)
        return PaymentPlanResponse.model_validate(plan)

    return await run_command(
        factory, _create, module="api.payment_plans", function_name="create_payment_plan",
        user_id=user.id,
    )


@router.get("/payment-plans", response_model=list[PaymentPlanResponse])
async def list_payment_plans(
    student_id: Optional[int] = None,
    status: Optional[PlanStatus] = None,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    plans = await payment_plans.list_plans(
        db, student_id=student_id, status=status, today=as_of
    )
    return [PaymentPlanResponse.model_validate(p) for p in plans]


@router.post("/payment-plans/refresh-statuses")
async def refresh_installment_statuses(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _refresh(db: AsyncSession):
        return {"changed": await payment_plans.refresh_installment_statuses(db)}

    return await run_command(
        factory, _refresh, module="api.payment_plans",
        function_name="refresh_installment_statuses", user_id=user.id,
    )


@router.get("/payment-plans/{plan_id}", response_model=PaymentPlanResponse)
async def get_payment_plan(
    plan_id: int,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    plan = await payment_plans.require_plan(db, plan_id, today=as_of)
    return PaymentPlanResponse.model_validate(plan)


@router.patch("/payment-plans/{plan_id}/status", response_model=PaymentPlanResponse)
async def update_payment_plan_status(
    plan_id: int,
    data: PlanStatusUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _update(db: AsyncSession):
        plan = await payment_plans.update_plan_status(
            db, plan_id, PlanStatus(data.status), user_id=user.id, reason=data.reason
        )
        return PaymentPlanResponse.model_validate(plan)

    return await run_command(
        factory, _update, module="api.payment_plans",
        function_name="update_payment_plan_status", user_id=user.id,
    )


@router.post(
    "/payment-plans/{plan_id}/installments/{installment_number}/pay",
    response_model=PaymentPlanResponse,
)
async def mark_installment_paid(
    plan_id: int,
    installment_number: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _pay(db: AsyncSession):
        plan = await payment_plans.mark_installment_paid(
            db, plan_id, installment_number, user_id=user.id
        )
        return PaymentPlanResponse.model_validate(plan)

    return await run_command(
        factory, _pay, module="api.payment_plans",
        function_name="mark_installment_paid", user_id=user.id,
    )
