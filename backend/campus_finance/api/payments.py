"""Payments, payment allocations and payment GL posting."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import run_command
from campus_finance.auth_utils import (
    ANY_STAFF,
    COLLECTIONS_ROLES,
    LEDGER_ROLES,
    CurrentUser,
    require_roles,
)
from campus_finance.database import get_db, get_session_factory
from campus_finance.models.fees import StudentFee
from campus_finance.models.payment import PaymentStatus
from campus_finance.schemas import (
    AllocationCreate,
    AllocationResponse,
    AllocationResult,
    FeeResponse,
    JournalEntryResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentStatusUpdate,
)
from campus_finance.services import allocation_engine, payment_service

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    data: PaymentCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _record(db: AsyncSession):
        payment = await payment_service.record_payment(
            db,
            student_id=data.student_id,
            amount=data.amount,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            payment_number=data.payment_number,
            status=data.status,
            notes=data.notes,
            recorded_by=user.id,
        )
        return PaymentResponse.model_validate(payment)

    return await run_command(
        factory, _record, module="api.payments", function_name="record_payment", user_id=user.id
    )


@router.get("/payments", response_model=list[PaymentResponse])
async def list_payments(
    student_id: Optional[int] = None,
    status: Optional[PaymentStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    payments = await payment_service.list_payments(
        db, student_id=student_id, status=status, limit=limit, offset=offset
    )
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return PaymentResponse.model_validate(await payment_service.require_payment(db, payment_id))


@router.get("/payments/{payment_id}/balance")
async def payment_balance(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await payment_service.payment_balance(db, payment_id)


@router.patch("/payments/{payment_id}/status", response_model=PaymentResponse)
async def update_payment_status(
    payment_id: int,
    data: PaymentStatusUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _update(db: AsyncSession):
        payment = await payment_service.update_payment_status(
            db, payment_id, data.status, user_id=user.id, reason=data.reason
        )
        return PaymentResponse.model_validate(payment)

    return await run_command(
        factory, _update, module="api.payments", function_name="update_payment_status",
        user_id=user.id,
    )


@router.post("/payments/{payment_id}/post-to-gl", response_model=JournalEntryResponse, status_code=201)
async def post_payment_to_gl(
    payment_id: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _post(db: AsyncSession):
        entry = await payment_service.post_payment_to_gl(db, payment_id, posted_by=user.id)
        return JournalEntryResponse.model_validate(entry)

    return await run_command(
        factory, _post, module="api.payments", function_name="post_payment_to_gl", user_id=user.id
    )


# ── Allocations ──────────────────────────────────────────


@router.post("/payment-allocations", response_model=AllocationResult, status_code=201)
async def allocate_payment(
    data: AllocationCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _allocate(db: AsyncSession):
        allocation = await allocation_engine.allocate(
            db,
            payment_id=data.payment_id,
            student_fee_id=data.student_fee_id,
            amount=data.amount,
            allocated_by=user.id,
        )
        fee = await db.get(StudentFee, allocation.student_fee_id)
        payment = await payment_service.require_payment(db, allocation.payment_id)
        allocated = await allocation_engine.allocated_total(db, payment.id)
        return AllocationResult(
            allocation=AllocationResponse.model_validate(allocation),
            fee=FeeResponse.model_validate(fee),
            unallocated_payment_amount=payment.amount - allocated,
        )

    return await run_command(
        factory, _allocate, module="api.payments", function_name="allocate_payment",
        user_id=user.id,
    )


@router.get("/payment-allocations", response_model=list[AllocationResponse])
async def list_allocations(
    payment_id: Optional[int] = None,
    student_fee_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    allocations = await allocation_engine.list_allocations(
        db, payment_id=payment_id, student_fee_id=student_fee_id
    )
    return [AllocationResponse.model_validate(a) for a in allocations]
