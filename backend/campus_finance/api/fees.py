"""Fee structures, student fees, bulk actions, penalties and AR reports."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import limiter, run_command
from campus_finance.auth_utils import (
    ANY_STAFF,
    COLLECTIONS_ROLES,
    LEDGER_ROLES,
    OVERRIDE_ROLES,
    CurrentUser,
    require_roles,
)
from campus_finance.database import get_db, get_session_factory
from campus_finance.models.fees import FeeStatus, FeeType
from campus_finance.schemas import (
    BulkFeeRequest,
    BulkFeeResponse,
    FeeAssignRequest,
    FeeAssignResponse,
    FeeCreate,
    FeeResponse,
    FeeStatusUpdate,
    FeeStructureCreate,
    FeeStructureResponse,
    JournalEntryResponse,
    PenaltyRunResponse,
)
from campus_finance.services import ar_reports, fee_service, penalty_calculator
from campus_finance.services.fee_service import BulkFeeAction

router = APIRouter()


# ── Fee structures ───────────────────────────────────────


@router.post("/fee-structures", response_model=FeeStructureResponse, status_code=201)
async def create_fee_structure(
    data: FeeStructureCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _create(db: AsyncSession):
        structure = await fee_service.create_fee_structure(
            db, **data.model_dump(), created_by=user.id
        )
        return FeeStructureResponse.model_validate(structure)

    return await run_command(
        factory, _create, module="api.fees", function_name="create_fee_structure", user_id=user.id
    )


@router.get("/fee-structures", response_model=list[FeeStructureResponse])
async def list_fee_structures(
    academic_period_id: Optional[int] = None,
    class_id: Optional[int] = None,
    program_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    structures = await fee_service.list_fee_structures(
        db, academic_period_id=academic_period_id, class_id=class_id, program_id=program_id
    )
    return [FeeStructureResponse.model_validate(s) for s in structures]


@router.post("/fee-structures/{structure_id}/assign", response_model=FeeAssignResponse, status_code=201)
async def assign_fee_structure(
    structure_id: int,
    data: FeeAssignRequest,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _assign(db: AsyncSession):
        result = await fee_service.assign_fee_structure(
            db, structure_id, data.student_ids, credits=data.credits, created_by=user.id
        )
        return FeeAssignResponse(
            created=[FeeResponse.model_validate(f) for f in result["created"]],
            skipped_student_ids=result["skipped_student_ids"],
        )

    return await run_command(
        factory, _assign, module="api.fees", function_name="assign_fee_structure", user_id=user.id
    )


# ── Student fees ─────────────────────────────────────────


@router.post("/fees", response_model=FeeResponse, status_code=201)
async def create_fee(
    data: FeeCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _create(db: AsyncSession):
        fee = await fee_service.create_fee(
            db,
            student_id=data.student_id,
            amount=data.amount,
            due_date=data.due_date,
            description=data.description,
            fee_type=data.fee_type,
            notes=data.notes,
            created_by=user.id,
        )
        return FeeResponse.model_validate(fee)

    return await run_command(
        factory, _create, module="api.fees", function_name="create_fee", user_id=user.id
    )


@router.get("/fees", response_model=list[FeeResponse])
async def list_fees(
    student_id: Optional[int] = None,
    status: Optional[FeeStatus] = None,
    fee_type: Optional[FeeType] = None,
    include_archived: bool = False,
    as_of: Optional[date] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    fees = await fee_service.list_fees(
        db,
        student_id=student_id,
        status=status,
        fee_type=fee_type,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
        today=as_of,
    )
    return [FeeResponse.model_validate(f) for f in fees]


@router.get("/fees/{fee_id}", response_model=FeeResponse)
async def get_fee(
    fee_id: int,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return FeeResponse.model_validate(await fee_service.require_fee(db, fee_id, today=as_of))


@router.get("/fees/{fee_id}/collection")
async def fee_collection_breakdown(
    fee_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await fee_service.fee_collection_breakdown(db, fee_id)


@router.patch("/fees/{fee_id}/status", response_model=FeeResponse)
async def update_fee_status(
    fee_id: int,
    data: FeeStatusUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*OVERRIDE_ROLES)),
):
    """Manual mark-paid.  Goes through the audited administrative override."""
    async def _mark(db: AsyncSession):
        await fee_service.mark_fees_paid(
            db, [fee_id], performed_by=user.id, reason=data.reason
        )
        return FeeResponse.model_validate(await fee_service.require_fee(db, fee_id))

    return await run_command(
        factory, _mark, module="api.fees", function_name="update_fee_status", user_id=user.id
    )


@router.post("/fees/bulk", response_model=BulkFeeResponse)
async def bulk_fee_action(
    data: BulkFeeRequest,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*OVERRIDE_ROLES)),
):
    async def _bulk(db: AsyncSession):
        result = await fee_service.bulk_action(
            db, BulkFeeAction(data.action), data.ids, performed_by=user.id, reason=data.reason
        )
        return BulkFeeResponse(**result)

    return await run_command(
        factory, _bulk, module="api.fees", function_name="bulk_fee_action", user_id=user.id
    )


@router.post("/fees/calculate-penalties", response_model=PenaltyRunResponse)
@limiter.limit("30/minute")
async def calculate_penalties(
    request: Request,
    as_of: Optional[date] = None,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _run(db: AsyncSession):
        return await penalty_calculator.calculate_penalties(
            db, today=as_of, performed_by=user.id
        )

    result = await run_command(
        factory, _run, module="api.fees", function_name="calculate_penalties", user_id=user.id
    )
    return PenaltyRunResponse(**result)


@router.post("/fees/refresh-statuses")
async def refresh_statuses(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _refresh(db: AsyncSession):
        return {"changed": await fee_service.refresh_overdue_statuses(db)}

    return await run_command(
        factory, _refresh, module="api.fees", function_name="refresh_statuses", user_id=user.id
    )


@router.post("/fees/{fee_id}/post-to-gl", response_model=JournalEntryResponse, status_code=201)
async def post_fee_to_gl(
    fee_id: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _post(db: AsyncSession):
        entry = await fee_service.post_fee_to_gl(db, fee_id, posted_by=user.id)
        return JournalEntryResponse.model_validate(entry)

    return await run_command(
        factory, _post, module="api.fees", function_name="post_fee_to_gl", user_id=user.id
    )


# ── AR reports ───────────────────────────────────────────


@router.get("/ar/aging")
async def aging_report(
    as_of: Optional[date] = None,
    student_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await ar_reports.aging_report(db, today=as_of, student_id=student_id)


@router.get("/students/{student_id}/statement")
async def student_statement(
    student_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await ar_reports.student_statement(db, student_id)
