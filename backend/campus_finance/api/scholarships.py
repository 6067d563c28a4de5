"""Scholarship types, applications and student awards."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import run_command
from campus_finance.auth_utils import ANY_STAFF, COLLECTIONS_ROLES, CurrentUser, require_roles
from campus_finance.database import get_db, get_session_factory
from campus_finance.models.scholarship import ApplicationStatus, AwardStatus
from campus_finance.schemas import (
    ApplicationAward,
    ApplicationCreate,
    ApplicationResponse,
    ApplicationReview,
    AwardCreate,
    AwardResponse,
    AwardStatusUpdate,
    ScholarshipTypeCreate,
    ScholarshipTypeResponse,
)
from campus_finance.services import scholarship_service

router = APIRouter()


@router.post("/scholarship-types", response_model=ScholarshipTypeResponse, status_code=201)
async def create_scholarship_type(
    data: ScholarshipTypeCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _create(db: AsyncSession):
        stype = await scholarship_service.create_scholarship_type(db, **data.model_dump())
        return ScholarshipTypeResponse.model_validate(stype)

    return await run_command(
        factory, _create, module="api.scholarships", function_name="create_scholarship_type",
        user_id=user.id,
    )


@router.get("/scholarship-types", response_model=list[ScholarshipTypeResponse])
async def list_scholarship_types(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    types = await scholarship_service.list_scholarship_types(db, active_only=active_only)
    return [ScholarshipTypeResponse.model_validate(t) for t in types]


@router.post("/student-scholarships", response_model=AwardResponse, status_code=201)
async def award_scholarship(
    data: AwardCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _award(db: AsyncSession):
        award = await scholarship_service.award_scholarship(
            db, **data.model_dump(), awarded_by=user.id
        )
        return AwardResponse.model_validate(award)

    return await run_command(
        factory, _award, module="api.scholarships", function_name="award_scholarship",
        user_id=user.id,
    )


@router.get("/student-scholarships", response_model=list[AwardResponse])
async def list_awards(
    student_id: Optional[int] = None,
    status: Optional[AwardStatus] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    awards = await scholarship_service.list_awards(db, student_id=student_id, status=status)
    return [AwardResponse.model_validate(a) for a in awards]


@router.patch("/student-scholarships/{award_id}/status", response_model=AwardResponse)
async def update_award_status(
    award_id: int,
    data: AwardStatusUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _update(db: AsyncSession):
        award = await scholarship_service.update_award_status(
            db, award_id, data.status, user_id=user.id, reason=data.reason
        )
        return AwardResponse.model_validate(award)

    return await run_command(
        factory, _update, module="api.scholarships", function_name="update_award_status",
        user_id=user.id,
    )


@router.post("/scholarship-applications", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    data: ApplicationCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _submit(db: AsyncSession):
        application = await scholarship_service.submit_application(
            db, **data.model_dump(), submitted_by=user.id
        )
        return ApplicationResponse.model_validate(application)

    return await run_command(
        factory, _submit, module="api.scholarships", function_name="submit_application",
        user_id=user.id,
    )


@router.get("/scholarship-applications", response_model=list[ApplicationResponse])
async def list_applications(
    student_id: Optional[int] = None,
    status: Optional[ApplicationStatus] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    applications = await scholarship_service.list_applications(
        db, student_id=student_id, status=status
    )
    return [ApplicationResponse.model_validate(a) for a in applications]


@router.post(
    "/scholarship-applications/{application_id}/review", response_model=ApplicationResponse
)
async def review_application(
    application_id: int,
    data: ApplicationReview,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _review(db: AsyncSession):
        application = await scholarship_service.review_application(
            db, application_id, ApplicationStatus(data.decision),
            reviewed_by=user.id, notes=data.notes,
        )
        return ApplicationResponse.model_validate(application)

    return await run_command(
        factory, _review, module="api.scholarships", function_name="review_application",
        user_id=user.id,
    )


@router.post(
    "/scholarship-applications/{application_id}/award",
    response_model=AwardResponse,
    status_code=201,
)
async def award_application(
    application_id: int,
    data: ApplicationAward,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _award(db: AsyncSession):
        award = await scholarship_service.award_application(
            db, application_id, **data.model_dump(), awarded_by=user.id
        )
        return AwardResponse.model_validate(award)

    return await run_command(
        factory, _award, module="api.scholarships", function_name="award_application",
        user_id=user.id,
    )
