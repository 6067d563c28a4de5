"""Donors, donations and donation GL posting."""

from typing import Optional

from fastapi import APIRouter, Depends
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
from campus_finance.schemas import (
    DonationCreate,
    DonationResponse,
    DonorCreate,
    DonorResponse,
    JournalEntryResponse,
)
from campus_finance.services import donor_service

router = APIRouter()


@router.post("/donors", response_model=DonorResponse, status_code=201)
async def create_donor(
    data: DonorCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _create(db: AsyncSession):
        donor = await donor_service.create_donor(db, **data.model_dump())
        return DonorResponse.model_validate(donor)

    return await run_command(
        factory, _create, module="api.donors", function_name="create_donor", user_id=user.id
    )


@router.get("/donors", response_model=list[DonorResponse])
async def list_donors(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return [DonorResponse.model_validate(d) for d in await donor_service.list_donors(db, active_only=active_only)]


@router.get("/donors/{donor_id}", response_model=DonorResponse)
async def get_donor(
    donor_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return DonorResponse.model_validate(await donor_service.require_donor(db, donor_id))


@router.post("/donors/{donor_id}/recompute-totals", response_model=DonorResponse)
async def recompute_donor_totals(
    donor_id: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _recompute(db: AsyncSession):
        donor = await donor_service.recompute_donor_totals(db, donor_id)
        return DonorResponse.model_validate(donor)

    return await run_command(
        factory, _recompute, module="api.donors", function_name="recompute_donor_totals",
        user_id=user.id,
    )


@router.post("/donations", response_model=DonationResponse, status_code=201)
async def record_donation(
    data: DonationCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*COLLECTIONS_ROLES)),
):
    async def _record(db: AsyncSession):
        donation = await donor_service.record_donation(
            db,
            donor_id=data.donor_id,
            amount=data.amount,
            donation_date=data.donation_date,
            payment_method=data.payment_method,
            purpose=data.purpose,
            recorded_by=user.id,
        )
        return DonationResponse.model_validate(donation)

    return await run_command(
        factory, _record, module="api.donors", function_name="record_donation", user_id=user.id
    )


@router.get("/donations", response_model=list[DonationResponse])
async def list_donations(
    donor_id: Optional[int] = None,
    posted: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    donations = await donor_service.list_donations(db, donor_id=donor_id, posted=posted)
    return [DonationResponse.model_validate(d) for d in donations]


@router.post("/donations/{donation_id}/post-to-gl", response_model=JournalEntryResponse, status_code=201)
async def post_donation_to_gl(
    donation_id: int,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _post(db: AsyncSession):
        entry = await donor_service.post_donation_to_gl(db, donation_id, posted_by=user.id)
        return JournalEntryResponse.model_validate(entry)

    return await run_command(
        factory, _post, module="api.donors", function_name="post_donation_to_gl", user_id=user.id
    )
