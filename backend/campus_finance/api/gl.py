"""General ledger: chart of accounts, journal entries and statements."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.api.deps import run_command
from campus_finance.auth_utils import ANY_STAFF, LEDGER_ROLES, CurrentUser, require_roles
from campus_finance.database import get_db, get_session_factory
from campus_finance.models.gl import AccountType, JournalSourceType
from campus_finance.schemas import (
    AccountActiveUpdate,
    AccountCreate,
    AccountResponse,
    JournalEntryCreate,
    JournalEntryResponse,
    JournalEntryReverse,
)
from campus_finance.services.errors import NotFoundError
from campus_finance.services.gl import coa_service, journal_engine, reports_service

router = APIRouter()


# ── Chart of accounts ────────────────────────────────────


@router.post("/accounts", response_model=AccountResponse, status_code=201)
async def create_account(
    data: AccountCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _create(db: AsyncSession):
        account = await coa_service.create_account(db, **data.model_dump(), created_by=user.id)
        return AccountResponse.model_validate(account)

    return await run_command(
        factory, _create, module="api.gl", function_name="create_account", user_id=user.id
    )


@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    account_type: Optional[AccountType] = None,
    active_only: bool = False,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    accounts = await coa_service.list_accounts(
        db, account_type=account_type, active_only=active_only, search=search
    )
    return [AccountResponse.model_validate(a) for a in accounts]


@router.patch("/accounts/{account_id}/active", response_model=AccountResponse)
async def set_account_active(
    account_id: int,
    data: AccountActiveUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _update(db: AsyncSession):
        account = await coa_service.set_account_active(
            db, account_id, data.is_active, user_id=user.id
        )
        return AccountResponse.model_validate(account)

    return await run_command(
        factory, _update, module="api.gl", function_name="set_account_active", user_id=user.id
    )


@router.get("/accounts/{account_id}/balance")
async def account_balance(
    account_id: int,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await reports_service.get_account_balance(db, account_id, as_of_date=as_of)


# ── Journal entries ──────────────────────────────────────


@router.post("/journal-entries", response_model=JournalEntryResponse, status_code=201)
async def create_journal_entry(
    data: JournalEntryCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _post(db: AsyncSession):
        entry = await journal_engine.post_journal_entry(
            db,
            lines=[line.model_dump() for line in data.lines],
            description=data.description,
            source_type=JournalSourceType.MANUAL,
            source_reference=data.source_reference,
            entry_date=data.entry_date,
            created_by=user.id,
        )
        return JournalEntryResponse.model_validate(entry)

    return await run_command(
        factory, _post, module="api.gl", function_name="create_journal_entry", user_id=user.id
    )


@router.get("/journal-entries", response_model=list[JournalEntryResponse])
async def list_journal_entries(
    source_type: Optional[JournalSourceType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    entries = await journal_engine.list_journal_entries(
        db, source_type=source_type, date_from=date_from, date_to=date_to,
        limit=limit, offset=offset,
    )
    return [JournalEntryResponse.model_validate(e) for e in entries]


@router.get("/journal-entries/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    entry = await journal_engine.get_journal_entry(db, entry_id)
    if entry is None:
        raise NotFoundError(f"Journal entry {entry_id} not found")
    return JournalEntryResponse.model_validate(entry)


@router.post("/journal-entries/{entry_id}/reverse", response_model=JournalEntryResponse, status_code=201)
async def reverse_journal_entry(
    entry_id: int,
    data: JournalEntryReverse,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    user: CurrentUser = Depends(require_roles(*LEDGER_ROLES)),
):
    async def _reverse(db: AsyncSession):
        entry = await journal_engine.reverse_journal_entry(
            db, entry_id, reason=data.reason, created_by=user.id, entry_date=data.entry_date
        )
        return JournalEntryResponse.model_validate(entry)

    return await run_command(
        factory, _reverse, module="api.gl", function_name="reverse_journal_entry", user_id=user.id
    )


# ── Statements ───────────────────────────────────────────


@router.get("/trial-balance")
async def trial_balance(
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await reports_service.trial_balance(db, as_of_date=as_of)


@router.get("/balance-sheet")
async def balance_sheet(
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await reports_service.balance_sheet(db, as_of_date=as_of or date.today())


@router.get("/income-statement")
async def income_statement(
    start_date: date,
    end_date: date,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*ANY_STAFF)),
):
    return await reports_service.income_statement(db, start_date=start_date, end_date=end_date)
