"""Request and response models.

Request bodies are closed (unknown fields are rejected with 422).  Amounts
are integers in minor units; fee, payment and donation creation also accept
``amount_major`` (decimal major units) as an alternative to ``amount``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from campus_finance.models.donor import DonationMethod, DonorType, InvestmentType
from campus_finance.models.error_log import ErrorSeverity
from campus_finance.models.fees import FeeStatus, FeeType
from campus_finance.models.gl import AccountType, JournalEntryStatus, JournalSourceType, NormalBalance
from campus_finance.models.payment import PaymentMethod, PaymentStatus
from campus_finance.models.payment_plan import InstallmentStatus, PlanFrequency, PlanStatus
from campus_finance.models.scholarship import (
    ApplicationStatus,
    AwardStatus,
    DisbursementType,
    ScholarshipAmountType,
)
from campus_finance.services.errors import FinanceError
from campus_finance.services.fee_service import BulkFeeAction
from campus_finance.services.money import to_minor_units


class ClosedModel(BaseModel):
    model_config = {"extra": "forbid"}


class MoneyInput(ClosedModel):
    """Exactly one of ``amount`` (minor units) or ``amount_major`` is required."""

    amount: Optional[int] = Field(None, gt=0, description="Minor units")
    amount_major: Optional[Decimal] = Field(None, gt=0, description="Major units, e.g. 19.99")

    @model_validator(mode="after")
    def resolve_amount(self):
        if self.amount is not None and self.amount_major is not None:
            raise ValueError("Provide amount or amount_major, not both")
        if self.amount is None:
            if self.amount_major is None:
                raise ValueError("amount or amount_major is required")
            try:
                self.amount = to_minor_units(self.amount_major)
            except FinanceError as exc:
                raise ValueError(exc.message) from exc
            if self.amount <= 0:
                raise ValueError("amount must be positive")
        return self


# ── Fees ─────────────────────────────────────────────────


class FeeStructureCreate(ClosedModel):
    class_id: Optional[int] = None
    program_id: Optional[int] = None
    fee_type: FeeType
    amount: int = Field(..., gt=0)
    is_per_credit: bool = False
    academic_period_id: int
    due_date: date
    description: Optional[str] = None


class FeeStructureResponse(BaseModel):
    id: int
    class_id: Optional[int]
    program_id: Optional[int]
    fee_type: FeeType
    amount: int
    is_per_credit: bool
    academic_period_id: int
    due_date: date
    description: Optional[str]

    model_config = {"from_attributes": True}


class FeeAssignRequest(ClosedModel):
    student_ids: list[int] = Field(..., min_length=1)
    credits: Optional[dict[int, int]] = None


class FeeCreate(MoneyInput):
    student_id: int
    due_date: date
    description: str = Field(..., min_length=1, max_length=500)
    fee_type: FeeType = FeeType.OTHER
    notes: Optional[str] = None


class FeeResponse(BaseModel):
    id: int
    student_id: int
    fee_structure_id: Optional[int]
    fee_type: FeeType
    amount: int
    paid_amount: int
    balance: int
    status: FeeStatus
    due_date: date
    description: str
    notes: Optional[str]
    penalized_fee_id: Optional[int]
    gl_journal_entry_id: Optional[int]
    is_archived: bool

    model_config = {"from_attributes": True}


class FeeAssignResponse(BaseModel):
    created: list[FeeResponse]
    skipped_student_ids: list[int]


class FeeStatusUpdate(ClosedModel):
    status: Literal["paid"]
    reason: Optional[str] = None


class BulkFeeRequest(ClosedModel):
    action: BulkFeeAction
    ids: list[int] = Field(..., min_length=1)
    reason: Optional[str] = None


class BulkFeeResponse(BaseModel):
    action: str
    affected: int
    fee_ids: list[int]
    skipped_ids: list[int] = []


class PenaltyRunResponse(BaseModel):
    processed: int
    applied: int


# ── Payments ─────────────────────────────────────────────


class PaymentCreate(MoneyInput):
    student_id: int
    payment_date: date
    payment_method: PaymentMethod
    payment_number: Optional[str] = Field(None, min_length=1, max_length=30)
    status: PaymentStatus = PaymentStatus.COMPLETED
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    student_id: int
    amount: int
    payment_date: date
    payment_method: PaymentMethod
    status: PaymentStatus
    payment_number: str
    notes: Optional[str]
    gl_journal_entry_id: Optional[int]

    model_config = {"from_attributes": True}


class PaymentStatusUpdate(ClosedModel):
    status: PaymentStatus
    reason: Optional[str] = None


class AllocationCreate(ClosedModel):
    payment_id: int
    student_fee_id: int
    amount: int = Field(..., gt=0)


class AllocationResponse(BaseModel):
    id: int
    payment_id: int
    student_fee_id: int
    amount: int
    allocated_by: Optional[int]

    model_config = {"from_attributes": True}


class AllocationResult(BaseModel):
    allocation: AllocationResponse
    fee: FeeResponse
    unallocated_payment_amount: int


# ── Payment plans ────────────────────────────────────────


class PaymentPlanCreate(ClosedModel):
    student_id: int
    total_amount: int = Field(..., gt=0)
    start_date: date
    frequency: PlanFrequency
    installments_count: int = Field(..., ge=1, le=12)


class InstallmentResponse(BaseModel):
    installment_number: int
    due_date: date
    amount: int
    status: InstallmentStatus
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentPlanResponse(BaseModel):
    id: int
    student_id: int
    total_amount: int
    start_date: date
    end_date: date
    frequency: PlanFrequency
    installments_count: int
    status: PlanStatus
    installments: list[InstallmentResponse]

    model_config = {"from_attributes": True}


class PlanStatusUpdate(ClosedModel):
    status: Literal["completed", "cancelled"]
    reason: Optional[str] = None


# ── Scholarships ─────────────────────────────────────────


class ScholarshipTypeCreate(ClosedModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=30)
    amount_type: ScholarshipAmountType
    amount: Optional[int] = Field(None, gt=0)
    percentage: Optional[int] = Field(None, gt=0, le=10000, description="Basis points")
    description: Optional[str] = None


class ScholarshipTypeResponse(BaseModel):
    id: int
    name: str
    code: str
    amount_type: ScholarshipAmountType
    amount: Optional[int]
    percentage: Optional[int]
    description: Optional[str]
    is_active: bool

    model_config = {"from_attributes": True}


class AwardCreate(ClosedModel):
    student_id: int
    scholarship_type_id: int
    awarded_amount: Optional[int] = Field(None, gt=0)
    reference_amount: Optional[int] = Field(None, gt=0)
    academic_period_id: Optional[int] = None
    disbursement_type: DisbursementType = DisbursementType.ONE_TIME
    notes: Optional[str] = None


class AwardResponse(BaseModel):
    id: int
    student_id: int
    scholarship_type_id: int
    awarded_amount: int
    reference_amount: Optional[int]
    academic_period_id: Optional[int]
    status: AwardStatus
    disbursement_type: DisbursementType
    notes: Optional[str]
    disbursed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AwardStatusUpdate(ClosedModel):
    status: AwardStatus
    reason: Optional[str] = None


class ApplicationCreate(ClosedModel):
    student_id: int
    scholarship_type_id: int
    academic_period_id: Optional[int] = None
    requested_amount: Optional[int] = Field(None, gt=0)
    statement: Optional[str] = None
    application_date: Optional[date] = None


class ApplicationResponse(BaseModel):
    id: int
    student_id: int
    scholarship_type_id: int
    academic_period_id: Optional[int]
    requested_amount: Optional[int]
    statement: Optional[str]
    status: ApplicationStatus
    application_date: date
    reviewed_by: Optional[int]
    reviewed_at: Optional[datetime]
    review_notes: Optional[str]
    student_scholarship_id: Optional[int]

    model_config = {"from_attributes": True}


class ApplicationReview(ClosedModel):
    decision: Literal["approved", "rejected"]
    notes: Optional[str] = None


class ApplicationAward(ClosedModel):
    awarded_amount: Optional[int] = Field(None, gt=0)
    reference_amount: Optional[int] = Field(None, gt=0)
    disbursement_type: DisbursementType = DisbursementType.ONE_TIME
    notes: Optional[str] = None


# ── Donors & endowments ──────────────────────────────────


class DonorCreate(ClosedModel):
    donor_code: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=200)
    donor_type: DonorType = DonorType.INDIVIDUAL
    email: Optional[str] = None
    phone: Optional[str] = None


class DonorResponse(BaseModel):
    id: int
    donor_code: str
    name: str
    donor_type: DonorType
    email: Optional[str]
    phone: Optional[str]
    total_donations: int
    last_donation_date: Optional[date]
    is_active: bool

    model_config = {"from_attributes": True}


class DonationCreate(MoneyInput):
    donor_id: int
    donation_date: date
    payment_method: DonationMethod
    purpose: Optional[str] = None


class DonationResponse(BaseModel):
    id: int
    donor_id: int
    amount: int
    donation_date: date
    purpose: Optional[str]
    payment_method: DonationMethod
    gl_journal_entry_id: Optional[int]

    model_config = {"from_attributes": True}


class EndowmentFundCreate(ClosedModel):
    fund_code: str = Field(..., min_length=1, max_length=30)
    fund_name: str = Field(..., min_length=1, max_length=200)
    principal: int = Field(..., ge=0)
    spending_rate: int = Field(500, ge=0, le=10000, description="Basis points")
    restrictions: Optional[str] = None


class EndowmentFundResponse(BaseModel):
    id: int
    fund_code: str
    fund_name: str
    principal: int
    current_value: int
    spending_rate: int
    restrictions: Optional[str]
    is_active: bool

    model_config = {"from_attributes": True}


class FundSummaryResponse(BaseModel):
    fund_id: int
    fund_code: str
    fund_name: str
    principal: int
    current_value: int
    spending_rate: int
    spendable_amount: int
    unrealized_gain: int
    investment_count: int
    is_active: bool


class InvestmentCreate(ClosedModel):
    endowment_fund_id: int
    name: str = Field(..., min_length=1, max_length=200)
    investment_type: InvestmentType = InvestmentType.STOCK
    quantity: Decimal = Field(..., ge=0)
    cost_basis: int = Field(..., ge=0)
    current_price: int = Field(..., ge=0, description="Per unit, minor units")
    purchase_date: Optional[date] = None


class InvestmentPriceUpdate(ClosedModel):
    current_price: int = Field(..., ge=0)


class InvestmentResponse(BaseModel):
    id: int
    endowment_fund_id: int
    name: str
    investment_type: InvestmentType
    quantity: Decimal
    cost_basis: int
    current_price: int
    current_value: int
    purchase_date: Optional[date]
    is_active: bool

    model_config = {"from_attributes": True}


# ── General ledger ───────────────────────────────────────


class AccountCreate(ClosedModel):
    account_code: str = Field(..., min_length=1, max_length=20)
    account_name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType
    normal_balance: Optional[NormalBalance] = None
    override_reason: Optional[str] = None
    description: Optional[str] = None


class AccountResponse(BaseModel):
    id: int
    account_code: str
    account_name: str
    account_type: AccountType
    normal_balance: NormalBalance
    description: Optional[str]
    is_active: bool

    model_config = {"from_attributes": True}


class AccountActiveUpdate(ClosedModel):
    is_active: bool


class JournalLineInput(ClosedModel):
    account_id: int
    debit: int = Field(0, ge=0)
    credit: int = Field(0, ge=0)
    description: Optional[str] = None


class JournalEntryCreate(ClosedModel):
    lines: list[JournalLineInput] = Field(..., min_length=2)
    description: str = Field(..., min_length=1)
    entry_date: Optional[date] = None
    source_reference: Optional[str] = None


class JournalEntryReverse(ClosedModel):
    reason: str = Field(..., min_length=1)
    entry_date: Optional[date] = None


class JournalLineResponse(BaseModel):
    line_number: int
    account_id: int
    debit: int
    credit: int
    description: Optional[str]

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    id: int
    entry_number: str
    entry_date: date
    description: str
    source_type: JournalSourceType
    source_reference: Optional[str]
    status: JournalEntryStatus
    reversal_of_id: Optional[int]
    reversed_by_id: Optional[int]
    total_debits: int
    total_credits: int
    lines: list[JournalLineResponse]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Audit & error logs ───────────────────────────────────


class AuditEntryResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    student_id: Optional[int]
    action: str
    user_id: Optional[int]
    old_values: Optional[dict]
    new_values: Optional[dict]
    details: Optional[str]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuditTrailResponse(BaseModel):
    entries: list[AuditEntryResponse]
    total: int


class ErrorLogResponse(BaseModel):
    id: int
    severity: ErrorSeverity
    error_type: str
    error_kind: Optional[str]
    message: str
    context: Optional[dict]
    source: Optional[str]
    request_method: Optional[str]
    request_path: Optional[str]
    status_code: Optional[int]
    user_id: Optional[int]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ErrorLogPage(BaseModel):
    entries: list[ErrorLogResponse]
    total: int
