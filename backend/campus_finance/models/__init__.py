"""SQLAlchemy models for the campus finance core."""

from campus_finance.models.gl import (
    ChartOfAccount,
    JournalEntry,
    JournalEntryLine,
    AccountType,
    NormalBalance,
    JournalEntryStatus,
    JournalSourceType,
)
from campus_finance.models.fees import (
    FeeStructure,
    StudentFee,
    FeeOverride,
    LateFeePenalty,
    FeeType,
    FeeStatus,
    FeeOverrideAction,
)
from campus_finance.models.payment import (
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
)
from campus_finance.models.payment_plan import (
    PaymentPlan,
    PaymentPlanInstallment,
    PlanFrequency,
    PlanStatus,
    InstallmentStatus,
)
from campus_finance.models.scholarship import (
    ScholarshipType,
    StudentScholarship,
    ScholarshipApplication,
    ScholarshipAmountType,
    AwardStatus,
    ApplicationStatus,
    DisbursementType,
)
from campus_finance.models.donor import (
    Donor,
    Donation,
    EndowmentFund,
    Investment,
    DonorType,
    DonationMethod,
    InvestmentType,
)
from campus_finance.models.audit import AuditLog
from campus_finance.models.error_log import ErrorLog, ErrorSeverity
