"""Scholarship types and student awards."""

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, Integer,
    String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_finance.database import Base


class ScholarshipAmountType(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class AwardStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DISBURSED = "disbursed"
    COMPLETED = "completed"
    REVOKED = "revoked"


class ApplicationStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    AWARDED = "awarded"


class DisbursementType(str, enum.Enum):
    ONE_TIME = "one_time"
    PER_TERM = "per_term"
    ANNUAL = "annual"


class ScholarshipType(Base):
    __tablename__ = "scholarship_types"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount_type: Mapped[ScholarshipAmountType] = mapped_column(
        Enum(ScholarshipAmountType), nullable=False
    )
    amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)  # basis points
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class StudentScholarship(Base):
    """An award granted to a student.

    ``awarded_amount`` is a snapshot taken at grant time; it does not track
    any live fee balance.
    """

    __tablename__ = "student_scholarships"
    __table_args__ = (
        CheckConstraint("awarded_amount > 0", name="ck_award_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    scholarship_type_id: Mapped[int] = mapped_column(
        ForeignKey("scholarship_types.id"), nullable=False
    )
    awarded_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    academic_period_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[AwardStatus] = mapped_column(
        Enum(AwardStatus), default=AwardStatus.ACTIVE, nullable=False
    )
    disbursement_type: Mapped[DisbursementType] = mapped_column(
        Enum(DisbursementType), default=DisbursementType.ONE_TIME, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    awarded_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disbursed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    scholarship_type = relationship("ScholarshipType")


class ScholarshipApplication(Base):
    """A student's request for a scholarship, reviewed before any award exists."""

    __tablename__ = "scholarship_applications"
    __table_args__ = (
        CheckConstraint(
            "requested_amount IS NULL OR requested_amount > 0",
            name="ck_application_amount_positive",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    scholarship_type_id: Mapped[int] = mapped_column(
        ForeignKey("scholarship_types.id"), nullable=False
    )
    academic_period_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requested_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    statement: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus), default=ApplicationStatus.SUBMITTED, nullable=False
    )
    application_date: Mapped[date] = mapped_column(Date, nullable=False)
    submitted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    student_scholarship_id: Mapped[int | None] = mapped_column(
        ForeignKey("student_scholarships.id"), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    scholarship_type = relationship("ScholarshipType")
