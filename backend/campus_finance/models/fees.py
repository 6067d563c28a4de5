"""Fee structure catalog and the student fee (invoice) ledger."""

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_finance.database import Base


class FeeType(str, enum.Enum):
    TUITION = "tuition"
    LAB = "lab"
    LIBRARY = "library"
    TRANSPORT = "transport"
    HOSTEL = "hostel"
    EXAM = "exam"
    SPORTS = "sports"
    TECHNOLOGY = "technology"
    LATE = "late"
    OTHER = "other"


class FeeStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class FeeOverrideAction(str, enum.Enum):
    MARK_PAID = "mark_paid"


class FeeStructure(Base):
    """Immutable charge template, assigned to students to create StudentFee rows."""

    __tablename__ = "fee_structures"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fee_structure_amount_positive"),
        CheckConstraint(
            "class_id IS NOT NULL OR program_id IS NOT NULL",
            name="ck_fee_structure_scope",
        ),
        Index("ix_fee_structures_period", "academic_period_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    class_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fee_type: Mapped[FeeType] = mapped_column(Enum(FeeType), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_per_credit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    academic_period_id: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class StudentFee(Base):
    """One billable charge for one student.

    ``paid_amount`` and ``status`` are written only by the allocation engine,
    the administrative override and the penalty calculator.
    """

    __tablename__ = "student_fees"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_student_fee_amount_positive"),
        CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= amount",
            name="ck_student_fee_paid_range",
        ),
        Index("ix_student_fees_student", "student_id"),
        Index("ix_student_fees_status_due", "status", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_structure_id: Mapped[int | None] = mapped_column(
        ForeignKey("fee_structures.id"), nullable=True
    )
    fee_type: Mapped[FeeType] = mapped_column(
        Enum(FeeType), default=FeeType.OTHER, nullable=False
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    paid_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    status: Mapped[FeeStatus] = mapped_column(
        Enum(FeeStatus), default=FeeStatus.PENDING, nullable=False
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Late fees point at the invoice they penalise
    penalized_fee_id: Mapped[int | None] = mapped_column(
        ForeignKey("student_fees.id"), nullable=True
    )
    gl_journal_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("gl_journal_entries.id"), nullable=True
    )

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    fee_structure = relationship("FeeStructure")

    @property
    def balance(self) -> int:
        return self.amount - self.paid_amount


class FeeOverride(Base):
    """Administrative clearing of a fee without a recorded collection."""

    __tablename__ = "fee_overrides"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_fee_id: Mapped[int] = mapped_column(
        ForeignKey("student_fees.id"), nullable=False, index=True
    )
    action: Mapped[FeeOverrideAction] = mapped_column(
        Enum(FeeOverrideAction), nullable=False
    )
    amount_cleared: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_paid_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    performed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class LateFeePenalty(Base):
    """Dedupe record: one penalty per (original fee, overdue cycle)."""

    __tablename__ = "late_fee_penalties"
    __table_args__ = (
        UniqueConstraint("original_fee_id", "cycle_date", name="uq_late_fee_cycle"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    original_fee_id: Mapped[int] = mapped_column(
        ForeignKey("student_fees.id"), nullable=False
    )
    cycle_date: Mapped[date] = mapped_column(Date, nullable=False)
    penalty_fee_id: Mapped[int] = mapped_column(
        ForeignKey("student_fees.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    rule: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
