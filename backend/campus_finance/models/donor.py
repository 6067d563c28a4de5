"""Donor, donation and endowment models."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, Integer,
    Numeric, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from campus_finance.database import Base


class DonorType(str, enum.Enum):
    INDIVIDUAL = "individual"
    CORPORATION = "corporation"
    FOUNDATION = "foundation"
    GOVERNMENT = "government"
    ALUMNI = "alumni"


class DonationMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    ONLINE = "online"


class InvestmentType(str, enum.Enum):
    STOCK = "stock"
    BOND = "bond"
    MUTUAL_FUND = "mutual_fund"
    REAL_ESTATE = "real_estate"
    OTHER = "other"


class Donor(Base):
    __tablename__ = "donors"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    donor_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    donor_type: Mapped[DonorType] = mapped_column(
        Enum(DonorType), default=DonorType.INDIVIDUAL, nullable=False
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Maintained in the same transaction as each donation insert
    total_donations: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_donation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Donation(Base):
    """A gift from a donor. Posted to the GL iff ``gl_journal_entry_id`` is set."""

    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_donation_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    donor_id: Mapped[int] = mapped_column(ForeignKey("donors.id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    donation_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[DonationMethod] = mapped_column(
        Enum(DonationMethod), nullable=False
    )
    gl_journal_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("gl_journal_entries.id"), nullable=True, unique=True
    )
    recorded_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class EndowmentFund(Base):
    __tablename__ = "endowment_funds"
    __table_args__ = (
        CheckConstraint("principal >= 0", name="ck_fund_principal_non_negative"),
        CheckConstraint("spending_rate BETWEEN 0 AND 10000", name="ck_fund_spending_rate"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    fund_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    fund_name: Mapped[str] = mapped_column(String(200), nullable=False)
    restrictions: Mapped[str | None] = mapped_column(Text, nullable=True)
    principal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Cached Σ investment.current_value; recomputed on every investment write
    current_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    spending_rate: Mapped[int] = mapped_column(Integer, default=500, nullable=False)  # basis points
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Investment(Base):
    __tablename__ = "endowment_investments"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_investment_quantity"),
        CheckConstraint("current_price >= 0", name="ck_investment_price"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    endowment_fund_id: Mapped[int] = mapped_column(
        ForeignKey("endowment_funds.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    investment_type: Mapped[InvestmentType] = mapped_column(
        Enum(InvestmentType), default=InvestmentType.STOCK, nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    cost_basis: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_price: Mapped[int] = mapped_column(BigInteger, nullable=False)  # per unit
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
