"""General Ledger models.

Double-entry bookkeeping core:
- Chart of Accounts with a normal balance derived from the account type
- Append-only journal entries; corrections are made via reversing entries
- Every line carries exactly one non-zero side (debit xor credit)
"""

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
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_finance.database import Base


# ===================================================================
# Enumerations
# ===================================================================


class AccountType(str, enum.Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


class JournalEntryStatus(str, enum.Enum):
    POSTED = "posted"
    REVERSED = "reversed"


class JournalSourceType(str, enum.Enum):
    MANUAL = "manual"
    DONATION = "donation"
    PAYMENT = "payment"
    FEE = "fee"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"


# ===================================================================
# Chart of Accounts
# ===================================================================


class ChartOfAccount(Base):
    __tablename__ = "gl_accounts"
    __table_args__ = (
        Index("ix_gl_accounts_type", "account_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType), nullable=False)
    normal_balance: Mapped[NormalBalance] = mapped_column(
        Enum(NormalBalance), nullable=False
    )
    # Set only when normal_balance was explicitly overridden (contra accounts)
    normal_balance_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ===================================================================
# Journal
# ===================================================================


class JournalEntry(Base):
    """Immutable double-entry journal entry header."""

    __tablename__ = "gl_journal_entries"
    __table_args__ = (
        Index("ix_gl_je_entry_date", "entry_date"),
        Index("ix_gl_je_source", "source_type", "source_reference"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    entry_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    source_type: Mapped[JournalSourceType] = mapped_column(
        Enum(JournalSourceType), nullable=False
    )
    source_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[JournalEntryStatus] = mapped_column(
        Enum(JournalEntryStatus), default=JournalEntryStatus.POSTED, nullable=False
    )
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Reversal linkage
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("gl_journal_entries.id"), nullable=True
    )
    reversed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("gl_journal_entries.id"), nullable=True
    )

    lines = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_number",
    )

    @property
    def total_debits(self) -> int:
        return sum(ln.debit for ln in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(ln.credit for ln in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalEntryLine(Base):
    """Individual debit or credit line within a journal entry."""

    __tablename__ = "gl_journal_entry_lines"
    __table_args__ = (
        CheckConstraint(
            "(debit = 0 AND credit > 0) OR (debit > 0 AND credit = 0)",
            name="ck_je_line_debit_xor_credit",
        ),
        Index("ix_gl_jel_account", "account_id"),
        Index("ix_gl_jel_entry", "journal_entry_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    journal_entry_id: Mapped[int] = mapped_column(
        ForeignKey("gl_journal_entries.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("gl_accounts.id"), nullable=False)
    debit: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    credit: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("ChartOfAccount")
