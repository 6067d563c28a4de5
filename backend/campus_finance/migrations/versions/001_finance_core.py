"""Finance core: fees, payments, plans, scholarships, donors, endowments, GL.

Revision ID: 001
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

# Enum labels are the Python enum member names (SQLAlchemy's default).
fee_type = sa.Enum(
    "TUITION", "LAB", "LIBRARY", "TRANSPORT", "HOSTEL", "EXAM", "SPORTS",
    "TECHNOLOGY", "LATE", "OTHER", name="feetype",
)
fee_status = sa.Enum("PENDING", "PARTIAL", "PAID", "OVERDUE", name="feestatus")
fee_override_action = sa.Enum("MARK_PAID", name="feeoverrideaction")
payment_method = sa.Enum(
    "CASH", "CARD", "BANK_TRANSFER", "ONLINE", "CHEQUE", "MOBILE_MONEY", name="paymentmethod",
)
payment_status = sa.Enum("PENDING", "COMPLETED", "FAILED", "REFUNDED", name="paymentstatus")
plan_frequency = sa.Enum("MONTHLY", "QUARTERLY", name="planfrequency")
plan_status = sa.Enum("ACTIVE", "COMPLETED", "CANCELLED", name="planstatus")
installment_status = sa.Enum("PENDING", "PAID", "OVERDUE", name="installmentstatus")
scholarship_amount_type = sa.Enum("FIXED", "PERCENTAGE", name="scholarshipamounttype")
award_status = sa.Enum("ACTIVE", "SUSPENDED", "COMPLETED", "REVOKED", name="awardstatus")
disbursement_type = sa.Enum("ONE_TIME", "PER_TERM", "ANNUAL", name="disbursementtype")
donor_type = sa.Enum(
    "INDIVIDUAL", "CORPORATION", "FOUNDATION", "GOVERNMENT", "ALUMNI", name="donortype",
)
donation_method = sa.Enum("CASH", "CARD", "BANK_TRANSFER", "CHECK", "ONLINE", name="donationmethod")
investment_type = sa.Enum(
    "STOCK", "BOND", "MUTUAL_FUND", "REAL_ESTATE", "OTHER", name="investmenttype",
)
account_type = sa.Enum("ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE", name="accounttype")
normal_balance = sa.Enum("DEBIT", "CREDIT", name="normalbalance")
je_status = sa.Enum("POSTED", "REVERSED", name="journalentrystatus")
je_source = sa.Enum(
    "MANUAL", "DONATION", "PAYMENT", "FEE", "REVERSAL", "ADJUSTMENT", name="journalsourcetype",
)
error_severity = sa.Enum("INFO", "WARNING", "ERROR", "CRITICAL", name="errorseverity")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # -- General ledger --------------------------------------------------------
    op.create_table(
        "gl_accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_code", sa.String(30), unique=True, nullable=False),
        sa.Column("account_name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("account_type", account_type, nullable=False),
        sa.Column("normal_balance", normal_balance, nullable=False),
        sa.Column("normal_balance_override_reason", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
    )
    op.create_index("ix_gl_accounts_type", "gl_accounts", ["account_type"])

    op.create_table(
        "gl_journal_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("entry_number", sa.String(20), unique=True, nullable=False),
        sa.Column("entry_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("source_type", je_source, nullable=False),
        sa.Column("source_reference", sa.String(100), nullable=True),
        sa.Column("status", je_status, nullable=False),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
        sa.Column("reversal_of_id", sa.Integer, sa.ForeignKey("gl_journal_entries.id"), nullable=True),
        sa.Column("reversed_by_id", sa.Integer, sa.ForeignKey("gl_journal_entries.id"), nullable=True),
    )
    op.create_index("ix_gl_je_entry_date", "gl_journal_entries", ["entry_date"])
    op.create_index("ix_gl_je_source", "gl_journal_entries", ["source_type", "source_reference"])

    op.create_table(
        "gl_journal_entry_lines",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "journal_entry_id", sa.Integer,
            sa.ForeignKey("gl_journal_entries.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("line_number", sa.Integer, nullable=False),
        sa.Column("account_id", sa.Integer, sa.ForeignKey("gl_accounts.id"), nullable=False),
        sa.Column("debit", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("credit", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("description", sa.Text, nullable=True),
        sa.CheckConstraint(
            "(debit = 0 AND credit > 0) OR (debit > 0 AND credit = 0)",
            name="ck_je_line_debit_xor_credit",
        ),
    )
    op.create_index("ix_gl_jel_account", "gl_journal_entry_lines", ["account_id"])
    op.create_index("ix_gl_jel_entry", "gl_journal_entry_lines", ["journal_entry_id"])

    # -- Fees ------------------------------------------------------------------
    op.create_table(
        "fee_structures",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("class_id", sa.Integer, nullable=True),
        sa.Column("program_id", sa.Integer, nullable=True),
        sa.Column("fee_type", fee_type, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("is_per_credit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("academic_period_id", sa.Integer, nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_fee_structure_amount_positive"),
        sa.CheckConstraint(
            "class_id IS NOT NULL OR program_id IS NOT NULL", name="ck_fee_structure_scope",
        ),
    )
    op.create_index("ix_fee_structures_period", "fee_structures", ["academic_period_id"])

    op.create_table(
        "student_fees",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer, nullable=False),
        sa.Column("fee_structure_id", sa.Integer, sa.ForeignKey("fee_structures.id"), nullable=True),
        sa.Column("fee_type", fee_type, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("paid_amount", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("status", fee_status, nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("penalized_fee_id", sa.Integer, sa.ForeignKey("student_fees.id"), nullable=True),
        sa.Column(
            "gl_journal_entry_id", sa.Integer, sa.ForeignKey("gl_journal_entries.id"), nullable=True,
        ),
        sa.Column("is_archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_student_fee_amount_positive"),
        sa.CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= amount", name="ck_student_fee_paid_range",
        ),
    )
    op.create_index("ix_student_fees_student", "student_fees", ["student_id"])
    op.create_index("ix_student_fees_status_due", "student_fees", ["status", "due_date"])

    op.create_table(
        "fee_overrides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_fee_id", sa.Integer, sa.ForeignKey("student_fees.id"),
            nullable=False, index=True,
        ),
        sa.Column("action", fee_override_action, nullable=False),
        sa.Column("amount_cleared", sa.BigInteger, nullable=False),
        sa.Column("previous_paid_amount", sa.BigInteger, nullable=False),
        sa.Column("performed_by", sa.Integer, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at(),
    )

    op.create_table(
        "late_fee_penalties",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("original_fee_id", sa.Integer, sa.ForeignKey("student_fees.id"), nullable=False),
        sa.Column("cycle_date", sa.Date, nullable=False),
        sa.Column("penalty_fee_id", sa.Integer, sa.ForeignKey("student_fees.id"), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("rule", sa.String(20), nullable=False),
        _created_at(),
        sa.UniqueConstraint("original_fee_id", "cycle_date", name="uq_late_fee_cycle"),
    )

    # -- Payments --------------------------------------------------------------
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer, nullable=False, index=True),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("payment_date", sa.Date, nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("payment_number", sa.String(30), unique=True, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("recorded_by", sa.Integer, nullable=True),
        sa.Column(
            "gl_journal_entry_id", sa.Integer, sa.ForeignKey("gl_journal_entries.id"), nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.Integer, sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("student_fee_id", sa.Integer, sa.ForeignKey("student_fees.id"), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("allocated_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )
    op.create_index("ix_payment_allocations_payment", "payment_allocations", ["payment_id"])
    op.create_index("ix_payment_allocations_fee", "payment_allocations", ["student_fee_id"])

    # -- Payment plans ---------------------------------------------------------
    op.create_table(
        "payment_plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer, nullable=False, index=True),
        sa.Column("total_amount", sa.BigInteger, nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("frequency", plan_frequency, nullable=False),
        sa.Column("installments_count", sa.Integer, nullable=False),
        sa.Column("status", plan_status, nullable=False),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("total_amount > 0", name="ck_plan_total_positive"),
        sa.CheckConstraint("installments_count BETWEEN 1 AND 12", name="ck_plan_installments_range"),
    )

    op.create_table(
        "payment_plan_installments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "payment_plan_id", sa.Integer,
            sa.ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("installment_number", sa.Integer, nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("status", installment_status, nullable=False),
        sa.UniqueConstraint("payment_plan_id", "installment_number", name="uq_plan_installment"),
        sa.CheckConstraint("amount > 0", name="ck_installment_amount_positive"),
    )

    # -- Scholarships ----------------------------------------------------------
    op.create_table(
        "scholarship_types",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(30), unique=True, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("amount_type", scholarship_amount_type, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=True),
        sa.Column("percentage", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "student_scholarships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer, nullable=False, index=True),
        sa.Column(
            "scholarship_type_id", sa.Integer, sa.ForeignKey("scholarship_types.id"), nullable=False,
        ),
        sa.Column("awarded_amount", sa.BigInteger, nullable=False),
        sa.Column("reference_amount", sa.BigInteger, nullable=True),
        sa.Column("academic_period_id", sa.Integer, nullable=True),
        sa.Column("status", award_status, nullable=False),
        sa.Column("disbursement_type", disbursement_type, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("awarded_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("awarded_amount > 0", name="ck_award_amount_positive"),
    )

    # -- Donors & endowments ---------------------------------------------------
    op.create_table(
        "donors",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("donor_code", sa.String(30), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("donor_type", donor_type, nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("total_donations", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("last_donation_date", sa.Date, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "donations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("donor_id", sa.Integer, sa.ForeignKey("donors.id"), nullable=False, index=True),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("donation_date", sa.Date, nullable=False),
        sa.Column("purpose", sa.Text, nullable=True),
        sa.Column("payment_method", donation_method, nullable=False),
        sa.Column(
            "gl_journal_entry_id", sa.Integer, sa.ForeignKey("gl_journal_entries.id"),
            nullable=True, unique=True,
        ),
        sa.Column("recorded_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_donation_amount_positive"),
    )

    op.create_table(
        "endowment_funds",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("fund_code", sa.String(30), unique=True, nullable=False),
        sa.Column("fund_name", sa.String(200), nullable=False),
        sa.Column("restrictions", sa.Text, nullable=True),
        sa.Column("principal", sa.BigInteger, nullable=False),
        sa.Column("current_value", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("spending_rate", sa.Integer, nullable=False, server_default="500"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("principal >= 0", name="ck_fund_principal_non_negative"),
        sa.CheckConstraint("spending_rate BETWEEN 0 AND 10000", name="ck_fund_spending_rate"),
    )

    op.create_table(
        "endowment_investments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "endowment_fund_id", sa.Integer, sa.ForeignKey("endowment_funds.id"),
            nullable=False, index=True,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("investment_type", investment_type, nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("cost_basis", sa.BigInteger, nullable=False),
        sa.Column("current_price", sa.BigInteger, nullable=False),
        sa.Column("current_value", sa.BigInteger, nullable=False),
        sa.Column("purchase_date", sa.Date, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("quantity >= 0", name="ck_investment_quantity"),
        sa.CheckConstraint("current_price >= 0", name="ck_investment_price"),
    )

    # -- Audit & error logs ----------------------------------------------------
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Integer, nullable=True),
        sa.Column("old_values", sa.JSON, nullable=True),
        sa.Column("new_values", sa.JSON, nullable=True),
        sa.Column("details", sa.Text, nullable=True),
        _created_at(),
    )

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("severity", error_severity, nullable=False),
        sa.Column("error_type", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("traceback", sa.Text, nullable=True),
        sa.Column("module", sa.String(300), nullable=True),
        sa.Column("function_name", sa.String(200), nullable=True),
        sa.Column("line_number", sa.Integer, nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_path", sa.String(500), nullable=True),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("response_time_ms", sa.Float, nullable=True),
        sa.Column("user_id", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    for table in [
        "error_logs", "audit_log",
        "endowment_investments", "endowment_funds", "donations", "donors",
        "student_scholarships", "scholarship_types",
        "payment_plan_installments", "payment_plans",
        "payment_allocations", "payments",
        "late_fee_penalties", "fee_overrides", "student_fees", "fee_structures",
        "gl_journal_entry_lines", "gl_journal_entries", "gl_accounts",
    ]:
        op.drop_table(table)

    bind = op.get_bind()
    for enum in [
        fee_type, fee_status, fee_override_action, payment_method, payment_status,
        plan_frequency, plan_status, installment_status, scholarship_amount_type,
        award_status, disbursement_type, donor_type, donation_method, investment_type,
        account_type, normal_balance, je_status, je_source, error_severity,
    ]:
        enum.drop(bind, checkfirst=True)
