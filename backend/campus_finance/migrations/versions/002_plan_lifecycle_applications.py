"""Installment payment, award disbursement, scholarship applications, audit by student.

Revision ID: 002
Revises: 001
"""

from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

application_status = sa.Enum(
    "SUBMITTED", "APPROVED", "REJECTED", "AWARDED", name="applicationstatus",
)


def upgrade() -> None:
    # -- Payment plans ---------------------------------------------------------
    op.add_column(
        "payment_plan_installments",
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column("payment_plan_installments", sa.Column("paid_by", sa.Integer, nullable=True))

    # -- Scholarships ----------------------------------------------------------
    # ADD VALUE cannot run inside a transaction block before PostgreSQL 12
    with op.get_context().autocommit_block():
        op.execute("ALTER TYPE awardstatus ADD VALUE IF NOT EXISTS 'DISBURSED'")
    op.add_column(
        "student_scholarships",
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column("student_scholarships", sa.Column("disbursed_by", sa.Integer, nullable=True))

    op.create_table(
        "scholarship_applications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer, nullable=False, index=True),
        sa.Column(
            "scholarship_type_id", sa.Integer, sa.ForeignKey("scholarship_types.id"), nullable=False,
        ),
        sa.Column("academic_period_id", sa.Integer, nullable=True),
        sa.Column("requested_amount", sa.BigInteger, nullable=True),
        sa.Column("statement", sa.Text, nullable=True),
        sa.Column("status", application_status, nullable=False),
        sa.Column("application_date", sa.Date, nullable=False),
        sa.Column("submitted_by", sa.Integer, nullable=True),
        sa.Column("reviewed_by", sa.Integer, nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text, nullable=True),
        sa.Column(
            "student_scholarship_id", sa.Integer, sa.ForeignKey("student_scholarships.id"),
            nullable=True, unique=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "requested_amount IS NULL OR requested_amount > 0",
            name="ck_application_amount_positive",
        ),
    )

    # -- Audit & error logs ----------------------------------------------------
    op.add_column("audit_log", sa.Column("student_id", sa.Integer, nullable=True))
    op.create_index("ix_audit_log_student_id", "audit_log", ["student_id"])
    op.drop_index("ix_audit_log_entity_type", table_name="audit_log")
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])

    op.add_column("error_logs", sa.Column("error_kind", sa.String(100), nullable=True))
    op.add_column("error_logs", sa.Column("context", sa.JSON, nullable=True))
    op.add_column("error_logs", sa.Column("source", sa.String(300), nullable=True))
    op.create_index("ix_error_logs_error_kind", "error_logs", ["error_kind"])
    op.execute(
        "UPDATE error_logs SET source = concat_ws('.', module, function_name) "
        "WHERE module IS NOT NULL OR function_name IS NOT NULL"
    )
    op.drop_column("error_logs", "line_number")
    op.drop_column("error_logs", "function_name")
    op.drop_column("error_logs", "module")


def downgrade() -> None:
    op.add_column("error_logs", sa.Column("module", sa.String(300), nullable=True))
    op.add_column("error_logs", sa.Column("function_name", sa.String(200), nullable=True))
    op.add_column("error_logs", sa.Column("line_number", sa.Integer, nullable=True))
    op.execute("UPDATE error_logs SET module = source")
    op.drop_index("ix_error_logs_error_kind", table_name="error_logs")
    op.drop_column("error_logs", "source")
    op.drop_column("error_logs", "context")
    op.drop_column("error_logs", "error_kind")

    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    op.create_index("ix_audit_log_entity_type", "audit_log", ["entity_type"])
    op.drop_index("ix_audit_log_student_id", table_name="audit_log")
    op.drop_column("audit_log", "student_id")

    op.drop_table("scholarship_applications")
    application_status.drop(op.get_bind(), checkfirst=True)
    op.drop_column("student_scholarships", "disbursed_by")
    op.drop_column("student_scholarships", "disbursed_at")
    # PostgreSQL cannot drop an enum label; disbursed awards fall back to completed
    op.execute("UPDATE student_scholarships SET status = 'COMPLETED' WHERE status = 'DISBURSED'")

    op.drop_column("payment_plan_installments", "paid_by")
    op.drop_column("payment_plan_installments", "paid_at")
