"""Create loan_applications, repayments, audit_log and error_logs.

This is the schema as it stood before balances were tracked on the record:
applications carry only the requested terms and an embedded repayment list.

Revision ID: 001_loan_applications
Revises:
Create Date: 2026-09-02

"""

from alembic import op
import sqlalchemy as sa


revision = "001_loan_applications"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loan_applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("loan_id", sa.Integer(), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("loan_title", sa.String(200), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("contact_number", sa.String(30), nullable=False),
        sa.Column("national_id", sa.String(50), nullable=False),
        sa.Column("income_source", sa.String(200), nullable=False),
        sa.Column("monthly_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason_for_loan", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("extra_notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("loan_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("interest_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("repayment_schedule", sa.Enum("monthly", "weekly", name="repaymentschedule"), nullable=False),
        sa.Column("status", sa.Enum("pending", "approved", "rejected", "cancelled", name="applicationstatus"), nullable=False, index=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("application_fee_status", sa.Enum("unpaid", "paid", name="feestatus"), nullable=False),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "repayments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("loan_application_id", sa.Integer(), sa.ForeignKey("loan_applications.id"), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=False, server_default="manual"),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("severity", sa.Enum("INFO", "WARNING", "ERROR", "CRITICAL", name="errorseverity"), nullable=False),
        sa.Column("error_type", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("traceback", sa.Text(), nullable=True),
        sa.Column("module", sa.String(300), nullable=True),
        sa.Column("function_name", sa.String(200), nullable=True),
        sa.Column("line_number", sa.Integer(), nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_path", sa.String(500), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Float(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("error_logs")
    op.drop_table("audit_log")
    op.drop_table("repayments")
    op.drop_table("loan_applications")
    op.execute("DROP TYPE IF EXISTS errorseverity")
    op.execute("DROP TYPE IF EXISTS feestatus")
    op.execute("DROP TYPE IF EXISTS applicationstatus")
    op.execute("DROP TYPE IF EXISTS repaymentschedule")
