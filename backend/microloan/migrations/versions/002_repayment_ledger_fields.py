"""Track balances on the application record.

Adds the derived money columns, repayment_status, the optimistic-concurrency
version counter and the per-application transaction id constraint.  The money
columns are left NULL on existing rows; the reconciler fills them in on first
read or through the nightly sweep.

Revision ID: 002_repayment_ledger_fields
Revises: 001_loan_applications
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa


revision = "002_repayment_ledger_fields"
down_revision = "001_loan_applications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    repayment_status = sa.Enum("pending", "in_progress", "complete", name="repaymentstatus")
    repayment_status.create(op.get_bind(), checkfirst=True)

    op.add_column("loan_applications", sa.Column("total_amount", sa.Numeric(12, 2), nullable=True))
    op.add_column("loan_applications", sa.Column("paid_amount", sa.Numeric(12, 2), nullable=True))
    op.add_column("loan_applications", sa.Column("remaining_amount", sa.Numeric(12, 2), nullable=True))
    op.add_column("loan_applications", sa.Column("repayment_status", repayment_status, nullable=True))
    op.add_column(
        "loan_applications",
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    op.create_unique_constraint(
        "uq_repayments_application_transaction",
        "repayments",
        ["loan_application_id", "transaction_id"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_repayments_application_transaction", "repayments", type_="unique")
    op.drop_column("loan_applications", "version")
    op.drop_column("loan_applications", "repayment_status")
    op.drop_column("loan_applications", "remaining_amount")
    op.drop_column("loan_applications", "paid_amount")
    op.drop_column("loan_applications", "total_amount")
    op.execute("DROP TYPE IF EXISTS repaymentstatus")
