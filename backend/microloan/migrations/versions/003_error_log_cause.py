"""Keep the underlying cause of ledger errors.

Gateway and persistence failures carry the processor's or driver's own
message separately from the text shown to the client.

Revision ID: 003_error_log_cause
Revises: 002_repayment_ledger_fields
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa


revision = "003_error_log_cause"
down_revision = "002_repayment_ledger_fields"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("error_logs", sa.Column("cause", sa.Text(), nullable=True))


def downgrade() -> None:
    op.drop_column("error_logs", "cause")
