"""SQLAlchemy models for the microloan repayment ledger."""

from microloan.models.loan import (
    LoanApplication,
    Repayment,
    ApplicationStatus,
    RepaymentStatus,
    FeeStatus,
    RepaymentSchedule,
)
from microloan.models.audit import AuditLog
from microloan.models.error_log import ErrorLog, ErrorSeverity

__all__ = [
    "LoanApplication",
    "Repayment",
    "ApplicationStatus",
    "RepaymentStatus",
    "FeeStatus",
    "RepaymentSchedule",
    "AuditLog",
    "ErrorLog",
    "ErrorSeverity",
]
