"""Error taxonomy shared by the ledger, reconciler, guard and payment gateway.

Every error carries the HTTP status the API layer renders it with.  Errors
raised before a mutation leave the application record untouched.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for repayment-ledger errors."""

    status_code = 400

    def __init__(self, message: str, *, cause: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class NotFoundError(LedgerError):
    """Application (or user) does not exist."""

    status_code = 404


class UnauthorizedError(LedgerError):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", *, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ForbiddenError(LedgerError):
    """Authenticated, but the actor lacks the capability."""

    status_code = 403


class InvalidStateError(LedgerError):
    """Action is not valid for the application's current status."""


class InvalidAmountError(LedgerError):
    """Amount is non-positive or exceeds the remaining balance."""


class ConcurrentUpdateError(LedgerError):
    """The record changed between read and write."""

    status_code = 409


class GatewayUnavailableError(LedgerError):
    """Payment gateway is not configured in this deployment."""

    status_code = 503


class GatewayError(LedgerError):
    """The payment processor rejected the request or did not answer in time."""

    status_code = 502


class PersistenceUnavailableError(LedgerError):
    """Storage is unreachable."""

    status_code = 503

