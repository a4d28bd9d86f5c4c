"""Amount reconciliation: canonical balances for a loan application.

Applications approved before the derived money columns existed carry NULL or
zero ``total_amount`` / ``remaining_amount``.  Instead of a bulk migration the
reconciler backfills them lazily whenever a record is read or written.

``compute_balances`` is pure and is what display paths use; ``reconcile``
writes the canonical values onto an approved record and reports whether
anything changed.  Persisting is the caller's decision.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from microloan.models.loan import ApplicationStatus, LoanApplication, RepaymentStatus
from microloan.services.errors import InvalidAmountError

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce a numeric value (or None) to a two-place Decimal.

    Values that are not numbers, or have too many digits for the decimal
    context, raise InvalidAmountError.
    """
    if value is None:
        return ZERO
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise InvalidAmountError("Invalid payment amount") from exc


@dataclass(frozen=True)
class Balances:
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    repayment_status: RepaymentStatus
    authoritative: bool


def compute_total_amount(loan_amount, interest_rate) -> Decimal:
    """Principal plus simple interest; a missing rate counts as zero."""
    principal = to_money(loan_amount)
    rate = Decimal(str(interest_rate)) if interest_rate is not None else Decimal(0)
    return to_money(principal + principal * rate / Decimal(100))


def derive_repayment_status(paid_amount: Decimal, total_amount: Decimal) -> RepaymentStatus:
    remaining = max(ZERO, total_amount - paid_amount)
    if total_amount > 0 and remaining == 0:
        return RepaymentStatus.COMPLETE
    if 0 < paid_amount < total_amount:
        return RepaymentStatus.IN_PROGRESS
    return RepaymentStatus.PENDING


def ledger_total(application: LoanApplication) -> Decimal:
    return to_money(sum((to_money(r.amount) for r in application.repayments), ZERO))


def compute_balances(application: LoanApplication) -> Balances:
    """Canonical balances for *application* without touching it.

    The ledger is the source of truth for the paid amount, and the remaining
    amount is always re-derived from it.  For applications that are not
    approved and were never given a total, the remaining amount falls back to
    the principal.  That figure is for display only and is flagged
    ``authoritative=False``.
    """
    paid = ledger_total(application)
    total = to_money(application.total_amount)

    if application.status != ApplicationStatus.APPROVED and total == 0:
        return Balances(
            total_amount=ZERO,
            paid_amount=paid,
            remaining_amount=to_money(application.loan_amount),
            repayment_status=RepaymentStatus.PENDING,
            authoritative=False,
        )

    if total == 0:
        total = compute_total_amount(application.loan_amount, application.interest_rate)

    return Balances(
        total_amount=total,
        paid_amount=paid,
        remaining_amount=max(ZERO, total - paid),
        repayment_status=derive_repayment_status(paid, total),
        authoritative=True,
    )


def reconcile(application: LoanApplication) -> bool:
    """Write canonical balances onto an approved application.

    Returns True if any field changed.  A record that is already canonical is
    left alone, so calling this twice is the same as calling it once.
    Non-approved records are never modified.
    """
    if application.status != ApplicationStatus.APPROVED:
        return False

    balances = compute_balances(application)
    changed = False
    for field in ("total_amount", "paid_amount", "remaining_amount", "repayment_status"):
        new_value = getattr(balances, field)
        old_value = getattr(application, field)
        if isinstance(new_value, Decimal):
            differs = old_value is None or to_money(old_value) != new_value
        else:
            differs = old_value != new_value
        if differs:
            setattr(application, field, new_value)
            changed = True
    return changed
