"""Repayment ledger: the append-only log behind each application's balance.

Invariants held after every successful write:

1. ``paid_amount`` equals the sum of ``repayments[].amount``
2. ``remaining_amount == max(0, total_amount - paid_amount)``
3. repayments are appended only while the application is approved
4. ``repayment_status`` is derived from (paid, total) and never set directly

``record_repayment`` validates everything before it touches the record, so a
rejected call leaves the application exactly as it was.  ``apply_repayment``
wraps it in a versioned write.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from microloan.config import settings
from microloan.models.audit import AuditLog
from microloan.models.loan import ApplicationStatus, LoanApplication, Repayment
from microloan.services.applications import balances_snapshot, flush_changes
from microloan.services.errors import InvalidAmountError, InvalidStateError
from microloan.services.reconciler import Balances, compute_balances, reconcile, to_money

logger = logging.getLogger(__name__)

MANUAL_PAYMENT_METHOD = "manual"


def find_repayment(application: LoanApplication, transaction_id: Optional[str]) -> Optional[Repayment]:
    if not transaction_id:
        return None
    for repayment in application.repayments:
        if repayment.transaction_id == transaction_id:
            return repayment
    return None


CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£"}


def format_money(amount: Decimal, currency: Optional[str] = None) -> str:
    """Render *amount* for messages, e.g. ``$1,100.00`` or ``KES 1,100.00``."""
    code = (currency or settings.currency).lower()
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{code.upper()} {amount:,.2f}"
    return f"{symbol}{amount:,.2f}"


def parse_amount(amount) -> Optional[Decimal]:
    """Coerce *amount* to a finite Decimal, or raise InvalidAmountError."""
    if amount is None:
        return None
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise InvalidAmountError("Invalid payment amount") from exc
    if not value.is_finite():
        raise InvalidAmountError("Invalid payment amount")
    return value


def check_repayment(application: LoanApplication, amount: Decimal) -> Balances:
    """Validate *amount* against *application* without modifying it.

    Checks run in order and the first failure wins: status, positive amount,
    then the amount against the canonical remaining balance.
    """
    if application.status != ApplicationStatus.APPROVED:
        raise InvalidStateError("Loan must be approved before making repayments")

    amount = parse_amount(amount)
    if amount is None or amount <= 0:
        raise InvalidAmountError("Invalid payment amount")
    if to_money(amount) != amount:
        raise InvalidAmountError("Payment amount cannot have more than two decimal places")

    balances = compute_balances(application)
    if amount > balances.remaining_amount:
        raise InvalidAmountError(
            "Payment amount exceeds remaining balance. "
            f"Maximum: {format_money(balances.remaining_amount)}"
        )
    return balances


def record_repayment(
    application: LoanApplication,
    amount: Decimal,
    transaction_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    *,
    recorded_by: Optional[int] = None,
    now: Optional[datetime] = None,
) -> LoanApplication:
    """Append a repayment and recompute the balance fields.

    Raises InvalidStateError / InvalidAmountError without side effects.
    """
    check_repayment(application, amount)
    amount = parse_amount(amount)
    if find_repayment(application, transaction_id) is not None:
        raise InvalidStateError(f"Transaction {transaction_id} has already been recorded")

    # Backfill first so legacy totals are in place before the new entry lands.
    reconcile(application)
    application.repayments.append(Repayment(
        amount=to_money(amount),
        payment_date=now or datetime.now(timezone.utc),
        transaction_id=transaction_id or None,
        payment_method=payment_method or MANUAL_PAYMENT_METHOD,
        recorded_by=recorded_by,
    ))
    reconcile(application)
    return application


async def apply_repayment(
    db: AsyncSession,
    application: LoanApplication,
    amount: Decimal,
    *,
    transaction_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> tuple[LoanApplication, bool]:
    """Record a repayment and write it as one versioned transaction.

    Returns ``(application, applied)``.  A transaction id that is already in
    the ledger is a replay: nothing is written and ``applied`` is False.
    """
    if find_repayment(application, transaction_id) is not None:
        logger.info(
            "Repayment %s already recorded for application %s, ignoring replay",
            transaction_id, application.id,
        )
        return application, False

    before = balances_snapshot(application)
    try:
        record_repayment(
            application,
            amount,
            transaction_id,
            payment_method,
            recorded_by=actor_id,
        )
    except (InvalidStateError, InvalidAmountError) as exc:
        logger.warning("Repayment rejected for application %s: %s", application.id, exc)
        raise

    db.add(AuditLog(
        entity_type="loan_application",
        entity_id=application.id,
        action="repayment_recorded",
        user_id=actor_id,
        old_values=before,
        new_values={
            **balances_snapshot(application),
            "amount": float(amount),
            "transaction_id": transaction_id,
            "payment_method": payment_method or MANUAL_PAYMENT_METHOD,
        },
    ))
    await flush_changes(db, application)
    logger.info(
        "Repayment of %s recorded for application %s (remaining %s, status %s)",
        amount, application.id, application.remaining_amount,
        application.repayment_status.value,
    )
    return application, True
