"""Two-phase online payments: intent creation and confirmation.

Creating an intent only asks the gateway for a client secret; the ledger is
untouched.  Confirmation, sent once the gateway reports a successful charge,
is what writes to the ledger.  Confirmations may be delivered more than once,
so they are idempotent per transaction id.

Amounts cross this boundary in minor units (cents).  Everything past it works
in major units, and validation always happens in major units.
"""

import enum
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from microloan.config import Settings
from microloan.models.audit import AuditLog
from microloan.models.loan import FeeStatus, LoanApplication
from microloan.services.applications import flush_changes
from microloan.services.errors import (
    GatewayUnavailableError,
    InvalidAmountError,
    InvalidStateError,
)
from microloan.services.ledger import apply_repayment, check_repayment
from microloan.services.payment_gateway.adapter import PaymentGateway, PaymentIntent
from microloan.services.reconciler import CENTS

logger = logging.getLogger(__name__)

GATEWAY_PAYMENT_METHOD = "stripe"


class PaymentKind(str, enum.Enum):
    APPLICATION_FEE = "application_fee"
    REPAYMENT = "repayment"


# Largest value a Numeric(12, 2) money column holds, in cents.
MAX_MINOR_UNITS = 999_999_999_999


def minor_to_major(amount_minor: int) -> Decimal:
    if amount_minor is None or isinstance(amount_minor, bool):
        raise InvalidAmountError("Invalid payment amount")
    try:
        whole = int(amount_minor)
    except (OverflowError, ValueError) as exc:
        raise InvalidAmountError("Invalid payment amount") from exc
    if whole != amount_minor or not 0 < whole <= MAX_MINOR_UNITS:
        raise InvalidAmountError("Invalid payment amount")
    return (Decimal(whole) / 100).quantize(CENTS)


class PaymentGatewayAdapter:
    """Sits between the API and the card processor.

    *gateway* is None when online payments are not configured for this
    deployment; every operation then fails with GatewayUnavailableError.
    """

    def __init__(self, gateway: Optional[PaymentGateway], config: Settings):
        self.gateway = gateway
        self.config = config

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayUnavailableError(
                "Payment service is not configured. Please contact administrator."
            )
        return self.gateway

    async def create_intent(
        self,
        application: LoanApplication,
        kind: PaymentKind,
        amount_minor: Optional[int] = None,
        *,
        actor_id: Optional[int] = None,
    ) -> PaymentIntent:
        """Ask the gateway for an intent.  Never mutates *application*."""
        gateway = self._require_gateway()

        if kind == PaymentKind.APPLICATION_FEE:
            if application.application_fee_status == FeeStatus.PAID:
                raise InvalidStateError("Application fee has already been paid")
            amount_minor = self.config.application_fee_minor_units
        else:
            check_repayment(application, minor_to_major(amount_minor))

        metadata = {
            "application_id": str(application.id),
            "user_id": str(actor_id if actor_id is not None else application.user_id),
            "type": kind.value,
        }
        intent = await gateway.create_payment_intent(
            amount=amount_minor,
            currency=self.config.currency,
            metadata=metadata,
        )
        logger.info(
            "Created %s intent %s for application %s (%s minor units)",
            kind.value, intent.intent_id, application.id, amount_minor,
        )
        return intent

    async def confirm(
        self,
        db: AsyncSession,
        application: LoanApplication,
        transaction_id: str,
        amount_minor: int,
        kind: PaymentKind,
        *,
        actor_id: Optional[int] = None,
    ) -> tuple[LoanApplication, bool]:
        """Apply a charge the gateway reported as successful.

        Returns ``(application, applied)``; ``applied`` is False for a replay
        of a transaction id that was already applied.
        """
        if not transaction_id:
            raise InvalidAmountError("Transaction ID is required")
        amount = minor_to_major(amount_minor)

        if kind == PaymentKind.REPAYMENT:
            return await apply_repayment(
                db,
                application,
                amount,
                transaction_id=transaction_id,
                payment_method=GATEWAY_PAYMENT_METHOD,
                actor_id=actor_id,
            )

        if amount_minor != self.config.application_fee_minor_units:
            logger.warning(
                "Application fee confirmation %s for application %s has amount %s, expected %s",
                transaction_id, application.id, amount_minor, self.config.application_fee_minor_units,
            )
            raise InvalidAmountError("Payment amount does not match the application fee")

        details = application.payment_details or {}
        if application.application_fee_status == FeeStatus.PAID:
            if details.get("transaction_id") == transaction_id:
                logger.info(
                    "Application fee %s already confirmed for application %s, ignoring replay",
                    transaction_id, application.id,
                )
                return application, False
            raise InvalidStateError("Application fee has already been paid")

        application.application_fee_status = FeeStatus.PAID
        application.payment_details = {
            "transaction_id": transaction_id,
            "payment_date": datetime.now(timezone.utc).isoformat(),
            "amount": float(amount),
        }
        db.add(AuditLog(
            entity_type="loan_application",
            entity_id=application.id,
            action="application_fee_paid",
            user_id=actor_id,
            new_values=dict(application.payment_details),
        ))
        await flush_changes(db, application)
        logger.info("Application fee confirmed for application %s (%s)", application.id, transaction_id)
        return application, True
