"""Online payment endpoints (card gateway).

Intent creation hands the browser a client secret; the ledger only changes
when the browser reports the charge back through ``/confirm``.  Every
endpoint is restricted to the application's owner.
"""

import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api.responses import application_response
from microloan.auth_utils import get_current_actor
from microloan.config import settings
from microloan.database import get_db
from microloan.schemas import (
    FeeIntentRequest,
    IntentResponse,
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    RepaymentIntentRequest,
)
from microloan.services.applications import get_application
from microloan.services.authorization import Action, Actor, ensure_authorized
from microloan.services.error_logger import log_error
from microloan.services.errors import LedgerError
from microloan.services.payments import PaymentGatewayAdapter, PaymentKind

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def get_payment_adapter(request: Request) -> PaymentGatewayAdapter:
    """Adapter around the gateway resolved at startup (None when unconfigured)."""
    gateway = getattr(request.app.state, "payment_gateway", None)
    return PaymentGatewayAdapter(gateway, settings)


@router.post("/create-intent", response_model=IntentResponse)
@limiter.limit("20/minute")
async def create_fee_intent(
    request: Request,
    data: FeeIntentRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    adapter: PaymentGatewayAdapter = Depends(get_payment_adapter),
):
    """Start a card payment for the application fee."""
    try:
        application = await get_application(db, data.application_id)
        ensure_authorized(actor, application, Action.PAY_ONLINE)
        intent = await adapter.create_intent(
            application, PaymentKind.APPLICATION_FEE, actor_id=actor.user_id
        )
        return IntentResponse(client_secret=intent.client_secret)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.payments", function_name="create_fee_intent",
            user_id=actor.user_id,
        )
        raise


@router.post("/create-repayment-intent", response_model=IntentResponse)
@limiter.limit("20/minute")
async def create_repayment_intent(
    request: Request,
    data: RepaymentIntentRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    adapter: PaymentGatewayAdapter = Depends(get_payment_adapter),
):
    """Start a card payment towards the loan balance.

    The amount is in minor units and is checked against the remaining
    balance before the gateway is called.
    """
    try:
        application = await get_application(db, data.application_id)
        ensure_authorized(actor, application, Action.PAY_ONLINE)
        intent = await adapter.create_intent(
            application, PaymentKind.REPAYMENT, data.amount, actor_id=actor.user_id
        )
        return IntentResponse(client_secret=intent.client_secret)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.payments", function_name="create_repayment_intent",
            user_id=actor.user_id,
        )
        raise


@router.post("/confirm", response_model=PaymentConfirmResponse)
@limiter.limit("30/minute")
async def confirm_payment(
    request: Request,
    data: PaymentConfirmRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    adapter: PaymentGatewayAdapter = Depends(get_payment_adapter),
):
    """Apply a charge the gateway reported as successful.  Safe to replay."""
    try:
        application = await get_application(db, data.application_id)
        ensure_authorized(actor, application, Action.PAY_ONLINE)
        kind = PaymentKind(data.type)
        application, applied = await adapter.confirm(
            db,
            application,
            data.transaction_id,
            data.amount,
            kind,
            actor_id=actor.user_id,
        )
        if kind == PaymentKind.REPAYMENT:
            message = "Repayment recorded successfully" if applied else "Repayment already recorded"
        else:
            message = "Payment confirmed successfully" if applied else "Payment already confirmed"
        return PaymentConfirmResponse(
            message=message,
            applied=applied,
            application=application_response(application),
        )
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.payments", function_name="confirm_payment",
            user_id=actor.user_id,
        )
        raise
