"""Repayment endpoints: balance view and manual repayment recording."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api.responses import balance_summary, repayment_details
from microloan.auth_utils import get_current_actor
from microloan.database import get_db
from microloan.schemas import (
    RepaymentCreate,
    RepaymentDetailsResponse,
    RepaymentRecordedResponse,
)
from microloan.services.applications import backfill_balances, get_application
from microloan.services.authorization import Action, Actor, ensure_authorized
from microloan.services.error_logger import log_error
from microloan.services.errors import LedgerError
from microloan.services.ledger import apply_repayment

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{application_id}", response_model=RepaymentDetailsResponse)
async def get_repayment_details(
    application_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Balances and ledger for one application.

    Legacy records are backfilled and persisted on the way through.
    """
    try:
        application = await get_application(db, application_id)
        ensure_authorized(actor, application, Action.READ)
        await backfill_balances(db, application, actor_id=actor.user_id)
        return repayment_details(application)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.repayments", function_name="get_repayment_details",
            user_id=actor.user_id,
        )
        raise


@router.post("/{application_id}", response_model=RepaymentRecordedResponse)
async def record_repayment(
    application_id: int,
    data: RepaymentCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Record a repayment made outside the card gateway (cash, transfer)."""
    try:
        application = await get_application(db, application_id)
        ensure_authorized(actor, application, Action.REPAY)
        application, applied = await apply_repayment(
            db,
            application,
            data.amount,
            transaction_id=data.transaction_id,
            payment_method=data.payment_method,
            actor_id=actor.user_id,
        )
        message = (
            "Repayment recorded successfully" if applied
            else "Repayment already recorded"
        )
        return RepaymentRecordedResponse(
            message=message,
            application=balance_summary(application),
        )
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.repayments", function_name="record_repayment",
            user_id=actor.user_id,
        )
        raise
