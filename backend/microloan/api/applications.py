"""Loan application endpoints: intake, listing, review and cancellation."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api.responses import application_response
from microloan.auth_utils import get_current_actor
from microloan.database import get_db
from microloan.models.loan import ApplicationStatus, RepaymentSchedule
from microloan.schemas import LoanApplicationCreate, LoanApplicationResponse, StatusUpdate
from microloan.services.applications import (
    change_status,
    create_application,
    get_application,
    list_user_applications,
)
from microloan.services.authorization import Action, Actor, ensure_authorized
from microloan.services.error_logger import log_error
from microloan.services.errors import LedgerError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=LoanApplicationResponse, status_code=201)
async def submit_application(
    data: LoanApplicationCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    try:
        ensure_authorized(actor, None, Action.CREATE)
        fields = data.model_dump()
        fields["repayment_schedule"] = RepaymentSchedule(fields["repayment_schedule"])
        application = await create_application(
            db, user_id=actor.user_id, user_email=actor.email, data=fields
        )
        return application_response(application)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.applications", function_name="submit_application",
            user_id=actor.user_id,
        )
        raise


@router.get("/my-loans", response_model=list[LoanApplicationResponse])
async def list_my_applications(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Applications owned by the caller, newest first."""
    try:
        applications = await list_user_applications(db, actor.user_id)
        return [application_response(a) for a in applications]
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.applications", function_name="list_my_applications",
            user_id=actor.user_id,
        )
        raise


@router.get("/{application_id}", response_model=LoanApplicationResponse)
async def get_application_detail(
    application_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await get_application(db, application_id)
        ensure_authorized(actor, application, Action.READ)
        return application_response(application)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.applications", function_name="get_application_detail",
            user_id=actor.user_id,
        )
        raise


@router.patch("/{application_id}/status", response_model=LoanApplicationResponse)
async def update_application_status(
    application_id: int,
    data: StatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending application (admin / manager).

    Approval fixes the total amount owed.
    """
    try:
        application = await get_application(db, application_id)
        new_status = ApplicationStatus(data.status)
        action = Action.APPROVE if new_status == ApplicationStatus.APPROVED else Action.REJECT
        ensure_authorized(actor, application, action)
        application = await change_status(db, application, new_status, actor_id=actor.user_id)
        return application_response(application)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.applications", function_name="update_application_status",
            user_id=actor.user_id,
        )
        raise


@router.delete("/{application_id}", response_model=LoanApplicationResponse)
async def cancel_application(
    application_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Owner withdraws a pending application.  The record is kept as cancelled."""
    try:
        application = await get_application(db, application_id)
        ensure_authorized(actor, application, Action.CANCEL)
        application = await change_status(
            db, application, ApplicationStatus.CANCELLED, actor_id=actor.user_id
        )
        return application_response(application)
    except LedgerError:
        raise
    except Exception as e:
        await log_error(
            e, module="api.applications", function_name="cancel_application",
            user_id=actor.user_id,
        )
        raise
