"""Application lifecycle: intake, status transitions and balance backfill.

Status machine::

    pending ──approve──▶ approved
       │ ╲
       │  ╲─reject──▶ rejected
       ╰──cancel──▶ cancelled

Nothing leaves approved, rejected or cancelled.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from microloan.models.audit import AuditLog
from microloan.models.loan import (
    ApplicationStatus,
    LoanApplication,
    RepaymentStatus,
)
from microloan.services.errors import (
    ConcurrentUpdateError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from microloan.services.reconciler import ZERO, compute_balances, compute_total_amount, reconcile

logger = logging.getLogger(__name__)

# Only these transitions exist; everything else is InvalidStateError.
_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.CANCELLED,
    },
    ApplicationStatus.APPROVED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.CANCELLED: set(),
}


def balances_snapshot(application: LoanApplication) -> dict[str, Any]:
    """JSON-friendly view of the money fields, for audit rows."""
    return {
        "total_amount": float(application.total_amount or 0),
        "paid_amount": float(application.paid_amount or 0),
        "remaining_amount": float(application.remaining_amount or 0),
        "repayment_status": (
            application.repayment_status.value if application.repayment_status else None
        ),
    }


async def flush_changes(db: AsyncSession, application: LoanApplication | None = None) -> None:
    """Flush pending writes; a stale version becomes ConcurrentUpdateError.

    The UPDATE on ``loan_applications`` is conditional on the version that was
    read, so a concurrent writer makes it match zero rows.  When *application*
    is given it is refreshed so server-generated columns are loaded.
    """
    try:
        await db.flush()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("Concurrent update rejected: %s", exc)
        raise ConcurrentUpdateError(
            "Application was modified by another request. Please retry."
        ) from exc
    if application is not None:
        await db.refresh(application)


async def get_application(db: AsyncSession, application_id: int) -> LoanApplication:
    result = await db.execute(
        select(LoanApplication).where(LoanApplication.id == application_id)
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError("Application not found")
    return application


async def list_user_applications(db: AsyncSession, user_id: int) -> list[LoanApplication]:
    result = await db.execute(
        select(LoanApplication)
        .where(LoanApplication.user_id == user_id)
        .order_by(LoanApplication.created_at.desc(), LoanApplication.id.desc())
    )
    return list(result.scalars().all())


async def create_application(
    db: AsyncSession,
    *,
    user_id: int,
    user_email: str | None,
    data: dict[str, Any],
) -> LoanApplication:
    """Record a new application.  Money fields start at zero."""
    loan_amount = Decimal(str(data["loan_amount"]))
    if loan_amount <= 0:
        raise InvalidAmountError("Loan amount must be greater than zero")
    interest_rate = data.get("interest_rate")
    if interest_rate is not None and Decimal(str(interest_rate)) < 0:
        raise InvalidAmountError("Interest rate cannot be negative")

    application = LoanApplication(
        **data,
        user_id=user_id,
        user_email=user_email,
        status=ApplicationStatus.PENDING,
        total_amount=ZERO,
        paid_amount=ZERO,
        remaining_amount=ZERO,
        repayment_status=RepaymentStatus.PENDING,
        repayments=[],
    )
    db.add(application)
    await db.flush()
    db.add(AuditLog(
        entity_type="loan_application",
        entity_id=application.id,
        action="application_submitted",
        user_id=user_id,
        new_values={"loan_amount": float(loan_amount), "loan_id": application.loan_id},
    ))
    await db.flush()
    await db.refresh(application)
    logger.info("Application %s submitted by user %s", application.id, user_id)
    return application


def transition(application: LoanApplication, new_status: ApplicationStatus) -> None:
    """Move *application* to *new_status*, computing the total on approval.

    The total is fixed here, once; the reconciler never overwrites a non-zero
    total afterwards.
    """
    if new_status not in _TRANSITIONS[application.status]:
        raise InvalidStateError(
            f"Cannot change status from {application.status.value} to {new_status.value}"
        )
    application.status = new_status
    if new_status == ApplicationStatus.APPROVED:
        application.approved_at = datetime.now(timezone.utc)
        if not application.total_amount:
            application.total_amount = compute_total_amount(
                application.loan_amount, application.interest_rate
            )
        reconcile(application)


async def change_status(
    db: AsyncSession,
    application: LoanApplication,
    new_status: ApplicationStatus,
    *,
    actor_id: int,
) -> LoanApplication:
    old_status = application.status
    transition(application, new_status)
    db.add(AuditLog(
        entity_type="loan_application",
        entity_id=application.id,
        action=f"status_{new_status.value}",
        user_id=actor_id,
        old_values={"status": old_status.value},
        new_values={"status": new_status.value, **balances_snapshot(application)},
    ))
    await flush_changes(db, application)
    logger.info(
        "Application %s moved %s -> %s by user %s",
        application.id, old_status.value, new_status.value, actor_id,
    )
    return application


async def backfill_balances(
    db: AsyncSession, application: LoanApplication, *, actor_id: int | None = None
) -> bool:
    """Reconcile *application* and persist the result if anything changed."""
    before = balances_snapshot(application)
    if not reconcile(application):
        return False
    db.add(AuditLog(
        entity_type="loan_application",
        entity_id=application.id,
        action="balances_backfilled",
        user_id=actor_id,
        old_values=before,
        new_values=balances_snapshot(application),
    ))
    await flush_changes(db, application)
    logger.info("Backfilled balances for application %s", application.id)
    return True


def display_balances(application: LoanApplication) -> dict[str, Any]:
    balances = compute_balances(application)
    return {
        "total_amount": balances.total_amount,
        "paid_amount": balances.paid_amount,
        "remaining_amount": balances.remaining_amount,
        "repayment_status": balances.repayment_status,
    }
