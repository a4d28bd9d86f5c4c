"""Celery task that backfills balances on legacy applications.

Reads already reconcile lazily; this sweep catches records nobody has opened
since the balance columns were added.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from microloan.config import settings
from microloan.database import Database
from microloan.models.loan import ApplicationStatus, LoanApplication
from microloan.services.applications import backfill_balances, get_application
from microloan.services.errors import LedgerError
from microloan.tasks import celery_app

logger = logging.getLogger(__name__)

__all__ = ["reconcile_legacy_applications", "sweep_legacy_applications"]


async def sweep_legacy_applications(database: Database) -> list[int]:
    """Reconcile every approved application with missing or malformed balances.

    Each record is written in its own session and transaction.  A record that
    fails (a concurrent write, a bad row) is logged and left for the next
    run; the others are still committed.  Returns the ids that changed.  A
    second run over the same data returns an empty list.
    """
    async with database.session() as db:
        result = await db.execute(
            select(LoanApplication.id)
            .where(
                LoanApplication.status == ApplicationStatus.APPROVED,
                or_(
                    LoanApplication.total_amount.is_(None),
                    LoanApplication.total_amount == 0,
                    LoanApplication.paid_amount.is_(None),
                    LoanApplication.remaining_amount.is_(None),
                    LoanApplication.remaining_amount < 0,
                    LoanApplication.remaining_amount > LoanApplication.total_amount,
                    LoanApplication.repayment_status.is_(None),
                ),
            )
            .order_by(LoanApplication.id)
        )
        candidate_ids = list(result.scalars().all())

    changed: list[int] = []
    failed: list[int] = []
    for application_id in candidate_ids:
        try:
            async with database.session() as db:
                application = await get_application(db, application_id)
                if await backfill_balances(db, application):
                    await db.commit()
                    changed.append(application_id)
        except (LedgerError, SQLAlchemyError) as e:
            failed.append(application_id)
            logger.warning("Could not backfill application %s: %s", application_id, e)

    if changed:
        logger.info("Backfilled balances on %d applications: %s", len(changed), changed)
    if failed:
        logger.warning("Backfill skipped %d applications, retrying next run: %s", len(failed), failed)
    return changed


@celery_app.task(name="microloan.tasks.reconciliation_tasks.reconcile_legacy_applications")
def reconcile_legacy_applications():
    """Nightly sweep over approved applications created before the ledger columns."""
    import asyncio

    async def _run():
        database = Database(settings.database_url)
        await database.connect()
        try:
            return len(await sweep_legacy_applications(database))
        finally:
            await database.dispose()

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(_run())
    finally:
        loop.close()
