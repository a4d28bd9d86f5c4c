"""Celery task definitions for async processing."""

from celery import Celery
from celery.schedules import crontab

from microloan.config import settings

celery_app = Celery(
    "microloan",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Periodic beat schedule
celery_app.conf.beat_schedule = {
    "reconcile-legacy-applications": {
        "task": "microloan.tasks.reconciliation_tasks.reconcile_legacy_applications",
        "schedule": crontab(hour=2, minute=0),  # 2 AM daily
    },
}

# Import tasks so they get registered
from microloan.tasks.reconciliation_tasks import *  # noqa
