from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from clinic_jobs.config import settings

celery_app = Celery(
    "clinic_jobs",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["clinic_jobs.tasks"],
)

celery_app.conf.timezone = settings.timezone
celery_app.conf.broker_connection_retry_on_startup = True
celery_app.conf.beat_schedule = {
    "check-daily-summary": {
        "task": "jobs.check_daily_summary",
        "schedule": crontab(minute="*"),
    },
}
