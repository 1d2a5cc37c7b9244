from __future__ import annotations

from typing import Any

from celery.utils.log import get_task_logger

from clinic_intake.core.config import settings as api_settings
from clinic_intake.db.session import SessionLocal
from clinic_intake.exceptions import IntegrationError
from clinic_intake.logging_utils import bind_log_context
from clinic_intake.services.daily_summary import run_scheduled_summary
from clinic_intake.services.events import (
    NOTIFY_CHAT_TASK,
    SYNC_SHEET_TASK,
    FanOutNotifier,
    Integrations,
    PatientEvent,
)
from clinic_intake.services.patients import local_timezone
from clinic_intake.services.sheets import resolve_sheets_sync
from clinic_jobs.celery_app import celery_app
from clinic_jobs.config import settings

logger = get_task_logger(__name__)

_integrations: Integrations | None = None


def get_notifier() -> FanOutNotifier:
    """Build the worker's notifier once; credential caches live as long as the worker."""

    global _integrations
    if _integrations is None:
        _integrations = Integrations.from_settings(api_settings, resolve_sheets_sync(api_settings))
    return _integrations.notifier


def _delivery_result(event: PatientEvent, target: str) -> dict[str, Any]:
    return {
        "patient_id": event.patient_id,
        "action": event.action.value,
        "target": target,
        "origin_request_id": event.request_id,
    }


@celery_app.task(
    name=NOTIFY_CHAT_TASK,
    autoretry_for=(IntegrationError,),
    retry_backoff=True,
    retry_backoff_max=settings.notification_retry_backoff_max,
    max_retries=settings.notification_max_retries,
)
def notify_chat(payload: dict[str, Any]) -> dict[str, Any]:
    """Post a patient event to the clinic chat."""

    event = PatientEvent.from_payload(payload)
    logger.info("Sending %s notification for patient %s", event.action.value, event.patient_id)
    with bind_log_context(event.request_id, event.patient_id):
        get_notifier().notify_chat(event)
    return _delivery_result(event, "chat")


@celery_app.task(
    name=SYNC_SHEET_TASK,
    autoretry_for=(IntegrationError,),
    retry_backoff=True,
    retry_backoff_max=settings.notification_retry_backoff_max,
    max_retries=settings.notification_max_retries,
)
def sync_sheet(payload: dict[str, Any]) -> dict[str, Any]:
    """Mirror a patient event into the spreadsheet."""

    event = PatientEvent.from_payload(payload)
    logger.info("Syncing patient %s to spreadsheet (%s)", event.patient_id, event.action.value)
    with bind_log_context(event.request_id, event.patient_id):
        get_notifier().sync_sheet(event)
    return _delivery_result(event, "sheets")


@celery_app.task(name="jobs.check_daily_summary")
def check_daily_summary() -> dict[str, Any] | None:
    """Send the end-of-day summary once the configured hour has passed."""

    session = SessionLocal()
    try:
        result = run_scheduled_summary(
            session,
            get_notifier().chat,
            hour=settings.daily_summary_hour,
            tz=local_timezone(settings.timezone),
        )
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Daily summary check failed")
        raise
    finally:
        session.close()

    if result is None:
        return None
    logger.info(
        "Daily summary for %s: %s patients, total %s, sent=%s",
        result.summary_date.isoformat(),
        result.count,
        result.total_amount,
        result.sent,
    )
    return {
        "summary_date": result.summary_date.isoformat(),
        "count": result.count,
        "total_amount": result.total_amount,
        "sent": result.sent,
    }
