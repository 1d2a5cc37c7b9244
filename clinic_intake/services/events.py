"""Patient domain events and their delivery to chat and spreadsheet targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from celery import Celery
from fastapi import BackgroundTasks
from prometheus_client import Counter

from clinic_intake.core.config import EventDispatchMode, Settings
from clinic_intake.exceptions import IntegrationError
from clinic_intake.logging_utils import bind_log_context, get_request_id
from clinic_intake.services.sheets import SheetsSync
from clinic_intake.services.telegram_client import TelegramNotifier
from clinic_intake.services.telegram_templates import format_patient_message

logger = logging.getLogger(__name__)

NOTIFY_CHAT_TASK = "jobs.notify_chat"
SYNC_SHEET_TASK = "jobs.sync_sheet"

INTEGRATION_FAILURES = Counter(
    "clinic_intake_integration_failures_total",
    "Failed deliveries to external notification targets.",
    ["target", "action"],
)


class PatientAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    PAYMENT_ADDED = "payment_added"
    PAYMENT_REMOVED = "payment_removed"


@dataclass(frozen=True)
class PatientEvent:
    """A committed change to a patient, carrying a serialized snapshot."""

    action: PatientAction
    patient: dict[str, Any]
    payment: dict[str, Any] | None = None
    request_id: str = field(default_factory=get_request_id)

    @property
    def patient_id(self) -> str:
        return self.patient["id"]

    def as_payload(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "patient": self.patient,
            "payment": self.payment,
            "request_id": self.request_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PatientEvent":
        return cls(
            action=PatientAction(payload["action"]),
            patient=payload["patient"],
            payment=payload.get("payment"),
            request_id=payload.get("request_id") or "unknown",
        )


class EventDispatcher(Protocol):
    def emit(self, event: PatientEvent) -> None:
        ...


class FanOutNotifier:
    """Deliver an event to every target; failures are logged, never raised."""

    def __init__(self, chat: TelegramNotifier, sheets: SheetsSync) -> None:
        self.chat = chat
        self.sheets = sheets

    def notify_chat(self, event: PatientEvent) -> None:
        text = format_patient_message(event.patient, event.action.value, event.payment)
        self.chat.send_message(text)

    def sync_sheet(self, event: PatientEvent) -> None:
        if event.action is PatientAction.DELETED:
            self.sheets.delete_patient(event.patient_id)
        elif event.action is PatientAction.CREATED:
            self.sheets.upsert_patient(event.patient, "create")
        else:
            self.sheets.upsert_patient(event.patient, "update")

    def _attempt(self, target: str, event: PatientEvent, deliver) -> bool:
        extra = {
            "target": target,
            "action": event.action.value,
            "patient": event.patient_id,
            "origin_request_id": event.request_id,
        }
        try:
            deliver(event)
        except IntegrationError as exc:
            INTEGRATION_FAILURES.labels(target=target, action=event.action.value).inc()
            logger.warning("notification delivery failed: %s", exc.detail, extra=extra)
            return False
        except Exception:
            INTEGRATION_FAILURES.labels(target=target, action=event.action.value).inc()
            logger.exception("unexpected notification failure", extra=extra)
            return False
        return True

    def deliver(self, event: PatientEvent) -> dict[str, bool]:
        with bind_log_context(event.request_id, event.patient_id):
            return {
                "chat": self._attempt("chat", event, self.notify_chat),
                "sheets": self._attempt("sheets", event, self.sync_sheet),
            }


class BackgroundEventDispatcher:
    """Run delivery in-process after the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, notifier: FanOutNotifier) -> None:
        self.background_tasks = background_tasks
        self.notifier = notifier

    def emit(self, event: PatientEvent) -> None:
        self.background_tasks.add_task(self.notifier.deliver, event)


class CeleryEventDispatcher:
    """Enqueue one worker task per target; the worker retries with backoff."""

    def __init__(self, celery_app: Celery) -> None:
        self.celery_app = celery_app

    def emit(self, event: PatientEvent) -> None:
        payload = event.as_payload()
        for task_name in (NOTIFY_CHAT_TASK, SYNC_SHEET_TASK):
            try:
                self.celery_app.send_task(task_name, args=[payload])
            except Exception:
                INTEGRATION_FAILURES.labels(target=task_name, action=event.action.value).inc()
                logger.exception(
                    "failed to enqueue notification",
                    extra={"task": task_name, "patient": event.patient_id},
                )


def build_celery_client(settings: Settings) -> Celery:
    """Producer-side Celery app used only to enqueue tasks by name."""

    client = Celery("clinic_intake", broker=settings.redis_url)
    client.conf.broker_connection_retry_on_startup = True
    return client


@dataclass
class Integrations:
    """Outbound collaborators resolved once per process."""

    notifier: FanOutNotifier
    dispatch_mode: EventDispatchMode
    celery_app: Celery | None = None

    @classmethod
    def from_settings(cls, settings: Settings, sheets: SheetsSync) -> "Integrations":
        notifier = FanOutNotifier(TelegramNotifier.from_settings(settings), sheets)
        celery_app = None
        if settings.event_dispatch_mode is EventDispatchMode.CELERY:
            celery_app = build_celery_client(settings)
        return cls(notifier=notifier, dispatch_mode=settings.event_dispatch_mode, celery_app=celery_app)

    def dispatcher(self, background_tasks: BackgroundTasks) -> EventDispatcher:
        if self.dispatch_mode is EventDispatchMode.CELERY and self.celery_app is not None:
            return CeleryEventDispatcher(self.celery_app)
        return BackgroundEventDispatcher(background_tasks, self.notifier)
