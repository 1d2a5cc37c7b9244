from datetime import date

import pytest

from clinic_intake.exceptions import IntegrationError
from clinic_intake.services.daily_summary import DailySummaryResult
from clinic_intake.services.events import (
    NOTIFY_CHAT_TASK,
    SYNC_SHEET_TASK,
    FanOutNotifier,
    PatientAction,
    PatientEvent,
)
from clinic_jobs import tasks
from clinic_jobs.celery_app import celery_app

PATIENT = {"id": "p-1", "patient_name": "Ali", "age": 40, "total_amount": 100, "total_received": 0}


class Chat:
    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def send_message(self, text):
        if self.error:
            raise self.error
        self.messages.append(text)
        return {"ok": True}


class Sheets:
    method = "webhook"

    def __init__(self):
        self.calls = []

    def upsert_patient(self, patient, action="update"):
        self.calls.append((patient["id"], action))

    def delete_patient(self, patient_id):
        self.calls.append((patient_id, "delete"))

    def sync_all(self, patients):
        return len(patients)


@pytest.fixture
def notifier(monkeypatch):
    fan_out = FanOutNotifier(Chat(), Sheets())
    monkeypatch.setattr(tasks, "get_notifier", lambda: fan_out)
    return fan_out


def test_tasks_are_registered_under_dispatch_names():
    assert tasks.notify_chat.name == NOTIFY_CHAT_TASK
    assert tasks.sync_sheet.name == SYNC_SHEET_TASK
    assert NOTIFY_CHAT_TASK in celery_app.tasks
    assert SYNC_SHEET_TASK in celery_app.tasks
    schedule = celery_app.conf.beat_schedule["check-daily-summary"]
    assert schedule["task"] == "jobs.check_daily_summary"


def test_integration_errors_are_retried():
    assert IntegrationError in tasks.notify_chat.autoretry_for
    assert IntegrationError in tasks.sync_sheet.autoretry_for


def test_notify_chat_task(notifier):
    payload = PatientEvent(PatientAction.CREATED, PATIENT, request_id="r-1").as_payload()

    result = tasks.notify_chat(payload)

    assert len(notifier.chat.messages) == 1
    assert result == {
        "patient_id": "p-1",
        "action": "created",
        "target": "chat",
        "origin_request_id": "r-1",
    }


def test_sync_sheet_task(notifier):
    payload = PatientEvent(PatientAction.DELETED, PATIENT).as_payload()

    tasks.sync_sheet(payload)

    assert notifier.sheets.calls == [("p-1", "delete")]


def test_notify_chat_task_raises_for_retry(monkeypatch):
    fan_out = FanOutNotifier(Chat(error=IntegrationError("telegram", "down")), Sheets())
    monkeypatch.setattr(tasks, "get_notifier", lambda: fan_out)
    payload = PatientEvent(PatientAction.UPDATED, PATIENT).as_payload()

    with pytest.raises(IntegrationError):
        tasks.notify_chat.run(payload)


def test_check_daily_summary_reports_result(db, notifier, monkeypatch):
    captured = {}

    def fake_run(session, chat, *, hour, tz):
        captured["hour"] = hour
        captured["chat"] = chat
        return DailySummaryResult(date(2026, 3, 10), 2, 9000, True)

    monkeypatch.setattr(tasks, "run_scheduled_summary", fake_run)

    result = tasks.check_daily_summary()

    assert captured["chat"] is notifier.chat
    assert captured["hour"] == tasks.settings.daily_summary_hour
    assert result == {"summary_date": "2026-03-10", "count": 2, "total_amount": 9000, "sent": True}


def test_check_daily_summary_not_due(db, notifier, monkeypatch):
    monkeypatch.setattr(tasks, "run_scheduled_summary", lambda session, chat, *, hour, tz: None)

    assert tasks.check_daily_summary() is None
