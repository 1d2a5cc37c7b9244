import json
from datetime import date

import httpx
import pytest

from clinic_intake.exceptions import IntegrationError
from clinic_intake.services.events import (
    CeleryEventDispatcher,
    FanOutNotifier,
    NOTIFY_CHAT_TASK,
    PatientAction,
    PatientEvent,
    SYNC_SHEET_TASK,
)
from clinic_intake.services.telegram_client import TelegramNotifier
from clinic_intake.services.telegram_templates import format_daily_summary, format_patient_message

PATIENT = {
    "id": "11111111-1111-1111-1111-111111111111",
    "patient_name": "علي",
    "age": 40,
    "phone": "0770",
    "care_type": "sessions",
    "session_count": 10,
    "session_price": 5000,
    "total_amount": 50000,
    "total_received": 20000,
}


class RecordingChat:
    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def send_message(self, text):
        if self.error:
            raise self.error
        self.messages.append(text)
        return {"ok": True}


class RecordingSheets:
    method = "webhook"

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def upsert_patient(self, patient, action="update"):
        if self.error:
            raise self.error
        self.calls.append(("upsert", patient["id"], action))

    def delete_patient(self, patient_id):
        if self.error:
            raise self.error
        self.calls.append(("delete", patient_id))

    def sync_all(self, patients):
        return len(patients)


def test_fan_out_reaches_both_targets():
    chat, sheets = RecordingChat(), RecordingSheets()
    result = FanOutNotifier(chat, sheets).deliver(PatientEvent(PatientAction.CREATED, PATIENT))

    assert result == {"chat": True, "sheets": True}
    assert len(chat.messages) == 1
    assert sheets.calls == [("upsert", PATIENT["id"], "create")]


def test_deleted_event_removes_sheet_row():
    sheets = RecordingSheets()
    FanOutNotifier(RecordingChat(), sheets).deliver(PatientEvent(PatientAction.DELETED, PATIENT))

    assert sheets.calls == [("delete", PATIENT["id"])]


def test_payment_event_updates_sheet_row():
    sheets = RecordingSheets()
    event = PatientEvent(PatientAction.PAYMENT_ADDED, PATIENT, payment={"amount": 2500, "note": ""})
    FanOutNotifier(RecordingChat(), sheets).deliver(event)

    assert sheets.calls == [("upsert", PATIENT["id"], "update")]


def test_failing_target_does_not_block_the_other():
    chat = RecordingChat()
    sheets = RecordingSheets(error=IntegrationError("google_sheets", "boom"))

    result = FanOutNotifier(chat, sheets).deliver(PatientEvent(PatientAction.UPDATED, PATIENT))

    assert result == {"chat": True, "sheets": False}
    assert len(chat.messages) == 1


def test_unexpected_errors_are_swallowed():
    result = FanOutNotifier(
        RecordingChat(error=RuntimeError("down")), RecordingSheets(error=KeyError("id"))
    ).deliver(PatientEvent(PatientAction.UPDATED, PATIENT))

    assert result == {"chat": False, "sheets": False}


def test_event_payload_round_trip_keeps_request_id():
    event = PatientEvent(PatientAction.PAYMENT_REMOVED, PATIENT, payment={"amount": 1}, request_id="r-1")

    restored = PatientEvent.from_payload(json.loads(json.dumps(event.as_payload())))

    assert restored == event


def test_celery_dispatcher_enqueues_one_task_per_target():
    class FakeCelery:
        def __init__(self):
            self.sent = []

        def send_task(self, name, args):
            self.sent.append((name, args))

    celery_app = FakeCelery()
    CeleryEventDispatcher(celery_app).emit(PatientEvent(PatientAction.CREATED, PATIENT, request_id="r-2"))

    assert [name for name, _ in celery_app.sent] == [NOTIFY_CHAT_TASK, SYNC_SHEET_TASK]
    assert celery_app.sent[0][1][0]["patient"]["id"] == PATIENT["id"]
    assert celery_app.sent[0][1][0]["request_id"] == "r-2"


def test_celery_dispatcher_survives_broker_failure():
    class BrokenCelery:
        def send_task(self, name, args):
            raise ConnectionError("broker unavailable")

    CeleryEventDispatcher(BrokenCelery()).emit(PatientEvent(PatientAction.CREATED, PATIENT))


def test_patient_message_contains_balance():
    text = format_patient_message(PATIENT, "payment_added", {"amount": 2500, "note": "نقدا"})

    assert "تسجيل دفعة جديدة" in text
    assert "علي" in text
    assert "30,000" in text
    assert "2,500" in text


def test_daily_summary_message():
    text = format_daily_summary(date(2026, 3, 10), 3, 45000)

    assert "الثلاثاء 10 آذار 2026" in text
    assert "45,000" in text


def test_telegram_posts_markdown_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

    notifier = TelegramNotifier("token", "chat", transport=httpx.MockTransport(handler))
    result = notifier.send_message("hello")

    assert result["result"]["message_id"] == 7
    assert requests[0].url.path == "/bottoken/sendMessage"
    body = json.loads(requests[0].content)
    assert body == {"chat_id": "chat", "text": "hello", "parse_mode": "Markdown"}


def test_telegram_unconfigured_skips():
    assert TelegramNotifier("", "").send_message("hello") is None


def test_telegram_mock_mode_does_not_call_out():
    def handler(request):
        raise AssertionError("network used in mock mode")

    notifier = TelegramNotifier("", "", mock_mode=True, transport=httpx.MockTransport(handler))

    assert notifier.send_message("hello")["mocked"] is True


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"ok": False}),
        httpx.Response(200, json={"ok": False, "description": "chat not found"}),
    ],
)
def test_telegram_failures_raise_integration_error(response):
    notifier = TelegramNotifier("token", "chat", transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(IntegrationError):
        notifier.send_message("hello")


def test_telegram_network_error_raises_integration_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    notifier = TelegramNotifier("token", "chat", transport=httpx.MockTransport(handler))

    with pytest.raises(IntegrationError):
        notifier.send_message("hello")
