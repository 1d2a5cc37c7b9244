import json
import logging

import pytest

from clinic_intake.logging_utils import (
    JSONLogFormatter,
    RequestContextFilter,
    _resolve_level,
    bind_log_context,
    get_request_id,
)
from clinic_intake.services.events import FanOutNotifier, PatientAction, PatientEvent


def _record(message, *args, **extra):
    record = logging.LogRecord("clinic_intake.test", logging.INFO, __file__, 1, message, args, None)
    record.__dict__.update(extra)
    return record


def test_formatter_merges_context_and_extra_fields():
    record = _record("payment recorded for %s", "Ali", amount=2500)

    with bind_log_context("req-1", "patient-1"):
        RequestContextFilter().filter(record)

    data = json.loads(JSONLogFormatter("clinic_jobs").format(record))

    assert data["message"] == "payment recorded for Ali"
    assert data["service"] == "clinic_jobs"
    assert data["request_id"] == "req-1"
    assert data["patient_id"] == "patient-1"
    assert data["amount"] == 2500
    assert "args" not in data


def test_formatter_keeps_arabic_text_readable():
    output = JSONLogFormatter().format(_record("تسجيل مريض"))

    assert "تسجيل مريض" in output


def test_bound_context_is_restored():
    with bind_log_context("outer", None):
        with bind_log_context("inner", "p-1"):
            assert get_request_id() == "inner"
        assert get_request_id() == "outer"
    assert get_request_id() == "unknown"


def test_log_level_names():
    assert _resolve_level("debug") == logging.DEBUG
    assert _resolve_level(logging.WARNING) == logging.WARNING
    with pytest.raises(ValueError):
        _resolve_level("loud")


def test_delivery_runs_under_originating_request_id():
    seen = []

    class Chat:
        def send_message(self, text):
            seen.append(get_request_id())

    class Sheets:
        method = "disabled"

        def upsert_patient(self, patient, action="update"):
            seen.append(get_request_id())

    event = PatientEvent(PatientAction.UPDATED, {"id": "p-1"}, request_id="req-42")
    FanOutNotifier(Chat(), Sheets()).deliver(event)

    assert seen == ["req-42", "req-42"]
    assert get_request_id() == "unknown"
