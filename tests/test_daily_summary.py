from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from clinic_intake.exceptions import IntegrationError
from clinic_intake.models import SummaryDispatch
from clinic_intake.schemas import PatientCreate
from clinic_intake.services.daily_summary import (
    already_sent,
    run_scheduled_summary,
    send_daily_summary,
)
from clinic_intake.services.patients import create_patient

BAGHDAD = ZoneInfo("Asia/Baghdad")


class RecordingChat:
    def __init__(self, response=None, error=None):
        self.messages = []
        self.response = {"ok": True} if response is None else response
        self.error = error

    def send_message(self, text):
        if self.error:
            raise self.error
        self.messages.append(text)
        return self.response or None


@pytest.fixture
def todays_patient(db, make_patient_payload):
    patient = create_patient(
        db, PatientCreate(**make_patient_payload(has_other_services=True, other_service_price=4500))
    )
    patient.created_at = datetime(2026, 3, 10, 7, 0)
    db.commit()
    return patient


def test_summary_not_sent_before_hour(db, todays_patient):
    chat = RecordingChat()

    result = run_scheduled_summary(
        db, chat, hour=23, now=datetime(2026, 3, 10, 22, 59, tzinfo=BAGHDAD), tz=BAGHDAD
    )

    assert result is None
    assert chat.messages == []


def test_summary_sent_once_per_day(db, todays_patient):
    chat = RecordingChat()
    now = datetime(2026, 3, 10, 23, 0, tzinfo=BAGHDAD)

    result = run_scheduled_summary(db, chat, hour=23, now=now, tz=BAGHDAD)
    db.commit()

    assert result.sent is True
    assert (result.count, result.total_amount) == (1, 4500)
    assert len(chat.messages) == 1
    assert "4,500" in chat.messages[0]
    assert already_sent(db, now.date())

    later = datetime(2026, 3, 10, 23, 30, tzinfo=BAGHDAD)
    assert run_scheduled_summary(db, chat, hour=23, now=later, tz=BAGHDAD) is None
    assert len(chat.messages) == 1


def test_missed_hour_is_caught_up_after_restart(db, todays_patient):
    chat = RecordingChat()

    result = run_scheduled_summary(
        db, chat, hour=20, now=datetime(2026, 3, 10, 22, 15, tzinfo=BAGHDAD), tz=BAGHDAD
    )

    assert result is not None and result.sent


def test_next_day_sends_again(db, todays_patient):
    chat = RecordingChat()
    run_scheduled_summary(db, chat, hour=23, now=datetime(2026, 3, 10, 23, 1, tzinfo=BAGHDAD), tz=BAGHDAD)
    db.commit()

    result = run_scheduled_summary(
        db, chat, hour=23, now=datetime(2026, 3, 11, 23, 1, tzinfo=BAGHDAD), tz=BAGHDAD
    )

    assert result.sent is True
    assert (result.count, result.total_amount) == (0, 0)
    assert db.query(SummaryDispatch).count() == 2


def test_unconfigured_chat_is_not_recorded(db, todays_patient):
    chat = RecordingChat(response={})
    now = datetime(2026, 3, 10, 23, 5, tzinfo=BAGHDAD)

    result = run_scheduled_summary(db, chat, hour=23, now=now, tz=BAGHDAD)

    assert result.sent is False
    assert not already_sent(db, now.date())


def test_failed_send_propagates_and_is_not_recorded(db, todays_patient):
    chat = RecordingChat(error=IntegrationError("telegram", "down"))
    now = datetime(2026, 3, 10, 23, 5, tzinfo=BAGHDAD)

    with pytest.raises(IntegrationError):
        run_scheduled_summary(db, chat, hour=23, now=now, tz=BAGHDAD)

    assert not already_sent(db, now.date())


def test_manual_send_does_not_mark_the_day(db, todays_patient):
    chat = RecordingChat()
    now = datetime(2026, 3, 10, 15, 0, tzinfo=BAGHDAD)

    result = send_daily_summary(db, chat, now=now, tz=BAGHDAD)

    assert result.sent is True
    assert result.summary_date.isoformat() == "2026-03-10"
    assert not already_sent(db, now.date())
