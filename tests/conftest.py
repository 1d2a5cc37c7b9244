"""
Shared fixtures: an in-memory SQLite database and an API client whose
patient events are recorded instead of delivered.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SHEETS_SYNC_METHOD", "disabled")
os.environ.setdefault("EVENT_DISPATCH_MODE", "background")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_CHAT_ID", "")
os.environ.setdefault("TIMEZONE", "Asia/Baghdad")

import pytest
from fastapi.testclient import TestClient

from clinic_intake.db.session import SessionLocal, engine, get_db
from clinic_intake.main import app, get_event_dispatcher
from clinic_intake.models.base import Base


class RecordingDispatcher:
    """Collects emitted patient events for assertions."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    @property
    def actions(self):
        return [event.action.value for event in self.events]


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture(scope="function")
def client(db, dispatcher):
    """
    Test client sharing the test session and recording dispatched events.
    """

    def override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_dispatcher] = lambda: dispatcher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides = {}


def patient_payload(**overrides):
    payload = {
        "patient_name": "Ali Hassan",
        "age": 40,
        "residence": "Basra",
        "phone": "07701234567",
        "doctor_name": "Dr. Samer",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_patient_payload():
    return patient_payload
