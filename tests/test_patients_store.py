from datetime import datetime, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo

from clinic_intake.models import Patient
from clinic_intake.schemas import PatientCreate, PatientUpdate
from clinic_intake.services.patients import (
    create_patient,
    day_bounds,
    delete_patient,
    get_patient,
    list_patients,
    serialize_patient,
    todays_summary,
    update_patient,
)

BAGHDAD = ZoneInfo("Asia/Baghdad")


def _create(db, make_patient_payload, **overrides):
    patient = create_patient(db, PatientCreate(**make_patient_payload(**overrides)))
    db.commit()
    return patient


def test_create_derives_total_and_starts_unpaid(db, make_patient_payload):
    patient = _create(
        db,
        make_patient_payload,
        needs_medical_care=True,
        care_type="sessions",
        session_count=10,
        session_price=5000,
        needs_medical_aids=True,
        aid_price=20000,
    )

    assert patient.total_amount == 70000
    assert patient.total_received == 0
    assert patient.remaining == 70000
    assert patient.created_at is not None
    assert patient.attachments == []


def test_get_and_delete(db, make_patient_payload):
    patient = _create(db, make_patient_payload)

    assert get_patient(db, patient.id) is patient
    assert delete_patient(db, patient.id) is True
    db.commit()
    assert get_patient(db, patient.id) is None
    assert delete_patient(db, patient.id) is False


def test_list_is_newest_first(db, make_patient_payload):
    older = _create(db, make_patient_payload, patient_name="Older")
    newer = _create(db, make_patient_payload, patient_name="Newer")
    older.created_at = datetime(2026, 1, 1, 8, 0)
    newer.created_at = datetime(2026, 1, 2, 8, 0)
    db.commit()

    assert [p.patient_name for p in list_patients(db)] == ["Newer", "Older"]


def test_update_recomputes_total(db, make_patient_payload):
    patient = _create(db, make_patient_payload, care_type="sessions", session_count=2, session_price=1000)
    assert patient.total_amount == 2000

    updated = update_patient(db, patient.id, PatientUpdate(session_count=5))
    assert updated.total_amount == 5000

    updated = update_patient(db, patient.id, PatientUpdate(care_type="home_exercises"))
    assert updated.total_amount == 0
    assert updated.session_count == 5


def test_update_only_touches_present_fields(db, make_patient_payload):
    patient = _create(db, make_patient_payload, diagnosis="Back pain")

    update_patient(db, patient.id, PatientUpdate(phone="0780000000"))

    assert patient.phone == "0780000000"
    assert patient.diagnosis == "Back pain"
    assert patient.patient_name == "Ali Hassan"


def test_update_ignores_null_for_required_fields(db, make_patient_payload):
    patient = _create(db, make_patient_payload)

    update_patient(db, patient.id, PatientUpdate.model_validate({"patient_name": None}))

    assert patient.patient_name == "Ali Hassan"


def test_update_unknown_patient_returns_none(db):
    assert update_patient(db, uuid4(), PatientUpdate(age=3)) is None


def test_serialized_patient_includes_remaining(db, make_patient_payload):
    patient = _create(db, make_patient_payload, has_other_services=True, other_service_price=3000)
    data = serialize_patient(patient)

    assert data["id"] == str(patient.id)
    assert data["total_amount"] == 3000
    assert data["total_received"] == 0
    assert data["remaining"] == 3000


def test_day_bounds_are_local_midnights_in_utc():
    start, end = day_bounds(datetime(2026, 3, 10).date(), BAGHDAD)

    assert start == datetime(2026, 3, 9, 21, 0)
    assert end == datetime(2026, 3, 10, 21, 0)


def test_today_summary_uses_local_day_boundaries(db, make_patient_payload):
    now = datetime(2026, 3, 10, 12, 0, tzinfo=BAGHDAD)

    def at_local(patient, local):
        patient.created_at = local.astimezone(timezone.utc).replace(tzinfo=None)

    yesterday = _create(db, make_patient_payload, has_other_services=True, other_service_price=1000)
    just_after_midnight = _create(
        db, make_patient_payload, has_other_services=True, other_service_price=2000
    )
    later_today = _create(db, make_patient_payload, has_other_services=True, other_service_price=4000)
    tomorrow = _create(db, make_patient_payload, has_other_services=True, other_service_price=8000)

    at_local(yesterday, datetime(2026, 3, 9, 23, 59, 59, tzinfo=BAGHDAD))
    at_local(just_after_midnight, datetime(2026, 3, 10, 0, 0, 1, tzinfo=BAGHDAD))
    at_local(later_today, datetime(2026, 3, 10, 18, 30, tzinfo=BAGHDAD))
    at_local(tomorrow, datetime(2026, 3, 11, 0, 0, 0, tzinfo=BAGHDAD))
    db.commit()

    summary = todays_summary(db, now=now, tz=BAGHDAD)

    assert summary.count == 2
    assert summary.total_amount == 6000


def test_today_summary_empty_day(db):
    summary = todays_summary(db, now=datetime(2026, 3, 10, 12, 0, tzinfo=BAGHDAD), tz=BAGHDAD)

    assert summary.count == 0
    assert summary.total_amount == 0


def test_today_summary_counts_patients_created_now(db, make_patient_payload):
    _create(db, make_patient_payload, has_other_services=True, other_service_price=2500)

    summary = todays_summary(db, now=datetime.now(BAGHDAD), tz=BAGHDAD)

    assert summary.count == 1
    assert summary.total_amount == 2500


def test_list_patients_empty(db):
    assert list_patients(db) == []
    assert db.query(Patient).count() == 0
