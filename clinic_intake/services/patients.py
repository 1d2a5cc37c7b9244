"""Patient record persistence and the daily aggregate query."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_intake.core.config import settings
from clinic_intake.models import Patient
from clinic_intake.schemas import PatientCreate, PatientUpdate, TodaySummary
from clinic_intake.services.billing import TreatmentSelection, calculate_total

logger = logging.getLogger(__name__)

# Columns that reject NULL; an explicit null in an update leaves them untouched.
_NON_NULLABLE_FIELDS = frozenset(
    {
        "patient_name",
        "age",
        "residence",
        "phone",
        "doctor_name",
        "diagnosis",
        "doctor_request",
        "has_surgery",
        "needs_medical_care",
        "needs_medical_aids",
        "has_diet",
        "has_other_services",
        "attachments",
        "overall_assessment",
        "is_completed",
    }
)


def local_timezone(tz_name: str | None = None) -> ZoneInfo:
    """Return the configured clinic timezone, falling back to UTC."""

    try:
        return ZoneInfo(tz_name or settings.timezone)
    except ZoneInfoNotFoundError:
        return ZoneInfo("UTC")


def day_bounds(target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of a local day as naive UTC datetimes."""

    start = datetime.combine(target_date, time.min, tzinfo=tz)
    end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def _apply_total(patient: Patient) -> None:
    patient.total_amount = calculate_total(TreatmentSelection.from_source(patient))


def create_patient(db: Session, payload: PatientCreate) -> Patient:
    """Persist a new patient with its derived total."""

    data = payload.model_dump(mode="json", exclude_none=True)
    patient = Patient(**data)
    patient.total_received = 0
    _apply_total(patient)
    db.add(patient)
    db.flush()
    logger.info(
        "patient created",
        extra={"patient": str(patient.id), "total_amount": patient.total_amount},
    )
    return patient


def get_patient(db: Session, patient_id: UUID) -> Patient | None:
    return db.get(Patient, patient_id)


def list_patients(db: Session) -> list[Patient]:
    """Return every patient, newest first."""

    stmt = select(Patient).order_by(Patient.created_at.desc(), Patient.id.desc())
    return list(db.execute(stmt).scalars().all())


def update_patient(db: Session, patient_id: UUID, payload: PatientUpdate) -> Patient | None:
    """Apply the fields present in ``payload`` and re-derive the total."""

    patient = db.get(Patient, patient_id)
    if not patient:
        return None

    changes = payload.model_dump(mode="json", exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in _NON_NULLABLE_FIELDS:
            continue
        setattr(patient, field, value)

    _apply_total(patient)
    db.flush()
    logger.info(
        "patient updated",
        extra={"patient": str(patient.id), "fields": sorted(changes)},
    )
    return patient


def delete_patient(db: Session, patient_id: UUID) -> bool:
    """Delete a patient together with its payment ledger."""

    patient = db.get(Patient, patient_id)
    if not patient:
        return False
    db.delete(patient)
    db.flush()
    logger.info("patient deleted", extra={"patient": str(patient_id)})
    return True


def todays_summary(
    db: Session, *, now: datetime | None = None, tz: ZoneInfo | None = None
) -> TodaySummary:
    """Count and sum the totals of patients created during the current local day."""

    tz = tz or local_timezone()
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    start, end = day_bounds(now.astimezone(tz).date(), tz)

    stmt = select(
        func.count(Patient.id),
        func.coalesce(func.sum(func.coalesce(Patient.total_amount, 0)), 0),
    ).where(Patient.created_at >= start, Patient.created_at < end)
    count, total_amount = db.execute(stmt).one()
    return TodaySummary(count=int(count or 0), total_amount=int(total_amount or 0))


def serialize_patient(patient: Patient) -> dict[str, Any]:
    """Convert a patient into JSON-friendly values, adding the derived balance."""

    return {
        "id": str(patient.id),
        "patient_name": patient.patient_name,
        "age": patient.age,
        "residence": patient.residence,
        "phone": patient.phone,
        "doctor_name": patient.doctor_name,
        "diagnosis": patient.diagnosis or "",
        "doctor_request": patient.doctor_request or "",
        "has_surgery": bool(patient.has_surgery),
        "surgery_type": patient.surgery_type,
        "needs_medical_care": bool(patient.needs_medical_care),
        "care_type": patient.care_type,
        "session_type": patient.session_type,
        "session_count": patient.session_count or 0,
        "session_price": patient.session_price or 0,
        "needs_medical_aids": bool(patient.needs_medical_aids),
        "aid_type": patient.aid_type,
        "aid_price": patient.aid_price or 0,
        "has_diet": bool(patient.has_diet),
        "diet_plan": patient.diet_plan,
        "has_other_services": bool(patient.has_other_services),
        "other_service_type": patient.other_service_type,
        "other_service_price": patient.other_service_price or 0,
        "attachments": list(patient.attachments or []),
        "overall_assessment": patient.overall_assessment or "",
        "total_amount": patient.total_amount or 0,
        "total_received": patient.total_received or 0,
        "remaining": patient.remaining,
        "is_completed": bool(patient.is_completed),
        "created_at": patient.created_at.isoformat() if patient.created_at else None,
    }
