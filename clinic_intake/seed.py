from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_intake.core.config import settings
from clinic_intake.db.session import SessionLocal
from clinic_intake.logging_utils import configure_logging, set_patient_context
from clinic_intake.models import Patient
from clinic_intake.schemas import PatientCreate
from clinic_intake.services.ledger import add_payment
from clinic_intake.services.patients import create_patient

logger = logging.getLogger(__name__)

DEMO_PATIENTS: list[dict] = [
    {
        "patient_name": "علي حسين",
        "age": 42,
        "residence": "البصرة",
        "phone": "07701234567",
        "doctor_name": "د. سامر",
        "diagnosis": "آلام أسفل الظهر",
        "needs_medical_care": True,
        "care_type": "sessions",
        "session_type": "equipment",
        "session_count": 10,
        "session_price": 5000,
        "needs_medical_aids": True,
        "aid_type": "حزام ظهر",
        "aid_price": 20000,
    },
    {
        "patient_name": "زينب كاظم",
        "age": 29,
        "residence": "الزبير",
        "phone": "07807654321",
        "doctor_name": "د. مريم",
        "diagnosis": "إصابة الركبة",
        "has_surgery": True,
        "surgery_type": "منظار الركبة",
        "needs_medical_care": True,
        "care_type": "home_exercises",
        "has_other_services": True,
        "other_service_type": "تقييم رياضي",
        "other_service_price": 15000,
    },
]

# Payments applied to a demo patient only when it is first created.
DEMO_PAYMENTS: dict[str, list[tuple[int, str]]] = {
    "علي حسين": [(25000, "دفعة أولى"), (10000, "")],
}


def ensure_patients(session: Session) -> list[Patient]:
    created = 0
    patients: list[Patient] = []
    for data in DEMO_PATIENTS:
        patient = (
            session.execute(
                select(Patient).where(Patient.patient_name == data["patient_name"])
            ).scalar_one_or_none()
        )
        if not patient:
            patient = create_patient(session, PatientCreate(**data))
            set_patient_context(patient.id)
            for amount, note in DEMO_PAYMENTS.get(patient.patient_name, []):
                add_payment(session, patient.id, amount, note)
            created += 1
        patients.append(patient)

    logger.info("ensured patients", extra={"created": created, "total": len(patients)})
    return patients


def seed() -> None:
    configure_logging(settings.log_level)
    logger.info("starting seed process")

    session = SessionLocal()
    try:
        patients = ensure_patients(session)
        session.commit()
        logger.info("seed complete", extra={"patients": len(patients)})
    except Exception:
        session.rollback()
        logger.exception("seed failed")
        raise
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    seed()
