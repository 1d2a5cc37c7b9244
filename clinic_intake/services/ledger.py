"""Payment ledger operations keeping ``Patient.total_received`` in sync."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_intake.exceptions import InvalidAmountError, PatientNotFoundError, PersistenceError
from clinic_intake.logging_utils import set_patient_context
from clinic_intake.models import Patient, Payment

logger = logging.getLogger(__name__)

MIN_PAYMENT_AMOUNT = 1


def _lock_patient(db: Session, patient_id: UUID) -> Patient | None:
    stmt = select(Patient).where(Patient.id == patient_id).with_for_update()
    return db.execute(stmt).scalars().first()


def total_for_patient(db: Session, patient_id: UUID) -> int:
    """Sum the ledger for a patient; an empty ledger sums to zero."""

    stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
        Payment.patient_id == patient_id
    )
    return int(db.execute(stmt).scalar_one())


def _refresh_total_received(db: Session, patient: Patient) -> int:
    total = total_for_patient(db, patient.id)
    patient.total_received = total
    db.flush()
    return total


def add_payment(db: Session, patient_id: UUID, amount: int, note: str | None = "") -> Payment:
    """Record a payment and rewrite the patient's received total.

    The ledger insert and the total update share the session transaction. If
    either write fails the session is rolled back and ``PersistenceError`` is
    raised, leaving neither change behind.
    """

    patient = _lock_patient(db, patient_id)
    if not patient:
        raise PatientNotFoundError()
    set_patient_context(patient.id)

    if isinstance(amount, bool) or not isinstance(amount, int) or amount < MIN_PAYMENT_AMOUNT:
        raise InvalidAmountError(f"Payment amount must be an integer >= {MIN_PAYMENT_AMOUNT}")

    try:
        payment = Payment(patient=patient, amount=amount, note=note or "")
        db.add(payment)
        db.flush()
        total = _refresh_total_received(db, patient)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("failed to record payment", extra={"amount": amount})
        raise PersistenceError("Failed to record payment") from exc

    logger.info(
        "payment recorded",
        extra={"payment": str(payment.id), "amount": amount, "total_received": total},
    )
    return payment


def get_payment(db: Session, payment_id: UUID) -> Payment | None:
    return db.get(Payment, payment_id)


def remove_payment(db: Session, payment_id: UUID) -> bool:
    """Delete a payment and rewrite its owner's received total."""

    payment = db.get(Payment, payment_id)
    if not payment:
        return False

    patient_id = payment.patient_id
    set_patient_context(patient_id)
    try:
        patient = _lock_patient(db, patient_id)
        db.delete(payment)
        db.flush()
        total = 0
        if patient:
            db.expire(patient, ["payments"])
            total = _refresh_total_received(db, patient)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("failed to remove payment", extra={"payment": str(payment_id)})
        raise PersistenceError("Failed to remove payment") from exc

    logger.info(
        "payment removed",
        extra={"payment": str(payment_id), "total_received": total},
    )
    return True


def list_for_patient(db: Session, patient_id: UUID) -> list[Payment]:
    """Return a patient's payments, newest first."""

    stmt = (
        select(Payment)
        .where(Payment.patient_id == patient_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def serialize_payment(payment: Payment) -> dict[str, Any]:
    return {
        "id": str(payment.id),
        "patient_id": str(payment.patient_id),
        "amount": payment.amount,
        "note": payment.note or "",
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
    }
