"""SQLAlchemy models for the clinic intake API."""

from clinic_intake.models.patient import CareType, Patient, SessionType
from clinic_intake.models.payment import Payment
from clinic_intake.models.summary_dispatch import SummaryDispatch

__all__ = [
    "CareType",
    "Patient",
    "Payment",
    "SessionType",
    "SummaryDispatch",
]
