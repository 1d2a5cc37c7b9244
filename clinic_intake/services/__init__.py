"""Service layer utilities for the clinic intake API."""

from clinic_intake.services.billing import TreatmentSelection, calculate_total
from clinic_intake.services.ledger import (
    add_payment,
    get_payment,
    list_for_patient,
    remove_payment,
    serialize_payment,
    total_for_patient,
)
from clinic_intake.services.patients import (
    create_patient,
    delete_patient,
    get_patient,
    list_patients,
    serialize_patient,
    todays_summary,
    update_patient,
)

__all__ = [
    "TreatmentSelection",
    "add_payment",
    "calculate_total",
    "create_patient",
    "delete_patient",
    "get_patient",
    "get_payment",
    "list_for_patient",
    "list_patients",
    "remove_payment",
    "serialize_patient",
    "serialize_payment",
    "todays_summary",
    "total_for_patient",
    "update_patient",
]
