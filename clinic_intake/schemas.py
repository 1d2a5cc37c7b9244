"""Request payloads accepted by the intake API."""

from __future__ import annotations

from pydantic import BaseModel, Field, StrictInt, field_validator

from clinic_intake.models import CareType, SessionType

_DATA_URI_PREFIX = "data:image/"


def _check_attachments(value: list[str] | None) -> list[str] | None:
    if value is None:
        return value
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.startswith(_DATA_URI_PREFIX):
            raise ValueError(f"attachment {index} is not an image data URI")
    return value


class PatientFields(BaseModel):
    """Treatment selections shared by create and update payloads."""

    diagnosis: str | None = None
    doctor_request: str | None = None

    has_surgery: bool | None = None
    surgery_type: str | None = None

    needs_medical_care: bool | None = None
    care_type: CareType | None = None
    session_type: SessionType | None = None
    session_count: int | None = Field(default=None, ge=0)
    session_price: int | None = Field(default=None, ge=0)

    needs_medical_aids: bool | None = None
    aid_type: str | None = None
    aid_price: int | None = Field(default=None, ge=0)

    has_diet: bool | None = None
    diet_plan: str | None = None

    has_other_services: bool | None = None
    other_service_type: str | None = None
    other_service_price: int | None = Field(default=None, ge=0)

    attachments: list[str] | None = None
    overall_assessment: str | None = None
    is_completed: bool | None = None

    @field_validator("attachments")
    @classmethod
    def attachments_are_images(cls, value: list[str] | None) -> list[str] | None:
        return _check_attachments(value)


class PatientCreate(PatientFields):
    patient_name: str = Field(min_length=1)
    age: int = Field(ge=0, le=150)
    residence: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    doctor_name: str = Field(min_length=1)
    diagnosis: str = ""
    doctor_request: str = ""


class PatientUpdate(PatientFields):
    """Partial update; only fields present in the body are applied."""

    patient_name: str | None = Field(default=None, min_length=1)
    age: int | None = Field(default=None, ge=0, le=150)
    residence: str | None = Field(default=None, min_length=1)
    phone: str | None = Field(default=None, min_length=1)
    doctor_name: str | None = Field(default=None, min_length=1)


class PaymentCreate(BaseModel):
    amount: StrictInt
    note: str = ""


class TodaySummary(BaseModel):
    count: int
    total_amount: int
