from __future__ import annotations

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_intake.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from clinic_intake.models.payment import Payment


class CareType(str, enum.Enum):
    """Kind of medical care prescribed at intake."""

    HOME_EXERCISES = "home_exercises"
    SESSIONS = "sessions"
    NONE = "none"


class SessionType(str, enum.Enum):
    """Treatment sessions run on equipment or as guided exercises."""

    EQUIPMENT = "equipment"
    EXERCISES = "exercises"


class Patient(Base, TimestampMixin):
    """Intake and billing record for one patient visit."""

    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    residence: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    doctor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    diagnosis: Mapped[str] = mapped_column(Text, default="", nullable=False)
    doctor_request: Mapped[str] = mapped_column(Text, default="", nullable=False)

    has_surgery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    surgery_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    needs_medical_care: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    care_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    session_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    session_count: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)
    session_price: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)

    needs_medical_aids: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    aid_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    aid_price: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)

    has_diet: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    diet_plan: Mapped[str | None] = mapped_column(Text, nullable=True)

    has_other_services: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    other_service_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    other_service_price: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)

    attachments: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), default=list, nullable=False
    )
    overall_assessment: Mapped[str] = mapped_column(Text, default="", nullable=False)

    total_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    payments: Mapped[list["Payment"]] = relationship(
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Payment.created_at.desc()",
    )

    @property
    def remaining(self) -> int:
        return (self.total_amount or 0) - (self.total_received or 0)
