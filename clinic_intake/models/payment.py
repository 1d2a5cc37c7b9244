from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_intake.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from clinic_intake.models.patient import Patient


class Payment(Base, TimestampMixin):
    """Ledger entry recording a partial payment from a patient."""

    __tablename__ = "payments"
    __table_args__ = (CheckConstraint("amount >= 1", name="amount_positive"),)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)

    patient: Mapped["Patient"] = relationship(back_populates="payments")
