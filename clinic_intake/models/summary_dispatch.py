from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clinic_intake.models.base import Base, TimestampMixin


class SummaryDispatch(Base, TimestampMixin):
    """Marks the local calendar day whose daily summary was delivered."""

    __tablename__ = "summary_dispatches"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    summary_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    patient_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
