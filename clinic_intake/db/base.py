"""Import SQLAlchemy models for Alembic's autogenerate feature."""

from clinic_intake.models.base import Base
from clinic_intake.models import (  # noqa: F401
    Patient,
    Payment,
    SummaryDispatch,
)

__all__ = [
    "Base",
    "Patient",
    "Payment",
    "SummaryDispatch",
]
