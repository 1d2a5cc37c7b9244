"""Charge derivation from treatment selections."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

SESSIONS_CARE_TYPE = "sessions"


@dataclass(frozen=True)
class TreatmentSelection:
    """The billable subset of a patient's treatment choices."""

    care_type: str | None = None
    session_count: int = 0
    session_price: int = 0
    needs_medical_aids: bool = False
    aid_price: int = 0
    has_other_services: bool = False
    other_service_price: int = 0

    @classmethod
    def from_source(cls, source: Mapping[str, Any] | Any) -> "TreatmentSelection":
        """Build a selection from a mapping or an object such as a ``Patient``."""

        if isinstance(source, Mapping):
            lookup = source.get
        else:
            def lookup(name: str, default: Any = None) -> Any:
                return getattr(source, name, default)

        care_type = lookup("care_type")
        if care_type is not None and hasattr(care_type, "value"):
            care_type = care_type.value
        return cls(
            care_type=care_type,
            session_count=int(lookup("session_count") or 0),
            session_price=int(lookup("session_price") or 0),
            needs_medical_aids=bool(lookup("needs_medical_aids") or False),
            aid_price=int(lookup("aid_price") or 0),
            has_other_services=bool(lookup("has_other_services") or False),
            other_service_price=int(lookup("other_service_price") or 0),
        )


def calculate_total(selection: TreatmentSelection) -> int:
    """Return the total charge for a selection.

    Sessions are billed per session; medical aids and other services are billed
    at their flat price when selected. Surgery, diet and home exercises are not
    billed.
    """

    total = 0
    if selection.care_type == SESSIONS_CARE_TYPE:
        total += selection.session_count * selection.session_price
    if selection.needs_medical_aids:
        total += selection.aid_price
    if selection.has_other_services:
        total += selection.other_service_price
    return total
