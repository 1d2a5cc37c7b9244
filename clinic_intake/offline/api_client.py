"""HTTP client for the intake API, used by the offline reconciler."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT = httpx.Timeout(connect=5.0, read=15.0, write=15.0, pool=5.0)


class IntakeApiClient:
    """Thin wrapper over the patient and payment endpoints.

    Non-2xx responses raise ``httpx.HTTPStatusError``; network failures raise
    ``httpx.TransportError``.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url, timeout=_TIMEOUT, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "IntakeApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = self._client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    def list_patients(self) -> list[dict[str, Any]]:
        return self._request("GET", "/api/patients").json()

    def get_patient(self, patient_id: str) -> dict[str, Any]:
        return self._request("GET", f"/api/patients/{patient_id}").json()

    def create_patient(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/api/patients", json=data).json()

    def update_patient(self, patient_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"/api/patients/{patient_id}", json=data).json()

    def delete_patient(self, patient_id: str) -> None:
        self._request("DELETE", f"/api/patients/{patient_id}")

    def list_payments(self, patient_id: str) -> list[dict[str, Any]]:
        return self._request("GET", f"/api/patients/{patient_id}/payments").json()

    def add_payment(self, patient_id: str, amount: int, note: str = "") -> dict[str, Any]:
        return self._request(
            "POST",
            f"/api/patients/{patient_id}/payments",
            json={"amount": amount, "note": note},
        ).json()

    def remove_payment(self, payment_id: str) -> None:
        self._request("DELETE", f"/api/payments/{payment_id}")

    def today_summary(self) -> dict[str, int]:
        return self._request("GET", "/api/today-summary").json()

    def sync_to_sheets(self) -> dict[str, Any]:
        return self._request("POST", "/api/sync-to-sheets").json()
