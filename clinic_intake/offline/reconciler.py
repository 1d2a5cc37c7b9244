"""Online/offline switching between the intake API and the local mirror."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx

from clinic_intake.exceptions import OfflineError
from clinic_intake.offline.api_client import IntakeApiClient
from clinic_intake.offline.mirror import PatientMirror, PendingActionType

logger = logging.getLogger(__name__)


class Connectivity(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


def _server_unavailable(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class OfflineCacheReconciler:
    """Serve patient data from the server when online and from the mirror otherwise.

    Connectivity changes only through ``set_online``. Successful online reads
    and writes refresh the mirror. Offline writes are appended to the pending
    queue and rejected with ``OfflineError``; nothing replays the queue.
    """

    def __init__(self, api: IntakeApiClient, mirror: PatientMirror, *, online: bool = True) -> None:
        self.api = api
        self.mirror = mirror
        self.state = Connectivity.ONLINE if online else Connectivity.OFFLINE

    @property
    def is_online(self) -> bool:
        return self.state is Connectivity.ONLINE

    def set_online(self, online: bool) -> None:
        new_state = Connectivity.ONLINE if online else Connectivity.OFFLINE
        if new_state is not self.state:
            logger.info(
                "connectivity changed",
                extra={"previous": self.state.value, "current": new_state.value},
            )
        self.state = new_state

    def list_patients(self) -> list[dict[str, Any]]:
        if not self.is_online:
            return self.mirror.get_patients()
        try:
            patients = self.api.list_patients()
        except httpx.HTTPError as exc:
            if not _server_unavailable(exc):
                raise
            logger.warning("patient list unavailable, serving mirror", extra={"error": str(exc)})
            return self.mirror.get_patients()
        self.mirror.set_patients(patients)
        return patients

    def get_patient(self, patient_id: str) -> dict[str, Any] | None:
        if not self.is_online:
            return self.mirror.find_patient(patient_id)
        try:
            patient = self.api.get_patient(patient_id)
        except httpx.HTTPError as exc:
            if not _server_unavailable(exc):
                raise
            logger.warning("patient unavailable, serving mirror", extra={"error": str(exc)})
            return self.mirror.find_patient(patient_id)
        self.mirror.upsert_patient(patient)
        return patient

    def _queue_and_reject(
        self,
        action_type: PendingActionType,
        *,
        patient_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> OfflineError:
        self.mirror.add_pending_action(action_type, patient_id=patient_id, data=data)
        logger.warning(
            "write rejected while offline",
            extra={"action": action_type.value, "patient": patient_id},
        )
        return OfflineError(f"Not saved: {action_type.value} requires a connection")

    def create_patient(self, data: dict[str, Any]) -> dict[str, Any]:
        if not self.is_online:
            raise self._queue_and_reject(PendingActionType.CREATE, data=data)
        try:
            patient = self.api.create_patient(data)
        except httpx.TransportError:
            raise self._queue_and_reject(PendingActionType.CREATE, data=data) from None
        self.mirror.upsert_patient(patient)
        return patient

    def update_patient(self, patient_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if not self.is_online:
            raise self._queue_and_reject(PendingActionType.UPDATE, patient_id=patient_id, data=data)
        try:
            patient = self.api.update_patient(patient_id, data)
        except httpx.TransportError:
            raise self._queue_and_reject(
                PendingActionType.UPDATE, patient_id=patient_id, data=data
            ) from None
        self.mirror.upsert_patient(patient)
        return patient

    def delete_patient(self, patient_id: str) -> None:
        if not self.is_online:
            raise self._queue_and_reject(PendingActionType.DELETE, patient_id=patient_id)
        try:
            self.api.delete_patient(patient_id)
        except httpx.TransportError:
            raise self._queue_and_reject(PendingActionType.DELETE, patient_id=patient_id) from None
        self.mirror.remove_patient(patient_id)

    def _require_online(self, operation: str) -> None:
        if not self.is_online:
            raise OfflineError(f"Not saved: {operation} requires a connection")

    def _refresh_patient(self, patient_id: str) -> dict[str, Any]:
        patient = self.api.get_patient(patient_id)
        self.mirror.upsert_patient(patient)
        return patient

    def list_payments(self, patient_id: str) -> list[dict[str, Any]]:
        self._require_online("listing payments")
        return self.api.list_payments(patient_id)

    def add_payment(self, patient_id: str, amount: int, note: str = "") -> dict[str, Any]:
        self._require_online("adding a payment")
        payment = self.api.add_payment(patient_id, amount, note)
        self._refresh_patient(patient_id)
        return payment

    def remove_payment(self, payment_id: str, patient_id: str) -> None:
        self._require_online("removing a payment")
        self.api.remove_payment(payment_id)
        self._refresh_patient(patient_id)

    def pending_actions(self) -> list[dict[str, Any]]:
        return self.mirror.get_pending_actions()
