"""Client-local copy of the patient list and the offline pending-action queue."""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any

from clinic_intake.offline.storage import MirrorStorage

logger = logging.getLogger(__name__)

PATIENTS_KEY = "alsayer_patients_cache"
PENDING_KEY = "alsayer_pending_sync"


class PendingActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PatientMirror:
    """Read and write the mirror; storage or parse failures never propagate."""

    def __init__(self, storage: MirrorStorage) -> None:
        self.storage = storage

    def _read_list(self, key: str) -> list[Any]:
        try:
            raw = self.storage.get(key)
        except Exception:
            logger.exception("failed to read offline mirror", extra={"key": key})
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("corrupt offline mirror ignored", extra={"key": key})
            return []
        if not isinstance(data, list):
            logger.warning("offline mirror is not a list", extra={"key": key})
            return []
        return data

    def _write_list(self, key: str, values: list[Any]) -> None:
        try:
            self.storage.set(key, json.dumps(values, ensure_ascii=False))
        except Exception:
            logger.exception("failed to write offline mirror", extra={"key": key})

    def get_patients(self) -> list[dict[str, Any]]:
        return [item for item in self._read_list(PATIENTS_KEY) if isinstance(item, dict)]

    def set_patients(self, patients: list[dict[str, Any]]) -> None:
        self._write_list(PATIENTS_KEY, list(patients))

    def upsert_patient(self, patient: dict[str, Any]) -> None:
        patients = self.get_patients()
        for index, existing in enumerate(patients):
            if existing.get("id") == patient.get("id"):
                patients[index] = patient
                break
        else:
            patients.append(patient)
        self.set_patients(patients)

    def remove_patient(self, patient_id: str) -> None:
        self.set_patients([p for p in self.get_patients() if p.get("id") != patient_id])

    def find_patient(self, patient_id: str) -> dict[str, Any] | None:
        for patient in self.get_patients():
            if patient.get("id") == patient_id:
                return patient
        return None

    def get_pending_actions(self) -> list[dict[str, Any]]:
        return [item for item in self._read_list(PENDING_KEY) if isinstance(item, dict)]

    def add_pending_action(
        self,
        action_type: PendingActionType,
        *,
        patient_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        action: dict[str, Any] = {
            "type": PendingActionType(action_type).value,
            "timestamp": int(time.time() * 1000),
        }
        if patient_id is not None:
            action["patient_id"] = patient_id
        if data is not None:
            action["data"] = data
        pending = self.get_pending_actions()
        pending.append(action)
        self._write_list(PENDING_KEY, pending)
        return action

    def clear_pending_actions(self) -> None:
        try:
            self.storage.delete(PENDING_KEY)
        except Exception:
            logger.exception("failed to clear pending actions")

    def has_pending_actions(self) -> bool:
        return len(self.get_pending_actions()) > 0
