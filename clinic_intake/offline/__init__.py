"""Client-side mirror of the patient list for disconnected use."""

from clinic_intake.offline.api_client import IntakeApiClient
from clinic_intake.offline.mirror import PENDING_KEY, PATIENTS_KEY, PatientMirror, PendingActionType
from clinic_intake.offline.reconciler import Connectivity, OfflineCacheReconciler
from clinic_intake.offline.storage import (
    FileMirrorStorage,
    MemoryMirrorStorage,
    MirrorStorage,
    RedisMirrorStorage,
)

__all__ = [
    "Connectivity",
    "FileMirrorStorage",
    "IntakeApiClient",
    "MemoryMirrorStorage",
    "MirrorStorage",
    "OfflineCacheReconciler",
    "PATIENTS_KEY",
    "PENDING_KEY",
    "PatientMirror",
    "PendingActionType",
    "RedisMirrorStorage",
]
