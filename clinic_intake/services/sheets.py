"""Spreadsheet synchronisation strategies.

Exactly one strategy is active per process. It is chosen once at startup by
``resolve_sheets_sync`` from ``Settings.sheets_sync_method`` or, when that is
unset, from whichever credential is configured (webhook URL, service-account
key, OAuth connector) in that order.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence

import httpx
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from clinic_intake.core.config import Settings, SheetsSyncMethod
from clinic_intake.exceptions import IntegrationError
from clinic_intake.services.credentials import (
    ConnectorTokenProvider,
    CredentialProvider,
    ServiceAccountCredentialProvider,
)
from clinic_intake.services.telegram_templates import CARE_TYPE_LABELS

logger = logging.getLogger(__name__)

TARGET = "google_sheets"
SHEET_TITLE = "المرضى"
SHEET_ID = 0
LAST_COLUMN = "U"
YES, NO = "نعم", "لا"

HEADERS = [
    "رقم السجل",
    "الاسم",
    "العمر",
    "السكن",
    "الهاتف",
    "اسم الطبيب",
    "التشخيص",
    "طلب الطبيب",
    "هل يوجد عملية",
    "نوع العملية",
    "نوع الرعاية",
    "عدد الجلسات",
    "سعر الجلسة",
    "المساند الطبية",
    "سعر المساند",
    "النظام الغذائي",
    "خدمات أخرى",
    "سعر الخدمات الأخرى",
    "المبلغ الكلي",
    "المبلغ المستلم",
    "المتبقي",
]


def _balance(patient: dict[str, Any]) -> tuple[int, int, int]:
    total_amount = int(patient.get("total_amount") or 0)
    total_received = int(patient.get("total_received") or 0)
    return total_amount, total_received, total_amount - total_received


def patient_to_row(patient: dict[str, Any]) -> list[str | int]:
    """Flatten a serialized patient into the spreadsheet column order."""

    total_amount, total_received, remaining = _balance(patient)
    return [
        patient["id"],
        patient.get("patient_name", ""),
        patient.get("age", ""),
        patient.get("residence") or "",
        patient.get("phone") or "",
        patient.get("doctor_name") or "",
        patient.get("diagnosis") or "",
        patient.get("doctor_request") or "",
        YES if patient.get("has_surgery") else NO,
        patient.get("surgery_type") or "",
        CARE_TYPE_LABELS.get(patient.get("care_type") or "", ""),
        patient.get("session_count") or 0,
        patient.get("session_price") or 0,
        patient.get("aid_type") or "",
        patient.get("aid_price") or 0,
        (patient.get("diet_plan") or "") if patient.get("has_diet") else "",
        (patient.get("other_service_type") or "") if patient.get("has_other_services") else "",
        patient.get("other_service_price") or 0,
        total_amount,
        total_received,
        remaining,
    ]


def patient_to_webhook_data(patient: dict[str, Any], action: str) -> dict[str, Any]:
    """Serialize a patient for the Apps Script webhook."""

    total_amount, total_received, remaining = _balance(patient)
    return {
        "action": action,
        "id": patient["id"],
        "patient_name": patient.get("patient_name", ""),
        "age": patient.get("age"),
        "residence": patient.get("residence") or "",
        "phone": patient.get("phone") or "",
        "doctor_name": patient.get("doctor_name") or "",
        "diagnosis": patient.get("diagnosis") or "",
        "doctor_request": patient.get("doctor_request") or "",
        "has_surgery": YES if patient.get("has_surgery") else NO,
        "surgery_type": patient.get("surgery_type") or "",
        "care_type": CARE_TYPE_LABELS.get(patient.get("care_type") or "", ""),
        "session_count": patient.get("session_count") or 0,
        "session_price": patient.get("session_price") or 0,
        "aid_type": patient.get("aid_type") or "",
        "aid_price": patient.get("aid_price") or 0,
        "diet_plan": (patient.get("diet_plan") or "") if patient.get("has_diet") else "",
        "other_service_type": (
            (patient.get("other_service_type") or "") if patient.get("has_other_services") else ""
        ),
        "other_service_price": patient.get("other_service_price") or 0,
        "total_amount": total_amount,
        "total_received": total_received,
        "remaining": remaining,
        "created_at": patient.get("created_at"),
    }


class SheetsSync(Protocol):
    method: SheetsSyncMethod

    def upsert_patient(self, patient: dict[str, Any], action: str = "update") -> None:
        ...

    def delete_patient(self, patient_id: str) -> None:
        ...

    def sync_all(self, patients: Sequence[dict[str, Any]]) -> int:
        ...


class DisabledSheetsSync:
    """No spreadsheet configured; every call is a logged no-op."""

    method = SheetsSyncMethod.DISABLED

    def upsert_patient(self, patient: dict[str, Any], action: str = "update") -> None:
        logger.debug("Google Sheets disabled - skipping sync", extra={"action": action})

    def delete_patient(self, patient_id: str) -> None:
        logger.debug("Google Sheets disabled - skipping delete")

    def sync_all(self, patients: Sequence[dict[str, Any]]) -> int:
        logger.info("Google Sheets disabled - skipping full sync")
        return len(patients)


class WebhookSheetsSync:
    """Post row changes to a Google Apps Script web app."""

    method = SheetsSyncMethod.WEBHOOK

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._timeout = httpx.Timeout(timeout, connect=5.0)
        self._transport = transport

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            with httpx.Client(
                timeout=self._timeout, transport=self._transport, follow_redirects=True
            ) as client:
                response = client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IntegrationError(TARGET, f"webhook {payload.get('action')} failed: {exc}") from exc

    def upsert_patient(self, patient: dict[str, Any], action: str = "update") -> None:
        self._post(patient_to_webhook_data(patient, action))
        logger.info(
            "patient synced to Google Sheets via webhook",
            extra={"patient": patient["id"], "action": action},
        )

    def delete_patient(self, patient_id: str) -> None:
        self._post({"action": "delete", "id": patient_id})
        logger.info("patient deleted from Google Sheets via webhook", extra={"patient": patient_id})

    def sync_all(self, patients: Sequence[dict[str, Any]]) -> int:
        self._post(
            {
                "action": "sync_all",
                "patients": [patient_to_webhook_data(p, "create") for p in patients],
            }
        )
        logger.info("patients synced to Google Sheets via webhook", extra={"count": len(patients)})
        return len(patients)


ServiceFactory = Callable[[str, str], Any]


class GoogleSheetsApiSync:
    """Maintain the patient sheet through the Google Sheets v4 API."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        method: SheetsSyncMethod,
        spreadsheet_id: str = "",
        spreadsheet_title: str = "",
        service_factory: ServiceFactory | None = None,
    ) -> None:
        self.method = method
        self.credentials = credentials
        self.spreadsheet_title = spreadsheet_title
        self._spreadsheet_id = spreadsheet_id or None
        self._service_factory = service_factory or self._build_service

    def _build_service(self, api: str, version: str) -> Any:
        # Built per call: connector tokens expire and must not outlive the provider's cache.
        return build(api, version, credentials=self.credentials.get_credentials(), cache_discovery=False)

    @staticmethod
    def _range(cells: str) -> str:
        return f"'{SHEET_TITLE}'!{cells}"

    def _call(self, description: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except (HttpError, GoogleAuthError) as exc:
            raise IntegrationError(TARGET, f"{description} failed: {exc}") from exc

    def _spreadsheet(self, sheets: Any) -> str:
        if self._spreadsheet_id:
            return self._spreadsheet_id

        drive = self._service_factory("drive", "v3")
        query = (
            f"name='{self.spreadsheet_title}' "
            "and mimeType='application/vnd.google-apps.spreadsheet'"
        )
        found = self._call(
            "spreadsheet search",
            lambda: drive.files().list(q=query, spaces="drive", fields="files(id, name)").execute(),
        )
        files = found.get("files") or []
        if files:
            self._spreadsheet_id = files[0]["id"]
            return self._spreadsheet_id

        body = {
            "properties": {"title": self.spreadsheet_title, "locale": "ar"},
            "sheets": [
                {"properties": {"title": SHEET_TITLE, "sheetId": SHEET_ID, "rightToLeft": True}}
            ],
        }
        created = self._call(
            "spreadsheet create", lambda: sheets.spreadsheets().create(body=body).execute()
        )
        spreadsheet_id = created["spreadsheetId"]
        self._call(
            "header write",
            lambda: sheets.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=self._range(f"A1:{LAST_COLUMN}1"),
                valueInputOption="RAW",
                body={"values": [HEADERS]},
            )
            .execute(),
        )
        logger.info("created patient spreadsheet", extra={"spreadsheet_id": spreadsheet_id})
        self._spreadsheet_id = spreadsheet_id
        return spreadsheet_id

    def _row_index(self, sheets: Any, spreadsheet_id: str, patient_id: str) -> int | None:
        """Zero-based index of the patient's row, skipping the header."""

        result = self._call(
            "row lookup",
            lambda: sheets.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=self._range("A:A"))
            .execute(),
        )
        rows = result.get("values") or []
        for index, row in enumerate(rows):
            if index == 0:
                continue
            if row and str(row[0]) == patient_id:
                return index
        return None

    def upsert_patient(self, patient: dict[str, Any], action: str = "update") -> None:
        sheets = self._service_factory("sheets", "v4")
        spreadsheet_id = self._spreadsheet(sheets)
        index = self._row_index(sheets, spreadsheet_id, patient["id"])
        values = sheets.spreadsheets().values()
        row = patient_to_row(patient)

        if index is not None:
            line = index + 1
            self._call(
                "row update",
                lambda: values.update(
                    spreadsheetId=spreadsheet_id,
                    range=self._range(f"A{line}:{LAST_COLUMN}{line}"),
                    valueInputOption="RAW",
                    body={"values": [row]},
                ).execute(),
            )
        else:
            self._call(
                "row append",
                lambda: values.append(
                    spreadsheetId=spreadsheet_id,
                    range=self._range(f"A:{LAST_COLUMN}"),
                    valueInputOption="RAW",
                    body={"values": [row]},
                ).execute(),
            )
        logger.info(
            "patient synced to Google Sheets",
            extra={"patient": patient["id"], "action": action},
        )

    def delete_patient(self, patient_id: str) -> None:
        sheets = self._service_factory("sheets", "v4")
        spreadsheet_id = self._spreadsheet(sheets)
        index = self._row_index(sheets, spreadsheet_id, patient_id)
        if index is None:
            logger.info("patient not present in Google Sheets", extra={"patient": patient_id})
            return

        request = {
            "deleteDimension": {
                "range": {
                    "sheetId": SHEET_ID,
                    "dimension": "ROWS",
                    "startIndex": index,
                    "endIndex": index + 1,
                }
            }
        }
        self._call(
            "row delete",
            lambda: sheets.spreadsheets()
            .batchUpdate(spreadsheetId=spreadsheet_id, body={"requests": [request]})
            .execute(),
        )
        logger.info("patient deleted from Google Sheets", extra={"patient": patient_id})

    def sync_all(self, patients: Sequence[dict[str, Any]]) -> int:
        sheets = self._service_factory("sheets", "v4")
        spreadsheet_id = self._spreadsheet(sheets)
        values = sheets.spreadsheets().values()
        self._call(
            "sheet clear",
            lambda: values.clear(
                spreadsheetId=spreadsheet_id, range=self._range(f"A2:{LAST_COLUMN}"), body={}
            ).execute(),
        )
        if patients:
            rows = [patient_to_row(p) for p in patients]
            self._call(
                "bulk append",
                lambda: values.append(
                    spreadsheetId=spreadsheet_id,
                    range=self._range(f"A:{LAST_COLUMN}"),
                    valueInputOption="RAW",
                    body={"values": rows},
                ).execute(),
            )
        logger.info("patients synced to Google Sheets", extra={"count": len(patients)})
        return len(patients)


def resolve_sheets_method(settings: Settings) -> SheetsSyncMethod:
    if settings.sheets_sync_method is not None:
        return settings.sheets_sync_method
    if settings.google_sheets_webhook_url:
        return SheetsSyncMethod.WEBHOOK
    if settings.google_service_account_key:
        return SheetsSyncMethod.SERVICE_ACCOUNT
    if settings.connectors_hostname:
        return SheetsSyncMethod.OAUTH
    return SheetsSyncMethod.DISABLED


def resolve_sheets_sync(settings: Settings) -> SheetsSync:
    """Build the single spreadsheet strategy for this process."""

    method = resolve_sheets_method(settings)
    timeout = settings.outbound_timeout_seconds

    if method is SheetsSyncMethod.WEBHOOK:
        if not settings.google_sheets_webhook_url:
            raise ValueError("GOOGLE_SHEETS_WEBHOOK_URL is required for the webhook method")
        strategy: SheetsSync = WebhookSheetsSync(settings.google_sheets_webhook_url, timeout=timeout)
    elif method is SheetsSyncMethod.SERVICE_ACCOUNT:
        if not settings.google_service_account_key:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_KEY is required for the service_account method")
        strategy = GoogleSheetsApiSync(
            ServiceAccountCredentialProvider(settings.google_service_account_key),
            method=method,
            spreadsheet_id=settings.google_spreadsheet_id,
            spreadsheet_title=settings.google_spreadsheet_title,
        )
    elif method is SheetsSyncMethod.OAUTH:
        if not settings.connectors_hostname:
            raise ValueError("CONNECTORS_HOSTNAME is required for the oauth method")
        strategy = GoogleSheetsApiSync(
            ConnectorTokenProvider(
                settings.connectors_hostname,
                settings.connector_identity_token,
                timeout=timeout,
            ),
            method=method,
            spreadsheet_id=settings.google_spreadsheet_id,
            spreadsheet_title=settings.google_spreadsheet_title,
        )
    else:
        strategy = DisabledSheetsSync()

    logger.info("Google Sheets integration method: %s", method.value)
    return strategy
