"""Credential providers for the Google Sheets integration.

Each provider owns its token cache, so the process lifecycle (the FastAPI
lifespan or the Celery worker) decides how long cached credentials live.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

import httpx
from google.auth.credentials import Credentials
from google.oauth2 import credentials as oauth2_credentials
from google.oauth2 import service_account

from clinic_intake.exceptions import IntegrationError

logger = logging.getLogger(__name__)

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]
CONNECTOR_TOKEN_HEADER = "X_REPLIT_TOKEN"
TARGET = "google_sheets"


class CredentialProvider(Protocol):
    def get_credentials(self) -> Credentials:
        ...


class ServiceAccountCredentialProvider:
    """Credentials from a service-account key; google-auth refreshes the token."""

    def __init__(self, key: str | dict[str, Any], scopes: list[str] | None = None) -> None:
        if isinstance(key, str):
            try:
                key = json.loads(key)
            except json.JSONDecodeError as exc:
                raise ValueError("Service account key is not valid JSON") from exc
        self._info = key
        self._scopes = scopes or SHEETS_SCOPES
        self._credentials: Credentials | None = None

    def get_credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_info(
                self._info, scopes=self._scopes
            )
        return self._credentials


def _parse_expiry(raw: Any) -> datetime | None:
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Invalid connector expiry received: %s", raw)
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class ConnectorTokenProvider:
    """OAuth access token fetched from a connector host and reused until expiry."""

    def __init__(
        self,
        hostname: str,
        identity_token: str,
        *,
        connector_name: str = "google-sheet",
        expiry_skew: timedelta = timedelta(seconds=60),
        timeout: float = 15.0,
        clock: Callable[[], datetime] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.hostname = hostname
        self.identity_token = identity_token
        self.connector_name = connector_name
        self.expiry_skew = expiry_skew
        self._timeout = timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._transport = transport
        self._access_token: str | None = None
        self._expires_at: datetime | None = None

    def _is_fresh(self) -> bool:
        if not self._access_token or not self._expires_at:
            return False
        return self._expires_at - self.expiry_skew > self._clock()

    def _fetch(self) -> tuple[str, datetime | None]:
        if not self.hostname:
            raise IntegrationError(TARGET, "connector hostname is not configured")
        if not self.identity_token:
            raise IntegrationError(TARGET, "connector identity token is not configured")

        url = f"https://{self.hostname}/api/v2/connection"
        params = {"include_secrets": "true", "connector_names": self.connector_name}
        headers = {"Accept": "application/json", CONNECTOR_TOKEN_HEADER: self.identity_token}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(url, params=params, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise IntegrationError(TARGET, f"connector request failed: {exc}") from exc
        except ValueError as exc:
            raise IntegrationError(TARGET, "connector returned invalid JSON") from exc

        items = data.get("items") or []
        connection_settings = (items[0] or {}).get("settings", {}) if items else {}
        token = connection_settings.get("access_token") or (
            connection_settings.get("oauth", {}).get("credentials", {}).get("access_token")
        )
        if not token:
            raise IntegrationError(TARGET, "Google Sheet not connected")
        return token, _parse_expiry(connection_settings.get("expires_at"))

    def access_token(self) -> str:
        if self._is_fresh():
            return self._access_token  # type: ignore[return-value]
        token, expires_at = self._fetch()
        self._access_token = token
        self._expires_at = expires_at
        logger.debug("Fetched connector access token", extra={"expires_at": expires_at})
        return token

    def get_credentials(self) -> Credentials:
        return oauth2_credentials.Credentials(token=self.access_token())
