"""Thin wrapper around the Telegram Bot API used for staff notifications."""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from clinic_intake.core.config import Settings
from clinic_intake.exceptions import IntegrationError

logger = logging.getLogger(__name__)

TARGET = "telegram"


class TelegramNotifier:
    """Send Markdown messages to the configured clinic chat."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        base_url: str = "https://api.telegram.org",
        mock_mode: bool = False,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = base_url.rstrip("/")
        self.mock_mode = mock_mode
        self._timeout = httpx.Timeout(timeout, connect=5.0)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramNotifier":
        return cls(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            base_url=settings.telegram_api_base_url,
            mock_mode=settings.telegram_mock_mode,
            timeout=settings.outbound_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def _mock_send(self, payload: dict[str, Any]) -> dict[str, Any]:
        message_id = f"mocked-{uuid.uuid4()}"
        logger.debug("Mocking Telegram send with payload: %s", payload)
        return {"ok": True, "result": {"message_id": message_id}, "mocked": True}

    def send_message(self, text: str) -> dict[str, Any] | None:
        """Post a message; returns ``None`` when the bot is not configured."""

        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"}
        if self.mock_mode:
            return self._mock_send(payload)
        if not self.configured:
            logger.info("Telegram not configured - skipping notification")
            return None

        url = f"{self.base_url}/bot{self.bot_token}/sendMessage"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise IntegrationError(TARGET, str(exc)) from exc
        except ValueError as exc:
            raise IntegrationError(TARGET, "invalid JSON response") from exc

        if not data.get("ok", False):
            raise IntegrationError(TARGET, str(data.get("description", "request rejected")))
        logger.debug("Telegram API responded with %s", data)
        return data
