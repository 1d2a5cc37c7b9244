from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class SheetsSyncMethod(str, Enum):
    """Spreadsheet synchronisation strategies."""

    WEBHOOK = "webhook"
    SERVICE_ACCOUNT = "service_account"
    OAUTH = "oauth"
    DISABLED = "disabled"


class EventDispatchMode(str, Enum):
    """How patient events reach the notification targets."""

    BACKGROUND = "background"
    CELERY = "celery"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Clinic Intake API"
    database_url: str = (
        "postgresql+psycopg2://clinic:clinic@db:5432/clinic"  # pragma: allowlist secret
    )
    redis_url: str = "redis://redis:6379/0"
    timezone: str = "Asia/Baghdad"
    cors_origins: list[str] = ["http://localhost:5000"]
    log_level: str = "INFO"
    auto_create_tables: bool = False

    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_mock_mode: bool = False

    sheets_sync_method: SheetsSyncMethod | None = None
    google_sheets_webhook_url: str = ""
    google_service_account_key: str = ""
    google_spreadsheet_id: str = ""
    google_spreadsheet_title: str = "مركز اضواء الساير - سجلات المرضى"
    connectors_hostname: str = ""
    connector_identity_token: str = ""

    event_dispatch_mode: EventDispatchMode = EventDispatchMode.BACKGROUND
    daily_summary_hour: int = 23
    outbound_timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
