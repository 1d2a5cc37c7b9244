from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Celery worker configuration."""

    redis_url: str = "redis://redis:6379/0"
    timezone: str = "Asia/Baghdad"
    daily_summary_hour: int = 23
    notification_max_retries: int = 5
    notification_retry_backoff_max: int = 600

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
