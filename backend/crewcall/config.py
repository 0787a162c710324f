import logging
from functools import lru_cache

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/crewcall"
    DATABASE_URL_SYNC: str = "postgresql+psycopg2://postgres:postgres@db:5432/crewcall"
    CORS_ORIGINS: str = "http://localhost:3000"
    APP_ENV: str = "development"

    # Shared secret for the cron trigger and scheduler admin endpoints
    CRON_SECRET: str = ""

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""             # default two-way sender
    TWILIO_PHONE_NUMBER_REMINDERS: str = ""   # dedicated one-way reminders number
    TWILIO_VALIDATE_WEBHOOKS: bool = False
    SMS_MAX_RETRIES: int = 3

    # Reminder scheduler
    REMINDER_SCHEDULER_ENABLED: bool = True
    REMINDER_INTERVAL_MINUTES: float = 15
    REMINDER_MAX_RETRIES: int = 3
    REMINDER_RETRY_DELAY_MINUTES: float = 5
    REMINDER_SEND_DELAY_MS: int = 200
    REMINDER_MIN_HOURS_SAME_DAY: float = 4
    REMINDER_CALENDAR_TIMEZONE: str = "UTC"
    SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS: float = 30

    # Message rendering
    DISPLAY_TIMEZONE: str = "America/Denver"
    SUPPORT_PHONE_NUMBER: str = ""

    # Database connection pool (tune per environment via env vars)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800
    DB_STATEMENT_TIMEOUT_SECONDS: int = 30

    model_config = {"env_file": "../.env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()

    # The cron trigger is unauthenticated without a secret
    if settings.APP_ENV == "production" and not settings.CRON_SECRET:
        raise RuntimeError(
            "FATAL: CRON_SECRET is not set. "
            "Set a strong random secret via environment variable before running in production. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
        )

    if settings.APP_ENV == "production":
        origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
        if "*" in origins:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS contains '*' which is not allowed in production. "
                "Set explicit allowed origins, e.g. CORS_ORIGINS=https://app.example.com"
            )

        if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
            logger.warning(
                "TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN not set; "
                "reminders and SMS replies will fail to send."
            )
        if not settings.TWILIO_PHONE_NUMBER_REMINDERS:
            logger.warning(
                "TWILIO_PHONE_NUMBER_REMINDERS not set; "
                "reminders will be sent from TWILIO_PHONE_NUMBER."
            )

    return settings


def clear_settings_cache() -> None:
    """Clear the cached Settings so the next call to ``get_settings()``
    re-reads environment variables.  Useful after rotating Twilio keys
    without a full process restart.
    """
    get_settings.cache_clear()
