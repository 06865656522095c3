"""Application configuration via pydantic settings."""

from datetime import time
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Castle Bookings API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")
    db_connect_timeout_seconds: float = Field(5.0, alias="DB_CONNECT_TIMEOUT_SECONDS")
    db_statement_timeout_seconds: float = Field(
        10.0, alias="DB_STATEMENT_TIMEOUT_SECONDS"
    )

    business_timezone: str = Field("Europe/London", alias="BUSINESS_TIMEZONE")

    booking_buffer_minutes: int = Field(30, alias="BOOKING_BUFFER_MINUTES")
    booking_min_duration_hours: float = Field(2, alias="BOOKING_MIN_DURATION_HOURS")
    booking_max_duration_hours: float = Field(12, alias="BOOKING_MAX_DURATION_HOURS")
    default_event_end_time: time = Field(time(17, 0), alias="DEFAULT_EVENT_END_TIME")
    pending_expiry_hours: int = Field(72, alias="PENDING_EXPIRY_HOURS")
    short_notice_days: int = Field(3, alias="SHORT_NOTICE_DAYS")
    low_deposit_ratio: float = Field(0.2, alias="LOW_DEPOSIT_RATIO")

    slot_day_start: time = Field(time(9, 0), alias="SLOT_DAY_START")
    slot_day_end: time = Field(time(18, 0), alias="SLOT_DAY_END")
    slot_length_hours: float = Field(4, alias="SLOT_LENGTH_HOURS")
    slot_step_minutes: int = Field(60, alias="SLOT_STEP_MINUTES")
    availability_max_range_days: int = Field(365, alias="AVAILABILITY_MAX_RANGE_DAYS")

    calendar_backend: str = Field("memory", alias="CALENDAR_BACKEND")
    google_service_account_email: str | None = Field(
        default=None, alias="GOOGLE_SERVICE_ACCOUNT_EMAIL"
    )
    google_private_key: str | None = Field(default=None, alias="GOOGLE_PRIVATE_KEY")
    google_calendar_id: str = Field("primary", alias="GOOGLE_CALENDAR_ID")
    calendar_timeout_seconds: float = Field(10.0, alias="CALENDAR_TIMEOUT_SECONDS")
    calendar_max_attempts: int = Field(3, alias="CALENDAR_MAX_ATTEMPTS")

    stripe_publishable_key: str | None = Field(
        default=None, alias="STRIPE_PUBLISHABLE_KEY"
    )
    stripe_secret_key: str | None = Field(default=None, alias="STRIPE_SECRET_KEY")
    currency: str = Field("gbp", alias="CURRENCY")

    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")
    completion_check_interval_seconds: int = Field(
        300, alias="COMPLETION_CHECK_INTERVAL_SECONDS"
    )
    calendar_sync_interval_seconds: int = Field(
        300, alias="CALENDAR_SYNC_INTERVAL_SECONDS"
    )

    admin_api_token: str | None = Field(default=None, alias="ADMIN_API_TOKEN")

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("google_private_key", mode="after")
    @classmethod
    def _unescape_private_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.replace("\\n", "\n")

    @field_validator("calendar_backend", mode="after")
    @classmethod
    def _check_calendar_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"google", "memory"}:
            raise ValueError("CALENDAR_BACKEND must be 'google' or 'memory'")
        return backend


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
