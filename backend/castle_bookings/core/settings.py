"""Specialized settings adapters for services and integrations."""

from __future__ import annotations

from datetime import time
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from castle_bookings.core.config import Settings, get_settings


class BookingRules(BaseModel):
    """Slim view of the booking and availability rules."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    timezone: ZoneInfo = ZoneInfo("Europe/London")
    buffer_minutes: int = 30
    min_duration_hours: float = 2
    max_duration_hours: float = 12
    default_end_time: time = time(17, 0)
    pending_expiry_hours: int = 72
    short_notice_days: int = 3
    low_deposit_ratio: float = 0.2
    slot_day_start: time = time(9, 0)
    slot_day_end: time = time(18, 0)
    slot_length_hours: float = 4
    slot_step_minutes: int = 60
    max_range_days: int = 365


class CalendarSettings(BaseModel):
    """Slim view of calendar-related configuration."""

    backend: str = "memory"
    service_account_email: str | None = None
    private_key: str | None = None
    calendar_id: str = "primary"
    time_zone: str = "Europe/London"
    timeout_seconds: float = 10.0
    max_attempts: int = 3


class PaymentSettings(BaseModel):
    """Slim view of payment-related configuration."""

    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    currency: str = "gbp"


def get_booking_rules(settings: Settings | None = None) -> BookingRules:
    """Return booking rule configuration."""

    settings = settings or get_settings()
    return BookingRules(
        timezone=ZoneInfo(settings.business_timezone),
        buffer_minutes=settings.booking_buffer_minutes,
        min_duration_hours=settings.booking_min_duration_hours,
        max_duration_hours=settings.booking_max_duration_hours,
        default_end_time=settings.default_event_end_time,
        pending_expiry_hours=settings.pending_expiry_hours,
        short_notice_days=settings.short_notice_days,
        low_deposit_ratio=settings.low_deposit_ratio,
        slot_day_start=settings.slot_day_start,
        slot_day_end=settings.slot_day_end,
        slot_length_hours=settings.slot_length_hours,
        slot_step_minutes=settings.slot_step_minutes,
        max_range_days=settings.availability_max_range_days,
    )


def get_calendar_settings(settings: Settings | None = None) -> CalendarSettings:
    """Return calendar-specific configuration."""

    settings = settings or get_settings()
    return CalendarSettings(
        backend=settings.calendar_backend,
        service_account_email=settings.google_service_account_email,
        private_key=settings.google_private_key,
        calendar_id=settings.google_calendar_id,
        time_zone=settings.business_timezone,
        timeout_seconds=settings.calendar_timeout_seconds,
        max_attempts=settings.calendar_max_attempts,
    )


def get_payment_settings(settings: Settings | None = None) -> PaymentSettings:
    """Return payment-specific configuration."""

    settings = settings or get_settings()
    return PaymentSettings(
        stripe_secret_key=settings.stripe_secret_key,
        stripe_publishable_key=settings.stripe_publishable_key,
        currency=settings.currency,
    )
