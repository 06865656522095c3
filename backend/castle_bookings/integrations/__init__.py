"""External service integrations."""

from .google_calendar import (
    CalendarClient,
    CalendarClientError,
    CalendarEvent,
    CalendarEventData,
    GoogleCalendarClient,
    InMemoryCalendarClient,
    build_calendar_client,
)
from .stripe_client import PaymentIntent, StripeClient, StripeClientError

__all__ = [
    "CalendarClient",
    "CalendarClientError",
    "CalendarEvent",
    "CalendarEventData",
    "GoogleCalendarClient",
    "InMemoryCalendarClient",
    "PaymentIntent",
    "StripeClient",
    "StripeClientError",
    "build_calendar_client",
]
