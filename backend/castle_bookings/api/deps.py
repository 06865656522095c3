"""Common API dependencies."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from castle_bookings.core.config import get_settings
from castle_bookings.core.settings import BookingRules, get_booking_rules, get_payment_settings
from castle_bookings.db.session import get_session
from castle_bookings.integrations.google_calendar import CalendarClient, build_calendar_client
from castle_bookings.integrations.stripe_client import StripeClient
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService

ADMIN_ACTOR = "admin"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_store(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> SqlBookingStore:
    return SqlBookingStore(session)


def get_rules() -> BookingRules:
    return get_booking_rules()


def get_calendar_client(request: Request) -> CalendarClient:
    """Return the process-wide calendar client created at startup."""
    client = getattr(request.app.state, "calendar", None)
    if client is None:
        client = build_calendar_client()
        request.app.state.calendar = client
    return client


async def get_sync_service(
    store: Annotated[SqlBookingStore, Depends(get_store)],
    calendar: Annotated[CalendarClient, Depends(get_calendar_client)],
    rules: Annotated[BookingRules, Depends(get_rules)],
) -> CalendarSyncService:
    return CalendarSyncService(
        store, calendar, rules=rules, timeout=get_settings().calendar_timeout_seconds
    )


def get_stripe_client() -> StripeClient:
    payment_settings = get_payment_settings()
    if not payment_settings.stripe_secret_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payments are not configured",
        )
    return StripeClient(payment_settings.stripe_secret_key)


async def require_admin(
    x_admin_token: Annotated[str | None, Header()] = None,
) -> str:
    """Gate admin routes behind the shared ``X-Admin-Token`` secret when configured."""
    expected = get_settings().admin_api_token
    if expected is None:
        return ADMIN_ACTOR
    if x_admin_token is None or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
    return ADMIN_ACTOR
