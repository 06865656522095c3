"""Booking management service helpers."""
from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime, time

from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.models.booking import Booking, BookingStatus, PaymentMethod, SyncStatus
from castle_bookings.services import availability_service, status_transition_service
from castle_bookings.services.booking_store import BookingPage, BookingQuery, SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService, SyncResult
from castle_bookings.services.conflict_detector import (
    BookingWindow,
    ValidationResult,
    validate_booking,
)
from castle_bookings.services.errors import BookingConflictError, BookingValidationError

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


async def create_booking(
    store: SqlBookingStore,
    *,
    rules: BookingRules,
    castle_id: uuid.UUID | None = None,
    castle_name: str | None = None,
    customer_name: str,
    event_date: date,
    start_time: time,
    end_time: time,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    customer_address: str | None = None,
    total_pence: int | None = None,
    deposit_pence: int = 0,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    notes: str | None = None,
    calendar: CalendarClient | None = None,
    today: date | None = None,
) -> tuple[Booking, ValidationResult]:
    """Validate and store a new pending booking.

    The slot check runs against freshly loaded bookings right before the insert;
    anything stale that reached the form is caught here.
    """
    today = today or datetime.now(rules.timezone).date()
    if not _clean(customer_name):
        raise BookingValidationError({"customer_name": "Customer name is required"})
    if event_date < today:
        raise BookingValidationError({"event_date": "Event date cannot be in the past"})

    castle = await availability_service.resolve_castle(
        store, castle_id=castle_id, castle_name=castle_name
    )
    if not castle.is_active:
        raise BookingValidationError({"castle": f"{castle.name} is not available for booking"})
    total = castle.price_pence if total_pence is None else total_pence

    candidate = BookingWindow(
        castle_id=castle.id,
        castle_name=castle.name,
        event_date=event_date,
        start_time=start_time,
        end_time=end_time,
    )
    existing = await store.active_bookings_between(event_date, event_date)
    result = validate_booking(
        candidate,
        [BookingWindow.from_booking(booking, rules=rules) for booking in existing],
        total_pence=total,
        deposit_pence=deposit_pence,
        rules=rules,
        today=today,
    )
    if result.errors:
        raise BookingValidationError(result.errors)
    if result.blocking_conflicts:
        raise BookingConflictError(result.blocking_conflicts)

    check = await availability_service.check_availability(
        store,
        day=event_date,
        start_time=start_time,
        end_time=end_time,
        rules=rules,
        castle_id=castle.id,
        calendar=calendar,
        fail_open=False,
    )
    if not check.available:
        blocking = [conflict for conflict in check.conflicts if conflict.blocking]
        if blocking:
            raise BookingConflictError(blocking)
        raise BookingValidationError({"castle": check.reason or "Castle is not available"})

    now = datetime.now(UTC)
    booking = Booking(
        booking_ref=await store.allocate_booking_ref(now.date()),
        castle_id=castle.id,
        castle_name=castle.name,
        customer_name=customer_name.strip(),
        customer_email=_clean(customer_email),
        customer_phone=_clean(customer_phone),
        customer_address=_clean(customer_address),
        event_date=event_date,
        start_time=start_time,
        end_time=end_time,
        status=BookingStatus.PENDING,
        payment_method=payment_method,
        total_price_pence=total,
        deposit_pence=deposit_pence,
        notes=_clean(notes),
        sync_status=SyncStatus.PENDING_SYNC,
        modified_at=now,
    )
    booking = await store.add_booking(booking)
    await store.record_audit(
        event_type="booking.created",
        booking_id=booking.id,
        description=f"Booking request for {castle.name} on {event_date.isoformat()}",
        actor="customer",
        payload={"booking_ref": booking.booking_ref, "warnings": result.warnings},
    )
    logger.info("Created booking %s for %s", booking.booking_ref, castle.name)
    return booking, result


async def confirm_booking(
    store: SqlBookingStore,
    booking_id: uuid.UUID,
    *,
    sync: CalendarSyncService | None = None,
    actor: str | None = None,
    agreement_signed: bool = True,
) -> tuple[Booking, SyncResult | None]:
    """Approve a pending booking and mirror it to the calendar.

    A calendar failure leaves the booking confirmed with ``sync_failed``.
    """
    now = datetime.now(UTC)
    changes = {"agreement_signed_at": now} if agreement_signed else {}
    booking, _ = await status_transition_service.transition_booking(
        store,
        booking_id,
        BookingStatus.CONFIRMED,
        reason="Booking approved",
        actor=actor,
        now=now,
        **changes,
    )
    if sync is None:
        return booking, None
    result = await sync.to_calendar(booking)
    if not result.success:
        logger.warning(
            "Booking %s confirmed but calendar sync failed: %s",
            booking.booking_ref,
            result.error,
        )
    return await store.require_booking(booking_id), result


async def cancel_booking(
    store: SqlBookingStore,
    booking_id: uuid.UUID,
    *,
    reason: str | None = None,
    sync: CalendarSyncService | None = None,
    actor: str | None = None,
) -> Booking:
    """Cancel a pending or confirmed booking and drop its calendar event."""
    booking, _ = await status_transition_service.transition_booking(
        store,
        booking_id,
        BookingStatus.CANCELLED,
        reason=f"Cancelled: {reason}" if reason else "Cancelled",
        actor=actor,
    )
    if sync is not None and booking.calendar_event_id:
        result = await sync.delete_calendar_event(booking, actor=actor)
        if not result.success:
            logger.warning(
                "Booking %s cancelled but its calendar event remains: %s",
                booking.booking_ref,
                result.error,
            )
    return await store.require_booking(booking_id)


async def list_bookings(store: SqlBookingStore, query: BookingQuery) -> BookingPage:
    return await store.query_bookings_with_filters(query)


__all__ = ["cancel_booking", "confirm_booking", "create_booking", "list_bookings"]
