"""Booking lifecycle transitions, automatic and manual."""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.models.booking import Booking, BookingStatus
from castle_bookings.services.booking_store import BookingStore
from castle_bookings.services.errors import (
    BookingAlreadyCompletedError,
    BookingNotFoundError,
    InvalidStatusTransitionError,
)
from castle_bookings.services.intervals import as_utc

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 10.0

_ALLOWED_STATUS_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.EXPIRED: set(),
}

# Timestamp columns stamped when a booking enters the given status.
_STATUS_TIMESTAMPS = {
    BookingStatus.CONFIRMED: "confirmed_at",
    BookingStatus.COMPLETED: "completed_at",
}


class EndTimeSource(str, enum.Enum):
    EXPLICIT = "explicit"
    CALENDAR = "calendar"
    DEFAULT = "default"


@dataclass(slots=True, frozen=True)
class Transition:
    booking_id: uuid.UUID
    booking_ref: str
    previous_status: BookingStatus
    new_status: BookingStatus
    reason: str
    transitioned_at: datetime


@dataclass(slots=True, frozen=True)
class TransitionFailure:
    booking_id: uuid.UUID
    booking_ref: str | None
    error: str


@dataclass(slots=True)
class TransitionSummary:
    checked: int = 0
    transitioned: int = 0
    transitions: list[Transition] = field(default_factory=list)
    errors: list[TransitionFailure] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class UpcomingTransition:
    booking_id: uuid.UUID
    booking_ref: str
    expected_transition_at: datetime
    minutes_until: int
    source: EndTimeSource


def _snapshot(bookings: list[Booking]) -> list[tuple[uuid.UUID, str]]:
    # Batch sweeps reload each booking; a failed write expires session state.
    return [(booking.id, booking.booking_ref) for booking in bookings]


def allowed_transitions(status: BookingStatus) -> set[BookingStatus]:
    return set(_ALLOWED_STATUS_TRANSITIONS[status])


def ensure_transition_allowed(current: BookingStatus, target: BookingStatus) -> None:
    if target not in _ALLOWED_STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f"Cannot change booking status from {current.value} to {target.value}"
        )


async def resolve_end_time(
    booking: Booking,
    *,
    rules: BookingRules,
    calendar: CalendarClient | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> tuple[datetime, EndTimeSource]:
    """Best known end of the booking's event, in UTC.

    Tries the booking's own end, then its linked calendar event, then the
    default end time on the event date.
    """
    if booking.end_at is not None:
        return as_utc(booking.end_at), EndTimeSource.EXPLICIT
    if booking.end_time is not None:
        local_end = datetime.combine(booking.event_date, booking.end_time, tzinfo=rules.timezone)
        return local_end.astimezone(UTC), EndTimeSource.EXPLICIT

    if calendar is not None and booking.calendar_event_id:
        try:
            event = await asyncio.wait_for(
                calendar.get_event(booking.calendar_event_id), timeout
            )
        except Exception:
            logger.warning(
                "Could not read calendar event %s for booking %s; using default end time",
                booking.calendar_event_id,
                booking.booking_ref,
                exc_info=True,
            )
        else:
            if event is not None and not event.is_cancelled and event.end is not None:
                return as_utc(event.end), EndTimeSource.CALENDAR

    fallback = datetime.combine(
        booking.event_date, rules.default_end_time, tzinfo=rules.timezone
    )
    return fallback.astimezone(UTC), EndTimeSource.DEFAULT


async def check_for_completion(
    booking: Booking,
    *,
    rules: BookingRules,
    calendar: CalendarClient | None = None,
    now: datetime | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> Transition | None:
    """Return the completion this booking is due, or ``None``.

    Only confirmed bookings whose resolved end lies strictly in the past qualify.
    Nothing is persisted.
    """
    if booking.status is not BookingStatus.CONFIRMED:
        return None
    now = as_utc(now or datetime.now(UTC))
    end, source = await resolve_end_time(
        booking, rules=rules, calendar=calendar, timeout=timeout
    )
    if not now > end:
        return None
    if source is EndTimeSource.DEFAULT:
        reason = (
            f"Assumed event ended at {end.isoformat()} "
            f"(default {rules.default_end_time.strftime('%H:%M')})"
        )
    elif source is EndTimeSource.CALENDAR:
        reason = f"Calendar event ended at {end.isoformat()}"
    else:
        reason = f"Event ended at {end.isoformat()}"
    return Transition(
        booking_id=booking.id,
        booking_ref=booking.booking_ref,
        previous_status=BookingStatus.CONFIRMED,
        new_status=BookingStatus.COMPLETED,
        reason=reason,
        transitioned_at=now,
    )


async def _persist(
    store: BookingStore,
    transition: Transition,
    *,
    actor: str | None = None,
    **changes: Any,
) -> Booking:
    column = _STATUS_TIMESTAMPS.get(transition.new_status)
    if column is not None:
        changes.setdefault(column, transition.transitioned_at)
    booking = await store.update_booking_status(
        transition.booking_id,
        transition.new_status,
        expected=transition.previous_status,
        **changes,
    )
    await store.record_audit(
        event_type=f"booking.{transition.new_status.value}",
        booking_id=transition.booking_id,
        description=transition.reason,
        actor=actor,
        payload={
            "booking_ref": transition.booking_ref,
            "previous_status": transition.previous_status.value,
            "new_status": transition.new_status.value,
        },
    )
    return booking


async def complete_if_due(
    store: BookingStore,
    booking: Booking,
    *,
    rules: BookingRules,
    calendar: CalendarClient | None = None,
    now: datetime | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> Transition | None:
    """Check one booking and persist its completion. Safe to repeat."""
    transition = await check_for_completion(
        booking, rules=rules, calendar=calendar, now=now, timeout=timeout
    )
    if transition is None:
        return None
    await _persist(store, transition, actor="system")
    logger.info(
        "Transitioned booking %s from confirmed to completed", booking.booking_ref
    )
    return transition


async def process_all(
    store: BookingStore,
    *,
    rules: BookingRules,
    calendar: CalendarClient | None = None,
    now: datetime | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> TransitionSummary:
    """Complete every confirmed booking whose event has ended.

    One booking failing never stops the sweep; its error is collected instead.
    """
    now = as_utc(now or datetime.now(UTC))
    candidates = _snapshot(await store.get_bookings_by_status(BookingStatus.CONFIRMED))
    summary = TransitionSummary(checked=len(candidates))
    logger.info("Checking %s confirmed bookings for completion", len(candidates))
    for booking_id, booking_ref in candidates:
        try:
            booking = await store.get_booking(booking_id)
            if booking is None:
                raise BookingNotFoundError(booking_id)
            transition = await complete_if_due(
                store,
                booking,
                rules=rules,
                calendar=calendar,
                now=now,
                timeout=timeout,
            )
        except Exception as exc:
            logger.exception("Error processing booking %s", booking_ref)
            summary.errors.append(
                TransitionFailure(booking_id=booking_id, booking_ref=booking_ref, error=str(exc))
            )
            continue
        if transition is not None:
            summary.transitions.append(transition)
            summary.transitioned += 1
    logger.info(
        "Completion check finished: %s/%s bookings transitioned, %s errors",
        summary.transitioned,
        summary.checked,
        len(summary.errors),
    )
    return summary


async def expire_stale_pending(
    store: BookingStore,
    *,
    rules: BookingRules,
    now: datetime | None = None,
) -> TransitionSummary:
    """Expire pending bookings left unapproved too long or whose date has passed."""
    now = as_utc(now or datetime.now(UTC))
    today = now.astimezone(rules.timezone).date()
    cutoff = now - timedelta(hours=rules.pending_expiry_hours)
    candidates = _snapshot(await store.get_bookings_by_status(BookingStatus.PENDING))
    summary = TransitionSummary(checked=len(candidates))
    for booking_id, booking_ref in candidates:
        try:
            booking = await store.get_booking(booking_id)
            if booking is None or booking.status is not BookingStatus.PENDING:
                continue
            if booking.event_date < today:
                reason = f"Event date {booking.event_date.isoformat()} passed without approval"
            elif booking.created_at is not None and as_utc(booking.created_at) < cutoff:
                reason = f"Pending for more than {rules.pending_expiry_hours} hours"
            else:
                continue
            transition = Transition(
                booking_id=booking_id,
                booking_ref=booking_ref,
                previous_status=BookingStatus.PENDING,
                new_status=BookingStatus.EXPIRED,
                reason=reason,
                transitioned_at=now,
            )
            await _persist(store, transition, actor="system")
        except Exception as exc:
            logger.exception("Error expiring booking %s", booking_ref)
            summary.errors.append(
                TransitionFailure(booking_id=booking_id, booking_ref=booking_ref, error=str(exc))
            )
            continue
        summary.transitions.append(transition)
        summary.transitioned += 1
    if summary.transitioned:
        logger.info("Expired %s stale pending bookings", summary.transitioned)
    return summary


async def upcoming_transitions(
    store: BookingStore,
    *,
    rules: BookingRules,
    hours_ahead: float = 24,
    calendar: CalendarClient | None = None,
    now: datetime | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> list[UpcomingTransition]:
    """Confirmed bookings that will complete within ``hours_ahead``, soonest first."""
    now = as_utc(now or datetime.now(UTC))
    horizon = now + timedelta(hours=hours_ahead)
    upcoming: list[UpcomingTransition] = []
    for booking in await store.get_bookings_by_status(BookingStatus.CONFIRMED):
        end, source = await resolve_end_time(
            booking, rules=rules, calendar=calendar, timeout=timeout
        )
        if now < end <= horizon:
            upcoming.append(
                UpcomingTransition(
                    booking_id=booking.id,
                    booking_ref=booking.booking_ref,
                    expected_transition_at=end,
                    minutes_until=round((end - now).total_seconds() / 60),
                    source=source,
                )
            )
    upcoming.sort(key=lambda item: item.expected_transition_at)
    return upcoming


async def transition_booking(
    store: BookingStore,
    booking_id: uuid.UUID,
    target: BookingStatus,
    *,
    reason: str,
    actor: str | None = None,
    now: datetime | None = None,
    **changes: Any,
) -> tuple[Booking, Transition]:
    """Move a booking to ``target`` if the lifecycle allows it."""
    booking = await store.get_booking(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    ensure_transition_allowed(booking.status, target)
    transition = Transition(
        booking_id=booking.id,
        booking_ref=booking.booking_ref,
        previous_status=booking.status,
        new_status=target,
        reason=reason,
        transitioned_at=as_utc(now or datetime.now(UTC)),
    )
    updated = await _persist(store, transition, actor=actor, **changes)
    return updated, transition


async def force_complete(
    store: BookingStore,
    booking_id: uuid.UUID,
    *,
    reason: str,
    actor: str | None = None,
    now: datetime | None = None,
) -> Transition:
    """Complete a confirmed booking immediately, ignoring its end time.

    Pending bookings are rejected like any other disallowed transition.
    """
    booking = await store.get_booking(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    if booking.status is BookingStatus.COMPLETED:
        raise BookingAlreadyCompletedError(
            f"Booking {booking.booking_ref} is already completed"
        )
    message = f"Manual completion: {reason}"
    if actor:
        message = f"{message} (by {actor})"
    _, transition = await transition_booking(
        store,
        booking_id,
        BookingStatus.COMPLETED,
        reason=message,
        actor=actor,
        now=now,
    )
    logger.info("Manually completed booking %s: %s", transition.booking_ref, reason)
    return transition


__all__ = [
    "EndTimeSource",
    "Transition",
    "TransitionFailure",
    "TransitionSummary",
    "UpcomingTransition",
    "allowed_transitions",
    "check_for_completion",
    "complete_if_due",
    "ensure_transition_allowed",
    "expire_stale_pending",
    "force_complete",
    "process_all",
    "resolve_end_time",
    "transition_booking",
    "upcoming_transitions",
]
