"""Day-level and slot-level availability for castles."""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import (
    CalendarClient,
    CalendarEvent,
    event_window,
)
from castle_bookings.models.booking import BookingStatus
from castle_bookings.models.castle import Castle
from castle_bookings.models.maintenance import MaintenanceStatus, MaintenanceWindow
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.conflict_detector import (
    BookingWindow,
    Conflict,
    available_slots,
    find_conflicts,
)
from castle_bookings.services.errors import (
    BookingValidationError,
    CastleNotFoundError,
)
from castle_bookings.services.event_description import decode_event
from castle_bookings.services.intervals import from_minutes, to_minutes

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 10.0
UNVERIFIED_REASON = "Availability could not be verified"


class DayStatus(str, enum.Enum):
    AVAILABLE = "available"
    PARTIALLY_BOOKED = "partially_booked"
    FULLY_BOOKED = "fully_booked"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


@dataclass(slots=True, frozen=True)
class SlotAvailability:
    start_time: time
    end_time: time
    available: bool


@dataclass(slots=True)
class DayAvailability:
    date: date
    status: DayStatus
    available_slots: int
    total_slots: int
    reason: str | None = None
    slots: list[SlotAvailability] = field(default_factory=list)


@dataclass(slots=True)
class AvailabilityCheck:
    available: bool
    reason: str | None = None
    conflicts: list[Conflict] = field(default_factory=list)


def slot_grid(rules: BookingRules) -> list[tuple[time, time]]:
    """Representable slots of a day, e.g. six 4-hour slots from 09:00 to 18:00."""
    length = int(round(rules.slot_length_hours * 60))
    step = rules.slot_step_minutes
    last_end = to_minutes(rules.slot_day_end)
    start = to_minutes(rules.slot_day_start)
    slots: list[tuple[time, time]] = []
    while start + length <= last_end:
        slots.append((from_minutes(start), from_minutes(start + length)))
        start += step
    return slots


def _maintenance_status(
    windows: list[MaintenanceWindow], day: date
) -> tuple[DayStatus, str] | None:
    covering = [window for window in windows if window.covers(day)]
    if not covering:
        return None
    out_of_service = [w for w in covering if w.status is MaintenanceStatus.OUT_OF_SERVICE]
    if out_of_service:
        return DayStatus.UNAVAILABLE, out_of_service[0].notes or "Castle is out of service"
    return DayStatus.MAINTENANCE, covering[0].notes or "Castle is under maintenance"


def day_availability(
    day: date,
    castle: BookingWindow,
    busy: list[BookingWindow],
    maintenance: list[MaintenanceWindow],
    *,
    rules: BookingRules,
) -> DayAvailability:
    """Classify one day for one castle.

    Maintenance wins over bookings; otherwise the status follows how many grid
    slots remain free under the buffered overlap test.
    """
    grid = slot_grid(rules)
    blocked = _maintenance_status(maintenance, day)
    if blocked is not None:
        status, reason = blocked
        return DayAvailability(
            date=day,
            status=status,
            available_slots=0,
            total_slots=len(grid),
            reason=reason,
            slots=[SlotAvailability(start, end, False) for start, end in grid],
        )

    buffer = timedelta(minutes=rules.buffer_minutes)
    slots: list[SlotAvailability] = []
    for start, end in grid:
        candidate = BookingWindow(
            castle_id=castle.castle_id,
            castle_name=castle.castle_name,
            event_date=day,
            start_time=start,
            end_time=end,
        )
        free = not any(
            conflict.blocking for conflict in find_conflicts(candidate, busy, buffer=buffer)
        )
        slots.append(SlotAvailability(start, end, free))

    free_count = sum(1 for slot in slots if slot.available)
    if free_count == 0:
        status = DayStatus.FULLY_BOOKED
    elif free_count < len(slots):
        status = DayStatus.PARTIALLY_BOOKED
    else:
        status = DayStatus.AVAILABLE
    return DayAvailability(
        date=day,
        status=status,
        available_slots=free_count,
        total_slots=len(slots),
        slots=slots,
    )


def _castle_window(castle: Castle, day: date, rules: BookingRules) -> BookingWindow:
    return BookingWindow(
        castle_id=castle.id,
        castle_name=castle.name,
        event_date=day,
        start_time=rules.slot_day_start,
        end_time=rules.slot_day_end,
    )


def calendar_busy_windows(
    events: list[CalendarEvent],
    castle_name: str,
    *,
    rules: BookingRules,
    linked_event_ids: set[str],
) -> list[BookingWindow]:
    """Windows of calendar events that name the castle but have no booking."""
    windows: list[BookingWindow] = []
    for event in events:
        if event.is_cancelled or event.id in linked_event_ids:
            continue
        details = decode_event(event.summary, event.description)
        if details.castle_name is None:
            continue
        if details.castle_name.strip().casefold() != castle_name.strip().casefold():
            continue
        span = event_window(event, day_start=rules.slot_day_start, day_end=rules.slot_day_end)
        if span is None:
            continue
        start = span[0].astimezone(rules.timezone)
        end = span[1].astimezone(rules.timezone)
        end_time = end.time() if end.date() == start.date() else time(23, 59)
        windows.append(
            BookingWindow(
                castle_name=details.castle_name,
                event_date=start.date(),
                start_time=start.time().replace(second=0, microsecond=0),
                end_time=end_time.replace(second=0, microsecond=0),
                booking_ref=details.booking_ref or f"calendar:{event.id}",
                status=BookingStatus.CONFIRMED,
            )
        )
    return windows


async def _load_calendar_busy(
    calendar: CalendarClient | None,
    castle: Castle,
    start_date: date,
    end_date: date,
    *,
    rules: BookingRules,
    linked_event_ids: set[str],
    timeout: float,
) -> list[BookingWindow]:
    if calendar is None:
        return []
    range_start = datetime.combine(start_date, time(0, 0), tzinfo=rules.timezone)
    range_end = datetime.combine(end_date + timedelta(days=1), time(0, 0), tzinfo=rules.timezone)
    try:
        events = await asyncio.wait_for(
            calendar.get_events_in_range(range_start, range_end), timeout
        )
    except Exception:
        logger.warning(
            "Calendar lookup failed for %s between %s and %s; ignoring calendar events",
            castle.name,
            start_date,
            end_date,
            exc_info=True,
        )
        return []
    return calendar_busy_windows(
        events, castle.name, rules=rules, linked_event_ids=linked_event_ids
    )


async def resolve_castle(
    store: SqlBookingStore,
    *,
    castle_id: uuid.UUID | None = None,
    castle_name: str | None = None,
) -> Castle:
    castle: Castle | None = None
    if castle_id is not None:
        castle = await store.get_castle(castle_id)
    elif castle_name:
        castle = await store.get_castle_by_name(castle_name)
    else:
        raise BookingValidationError({"castle": "A castle id or name is required"})
    if castle is None:
        raise CastleNotFoundError(castle_id or castle_name or "")
    return castle


async def get_availability(
    store: SqlBookingStore,
    castle_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    rules: BookingRules,
    calendar: CalendarClient | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> list[DayAvailability]:
    """Availability per day for ``castle_id`` across an inclusive date range.

    When bookings cannot be loaded every day is reported available with a
    reason; the booking-time conflict check remains the real gate.
    """
    if end_date < start_date:
        raise BookingValidationError({"end": "End date must not be before start date"})
    if (end_date - start_date).days > rules.max_range_days:
        raise BookingValidationError(
            {"end": f"Date range cannot exceed {rules.max_range_days} days"}
        )
    castle = await resolve_castle(store, castle_id=castle_id)
    days = [start_date + timedelta(days=offset) for offset in range((end_date - start_date).days + 1)]

    try:
        bookings = await store.active_bookings_between(start_date, end_date, castle_id=castle.id)
        maintenance = await store.maintenance_windows(castle.id, start_date, end_date)
    except Exception:
        logger.exception("Failed to load availability data for castle %s", castle.id)
        grid_size = len(slot_grid(rules))
        return [
            DayAvailability(
                date=day,
                status=DayStatus.AVAILABLE,
                available_slots=grid_size,
                total_slots=grid_size,
                reason=UNVERIFIED_REASON,
            )
            for day in days
        ]

    busy = [BookingWindow.from_booking(booking, rules=rules) for booking in bookings]
    busy.extend(
        await _load_calendar_busy(
            calendar,
            castle,
            start_date,
            end_date,
            rules=rules,
            linked_event_ids={b.calendar_event_id for b in bookings if b.calendar_event_id},
            timeout=timeout,
        )
    )
    by_day: dict[date, list[BookingWindow]] = {}
    for window in busy:
        by_day.setdefault(window.event_date, []).append(window)

    return [
        day_availability(
            day,
            _castle_window(castle, day, rules),
            by_day.get(day, []),
            maintenance,
            rules=rules,
        )
        for day in days
    ]


async def check_availability(
    store: SqlBookingStore,
    *,
    day: date,
    start_time: time,
    end_time: time,
    rules: BookingRules,
    castle_id: uuid.UUID | None = None,
    castle_name: str | None = None,
    calendar: CalendarClient | None = None,
    exclude_id: uuid.UUID | None = None,
    fail_open: bool = True,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> AvailabilityCheck:
    """Whether the castle is free for a specific window on ``day``.

    With ``fail_open`` a data failure answers "available" with a reason;
    otherwise the failure propagates.
    """
    castle = await resolve_castle(store, castle_id=castle_id, castle_name=castle_name)
    candidate = BookingWindow(
        castle_id=castle.id,
        castle_name=castle.name,
        event_date=day,
        start_time=start_time,
        end_time=end_time,
        id=exclude_id,
    )
    candidate.interval()

    try:
        maintenance = await store.maintenance_windows(castle.id, day, day)
        bookings = await store.active_bookings_between(day, day)
    except Exception:
        if not fail_open:
            raise
        logger.exception("Failed to load availability data for castle %s on %s", castle.id, day)
        return AvailabilityCheck(available=True, reason=UNVERIFIED_REASON)

    blocked = _maintenance_status(maintenance, day)
    if blocked is not None:
        return AvailabilityCheck(available=False, reason=blocked[1])

    existing = [BookingWindow.from_booking(booking, rules=rules) for booking in bookings]
    existing.extend(
        await _load_calendar_busy(
            calendar,
            castle,
            day,
            day,
            rules=rules,
            linked_event_ids={b.calendar_event_id for b in bookings if b.calendar_event_id},
            timeout=timeout,
        )
    )
    conflicts = find_conflicts(
        candidate,
        existing,
        exclude_id=exclude_id,
        buffer=timedelta(minutes=rules.buffer_minutes),
    )
    blocking = [conflict for conflict in conflicts if conflict.blocking]
    if blocking:
        return AvailabilityCheck(available=False, reason=blocking[0].message, conflicts=conflicts)
    return AvailabilityCheck(available=True, conflicts=conflicts)


async def get_available_slots(
    store: SqlBookingStore,
    castle_id: uuid.UUID,
    day: date,
    *,
    rules: BookingRules,
    duration_hours: float = 4,
) -> list[tuple[time, time]]:
    """Free hourly start times for ``duration_hours`` on ``day``."""
    castle = await resolve_castle(store, castle_id=castle_id)
    maintenance = await store.maintenance_windows(castle.id, day, day)
    if _maintenance_status(maintenance, day) is not None:
        return []
    bookings = await store.active_bookings_between(day, day, castle_id=castle.id)
    return available_slots(
        day,
        _castle_window(castle, day, rules),
        [BookingWindow.from_booking(booking, rules=rules) for booking in bookings],
        duration_hours=duration_hours,
        buffer=timedelta(minutes=rules.buffer_minutes),
    )


__all__ = [
    "AvailabilityCheck",
    "DayAvailability",
    "DayStatus",
    "SlotAvailability",
    "calendar_busy_windows",
    "check_availability",
    "day_availability",
    "get_availability",
    "get_available_slots",
    "resolve_castle",
    "slot_grid",
]
