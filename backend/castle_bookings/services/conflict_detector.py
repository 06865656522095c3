"""Conflict detection and advisory checks for candidate bookings.

Everything here is a pure function over data supplied by the caller. Fetching a
fresh list of existing bookings is the caller's job; nothing in this module
touches the database.
"""
from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from castle_bookings.core.settings import BookingRules
from castle_bookings.models.booking import Booking, BookingStatus
from castle_bookings.services.errors import BookingValidationError
from castle_bookings.services.intervals import (
    TimeInterval,
    as_utc,
    duration_errors,
    format_time,
    from_minutes,
    to_minutes,
)

logger = logging.getLogger(__name__)

_IGNORED_STATUSES = {BookingStatus.EXPIRED, BookingStatus.CANCELLED}

SLOT_SEARCH_OPEN = time(8, 0)
SLOT_SEARCH_CLOSE = time(20, 0)
EARLY_START_HOUR = 8
LATE_END_HOUR = 20
LONG_DURATION_HOURS = 8


class ConflictType(str, enum.Enum):
    """How a candidate collides with an existing booking."""

    SAME_RESOURCE = "same_resource"
    TIME_OVERLAP = "time_overlap"


@dataclass(slots=True, frozen=True)
class BookingWindow:
    """The slice of a booking the detector needs: which castle, which day, when."""

    castle_name: str
    event_date: date
    start_time: time
    end_time: time
    castle_id: uuid.UUID | None = None
    id: uuid.UUID | None = None
    booking_ref: str | None = None
    status: BookingStatus = BookingStatus.PENDING

    @classmethod
    def from_booking(cls, booking: Booking, *, rules: BookingRules) -> "BookingWindow":
        """Project a stored booking, preferring explicit timestamps over times of day.

        Bookings stored without any time information are assumed to occupy the
        business day from the first slot until the default event end.
        """
        if booking.start_at is not None:
            start_time = as_utc(booking.start_at).astimezone(rules.timezone).time()
        else:
            start_time = booking.start_time or rules.slot_day_start
        if booking.end_at is not None:
            end_time = as_utc(booking.end_at).astimezone(rules.timezone).time()
        else:
            end_time = booking.end_time or rules.default_end_time
        return cls(
            id=booking.id,
            booking_ref=booking.booking_ref,
            castle_id=booking.castle_id,
            castle_name=booking.castle_name,
            event_date=booking.event_date,
            start_time=start_time.replace(second=0, microsecond=0, tzinfo=None),
            end_time=end_time.replace(second=0, microsecond=0, tzinfo=None),
            status=booking.status,
        )

    def interval(self) -> TimeInterval:
        try:
            return TimeInterval.from_day(self.event_date, self.start_time, self.end_time, UTC)
        except ValueError as exc:
            raise BookingValidationError(
                {"end_time": "End time must be after start time"}
            ) from exc

    def same_resource(self, other: "BookingWindow") -> bool:
        if self.castle_id is not None and other.castle_id is not None:
            return self.castle_id == other.castle_id
        return self.castle_name.strip().casefold() == other.castle_name.strip().casefold()

    @property
    def time_range(self) -> str:
        return f"{format_time(self.start_time)} - {format_time(self.end_time)}"


@dataclass(slots=True, frozen=True)
class Conflict:
    """An existing booking that collides with the candidate."""

    conflict_type: ConflictType
    booking_id: uuid.UUID | None
    booking_ref: str | None
    castle_name: str
    event_date: date
    start_time: time
    end_time: time
    message: str

    @property
    def blocking(self) -> bool:
        return self.conflict_type is ConflictType.SAME_RESOURCE


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating a candidate booking."""

    errors: dict[str, str] = field(default_factory=dict)
    conflicts: list[Conflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def blocking_conflicts(self) -> list[Conflict]:
        return [conflict for conflict in self.conflicts if conflict.blocking]

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.blocking_conflicts


def _active_on_day(
    existing: Iterable[BookingWindow],
    *,
    day: date,
    exclude_id: uuid.UUID | None,
) -> list[BookingWindow]:
    return [
        booking
        for booking in existing
        if booking.status not in _IGNORED_STATUSES
        and booking.event_date == day
        and (exclude_id is None or booking.id != exclude_id)
    ]


def _safe_interval(window: BookingWindow) -> TimeInterval | None:
    try:
        return window.interval()
    except BookingValidationError:
        logger.warning(
            "Skipping booking %s with an invalid time window %s",
            window.booking_ref or window.id,
            window.time_range,
        )
        return None


def find_conflicts(
    candidate: BookingWindow,
    existing: Iterable[BookingWindow],
    *,
    exclude_id: uuid.UUID | None = None,
    buffer: timedelta = timedelta(minutes=30),
) -> list[Conflict]:
    """Return every active booking on the candidate's day that overlaps it.

    Results keep the order of ``existing``. Same-castle overlaps are blocking;
    overlaps with other castles are reported as warnings.
    """
    candidate_interval = candidate.interval()
    conflicts: list[Conflict] = []
    for booking in _active_on_day(existing, day=candidate.event_date, exclude_id=exclude_id):
        interval = _safe_interval(booking)
        if interval is None or not candidate_interval.overlaps(interval, buffer):
            continue
        if candidate.same_resource(booking):
            conflict_type = ConflictType.SAME_RESOURCE
            message = (
                f"{booking.castle_name} is already booked for "
                f"{booking.time_range} on this date"
            )
        else:
            conflict_type = ConflictType.TIME_OVERLAP
            message = (
                "Time overlap with existing booking: "
                f"{booking.castle_name} ({booking.time_range})"
            )
        conflicts.append(
            Conflict(
                conflict_type=conflict_type,
                booking_id=booking.id,
                booking_ref=booking.booking_ref,
                castle_name=booking.castle_name,
                event_date=booking.event_date,
                start_time=booking.start_time,
                end_time=booking.end_time,
                message=message,
            )
        )
    return conflicts


def booking_warnings(
    candidate: BookingWindow,
    *,
    total_pence: int,
    deposit_pence: int,
    rules: BookingRules | None = None,
    today: date | None = None,
) -> list[str]:
    """Advisory notes for a booking. Never blocking."""
    rules = rules or BookingRules()
    today = today or datetime.now(rules.timezone).date()
    warnings: list[str] = []

    if candidate.start_time.hour < EARLY_START_HOUR:
        warnings.append("Early morning booking: Consider if setup time is adequate")
    if candidate.end_time.hour > LATE_END_HOUR:
        warnings.append("Late evening booking: Consider noise restrictions and lighting")
    if candidate.event_date.weekday() >= 5:
        warnings.append("Weekend booking: Expect higher demand and potential delays")
    if (candidate.event_date - today).days < rules.short_notice_days:
        warnings.append("Short-notice booking: Confirm availability and setup logistics")

    duration_minutes = to_minutes(candidate.end_time) - to_minutes(candidate.start_time)
    if duration_minutes > LONG_DURATION_HOURS * 60:
        warnings.append("Extended booking duration: Ensure adequate supervision and breaks")

    if total_pence > 0 and deposit_pence / total_pence < rules.low_deposit_ratio:
        warnings.append(
            "Low deposit ratio: Consider requiring higher deposit for booking security"
        )
    return warnings


def validate_booking(
    candidate: BookingWindow,
    existing: Iterable[BookingWindow],
    *,
    total_pence: int,
    deposit_pence: int,
    exclude_id: uuid.UUID | None = None,
    rules: BookingRules | None = None,
    today: date | None = None,
) -> ValidationResult:
    """Run field checks, conflict detection and warnings in one pass."""
    rules = rules or BookingRules()
    result = ValidationResult()

    if total_pence < 0:
        result.errors["total_price"] = "Total price cannot be negative"
    if deposit_pence < 0:
        result.errors["deposit"] = "Deposit cannot be negative"
    elif deposit_pence > total_pence:
        result.errors["deposit"] = "Deposit cannot exceed total price"

    try:
        interval = candidate.interval()
    except BookingValidationError as exc:
        result.errors.update(exc.errors)
        return result

    result.errors.update(
        duration_errors(
            interval,
            min_hours=rules.min_duration_hours,
            max_hours=rules.max_duration_hours,
        )
    )
    result.conflicts = find_conflicts(
        candidate,
        existing,
        exclude_id=exclude_id,
        buffer=timedelta(minutes=rules.buffer_minutes),
    )
    result.warnings = booking_warnings(
        candidate,
        total_pence=total_pence,
        deposit_pence=deposit_pence,
        rules=rules,
        today=today,
    )
    return result


def available_slots(
    event_date: date,
    castle: BookingWindow | str,
    existing: Iterable[BookingWindow],
    *,
    duration_hours: float = 4,
    buffer: timedelta = timedelta(minutes=30),
    exclude_id: uuid.UUID | None = None,
    open_at: time = SLOT_SEARCH_OPEN,
    close_at: time = SLOT_SEARCH_CLOSE,
) -> list[tuple[time, time]]:
    """Hourly start times on ``event_date`` where the castle is free for the duration."""
    if duration_hours <= 0:
        raise BookingValidationError({"duration_hours": "Duration must be positive"})
    if isinstance(castle, str):
        castle = BookingWindow(
            castle_name=castle,
            event_date=event_date,
            start_time=open_at,
            end_time=close_at,
        )
    busy = [
        interval
        for booking in _active_on_day(existing, day=event_date, exclude_id=exclude_id)
        if castle.same_resource(booking)
        and (interval := _safe_interval(booking)) is not None
    ]

    duration_minutes = int(round(duration_hours * 60))
    close_minutes = to_minutes(close_at)
    slots: list[tuple[time, time]] = []
    start = to_minutes(open_at)
    while start + duration_minutes <= close_minutes:
        slot_start = from_minutes(start)
        slot_end = from_minutes(start + duration_minutes)
        slot = TimeInterval.from_day(event_date, slot_start, slot_end, UTC)
        if not any(slot.overlaps(interval, buffer) for interval in busy):
            slots.append((slot_start, slot_end))
        start += 60
    return slots


def suggest_alternative_slots(
    candidate: BookingWindow,
    existing: Iterable[BookingWindow],
    *,
    exclude_id: uuid.UUID | None = None,
    buffer: timedelta = timedelta(minutes=30),
) -> list[tuple[time, time]]:
    """Free windows of the candidate's length on the same day and castle."""
    duration_hours = candidate.interval().duration_hours
    return available_slots(
        candidate.event_date,
        candidate,
        existing,
        duration_hours=duration_hours,
        buffer=buffer,
        exclude_id=exclude_id if exclude_id is not None else candidate.id,
    )
