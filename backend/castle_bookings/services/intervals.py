"""Time windows occupied by bookings and the buffered overlap test."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo

DEFAULT_BUFFER = timedelta(minutes=30)
MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def parse_time_of_day(value: str | time) -> time:
    """Parse ``HH:MM`` into a :class:`time`; ``time`` values pass through."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    match = _TIME_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def to_minutes(value: time) -> int:
    """Minutes since midnight (0-1439)."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes since midnight out of range: {minutes}")
    return time(minutes // 60, minutes % 60)


def format_time(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def as_utc(value: datetime) -> datetime:
    """Normalise to UTC; naive values (as read back from SQLite) are already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(slots=True, frozen=True)
class TimeInterval:
    """Half-open ``[start, end)`` window between two absolute timestamps."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Interval end must be after its start")

    @classmethod
    def from_day(
        cls,
        day: date,
        start_time: str | time,
        end_time: str | time,
        tz: tzinfo,
    ) -> "TimeInterval":
        start = datetime.combine(day, parse_time_of_day(start_time), tzinfo=tz)
        end = datetime.combine(day, parse_time_of_day(end_time), tzinfo=tz)
        return cls(start=start, end=end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / 3600

    def overlaps(self, other: "TimeInterval", buffer: timedelta = DEFAULT_BUFFER) -> bool:
        """Whether the windows collide once ``buffer`` is added around this one.

        The test is symmetric: padding either side by the same buffer gives the
        same answer. With a zero buffer, back-to-back windows do not overlap.
        """
        return not (
            self.end + buffer <= other.start or self.start - buffer >= other.end
        )

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def duration_errors(
    interval: TimeInterval,
    *,
    min_hours: float,
    max_hours: float,
) -> dict[str, str]:
    """Return field errors for a booking window outside the allowed duration."""
    errors: dict[str, str] = {}
    hours = interval.duration_hours
    if hours < min_hours:
        errors["end_time"] = f"Minimum booking duration is {min_hours:g} hours"
    elif hours > max_hours:
        errors["end_time"] = f"Maximum booking duration is {max_hours:g} hours"
    return errors
