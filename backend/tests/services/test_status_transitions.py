"""Tests for automatic and manual booking status transitions."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import (
    CalendarEvent,
    InMemoryCalendarClient,
)
from castle_bookings.models.booking import Booking, BookingStatus
from castle_bookings.services import status_transition_service as transitions
from castle_bookings.services.errors import (
    BookingAlreadyCompletedError,
    BookingNotFoundError,
    InvalidStatusTransitionError,
    StaleBookingError,
)
from castle_bookings.services.status_transition_service import EndTimeSource

pytestmark = pytest.mark.asyncio

LONDON = ZoneInfo("Europe/London")
EVENT_DAY = date(2024, 7, 10)
RULES = BookingRules()


def _local(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=LONDON)


def _booking(
    ref: str,
    *,
    status: BookingStatus = BookingStatus.CONFIRMED,
    day: date = EVENT_DAY,
    start: time | None = None,
    end: time | None = None,
    calendar_event_id: str | None = None,
    created_at: datetime | None = None,
) -> Booking:
    return Booking(
        id=uuid.uuid4(),
        booking_ref=ref,
        castle_id=uuid.uuid4(),
        castle_name="CastleA",
        customer_name="Jane Smith",
        event_date=day,
        start_time=start,
        end_time=end,
        status=status,
        calendar_event_id=calendar_event_id,
        created_at=created_at,
    )


class FakeStore:
    """Keeps bookings in a dict and optionally fails writes for chosen ids."""

    def __init__(self, *bookings: Booking, failing: set[uuid.UUID] | None = None) -> None:
        self.bookings = {booking.id: booking for booking in bookings}
        self.failing = failing or set()
        self.audit: list[dict[str, Any]] = []

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        return self.bookings.get(booking_id)

    async def get_bookings_by_status(
        self, status: BookingStatus | None = None
    ) -> list[Booking]:
        return [
            booking
            for booking in self.bookings.values()
            if status is None or booking.status is status
        ]

    async def update_booking_status(
        self,
        booking_id: uuid.UUID,
        status: BookingStatus,
        *,
        expected: BookingStatus | None = None,
        **changes: Any,
    ) -> Booking:
        if booking_id in self.failing:
            raise RuntimeError("database unavailable")
        booking = self.bookings[booking_id]
        if expected is not None and booking.status is not expected:
            raise StaleBookingError(f"Booking {booking_id} is {booking.status.value}")
        booking.status = status
        for name, value in changes.items():
            setattr(booking, name, value)
        return booking

    async def query_bookings_with_filters(self, query: Any) -> Any:
        raise NotImplementedError

    async def record_audit(self, **kwargs: Any) -> None:
        self.audit.append(kwargs)


async def test_explicit_end_time_wins_over_default() -> None:
    booking = _booking("TS1", start=time(10), end=time(14))

    end, source = await transitions.resolve_end_time(booking, rules=RULES)

    assert source is EndTimeSource.EXPLICIT
    assert end == _local(EVENT_DAY, 14).astimezone(UTC)


async def test_default_end_time_is_used_without_times() -> None:
    booking = _booking("TS1")

    before = await transitions.check_for_completion(
        booking, rules=RULES, now=_local(EVENT_DAY, 16, 59)
    )
    after = await transitions.check_for_completion(
        booking, rules=RULES, now=_local(EVENT_DAY, 17, 1)
    )

    assert before is None
    assert after is not None
    assert after.new_status is BookingStatus.COMPLETED
    assert "default 17:00" in after.reason


async def test_exact_end_is_not_yet_complete() -> None:
    booking = _booking("TS1", start=time(10), end=time(14))
    assert (
        await transitions.check_for_completion(
            booking, rules=RULES, now=_local(EVENT_DAY, 14)
        )
        is None
    )


async def test_calendar_end_used_when_booking_has_no_times() -> None:
    calendar = InMemoryCalendarClient()
    calendar.put_event(
        CalendarEvent(
            id="evt-1",
            start=_local(EVENT_DAY, 10),
            end=_local(EVENT_DAY, 15),
        )
    )
    booking = _booking("TS1", calendar_event_id="evt-1")

    end, source = await transitions.resolve_end_time(booking, rules=RULES, calendar=calendar)

    assert source is EndTimeSource.CALENDAR
    assert end == _local(EVENT_DAY, 15).astimezone(UTC)


async def test_unreadable_calendar_falls_back_to_default() -> None:
    class BrokenCalendar(InMemoryCalendarClient):
        async def get_event(self, event_id: str) -> CalendarEvent | None:
            raise RuntimeError("calendar down")

    booking = _booking("TS1", calendar_event_id="evt-1")

    end, source = await transitions.resolve_end_time(
        booking, rules=RULES, calendar=BrokenCalendar()
    )

    assert source is EndTimeSource.DEFAULT
    assert end == _local(EVENT_DAY, 17).astimezone(UTC)


async def test_only_confirmed_bookings_complete() -> None:
    for status in (BookingStatus.PENDING, BookingStatus.CANCELLED, BookingStatus.EXPIRED):
        booking = _booking("TS1", status=status, end=time(12))
        assert (
            await transitions.check_for_completion(
                booking, rules=RULES, now=_local(EVENT_DAY, 20)
            )
            is None
        )


async def test_completion_is_idempotent() -> None:
    booking = _booking("TS1", end=time(12))
    store = FakeStore(booking)
    now = _local(EVENT_DAY, 13)

    first = await transitions.complete_if_due(store, booking, rules=RULES, now=now)
    second = await transitions.complete_if_due(store, booking, rules=RULES, now=now)

    assert first is not None
    assert second is None
    assert booking.status is BookingStatus.COMPLETED
    assert booking.completed_at == now.astimezone(UTC)
    assert [entry["event_type"] for entry in store.audit] == ["booking.completed"]


async def test_batch_continues_after_a_failure() -> None:
    first = _booking("TS1", end=time(11))
    second = _booking("TS2", end=time(12))
    third = _booking("TS3", end=time(13))
    store = FakeStore(first, second, third, failing={second.id})

    summary = await transitions.process_all(store, rules=RULES, now=_local(EVENT_DAY, 18))

    assert summary.checked == 3
    assert summary.transitioned == 2
    assert [t.booking_ref for t in summary.transitions] == ["TS1", "TS3"]
    assert len(summary.errors) == 1
    assert summary.errors[0].booking_ref == "TS2"
    assert "database unavailable" in summary.errors[0].error
    assert second.status is BookingStatus.CONFIRMED


async def test_batch_skips_bookings_still_running() -> None:
    done = _booking("TS1", end=time(11))
    running = _booking("TS2", end=time(19))
    store = FakeStore(done, running)

    summary = await transitions.process_all(store, rules=RULES, now=_local(EVENT_DAY, 12))

    assert summary.transitioned == 1
    assert running.status is BookingStatus.CONFIRMED


async def test_force_complete_records_actor() -> None:
    booking = _booking("TS1", day=EVENT_DAY + timedelta(days=5))
    store = FakeStore(booking)

    transition = await transitions.force_complete(
        store, booking.id, reason="Customer cancelled early", actor="admin"
    )

    assert transition.reason == "Manual completion: Customer cancelled early (by admin)"
    assert booking.status is BookingStatus.COMPLETED
    with pytest.raises(BookingAlreadyCompletedError):
        await transitions.force_complete(store, booking.id, reason="again")


async def test_force_complete_requires_confirmed_booking() -> None:
    booking = _booking("TS1", status=BookingStatus.PENDING)
    store = FakeStore(booking)

    with pytest.raises(InvalidStatusTransitionError):
        await transitions.force_complete(store, booking.id, reason="done")
    with pytest.raises(BookingNotFoundError):
        await transitions.force_complete(store, uuid.uuid4(), reason="done")


async def test_terminal_states_are_final() -> None:
    for status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.EXPIRED):
        assert transitions.allowed_transitions(status) == set()
        with pytest.raises(InvalidStatusTransitionError):
            transitions.ensure_transition_allowed(status, BookingStatus.CONFIRMED)


async def test_transition_stamps_confirmation_time() -> None:
    booking = _booking("TS1", status=BookingStatus.PENDING)
    store = FakeStore(booking)
    now = _local(EVENT_DAY, 9)

    updated, transition = await transitions.transition_booking(
        store, booking.id, BookingStatus.CONFIRMED, reason="Approved", actor="admin", now=now
    )

    assert updated.status is BookingStatus.CONFIRMED
    assert updated.confirmed_at == now.astimezone(UTC)
    assert transition.previous_status is BookingStatus.PENDING
    assert store.audit[0]["actor"] == "admin"


async def test_expire_stale_pending() -> None:
    now = _local(EVENT_DAY, 12).astimezone(UTC)
    past = _booking(
        "TS1", status=BookingStatus.PENDING, day=EVENT_DAY - timedelta(days=1), created_at=now
    )
    old = _booking(
        "TS2",
        status=BookingStatus.PENDING,
        day=EVENT_DAY + timedelta(days=10),
        created_at=now - timedelta(hours=73),
    )
    fresh = _booking(
        "TS3",
        status=BookingStatus.PENDING,
        day=EVENT_DAY + timedelta(days=10),
        created_at=now - timedelta(hours=1),
    )
    store = FakeStore(past, old, fresh)

    summary = await transitions.expire_stale_pending(store, rules=RULES, now=now)

    assert summary.checked == 3
    assert {t.booking_ref for t in summary.transitions} == {"TS1", "TS2"}
    assert past.status is BookingStatus.EXPIRED
    assert old.status is BookingStatus.EXPIRED
    assert fresh.status is BookingStatus.PENDING


async def test_upcoming_transitions_sorted_soonest_first() -> None:
    late = _booking("TS1", end=time(16))
    early = _booking("TS2", end=time(13))
    tomorrow = _booking("TS3", day=EVENT_DAY + timedelta(days=2), end=time(13))
    store = FakeStore(late, early, tomorrow)

    upcoming = await transitions.upcoming_transitions(
        store, rules=RULES, hours_ahead=24, now=_local(EVENT_DAY, 12)
    )

    assert [item.booking_ref for item in upcoming] == ["TS2", "TS1"]
    assert upcoming[0].minutes_until == 60
