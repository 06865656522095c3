"""Calendar reconciliation tests using the in-memory calendar."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from castle_bookings.integrations.google_calendar import (
    CalendarClientError,
    CalendarEvent,
    CalendarEventData,
    InMemoryCalendarClient,
)
from castle_bookings.models import (
    BookingStatus,
    ConflictResolution,
    SyncConflictType,
    SyncStatus,
)
from castle_bookings.services import audit_service
from castle_bookings.services.calendar_sync_service import CalendarSyncService, SyncAction
from castle_bookings.services.errors import BookingValidationError, SyncConflictNotFoundError
from castle_bookings.services.event_description import EventDetails, encode_description

pytestmark = pytest.mark.asyncio

LONDON = ZoneInfo("Europe/London")
DAY = date(2024, 7, 10)


class FlakyCalendar(InMemoryCalendarClient):
    """In-memory calendar that fails for chosen event ids or on create."""

    def __init__(self, *, broken_ids: set[str] | None = None, fail_create: bool = False) -> None:
        super().__init__()
        self.broken_ids = broken_ids or set()
        self.fail_create = fail_create

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        if event_id in self.broken_ids:
            raise CalendarClientError("Calendar API returned 503", status_code=503)
        return await super().get_event(event_id)

    async def create_event(self, data: CalendarEventData) -> CalendarEvent:
        if self.fail_create:
            raise CalendarClientError("Calendar API returned 503", status_code=503)
        return await super().create_event(data)


class UndeletableCalendar(InMemoryCalendarClient):
    """In-memory calendar whose deletes always fail."""

    async def delete_event(self, event_id: str) -> bool:
        raise CalendarClientError("Calendar API returned 500", status_code=500)


def _later(minutes: int = 5) -> datetime:
    return datetime.now(UTC) + timedelta(minutes=minutes)


async def test_push_creates_event(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY, customer_phone="07700 900123")

    result = await sync_service.to_calendar(booking)

    assert result.success
    assert result.action is SyncAction.CREATED
    assert booking.calendar_event_id == result.calendar_event_id
    assert booking.sync_status is SyncStatus.SYNCED
    assert booking.last_synced_at is not None
    event = calendar.events[result.calendar_event_id]
    assert event.summary == "🏰 Jane Smith - CastleA"
    assert "Phone: 07700 900123" in event.description
    assert event.start == datetime(2024, 7, 10, 10, tzinfo=LONDON)
    assert event.end == datetime(2024, 7, 10, 14, tzinfo=LONDON)


async def test_push_without_times_uses_default_window(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY, start_time=None, end_time=None)

    result = await sync_service.to_calendar(booking)

    event = calendar.events[result.calendar_event_id]
    assert event.start == datetime(2024, 7, 10, 9, tzinfo=LONDON)
    assert event.end == datetime(2024, 7, 10, 17, tzinfo=LONDON)


async def test_push_recreates_missing_event(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY, calendar_event_id="gone")

    result = await sync_service.to_calendar(booking)

    assert result.success
    assert result.action is SyncAction.RECREATED
    assert result.calendar_event_id != "gone"
    assert result.calendar_event_id in calendar.events


async def test_push_failure_marks_booking(store, rules, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    service = CalendarSyncService(store, FlakyCalendar(fail_create=True), rules=rules)

    result = await service.to_calendar(booking)

    assert not result.success
    assert result.action is SyncAction.FAILED
    assert booking.sync_status is SyncStatus.SYNC_FAILED
    assert booking.sync_error == "Calendar API returned 503"
    assert booking.status is BookingStatus.CONFIRMED


async def test_pull_applies_calendar_edits(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    event = calendar.events[pushed.calendar_event_id]
    edited = calendar.edit_event(
        event.id,
        description=event.description.replace("Customer: Jane Smith", "Customer: Jane Doe"),
        start=datetime(2024, 7, 10, 11, tzinfo=LONDON),
        end=datetime(2024, 7, 10, 15, tzinfo=LONDON),
    )

    result = await sync_service.from_calendar(edited, booking.id)

    assert result.action is SyncAction.PULLED
    assert booking.customer_name == "Jane Doe"
    assert booking.start_time == time(11)
    assert booking.end_time == time(15)
    assert booking.castle_name == "CastleA"


async def test_pull_imports_unknown_event(sync_service, store, castles) -> None:
    description = encode_description(
        EventDetails(
            booking_ref="TS240710777",
            customer_name="Ann Lee",
            castle_name="CastleB",
            total_pence=15000,
            deposit_pence=5000,
        )
    )
    event = CalendarEvent(
        id="phone-booking",
        summary="🏰 Ann Lee - CastleB",
        description=description,
        start=datetime(2024, 7, 10, 12, tzinfo=LONDON),
        end=datetime(2024, 7, 10, 16, tzinfo=LONDON),
    )

    result = await sync_service.from_calendar(event)

    assert result.action is SyncAction.IMPORTED
    booking = await store.require_booking(result.booking_id)
    assert booking.booking_ref == "TS240710777"
    assert booking.castle_id == castles["CastleB"].id
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.deposit_pence == 5000
    assert booking.calendar_event_id == "phone-booking"


async def test_pull_with_unknown_castle_fails_softly(sync_service, castles) -> None:
    event = CalendarEvent(
        id="mystery",
        summary="🏰 Bob - Dragon Fortress",
        start=datetime(2024, 7, 10, 12, tzinfo=LONDON),
        end=datetime(2024, 7, 10, 16, tzinfo=LONDON),
    )

    result = await sync_service.from_calendar(event)

    assert not result.success
    assert "Dragon Fortress" in result.error


async def test_edits_on_both_sides_record_conflict(
    sync_service, calendar, store, session, make_booking
) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    booking.customer_phone = "07700 900999"
    booking.modified_at = _later(5)
    await store.save(booking)
    event = calendar.events[pushed.calendar_event_id]
    calendar.edit_event(
        event.id,
        description=event.description.replace("Customer: Jane Smith", "Customer: Jane Doe"),
        updated=_later(6),
    )

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.CONFLICT
    assert result.conflict is not None
    assert result.conflict.conflict_type is SyncConflictType.DETAILS_MISMATCH
    assert booking.sync_status is SyncStatus.CONFLICT
    assert booking.customer_name == "Jane Smith"

    again = await sync_service.bidirectional(booking)
    assert again.conflict.id == result.conflict.id
    assert len(await sync_service.list_conflicts()) == 1
    events = await audit_service.list_events(
        session, booking_id=booking.id, event_type="sync.conflict_detected"
    )
    assert len(events) == 1


async def test_never_synced_link_with_differences_is_a_conflict(
    sync_service, calendar, make_booking
) -> None:
    calendar.put_event(
        CalendarEvent(
            id="linked",
            summary="🏰 Someone Else - CastleA",
            start=datetime(2024, 7, 10, 12, tzinfo=LONDON),
            end=datetime(2024, 7, 10, 16, tzinfo=LONDON),
            updated=_later(1),
        )
    )
    booking = await make_booking(event_date=DAY, calendar_event_id="linked")

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.CONFLICT
    assert result.conflict.conflict_type is SyncConflictType.BOTH_MODIFIED


async def test_local_edit_is_pushed(sync_service, calendar, store, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    booking.customer_phone = "07700 900999"
    booking.modified_at = _later(5)
    await store.save(booking)

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.UPDATED
    assert "Phone: 07700 900999" in calendar.events[pushed.calendar_event_id].description


async def test_calendar_edit_is_pulled(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    event = calendar.events[pushed.calendar_event_id]
    calendar.edit_event(
        event.id,
        description=event.description.replace("Customer: Jane Smith", "Customer: Jane Doe"),
        updated=_later(5),
    )

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.PULLED
    assert booking.customer_name == "Jane Doe"


async def test_matching_sides_are_unchanged(sync_service, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    await sync_service.to_calendar(booking)

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.UNCHANGED
    assert booking.sync_status is SyncStatus.SYNCED


async def test_multi_line_address_is_unchanged_after_push(sync_service, make_booking) -> None:
    address = "1 High Street\nNewark\nNG24 1AA"
    booking = await make_booking(event_date=DAY, customer_address=address)
    await sync_service.to_calendar(booking)

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.UNCHANGED
    assert booking.customer_address == address


async def test_deleted_event_is_recreated(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    del calendar.events[pushed.calendar_event_id]

    result = await sync_service.bidirectional(booking)

    assert result.action is SyncAction.RECREATED
    assert booking.calendar_event_id in calendar.events
    assert booking.calendar_event_id != pushed.calendar_event_id


async def _conflicted(sync_service, calendar, store, make_booking):
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)
    booking.customer_phone = "07700 900999"
    booking.modified_at = _later(5)
    await store.save(booking)
    event = calendar.events[pushed.calendar_event_id]
    calendar.edit_event(
        event.id,
        description=event.description.replace("Customer: Jane Smith", "Customer: Jane Doe"),
        updated=_later(6),
    )
    result = await sync_service.bidirectional(booking)
    assert result.action is SyncAction.CONFLICT
    return booking, event.id


async def test_resolve_with_local_version(sync_service, calendar, store, make_booking) -> None:
    booking, event_id = await _conflicted(sync_service, calendar, store, make_booking)

    result = await sync_service.resolve_conflict(
        booking.id, ConflictResolution.USE_LOCAL, actor="admin"
    )

    assert result.success
    assert "Customer: Jane Smith" in calendar.events[event_id].description
    assert booking.sync_status is SyncStatus.SYNCED
    assert await sync_service.list_conflicts() == []
    resolved = await sync_service.list_conflicts(unresolved_only=False)
    assert resolved[0].resolution is ConflictResolution.USE_LOCAL
    assert resolved[0].resolved_by == "admin"


async def test_resolve_with_calendar_version(sync_service, calendar, store, make_booking) -> None:
    booking, _ = await _conflicted(sync_service, calendar, store, make_booking)

    await sync_service.resolve_conflict(booking.id, ConflictResolution.USE_CALENDAR)

    assert booking.customer_name == "Jane Doe"
    assert await sync_service.list_conflicts() == []


async def test_resolve_manually(sync_service, calendar, store, make_booking) -> None:
    booking, event_id = await _conflicted(sync_service, calendar, store, make_booking)

    await sync_service.resolve_conflict(
        booking.id,
        ConflictResolution.MANUAL,
        manual_changes={"customer_name": "Jane Agreed", "start_time": "11:00", "end_time": "15:00"},
    )

    assert booking.customer_name == "Jane Agreed"
    assert booking.start_time == time(11)
    assert calendar.events[event_id].start == datetime(2024, 7, 10, 11, tzinfo=LONDON)


async def test_manual_resolution_rejects_other_fields(
    sync_service, calendar, store, make_booking
) -> None:
    booking, _ = await _conflicted(sync_service, calendar, store, make_booking)

    with pytest.raises(BookingValidationError):
        await sync_service.resolve_conflict(
            booking.id,
            ConflictResolution.MANUAL,
            manual_changes={"total_price_pence": 1},
        )
    assert len(await sync_service.list_conflicts()) == 1


async def test_resolve_without_conflict_is_not_found(sync_service, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    with pytest.raises(SyncConflictNotFoundError):
        await sync_service.resolve_conflict(booking.id, ConflictResolution.USE_LOCAL)


async def test_delete_event_expires_live_booking(sync_service, calendar, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    pushed = await sync_service.to_calendar(booking)

    result = await sync_service.delete_calendar_event(booking, actor="admin")

    assert result.action is SyncAction.DELETED
    assert pushed.calendar_event_id not in calendar.events
    assert booking.calendar_event_id is None
    assert booking.status is BookingStatus.EXPIRED


async def test_delete_of_missing_event_still_expires_booking(
    sync_service, calendar, make_booking
) -> None:
    booking = await make_booking(event_date=DAY, calendar_event_id="already-gone")

    result = await sync_service.delete_calendar_event(booking)

    assert result.success
    assert result.action is SyncAction.DELETED
    assert "already-gone" not in calendar.events
    assert booking.calendar_event_id is None
    assert booking.status is BookingStatus.EXPIRED


async def test_delete_failure_keeps_booking_live(store, rules, make_booking) -> None:
    calendar = UndeletableCalendar()
    service = CalendarSyncService(store, calendar, rules=rules)
    booking = await make_booking(event_date=DAY)
    pushed = await service.to_calendar(booking)

    result = await service.delete_calendar_event(booking)

    assert not result.success
    assert result.action is SyncAction.FAILED
    assert booking.sync_status is SyncStatus.SYNC_FAILED
    assert booking.sync_error == "Calendar API returned 500"
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.calendar_event_id == pushed.calendar_event_id
    assert pushed.calendar_event_id in calendar.events


async def test_sync_all_collects_failures(store, rules, make_booking) -> None:
    calendar = FlakyCalendar(broken_ids={"broken"})
    service = CalendarSyncService(store, calendar, rules=rules)
    await make_booking(event_date=DAY)
    await make_booking("CastleB", event_date=DAY, calendar_event_id="broken")
    await make_booking(event_date=DAY + timedelta(days=1), status=BookingStatus.PENDING)

    summary = await service.sync_all()

    assert summary.checked == 2
    assert summary.synced == 1
    assert summary.failed == 1
    assert summary.errors[0].error == "Calendar API returned 503"


async def test_import_only_takes_booking_events(sync_service, calendar, castles) -> None:
    start = datetime(2024, 7, 10, 10, tzinfo=LONDON)
    calendar.put_event(
        CalendarEvent(
            id="castle",
            summary="🏰 Ann Lee - CastleB",
            start=start,
            end=start + timedelta(hours=4),
        )
    )
    calendar.put_event(
        CalendarEvent(id="dentist", summary="Dentist", start=start, end=start + timedelta(hours=1))
    )

    summary = await sync_service.import_calendar_events(
        start - timedelta(days=1), start + timedelta(days=1)
    )
    repeat = await sync_service.import_calendar_events(
        start - timedelta(days=1), start + timedelta(days=1)
    )

    assert summary.checked == 1
    assert summary.synced == 1
    assert repeat.checked == 0


async def test_status_report(sync_service, make_booking) -> None:
    booking = await make_booking(event_date=DAY)
    await make_booking(event_date=DAY + timedelta(days=1))
    await sync_service.to_calendar(booking)

    report = await sync_service.status_report()

    assert report.connected
    assert report.counts[SyncStatus.SYNCED] == 1
    assert report.counts[SyncStatus.PENDING_SYNC] == 1
    assert report.active_conflicts == 0
