"""Keep bookings and their calendar events in step.

Three directions are supported: pushing a booking to the calendar, pulling an
event into a booking, and a bidirectional pass that decides which side wins.
When both sides were edited since the last sync the pass records a
``SyncConflict`` and stops; an admin resolves it explicitly.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, TypeVar

from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import (
    CalendarClient,
    CalendarClientError,
    CalendarEvent,
    CalendarEventData,
)
from castle_bookings.models.booking import Booking, BookingStatus, PaymentMethod, SyncStatus
from castle_bookings.models.sync_conflict import (
    ConflictResolution,
    SyncConflict,
    SyncConflictType,
)
from castle_bookings.services import status_transition_service
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.conflict_detector import BookingWindow
from castle_bookings.services.errors import (
    BookingValidationError,
    CastleNotFoundError,
    SyncConflictNotFoundError,
)
from castle_bookings.services.event_description import (
    EventDetails,
    decode_event,
    details_for_booking,
    encode_description,
    encode_summary,
)
from castle_bookings.services.intervals import as_utc, duration_errors, parse_time_of_day

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CALL_TIMEOUT = 10.0

MANUAL_FIELDS = frozenset(
    {
        "customer_name",
        "customer_email",
        "customer_phone",
        "customer_address",
        "notes",
        "event_date",
        "start_time",
        "end_time",
    }
)


class SyncAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    RECREATED = "recreated"
    PULLED = "pulled"
    IMPORTED = "imported"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass(slots=True)
class SyncResult:
    success: bool
    action: SyncAction
    booking_id: uuid.UUID | None = None
    calendar_event_id: str | None = None
    error: str | None = None
    conflict: SyncConflict | None = None


@dataclass(slots=True)
class SyncFailure:
    booking_id: uuid.UUID
    booking_ref: str | None
    error: str


@dataclass(slots=True)
class SyncSummary:
    checked: int = 0
    synced: int = 0
    conflicts: int = 0
    failed: int = 0
    results: list[SyncResult] = field(default_factory=list)
    errors: list[SyncFailure] = field(default_factory=list)


@dataclass(slots=True)
class SyncStatusReport:
    connected: bool
    counts: dict[SyncStatus, int]
    active_conflicts: int


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _iso(value: datetime | date | time | None) -> str | None:
    return value.isoformat() if value is not None else None


class CalendarSyncService:
    """Reconciles booking records with calendar events."""

    def __init__(
        self,
        store: SqlBookingStore,
        calendar: CalendarClient,
        *,
        rules: BookingRules,
        timeout: float = DEFAULT_CALL_TIMEOUT,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._rules = rules
        self._timeout = timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, self._timeout)

    # Booking <-> event projections

    def booking_span(self, booking: Booking) -> tuple[datetime, datetime]:
        """UTC start and end of the booking's occupied window."""
        tz = self._rules.timezone
        if booking.start_at is not None:
            start = as_utc(booking.start_at)
        else:
            start_time = booking.start_time or self._rules.slot_day_start
            start = datetime.combine(booking.event_date, start_time, tzinfo=tz).astimezone(UTC)
        if booking.end_at is not None:
            end = as_utc(booking.end_at)
        else:
            end_time = booking.end_time or self._rules.default_end_time
            end = datetime.combine(booking.event_date, end_time, tzinfo=tz).astimezone(UTC)
        return start, end

    def event_data(self, booking: Booking) -> CalendarEventData:
        details = details_for_booking(booking)
        start, end = self.booking_span(booking)
        return CalendarEventData(
            summary=encode_summary(details),
            description=encode_description(details),
            start=start.astimezone(self._rules.timezone),
            end=end.astimezone(self._rules.timezone),
            location=booking.customer_address,
            attendee_email=booking.customer_email,
            attendee_name=booking.customer_name,
        )

    def _event_times(self, event: CalendarEvent) -> dict[str, Any]:
        if event.start is None or event.all_day:
            day = (event.start or datetime.now(UTC)).astimezone(self._rules.timezone).date()
            return {
                "event_date": day,
                "start_time": None,
                "end_time": None,
                "start_at": None,
                "end_at": None,
            }
        start = event.start.astimezone(self._rules.timezone)
        end = (event.end or event.start).astimezone(self._rules.timezone)
        return {
            "event_date": start.date(),
            "start_time": start.time().replace(second=0, microsecond=0, tzinfo=None),
            "end_time": end.time().replace(second=0, microsecond=0, tzinfo=None),
            "start_at": as_utc(event.start),
            "end_at": as_utc(event.end or event.start),
        }

    def differences(self, booking: Booking, event: CalendarEvent) -> set[str]:
        """Which aspects differ: ``time``, ``details`` or both."""
        found: set[str] = set()
        start, end = self.booking_span(booking)
        if (
            event.start is None
            or event.end is None
            or as_utc(event.start) != start
            or as_utc(event.end) != end
        ):
            found.add("time")

        details = decode_event(event.summary, event.description)
        pairs = (
            (booking.customer_name, details.customer_name),
            (booking.customer_email, details.customer_email),
            (booking.customer_phone, details.customer_phone),
            (booking.customer_address, details.location or event.location),
            (booking.notes, details.notes),
        )
        if any(_clean(local) != _clean(remote) for local, remote in pairs):
            found.add("details")
        return found

    def _booking_snapshot(self, booking: Booking) -> dict[str, Any]:
        start, end = self.booking_span(booking)
        return {
            "booking_ref": booking.booking_ref,
            "customer_name": booking.customer_name,
            "customer_email": booking.customer_email,
            "customer_phone": booking.customer_phone,
            "customer_address": booking.customer_address,
            "notes": booking.notes,
            "castle_name": booking.castle_name,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "modified_at": _iso(booking.modified_at),
            "last_synced_at": _iso(booking.last_synced_at),
        }

    @staticmethod
    def _event_snapshot(event: CalendarEvent) -> dict[str, Any]:
        return {
            "id": event.id,
            "summary": event.summary,
            "description": event.description,
            "location": event.location,
            "start": _iso(event.start),
            "end": _iso(event.end),
            "updated": _iso(event.updated),
            "status": event.status,
        }

    @staticmethod
    def _synced_at(event: CalendarEvent) -> datetime:
        now = datetime.now(UTC)
        if event.updated is None:
            return now
        return max(now, as_utc(event.updated))

    # Directions

    async def to_calendar(self, booking: Booking) -> SyncResult:
        """Create or update the booking's event.

        Calendar failures are recorded on the booking as ``sync_failed`` and
        returned, never raised.
        """
        booking_id = booking.id
        action = SyncAction.UPDATED if booking.calendar_event_id else SyncAction.CREATED
        try:
            data = self.event_data(booking)
            if booking.calendar_event_id:
                try:
                    event = await self._call(
                        self._calendar.update_event(booking.calendar_event_id, data)
                    )
                except CalendarClientError as exc:
                    if not exc.not_found:
                        raise
                    logger.info(
                        "Calendar event %s for booking %s is gone; recreating",
                        booking.calendar_event_id,
                        booking.booking_ref,
                    )
                    event = await self._call(self._calendar.create_event(data))
                    action = SyncAction.RECREATED
            else:
                event = await self._call(self._calendar.create_event(data))
        except Exception as exc:
            logger.exception("Failed to sync booking %s to calendar", booking.booking_ref)
            message = str(exc) or exc.__class__.__name__
            await self._store.update_sync_state(
                booking, sync_status=SyncStatus.SYNC_FAILED, sync_error=message
            )
            return SyncResult(
                success=False,
                action=SyncAction.FAILED,
                booking_id=booking_id,
                calendar_event_id=booking.calendar_event_id,
                error=message,
            )

        await self._store.update_sync_state(
            booking,
            sync_status=SyncStatus.SYNCED,
            synced_at=self._synced_at(event),
            calendar_event_id=event.id,
        )
        logger.info(
            "Calendar event %s %s for booking %s", event.id, action.value, booking.booking_ref
        )
        return SyncResult(
            success=True, action=action, booking_id=booking_id, calendar_event_id=event.id
        )

    async def _apply_event(self, booking: Booking, event: CalendarEvent) -> Booking:
        details = decode_event(event.summary, event.description)
        synced_at = self._synced_at(event)
        if details.customer_name:
            booking.customer_name = details.customer_name
        booking.customer_email = details.customer_email
        booking.customer_phone = details.customer_phone
        booking.customer_address = details.location or event.location
        booking.notes = details.notes
        for name, value in self._event_times(event).items():
            setattr(booking, name, value)
        booking.modified_at = synced_at
        return await self._store.update_sync_state(
            booking,
            sync_status=SyncStatus.SYNCED,
            synced_at=synced_at,
            calendar_event_id=event.id,
        )

    async def _create_from_event(self, event: CalendarEvent, details: EventDetails) -> Booking:
        if not details.castle_name:
            raise CastleNotFoundError("(not named in event)")
        castle = await self._store.get_castle_by_name(details.castle_name)
        if castle is None:
            raise CastleNotFoundError(details.castle_name)
        total = details.total_pence if details.total_pence is not None else castle.price_pence
        deposit = min(details.deposit_pence or 0, total)
        synced_at = self._synced_at(event)
        times = self._event_times(event)
        booking = Booking(
            booking_ref=details.booking_ref
            or await self._store.allocate_booking_ref(times["event_date"]),
            castle_id=castle.id,
            castle_name=castle.name,
            customer_name=details.customer_name or "Unknown Customer",
            customer_email=details.customer_email,
            customer_phone=details.customer_phone,
            customer_address=details.location or event.location,
            notes=details.notes,
            status=BookingStatus.CONFIRMED,
            confirmed_at=synced_at,
            payment_method=details.payment_method or PaymentMethod.CASH,
            total_price_pence=total,
            deposit_pence=deposit,
            calendar_event_id=event.id,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=synced_at,
            modified_at=synced_at,
            **times,
        )
        booking = await self._store.add_booking(booking)
        await self._store.record_audit(
            event_type="booking.imported",
            booking_id=booking.id,
            description=f"Created from calendar event {event.id}",
            actor="calendar",
        )
        return booking

    async def from_calendar(
        self, event: CalendarEvent, booking_id: uuid.UUID | None = None
    ) -> SyncResult:
        """Copy an event's details into its booking, creating one if needed.

        Castle and price are never changed on an existing booking.
        """
        try:
            if not event.id:
                raise ValueError("Calendar event is missing an id")
            if booking_id is not None:
                booking = await self._store.require_booking(booking_id)
            else:
                details = decode_event(event.summary, event.description)
                booking = await self._store.get_booking_by_event_id(event.id)
                if booking is None and details.booking_ref:
                    booking = await self._store.get_booking_by_ref(details.booking_ref)
                if booking is None:
                    created = await self._create_from_event(event, details)
                    logger.info(
                        "Created booking %s from calendar event %s", created.booking_ref, event.id
                    )
                    return SyncResult(
                        success=True,
                        action=SyncAction.IMPORTED,
                        booking_id=created.id,
                        calendar_event_id=event.id,
                    )
            booking = await self._apply_event(booking, event)
        except Exception as exc:
            logger.exception("Failed to sync calendar event %s to booking", event.id)
            return SyncResult(
                success=False,
                action=SyncAction.FAILED,
                booking_id=booking_id,
                calendar_event_id=event.id,
                error=str(exc) or exc.__class__.__name__,
            )
        logger.info("Updated booking %s from calendar event %s", booking.booking_ref, event.id)
        return SyncResult(
            success=True,
            action=SyncAction.PULLED,
            booking_id=booking.id,
            calendar_event_id=event.id,
        )

    async def _record_conflict(
        self, booking: Booking, event: CalendarEvent, differences: set[str]
    ) -> SyncResult:
        if differences == {"time"}:
            conflict_type = SyncConflictType.TIME_MISMATCH
        elif differences == {"details"}:
            conflict_type = SyncConflictType.DETAILS_MISMATCH
        else:
            conflict_type = SyncConflictType.BOTH_MODIFIED

        conflict = await self._store.get_open_conflict(booking.id)
        if conflict is None:
            conflict = await self._store.add_sync_conflict(
                SyncConflict(
                    booking_id=booking.id,
                    calendar_event_id=event.id,
                    conflict_type=conflict_type,
                    local_snapshot=self._booking_snapshot(booking),
                    calendar_snapshot=self._event_snapshot(event),
                )
            )
            await self._store.record_audit(
                event_type="sync.conflict_detected",
                booking_id=booking.id,
                description=f"Booking and calendar event both changed ({conflict_type.value})",
                actor="system",
                payload={"calendar_event_id": event.id, "conflict_type": conflict_type.value},
            )
        await self._store.update_sync_state(
            booking, sync_status=SyncStatus.CONFLICT, sync_error=None
        )
        logger.warning(
            "Sync conflict (%s) for booking %s and event %s",
            conflict_type.value,
            booking.booking_ref,
            event.id,
        )
        return SyncResult(
            success=False,
            action=SyncAction.CONFLICT,
            booking_id=booking.id,
            calendar_event_id=event.id,
            conflict=conflict,
        )

    async def bidirectional(self, booking: Booking) -> SyncResult:
        """Reconcile one booking with its event; the newer side wins."""
        if not booking.calendar_event_id:
            return await self.to_calendar(booking)

        try:
            event = await self._call(self._calendar.get_event(booking.calendar_event_id))
        except Exception as exc:
            logger.exception("Could not load calendar event for booking %s", booking.booking_ref)
            message = str(exc) or exc.__class__.__name__
            await self._store.update_sync_state(
                booking, sync_status=SyncStatus.SYNC_FAILED, sync_error=message
            )
            return SyncResult(
                success=False,
                action=SyncAction.FAILED,
                booking_id=booking.id,
                calendar_event_id=booking.calendar_event_id,
                error=message,
            )

        if event is None or event.is_cancelled:
            logger.info(
                "Calendar event %s for booking %s was deleted; recreating",
                booking.calendar_event_id,
                booking.booking_ref,
            )
            booking = await self._store.update_sync_state(
                booking, sync_status=SyncStatus.PENDING_SYNC, calendar_event_id=None
            )
            result = await self.to_calendar(booking)
            if result.success:
                result.action = SyncAction.RECREATED
            return result

        differences = self.differences(booking, event)
        last_synced = as_utc(booking.last_synced_at) if booking.last_synced_at else None
        local_changed_at = as_utc(booking.modified_at or booking.created_at)
        remote_changed_at = as_utc(event.updated) if event.updated else None

        if differences:
            both_changed = last_synced is None or (
                local_changed_at > last_synced
                and remote_changed_at is not None
                and remote_changed_at > last_synced
            )
            if both_changed:
                return await self._record_conflict(booking, event, differences)

        if remote_changed_at is None or local_changed_at > remote_changed_at:
            if differences:
                return await self.to_calendar(booking)
        elif remote_changed_at > local_changed_at:
            if differences:
                return await self.from_calendar(event, booking.id)

        await self._store.update_sync_state(
            booking, sync_status=SyncStatus.SYNCED, synced_at=self._synced_at(event)
        )
        return SyncResult(
            success=True,
            action=SyncAction.UNCHANGED,
            booking_id=booking.id,
            calendar_event_id=event.id,
        )

    # Conflicts

    async def list_conflicts(self, *, unresolved_only: bool = True) -> list[SyncConflict]:
        return await self._store.list_conflicts(unresolved_only=unresolved_only)

    async def _apply_manual(self, booking: Booking, changes: dict[str, Any]) -> Booking:
        unknown = set(changes) - MANUAL_FIELDS
        if unknown:
            raise BookingValidationError(
                {name: "Field cannot be set during conflict resolution" for name in sorted(unknown)}
            )
        for name in ("start_time", "end_time"):
            if isinstance(changes.get(name), str):
                changes[name] = parse_time_of_day(changes[name])
        if isinstance(changes.get("event_date"), str):
            changes["event_date"] = date.fromisoformat(changes["event_date"])
        for name, value in changes.items():
            setattr(booking, name, value)
        if {"event_date", "start_time", "end_time"} & set(changes):
            booking.start_at = None
            booking.end_at = None
            window = BookingWindow.from_booking(booking, rules=self._rules)
            errors = duration_errors(
                window.interval(),
                min_hours=self._rules.min_duration_hours,
                max_hours=self._rules.max_duration_hours,
            )
            if errors:
                raise BookingValidationError(errors)
        booking.modified_at = datetime.now(UTC)
        return await self._store.save(booking)

    async def resolve_conflict(
        self,
        booking_id: uuid.UUID,
        strategy: ConflictResolution,
        *,
        manual_changes: dict[str, Any] | None = None,
        actor: str | None = None,
    ) -> SyncResult:
        """Apply the chosen side of an open conflict and mark it resolved.

        Errors propagate; the conflict stays open if applying it fails.
        """
        conflict = await self._store.get_open_conflict(booking_id)
        if conflict is None:
            raise SyncConflictNotFoundError(booking_id)
        booking = await self._store.require_booking(booking_id)

        if strategy is ConflictResolution.USE_LOCAL:
            result = await self.to_calendar(booking)
        elif strategy is ConflictResolution.USE_CALENDAR:
            event = await self._call(self._calendar.get_event(conflict.calendar_event_id))
            if event is None or event.is_cancelled:
                raise CalendarClientError(
                    f"Calendar event {conflict.calendar_event_id} no longer exists",
                    status_code=404,
                )
            result = await self.from_calendar(event, booking_id)
        else:
            if not manual_changes:
                raise BookingValidationError(
                    {"manual": "Manual resolution requires the fields to apply"}
                )
            booking = await self._apply_manual(booking, dict(manual_changes))
            result = await self.to_calendar(booking)

        if not result.success:
            raise CalendarClientError(result.error or "Conflict resolution failed")

        await self._store.resolve_conflicts(
            [conflict], resolution=strategy, resolved_by=actor
        )
        await self._store.record_audit(
            event_type="sync.conflict_resolved",
            booking_id=booking_id,
            description=f"Conflict resolved using {strategy.value}",
            actor=actor,
            payload={
                "conflict_id": str(conflict.id),
                "resolution": strategy.value,
                "fields": sorted(manual_changes) if manual_changes else [],
            },
        )
        logger.info("Resolved conflict for booking %s using %s", booking_id, strategy.value)
        return result

    # Deletion and sweeps

    async def delete_calendar_event(
        self, booking: Booking, *, actor: str | None = None
    ) -> SyncResult:
        """Remove the booking's event and expire the booking if it was still live.

        An event that is already gone counts as deleted.
        """
        booking_id = booking.id
        event_id = booking.calendar_event_id
        if event_id:
            try:
                await self._call(self._calendar.delete_event(event_id))
            except Exception as exc:
                logger.exception("Failed to delete calendar event %s", event_id)
                message = str(exc) or exc.__class__.__name__
                await self._store.update_sync_state(
                    booking, sync_status=SyncStatus.SYNC_FAILED, sync_error=message
                )
                return SyncResult(
                    success=False,
                    action=SyncAction.FAILED,
                    booking_id=booking_id,
                    calendar_event_id=event_id,
                    error=message,
                )
            await self._store.update_sync_state(
                booking,
                sync_status=SyncStatus.SYNCED,
                synced_at=datetime.now(UTC),
                calendar_event_id=None,
            )

        if booking.status in {BookingStatus.PENDING, BookingStatus.CONFIRMED}:
            await status_transition_service.transition_booking(
                self._store,
                booking_id,
                BookingStatus.EXPIRED,
                reason="Calendar event deleted",
                actor=actor,
            )
        logger.info("Deleted calendar event %s for booking %s", event_id, booking.booking_ref)
        return SyncResult(
            success=True,
            action=SyncAction.DELETED,
            booking_id=booking_id,
            calendar_event_id=event_id,
        )

    async def sync_all(self) -> SyncSummary:
        """Reconcile every confirmed booking; failures are collected per booking."""
        bookings = await self._store.get_bookings_by_status(BookingStatus.CONFIRMED)
        candidates = [(booking.id, booking.booking_ref) for booking in bookings]
        summary = SyncSummary(checked=len(candidates))
        for booking_id, booking_ref in candidates:
            try:
                booking = await self._store.require_booking(booking_id)
                result = await self.bidirectional(booking)
            except Exception as exc:
                logger.exception("Sync failed for booking %s", booking_ref)
                summary.failed += 1
                summary.errors.append(
                    SyncFailure(booking_id=booking_id, booking_ref=booking_ref, error=str(exc))
                )
                continue
            summary.results.append(result)
            if result.action is SyncAction.CONFLICT:
                summary.conflicts += 1
            elif result.success:
                summary.synced += 1
            else:
                summary.failed += 1
                summary.errors.append(
                    SyncFailure(
                        booking_id=booking_id,
                        booking_ref=booking_ref,
                        error=result.error or "Sync failed",
                    )
                )
        logger.info(
            "Calendar sync finished: %s checked, %s synced, %s conflicts, %s failed",
            summary.checked,
            summary.synced,
            summary.conflicts,
            summary.failed,
        )
        return summary

    async def import_calendar_events(self, start: datetime, end: datetime) -> SyncSummary:
        """Create bookings for booking-shaped events that have none yet."""
        events = await self._call(self._calendar.get_events_in_range(start, end))
        summary = SyncSummary()
        for event in events:
            if event.is_cancelled or not event.summary.startswith("🏰"):
                continue
            if await self._store.get_booking_by_event_id(event.id) is not None:
                continue
            summary.checked += 1
            result = await self.from_calendar(event)
            summary.results.append(result)
            if result.success:
                summary.synced += 1
            else:
                summary.failed += 1
        return summary

    async def test_connection(self) -> bool:
        try:
            return await self._call(self._calendar.test_connection())
        except Exception:
            logger.exception("Calendar connection test failed")
            return False

    async def status_report(self) -> SyncStatusReport:
        counts = await self._store.sync_status_counts()
        conflicts = await self._store.list_conflicts(unresolved_only=True)
        return SyncStatusReport(
            connected=await self.test_connection(),
            counts=counts,
            active_conflicts=len(conflicts),
        )


def upcoming_window(rules: BookingRules, *, days: int = 30) -> tuple[datetime, datetime]:
    """Default range used when importing calendar events."""
    today = datetime.now(rules.timezone).date()
    start = datetime.combine(today, time(0, 0), tzinfo=rules.timezone)
    return start, start + timedelta(days=days)


__all__ = [
    "CalendarSyncService",
    "SyncAction",
    "SyncFailure",
    "SyncResult",
    "SyncStatusReport",
    "SyncSummary",
    "upcoming_window",
]
