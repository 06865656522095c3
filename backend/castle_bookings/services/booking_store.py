"""Persistence boundary for bookings.

The lifecycle and calendar services talk to bookings only through a
``BookingStore``. ``SqlBookingStore`` is the production implementation; tests
substitute lightweight fakes for the parts they exercise.
"""
from __future__ import annotations

import secrets
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, Protocol

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castle_bookings.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    SyncStatus,
)
from castle_bookings.models.castle import Castle
from castle_bookings.models.maintenance import MaintenanceWindow
from castle_bookings.models.sync_conflict import SyncConflict
from castle_bookings.services import audit_service
from castle_bookings.services.errors import BookingNotFoundError, StaleBookingError


def generate_booking_ref(day: date | None = None) -> str:
    """``TS`` + yymmdd + three random digits, e.g. ``TS240601042``."""
    day = day or datetime.now(UTC).date()
    return f"TS{day:%y%m%d}{secrets.randbelow(1000):03d}"


@dataclass(slots=True)
class BookingQuery:
    """Filters accepted by :meth:`BookingStore.query_bookings_with_filters`."""

    statuses: Sequence[BookingStatus] = ()
    sync_statuses: Sequence[SyncStatus] = ()
    date_from: date | None = None
    date_to: date | None = None
    castle_id: uuid.UUID | None = None
    search: str | None = None
    limit: int = 50
    offset: int = 0


@dataclass(slots=True)
class BookingPage:
    bookings: list[Booking] = field(default_factory=list)
    total: int = 0


class BookingStore(Protocol):
    """Operations the booking core needs from its source of truth."""

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None: ...

    async def get_bookings_by_status(
        self, status: BookingStatus | None = None
    ) -> list[Booking]: ...

    async def update_booking_status(
        self,
        booking_id: uuid.UUID,
        status: BookingStatus,
        *,
        expected: BookingStatus | None = None,
        **changes: Any,
    ) -> Booking: ...

    async def query_bookings_with_filters(self, query: BookingQuery) -> BookingPage: ...

    async def record_audit(
        self,
        *,
        event_type: str,
        booking_id: uuid.UUID | None = None,
        description: str | None = None,
        actor: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None: ...


class SqlBookingStore:
    """``BookingStore`` backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _commit(self) -> None:
        try:
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        return await self._session.get(Booking, booking_id, populate_existing=True)

    async def require_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def get_booking_by_event_id(self, event_id: str) -> Booking | None:
        result = await self._session.execute(
            select(Booking).where(Booking.calendar_event_id == event_id)
        )
        return result.scalars().first()

    async def get_booking_by_ref(self, booking_ref: str) -> Booking | None:
        result = await self._session.execute(
            select(Booking).where(Booking.booking_ref == booking_ref)
        )
        return result.scalars().first()

    async def get_bookings_by_status(
        self, status: BookingStatus | None = None
    ) -> list[Booking]:
        stmt = select(Booking).order_by(Booking.event_date, Booking.start_time)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def active_bookings_between(
        self,
        start_date: date,
        end_date: date,
        *,
        castle_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.event_date >= start_date,
                Booking.event_date <= end_date,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .order_by(Booking.event_date, Booking.start_time)
        )
        if castle_id is not None:
            stmt = stmt.where(Booking.castle_id == castle_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_booking_status(
        self,
        booking_id: uuid.UUID,
        status: BookingStatus,
        *,
        expected: BookingStatus | None = None,
        **changes: Any,
    ) -> Booking:
        """Set the status, only if the booking is still in ``expected``."""
        stmt = update(Booking).where(Booking.id == booking_id)
        if expected is not None:
            stmt = stmt.where(Booking.status == expected)
        try:
            result = await self._session.execute(stmt.values(status=status, **changes))
        except Exception:
            await self._session.rollback()
            raise
        if result.rowcount == 0:
            await self._session.rollback()
            current = await self.get_booking(booking_id)
            if current is None:
                raise BookingNotFoundError(booking_id)
            raise StaleBookingError(
                f"Booking {booking_id} is {current.status.value}, "
                f"expected {expected.value if expected else 'any'}"
            )
        await self._commit()
        return await self.require_booking(booking_id)

    async def query_bookings_with_filters(self, query: BookingQuery) -> BookingPage:
        stmt = select(Booking)
        if query.statuses:
            stmt = stmt.where(Booking.status.in_(list(query.statuses)))
        if query.sync_statuses:
            stmt = stmt.where(Booking.sync_status.in_(list(query.sync_statuses)))
        if query.date_from is not None:
            stmt = stmt.where(Booking.event_date >= query.date_from)
        if query.date_to is not None:
            stmt = stmt.where(Booking.event_date <= query.date_to)
        if query.castle_id is not None:
            stmt = stmt.where(Booking.castle_id == query.castle_id)
        if query.search:
            term = f"%{query.search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Booking.customer_name).like(term),
                    func.lower(Booking.customer_email).like(term),
                    func.lower(Booking.booking_ref).like(term),
                    func.lower(Booking.castle_name).like(term),
                )
            )
        total = await self._session.scalar(
            select(func.count()).select_from(stmt.subquery())
        )
        result = await self._session.execute(
            stmt.order_by(Booking.event_date, Booking.start_time, Booking.created_at)
            .offset(query.offset)
            .limit(query.limit)
        )
        return BookingPage(bookings=list(result.scalars().all()), total=int(total or 0))

    async def allocate_booking_ref(self, day: date | None = None, *, attempts: int = 10) -> str:
        for _ in range(attempts):
            ref = generate_booking_ref(day)
            if await self.get_booking_by_ref(ref) is None:
                return ref
        raise RuntimeError("Could not allocate a unique booking reference")

    async def add_booking(self, booking: Booking) -> Booking:
        self._session.add(booking)
        await self._commit()
        await self._session.refresh(booking)
        return booking

    async def sync_status_counts(self) -> dict[SyncStatus, int]:
        result = await self._session.execute(
            select(Booking.sync_status, func.count())
            .where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .group_by(Booking.sync_status)
        )
        counts = {status: 0 for status in SyncStatus}
        for status, count in result.all():
            counts[status] = int(count)
        return counts

    async def save(self, booking: Booking) -> Booking:
        await self._commit()
        await self._session.refresh(booking)
        return booking

    async def update_sync_state(
        self,
        booking: Booking,
        *,
        sync_status: SyncStatus,
        sync_error: str | None = None,
        synced_at: datetime | None = None,
        **changes: Any,
    ) -> Booking:
        """Record the calendar mirror state without touching ``modified_at``."""
        booking.sync_status = sync_status
        booking.sync_error = sync_error[:1024] if sync_error else None
        if synced_at is not None:
            booking.last_synced_at = synced_at
        for name, value in changes.items():
            setattr(booking, name, value)
        return await self.save(booking)

    async def get_castle(self, castle_id: uuid.UUID) -> Castle | None:
        return await self._session.get(Castle, castle_id)

    async def get_castle_by_name(self, name: str) -> Castle | None:
        result = await self._session.execute(
            select(Castle).where(func.lower(Castle.name) == name.strip().lower())
        )
        return result.scalars().first()

    async def list_castles(self, *, active_only: bool = True) -> list[Castle]:
        stmt = select(Castle).order_by(Castle.name)
        if active_only:
            stmt = stmt.where(Castle.is_active.is_(True))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def maintenance_windows(
        self,
        castle_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> list[MaintenanceWindow]:
        result = await self._session.execute(
            select(MaintenanceWindow)
            .where(
                MaintenanceWindow.castle_id == castle_id,
                MaintenanceWindow.start_date <= end_date,
                MaintenanceWindow.end_date >= start_date,
            )
            .order_by(MaintenanceWindow.start_date)
        )
        return list(result.scalars().all())

    async def add_sync_conflict(self, conflict: SyncConflict) -> SyncConflict:
        self._session.add(conflict)
        await self._commit()
        await self._session.refresh(conflict)
        return conflict

    async def get_open_conflict(self, booking_id: uuid.UUID) -> SyncConflict | None:
        result = await self._session.execute(
            select(SyncConflict)
            .where(SyncConflict.booking_id == booking_id, SyncConflict.resolved.is_(False))
            .order_by(SyncConflict.detected_at.desc())
        )
        return result.scalars().first()

    async def list_conflicts(self, *, unresolved_only: bool = True) -> list[SyncConflict]:
        stmt = select(SyncConflict).order_by(SyncConflict.detected_at.desc())
        if unresolved_only:
            stmt = stmt.where(SyncConflict.resolved.is_(False))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def resolve_conflicts(
        self,
        conflicts: Iterable[SyncConflict],
        **changes: Any,
    ) -> None:
        changes.setdefault("resolved_at", datetime.now(UTC))
        for conflict in conflicts:
            conflict.resolved = True
            for name, value in changes.items():
                setattr(conflict, name, value)
        await self._commit()

    async def record_audit(
        self,
        *,
        event_type: str,
        booking_id: uuid.UUID | None = None,
        description: str | None = None,
        actor: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await audit_service.record_event(
            self._session,
            event_type=event_type,
            booking_id=booking_id,
            description=description,
            actor=actor,
            payload=payload,
        )


__all__ = [
    "BookingPage",
    "BookingQuery",
    "BookingStore",
    "SqlBookingStore",
    "generate_booking_ref",
]
