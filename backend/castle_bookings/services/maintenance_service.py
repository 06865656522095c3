"""Fleet maintenance window helpers."""
from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from castle_bookings.models.castle import Castle
from castle_bookings.models.maintenance import MaintenanceStatus, MaintenanceWindow
from castle_bookings.services import audit_service
from castle_bookings.services.errors import BookingValidationError, CastleNotFoundError


async def _get_castle(session: AsyncSession, castle_id: uuid.UUID) -> Castle:
    castle = await session.get(Castle, castle_id)
    if castle is None:
        raise CastleNotFoundError(castle_id)
    return castle


async def list_windows(
    session: AsyncSession,
    *,
    castle_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Sequence[MaintenanceWindow]:
    await _get_castle(session, castle_id)
    stmt = (
        select(MaintenanceWindow)
        .where(MaintenanceWindow.castle_id == castle_id)
        .order_by(MaintenanceWindow.start_date)
    )
    if start_date is not None:
        stmt = stmt.where(MaintenanceWindow.end_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(MaintenanceWindow.start_date <= end_date)
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_window(
    session: AsyncSession,
    *,
    castle_id: uuid.UUID,
    start_date: date,
    end_date: date,
    status: MaintenanceStatus = MaintenanceStatus.MAINTENANCE,
    notes: str | None = None,
    actor: str | None = None,
) -> MaintenanceWindow:
    if end_date < start_date:
        raise BookingValidationError(
            {"end_date": "Maintenance end date must not be before its start date"}
        )
    castle = await _get_castle(session, castle_id)
    window = MaintenanceWindow(
        castle_id=castle.id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        notes=notes,
    )
    session.add(window)
    await session.flush()
    await audit_service.record_event(
        session,
        event_type="fleet.maintenance_scheduled",
        description=f"{castle.name} {status.value} {start_date} to {end_date}",
        actor=actor,
        payload={"castle_id": str(castle.id), "window_id": str(window.id)},
        commit=False,
    )
    await session.commit()
    await session.refresh(window)
    return window


async def delete_window(
    session: AsyncSession,
    *,
    castle_id: uuid.UUID,
    window_id: uuid.UUID,
    actor: str | None = None,
) -> None:
    window = await session.get(MaintenanceWindow, window_id)
    if window is None or window.castle_id != castle_id:
        raise LookupError("Maintenance window not found")
    await session.delete(window)
    await audit_service.record_event(
        session,
        event_type="fleet.maintenance_removed",
        description=f"Maintenance window {window_id} removed",
        actor=actor,
        payload={"castle_id": str(castle_id), "window_id": str(window_id)},
        commit=False,
    )
    await session.commit()
