"""Helper utilities for recording audit events."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from castle_bookings.models.audit_event import AuditEvent


async def record_event(
    session: AsyncSession,
    *,
    event_type: str,
    booking_id: uuid.UUID | None = None,
    description: str | None = None,
    actor: str | None = None,
    payload: dict[str, Any] | None = None,
    commit: bool = True,
) -> AuditEvent:
    """Persist an audit event and return it.

    With ``commit=False`` the event joins the caller's transaction.
    """
    event = AuditEvent(
        booking_id=booking_id,
        event_type=event_type,
        description=description,
        actor=actor,
        payload=payload,
    )
    session.add(event)
    if commit:
        await session.commit()
        await session.refresh(event)
    return event


async def list_events(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    event_type: str | None = None,
) -> Sequence[AuditEvent]:
    stmt = (
        select(AuditEvent)
        .where(AuditEvent.booking_id == booking_id)
        .order_by(AuditEvent.created_at)
    )
    if event_type is not None:
        stmt = stmt.where(AuditEvent.event_type == event_type)
    result = await session.execute(stmt)
    return result.scalars().all()
