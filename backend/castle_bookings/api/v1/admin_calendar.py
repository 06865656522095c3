"""Admin calendar synchronisation API."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.core.config import get_settings
from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.schemas.booking import TransitionSummaryRead
from castle_bookings.schemas.calendar import (
    CalendarStatusRead,
    ConflictResolveRequest,
    SyncConflictRead,
    SyncResultRead,
    SyncSummaryRead,
)
from castle_bookings.services import status_transition_service
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService

router = APIRouter()


@router.post(
    "/check-completed-events",
    response_model=TransitionSummaryRead,
    summary="Complete bookings whose event has ended",
)
async def check_completed_events(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    calendar: Annotated[CalendarClient, Depends(deps.get_calendar_client)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> TransitionSummaryRead:
    summary = await status_transition_service.process_all(
        store,
        rules=rules,
        calendar=calendar,
        timeout=get_settings().calendar_timeout_seconds,
    )
    return TransitionSummaryRead.model_validate(summary)


@router.post("/sync", response_model=SyncSummaryRead, summary="Sync all confirmed bookings")
async def sync_all(
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> SyncSummaryRead:
    summary = await sync.sync_all()
    return SyncSummaryRead.model_validate(summary)


@router.post(
    "/bookings/{booking_id}/sync",
    response_model=SyncResultRead,
    summary="Sync one booking",
)
async def sync_booking(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> SyncResultRead:
    try:
        booking = await store.require_booking(booking_id)
        result = await sync.bidirectional(booking)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return SyncResultRead.model_validate(result)


@router.delete(
    "/bookings/{booking_id}/event",
    response_model=SyncResultRead,
    summary="Delete a booking's calendar event",
)
async def delete_event(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    actor: Annotated[str, Depends(deps.require_admin)],
) -> SyncResultRead:
    try:
        booking = await store.require_booking(booking_id)
        result = await sync.delete_calendar_event(booking, actor=actor)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return SyncResultRead.model_validate(result)


@router.get("/conflicts", response_model=list[SyncConflictRead], summary="List sync conflicts")
async def list_conflicts(
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    _: Annotated[str, Depends(deps.require_admin)],
    unresolved_only: Annotated[bool, Query()] = True,
) -> list[SyncConflictRead]:
    conflicts = await sync.list_conflicts(unresolved_only=unresolved_only)
    return [SyncConflictRead.model_validate(conflict) for conflict in conflicts]


@router.post(
    "/conflicts/{booking_id}/resolve",
    response_model=SyncResultRead,
    summary="Resolve a sync conflict",
)
async def resolve_conflict(
    booking_id: uuid.UUID,
    payload: ConflictResolveRequest,
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    actor: Annotated[str, Depends(deps.require_admin)],
) -> SyncResultRead:
    manual = (
        payload.manual_changes.model_dump(exclude_unset=True)
        if payload.manual_changes is not None
        else None
    )
    try:
        result = await sync.resolve_conflict(
            booking_id, payload.strategy, manual_changes=manual, actor=actor
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return SyncResultRead.model_validate(result)


@router.get("/status", response_model=CalendarStatusRead, summary="Calendar sync status")
async def calendar_status(
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> CalendarStatusRead:
    report = await sync.status_report()
    return CalendarStatusRead.model_validate(report)
