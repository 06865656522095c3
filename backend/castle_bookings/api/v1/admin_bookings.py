"""Admin booking management API."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.core.settings import BookingRules
from castle_bookings.models.booking import BookingStatus, SyncStatus
from castle_bookings.schemas.booking import (
    BookingCancelRequest,
    BookingConfirmRequest,
    BookingList,
    BookingRead,
    ForceCompleteRequest,
    TransitionRead,
    TransitionSummaryRead,
    UpcomingTransitionRead,
)
from castle_bookings.services import booking_service, status_transition_service
from castle_bookings.services.booking_store import BookingQuery, SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService

router = APIRouter()


@router.get("", response_model=BookingList, summary="List bookings")
async def list_bookings(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    _: Annotated[str, Depends(deps.require_admin)],
    status: Annotated[list[BookingStatus] | None, Query()] = None,
    sync_status: Annotated[list[SyncStatus] | None, Query()] = None,
    date_from: date | None = None,
    date_to: date | None = None,
    castle_id: uuid.UUID | None = None,
    search: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> BookingList:
    page = await booking_service.list_bookings(
        store,
        BookingQuery(
            statuses=status or (),
            sync_statuses=sync_status or (),
            date_from=date_from,
            date_to=date_to,
            castle_id=castle_id,
            search=search,
            limit=limit,
            offset=offset,
        ),
    )
    return BookingList(
        items=[BookingRead.model_validate(booking) for booking in page.bookings],
        total=page.total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/upcoming-transitions",
    response_model=list[UpcomingTransitionRead],
    summary="Bookings due to complete soon",
)
async def upcoming_transitions(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
    _: Annotated[str, Depends(deps.require_admin)],
    hours_ahead: Annotated[float, Query(gt=0, le=24 * 14)] = 24,
) -> list[UpcomingTransitionRead]:
    upcoming = await status_transition_service.upcoming_transitions(
        store, rules=rules, hours_ahead=hours_ahead
    )
    return [UpcomingTransitionRead.model_validate(item) for item in upcoming]


@router.post(
    "/expire-stale",
    response_model=TransitionSummaryRead,
    summary="Expire stale pending bookings",
)
async def expire_stale(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> TransitionSummaryRead:
    summary = await status_transition_service.expire_stale_pending(store, rules=rules)
    return TransitionSummaryRead.model_validate(summary)


@router.get("/{booking_id}", response_model=BookingRead, summary="Get booking")
async def get_booking(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> BookingRead:
    try:
        booking = await store.require_booking(booking_id)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/confirm", response_model=BookingRead, summary="Confirm booking")
async def confirm_booking(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    actor: Annotated[str, Depends(deps.require_admin)],
    payload: BookingConfirmRequest | None = None,
) -> BookingRead:
    payload = payload or BookingConfirmRequest()
    try:
        booking, _ = await booking_service.confirm_booking(
            store,
            booking_id,
            sync=sync,
            actor=actor,
            agreement_signed=payload.agreement_signed,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead, summary="Cancel booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    sync: Annotated[CalendarSyncService, Depends(deps.get_sync_service)],
    actor: Annotated[str, Depends(deps.require_admin)],
    payload: BookingCancelRequest | None = None,
) -> BookingRead:
    payload = payload or BookingCancelRequest()
    try:
        booking = await booking_service.cancel_booking(
            store, booking_id, reason=payload.reason, sync=sync, actor=actor
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return BookingRead.model_validate(booking)


@router.post(
    "/{booking_id}/complete", response_model=TransitionRead, summary="Force completion"
)
async def force_complete(
    booking_id: uuid.UUID,
    payload: ForceCompleteRequest,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    actor: Annotated[str, Depends(deps.require_admin)],
) -> TransitionRead:
    try:
        transition = await status_transition_service.force_complete(
            store, booking_id, reason=payload.reason, actor=actor
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return TransitionRead.model_validate(transition)
