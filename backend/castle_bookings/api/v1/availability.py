"""Public availability API."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.schemas.availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    AvailableSlotsResponse,
    DayAvailabilityRead,
    SlotRead,
)
from castle_bookings.schemas.booking import ConflictRead
from castle_bookings.services import availability_service
from castle_bookings.services.booking_store import SqlBookingStore

router = APIRouter()


@router.get("", response_model=list[DayAvailabilityRead], summary="Availability per day")
async def get_availability(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    calendar: Annotated[CalendarClient, Depends(deps.get_calendar_client)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
    castle_id: uuid.UUID,
    start: date,
    end: date,
) -> list[DayAvailabilityRead]:
    try:
        days = await availability_service.get_availability(
            store, castle_id, start, end, rules=rules, calendar=calendar
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return [DayAvailabilityRead.model_validate(day) for day in days]


@router.post("/check", response_model=AvailabilityCheckResponse, summary="Check a window")
async def check_availability(
    payload: AvailabilityCheckRequest,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    calendar: Annotated[CalendarClient, Depends(deps.get_calendar_client)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
) -> AvailabilityCheckResponse:
    try:
        result = await availability_service.check_availability(
            store,
            day=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            rules=rules,
            castle_id=payload.castle_id,
            castle_name=payload.resource_name,
            calendar=calendar,
            exclude_id=payload.exclude_booking_id,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return AvailabilityCheckResponse(
        available=result.available,
        reason=result.reason,
        conflicts=[ConflictRead.model_validate(conflict) for conflict in result.conflicts],
    )


@router.get("/slots", response_model=AvailableSlotsResponse, summary="Free start times")
async def get_available_slots(
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
    castle_id: uuid.UUID,
    day: Annotated[date, Query(alias="date")],
    duration_hours: Annotated[float, Query(gt=0, le=24)] = 4,
) -> AvailableSlotsResponse:
    try:
        slots = await availability_service.get_available_slots(
            store, castle_id, day, rules=rules, duration_hours=duration_hours
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return AvailableSlotsResponse(
        castle_id=castle_id,
        date=day,
        duration_hours=duration_hours,
        slots=[SlotRead(start_time=start, end_time=end, available=True) for start, end in slots],
    )
