"""Public booking submission API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.schemas.booking import BookingCreate, BookingCreated, BookingRead, ConflictRead
from castle_bookings.services import booking_service
from castle_bookings.services.booking_store import SqlBookingStore

router = APIRouter()


@router.post(
    "",
    response_model=BookingCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
)
async def create_booking(
    payload: BookingCreate,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    calendar: Annotated[CalendarClient, Depends(deps.get_calendar_client)],
    rules: Annotated[BookingRules, Depends(deps.get_rules)],
) -> BookingCreated:
    try:
        booking, result = await booking_service.create_booking(
            store,
            rules=rules,
            castle_id=payload.castle_id,
            castle_name=payload.castle_name,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            customer_address=payload.customer_address,
            event_date=payload.event_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            total_pence=payload.total_pence,
            deposit_pence=payload.deposit_pence,
            payment_method=payload.payment_method,
            notes=payload.notes,
            calendar=calendar,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return BookingCreated(
        booking=BookingRead.model_validate(booking),
        warnings=result.warnings,
        conflicts=[ConflictRead.model_validate(conflict) for conflict in result.conflicts],
    )
