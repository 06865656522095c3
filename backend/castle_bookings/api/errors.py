"""Translate service errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from castle_bookings.integrations.google_calendar import CalendarClientError
from castle_bookings.integrations.stripe_client import StripeClientError
from castle_bookings.services.errors import (
    BookingConflictError,
    BookingValidationError,
    InvalidStatusTransitionError,
    StaleBookingError,
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: Exception) -> HTTPException:
    """Map a service error to its HTTP status; anything unrecognised becomes a logged 500."""
    if isinstance(exc, BookingValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "errors": exc.errors},
        )
    if isinstance(exc, BookingConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "conflicts": [
                    {
                        "booking_id": str(conflict.booking_id) if conflict.booking_id else None,
                        "booking_ref": conflict.booking_ref,
                        "castle_name": conflict.castle_name,
                        "start_time": conflict.start_time.strftime("%H:%M"),
                        "end_time": conflict.end_time.strftime("%H:%M"),
                    }
                    for conflict in exc.conflicts
                ],
            },
        )
    if isinstance(exc, StaleBookingError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidStatusTransitionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (CalendarClientError, StripeClientError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error("Unhandled service error", exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error"
    )


SERVICE_ERRORS = (
    ValueError,
    LookupError,
    StaleBookingError,
    CalendarClientError,
    StripeClientError,
)
