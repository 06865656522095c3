"""Typed errors raised by the booking services."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from castle_bookings.services.conflict_detector import Conflict


class BookingValidationError(ValueError):
    """A booking request failed field-level validation."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        first = next(iter(self.errors.values()), "Invalid booking")
        super().__init__(first)


class BookingConflictError(ValueError):
    """The requested window collides with another booking of the same castle."""

    def __init__(self, conflicts: list["Conflict"]) -> None:
        self.conflicts = list(conflicts)
        message = (
            self.conflicts[0].message if self.conflicts else "Booking conflict detected"
        )
        super().__init__(message)


class BookingNotFoundError(LookupError):
    """Raised when a booking id does not resolve."""

    def __init__(self, booking_id: uuid.UUID | str) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class CastleNotFoundError(LookupError):
    """Raised when a castle id or name does not resolve."""

    def __init__(self, castle: uuid.UUID | str) -> None:
        super().__init__(f"Castle {castle} not found")
        self.castle = castle


class SyncConflictNotFoundError(LookupError):
    """Raised when no unresolved sync conflict exists for a booking."""

    def __init__(self, booking_id: uuid.UUID | str) -> None:
        super().__init__(f"No unresolved sync conflict for booking {booking_id}")
        self.booking_id = booking_id


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change is not allowed by the lifecycle."""


class BookingAlreadyCompletedError(InvalidStatusTransitionError):
    """Raised when forcing completion of a booking that is already completed."""


class StaleBookingError(RuntimeError):
    """A conditional status update found the booking in an unexpected state."""


__all__ = [
    "BookingAlreadyCompletedError",
    "BookingConflictError",
    "BookingNotFoundError",
    "BookingValidationError",
    "CastleNotFoundError",
    "InvalidStatusTransitionError",
    "StaleBookingError",
    "SyncConflictNotFoundError",
]
