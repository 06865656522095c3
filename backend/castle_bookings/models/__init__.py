"""ORM models package export."""

from castle_bookings.models.audit_event import AuditEvent
from castle_bookings.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    PaymentMethod,
    SyncStatus,
)
from castle_bookings.models.castle import Castle
from castle_bookings.models.maintenance import MaintenanceStatus, MaintenanceWindow
from castle_bookings.models.sync_conflict import (
    ConflictResolution,
    SyncConflict,
    SyncConflictType,
)

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "AuditEvent",
    "Booking",
    "BookingStatus",
    "PaymentMethod",
    "SyncStatus",
    "Castle",
    "MaintenanceStatus",
    "MaintenanceWindow",
    "ConflictResolution",
    "SyncConflict",
    "SyncConflictType",
]
