"""Calendar synchronisation conflicts."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from castle_bookings.db.base import Base
from castle_bookings.models.mixins import UUIDPrimaryKeyMixin, utcnow


class SyncConflictType(str, enum.Enum):
    """What differs between a booking and its calendar event."""

    TIME_MISMATCH = "time_mismatch"
    DETAILS_MISMATCH = "details_mismatch"
    BOTH_MODIFIED = "both_modified"


class ConflictResolution(str, enum.Enum):
    """Strategy used to settle a conflict."""

    USE_LOCAL = "use_local"
    USE_CALENDAR = "use_calendar"
    MANUAL = "manual"


class SyncConflict(UUIDPrimaryKeyMixin, Base):
    """Detected when a booking and its linked event were both edited."""

    __tablename__ = "sync_conflicts"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    calendar_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    conflict_type: Mapped[SyncConflictType] = mapped_column(
        Enum(SyncConflictType), nullable=False
    )
    local_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    calendar_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution: Mapped[ConflictResolution | None] = mapped_column(
        Enum(ConflictResolution)
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[str | None] = mapped_column(String(255))
