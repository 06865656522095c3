"""Schemas for calendar synchronisation endpoints."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from castle_bookings.models.booking import SyncStatus
from castle_bookings.models.sync_conflict import ConflictResolution, SyncConflictType
from castle_bookings.services.calendar_sync_service import SyncAction


class SyncResultRead(BaseModel):
    success: bool
    action: SyncAction
    booking_id: uuid.UUID | None = None
    calendar_event_id: str | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SyncFailureRead(BaseModel):
    booking_id: uuid.UUID
    booking_ref: str | None = None
    error: str

    model_config = ConfigDict(from_attributes=True)


class SyncSummaryRead(BaseModel):
    checked: int
    synced: int
    conflicts: int
    failed: int
    errors: list[SyncFailureRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SyncConflictRead(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    calendar_event_id: str
    conflict_type: SyncConflictType
    local_snapshot: dict[str, Any]
    calendar_snapshot: dict[str, Any]
    detected_at: datetime
    resolved: bool
    resolution: ConflictResolution | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ManualChanges(BaseModel):
    """Fields an admin may set when settling a conflict by hand."""

    customer_name: str | None = Field(default=None, min_length=1, max_length=255)
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    notes: str | None = None
    event_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None


class ConflictResolveRequest(BaseModel):
    strategy: ConflictResolution
    manual_changes: ManualChanges | None = None

    @model_validator(mode="after")
    def _manual_needs_changes(self) -> "ConflictResolveRequest":
        if self.strategy is ConflictResolution.MANUAL and self.manual_changes is None:
            raise ValueError("manual_changes is required for manual resolution")
        return self


class CalendarStatusRead(BaseModel):
    connected: bool
    counts: dict[SyncStatus, int]
    active_conflicts: int

    model_config = ConfigDict(from_attributes=True)
