"""Schemas for availability queries."""
from __future__ import annotations

import uuid
from datetime import date as date_type
from datetime import time

from pydantic import BaseModel, ConfigDict, Field, model_validator

from castle_bookings.schemas.booking import ConflictRead
from castle_bookings.services.availability_service import DayStatus


class SlotRead(BaseModel):
    start_time: time
    end_time: time
    available: bool

    model_config = ConfigDict(from_attributes=True)


class DayAvailabilityRead(BaseModel):
    date: date_type
    status: DayStatus
    available_slots: int
    total_slots: int
    reason: str | None = None
    slots: list[SlotRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class AvailabilityCheckRequest(BaseModel):
    """Ask whether a castle is free for a window."""

    date: date_type
    start_time: time
    end_time: time
    castle_id: uuid.UUID | None = None
    resource_name: str | None = None
    exclude_booking_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _require_castle(self) -> "AvailabilityCheckRequest":
        if self.castle_id is None and not self.resource_name:
            raise ValueError("castle_id or resource_name is required")
        return self


class AvailabilityCheckResponse(BaseModel):
    available: bool
    reason: str | None = None
    conflicts: list[ConflictRead] = Field(default_factory=list)


class AvailableSlotsResponse(BaseModel):
    castle_id: uuid.UUID
    date: date_type
    duration_hours: float
    slots: list[SlotRead]
