"""Schemas for fleet maintenance windows."""
from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from castle_bookings.models.maintenance import MaintenanceStatus


class MaintenanceWindowCreate(BaseModel):
    start_date: date
    end_date: date
    status: MaintenanceStatus = MaintenanceStatus.MAINTENANCE
    notes: str | None = Field(default=None, max_length=1024)


class MaintenanceWindowRead(BaseModel):
    id: uuid.UUID
    castle_id: uuid.UUID
    status: MaintenanceStatus
    start_date: date
    end_date: date
    notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
