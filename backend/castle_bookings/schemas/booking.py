"""Pydantic schemas for bookings."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from castle_bookings.models.booking import BookingStatus, PaymentMethod, SyncStatus
from castle_bookings.services.conflict_detector import ConflictType
from castle_bookings.services.status_transition_service import EndTimeSource


class BookingCreate(BaseModel):
    """Public booking request."""

    castle_id: uuid.UUID | None = None
    castle_name: str | None = Field(default=None, max_length=255)
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: EmailStr | None = None
    customer_phone: str | None = Field(default=None, max_length=50)
    customer_address: str | None = None
    event_date: date
    start_time: time
    end_time: time
    total_pence: int | None = Field(default=None, ge=0)
    deposit_pence: int = Field(default=0, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None

    @model_validator(mode="after")
    def _require_castle(self) -> "BookingCreate":
        if self.castle_id is None and not self.castle_name:
            raise ValueError("castle_id or castle_name is required")
        return self


class ConflictRead(BaseModel):
    conflict_type: ConflictType
    booking_id: uuid.UUID | None = None
    booking_ref: str | None = None
    castle_name: str
    event_date: date
    start_time: time
    end_time: time
    message: str
    blocking: bool

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    """Serialized booking representation."""

    id: uuid.UUID
    booking_ref: str
    castle_id: uuid.UUID
    castle_name: str
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    event_date: date
    start_time: time | None = None
    end_time: time | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    status: BookingStatus
    payment_method: PaymentMethod
    total_price_pence: int
    deposit_pence: int
    notes: str | None = None
    agreement_signed_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    calendar_event_id: str | None = None
    sync_status: SyncStatus
    last_synced_at: datetime | None = None
    sync_error: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCreated(BaseModel):
    booking: BookingRead
    warnings: list[str] = Field(default_factory=list)
    conflicts: list[ConflictRead] = Field(default_factory=list)


class BookingList(BaseModel):
    items: list[BookingRead]
    total: int
    limit: int
    offset: int


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class BookingConfirmRequest(BaseModel):
    agreement_signed: bool = True


class ForceCompleteRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class TransitionRead(BaseModel):
    booking_id: uuid.UUID
    booking_ref: str
    previous_status: BookingStatus
    new_status: BookingStatus
    reason: str
    transitioned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransitionFailureRead(BaseModel):
    booking_id: uuid.UUID
    booking_ref: str | None = None
    error: str

    model_config = ConfigDict(from_attributes=True)


class TransitionSummaryRead(BaseModel):
    checked: int
    transitioned: int
    transitions: list[TransitionRead]
    errors: list[TransitionFailureRead]

    model_config = ConfigDict(from_attributes=True)


class UpcomingTransitionRead(BaseModel):
    booking_id: uuid.UUID
    booking_ref: str
    expected_transition_at: datetime
    minutes_until: int
    source: EndTimeSource

    model_config = ConfigDict(from_attributes=True)
