"""Booking models."""
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from castle_bookings.db.base import Base
from castle_bookings.models.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class BookingStatus(str, enum.Enum):
    """Lifecycle states for bookings."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


ACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)
TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.EXPIRED}
)


class SyncStatus(str, enum.Enum):
    """State of a booking's calendar mirror."""

    SYNCED = "synced"
    PENDING_SYNC = "pending_sync"
    SYNC_FAILED = "sync_failed"
    CONFLICT = "conflict"


class PaymentMethod(str, enum.Enum):
    """How the customer intends to pay."""

    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    OTHER = "other"


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation of one castle for one time window."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("total_price_pence >= 0", name="ck_bookings_total_non_negative"),
        CheckConstraint("deposit_pence >= 0", name="ck_bookings_deposit_non_negative"),
        CheckConstraint(
            "deposit_pence <= total_price_pence", name="ck_bookings_deposit_le_total"
        ),
    )

    booking_ref: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    castle_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("castles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    castle_name: Mapped[str] = mapped_column(String(255), nullable=False)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255))
    customer_phone: Mapped[str | None] = mapped_column(String(50))
    customer_address: Mapped[str | None] = mapped_column(Text)

    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time | None] = mapped_column(Time())
    end_time: Mapped[time | None] = mapped_column(Time())
    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH
    )
    total_price_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text)

    agreement_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    calendar_event_id: Mapped[str | None] = mapped_column(String(255), index=True)
    sync_status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus), nullable=False, default=SyncStatus.PENDING_SYNC
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sync_error: Mapped[str | None] = mapped_column(String(1024))
    deposit_intent_id: Mapped[str | None] = mapped_column(String(255))
    # Bumped only when customer, time or castle fields change.
    modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    castle: Mapped["Castle"] = relationship("Castle")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES
