"""Castle maintenance windows."""
from __future__ import annotations

import enum
import uuid
from datetime import date

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from castle_bookings.db.base import Base
from castle_bookings.models.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class MaintenanceStatus(str, enum.Enum):
    """Why a castle is unavailable."""

    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class MaintenanceWindow(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A period during which a castle cannot be booked."""

    __tablename__ = "maintenance_windows"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_maintenance_window_order"),
    )

    castle_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("castles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[MaintenanceStatus] = mapped_column(
        Enum(MaintenanceStatus), nullable=False, default=MaintenanceStatus.MAINTENANCE
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1024))

    castle: Mapped["Castle"] = relationship("Castle", back_populates="maintenance_windows")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
