"""Castle (fleet inventory) model."""
from __future__ import annotations

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from castle_bookings.db.base import Base
from castle_bookings.models.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class Castle(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A rentable bouncy castle. Serves one booking at a time."""

    __tablename__ = "castles"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    castle_type: Mapped[str | None] = mapped_column(String(120))
    price_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    maintenance_windows: Mapped[list["MaintenanceWindow"]] = relationship(
        "MaintenanceWindow", back_populates="castle", cascade="all, delete-orphan"
    )
