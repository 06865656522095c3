"""Initial booking schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

booking_status = sa.Enum(
    "PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "EXPIRED", name="bookingstatus"
)
sync_status = sa.Enum(
    "SYNCED", "PENDING_SYNC", "SYNC_FAILED", "CONFLICT", name="syncstatus"
)
payment_method = sa.Enum(
    "CASH", "CARD", "BANK_TRANSFER", "ONLINE", "OTHER", name="paymentmethod"
)
maintenance_status = sa.Enum("MAINTENANCE", "OUT_OF_SERVICE", name="maintenancestatus")
sync_conflict_type = sa.Enum(
    "TIME_MISMATCH", "DETAILS_MISMATCH", "BOTH_MODIFIED", name="syncconflicttype"
)
conflict_resolution = sa.Enum(
    "USE_LOCAL", "USE_CALENDAR", "MANUAL", name="conflictresolution"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "castles",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("castle_type", sa.String(length=120)),
        sa.Column("price_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("booking_ref", sa.String(length=32), nullable=False, unique=True),
        sa.Column(
            "castle_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("castles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("castle_name", sa.String(length=255), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255)),
        sa.Column("customer_phone", sa.String(length=50)),
        sa.Column("customer_address", sa.Text()),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("start_at", sa.DateTime(timezone=True)),
        sa.Column("end_at", sa.DateTime(timezone=True)),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("total_price_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deposit_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("agreement_signed_at", sa.DateTime(timezone=True)),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("calendar_event_id", sa.String(length=255)),
        sa.Column("sync_status", sync_status, nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True)),
        sa.Column("sync_error", sa.String(length=1024)),
        sa.Column("deposit_intent_id", sa.String(length=255)),
        sa.Column("modified_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("total_price_pence >= 0", name="ck_bookings_total_non_negative"),
        sa.CheckConstraint("deposit_pence >= 0", name="ck_bookings_deposit_non_negative"),
        sa.CheckConstraint(
            "deposit_pence <= total_price_pence", name="ck_bookings_deposit_le_total"
        ),
    )
    op.create_index("ix_bookings_castle_id", "bookings", ["castle_id"])
    op.create_index("ix_bookings_event_date", "bookings", ["event_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_calendar_event_id", "bookings", ["calendar_event_id"])

    op.create_table(
        "maintenance_windows",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "castle_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("castles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", maintenance_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.String(length=1024)),
        *_timestamps(),
        sa.CheckConstraint("start_date <= end_date", name="ck_maintenance_window_order"),
    )
    op.create_index(
        "ix_maintenance_windows_castle_id", "maintenance_windows", ["castle_id"]
    )

    op.create_table(
        "sync_conflicts",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("calendar_event_id", sa.String(length=255), nullable=False),
        sa.Column("conflict_type", sync_conflict_type, nullable=False),
        sa.Column("local_snapshot", sa.JSON(), nullable=False),
        sa.Column("calendar_snapshot", sa.JSON(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolution", conflict_resolution),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_by", sa.String(length=255)),
    )
    op.create_index("ix_sync_conflicts_booking_id", "sync_conflicts", ["booking_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"),
        ),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=1024)),
        sa.Column("actor", sa.String(length=255)),
        sa.Column("payload", sa.JSON()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_events_booking_id", "audit_events", ["booking_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_event_type", table_name="audit_events")
    op.drop_index("ix_audit_events_booking_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_sync_conflicts_booking_id", table_name="sync_conflicts")
    op.drop_table("sync_conflicts")
    op.drop_index("ix_maintenance_windows_castle_id", table_name="maintenance_windows")
    op.drop_table("maintenance_windows")
    op.drop_index("ix_bookings_calendar_event_id", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_event_date", table_name="bookings")
    op.drop_index("ix_bookings_castle_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("castles")

    bind = op.get_bind()
    for enum_type in (
        conflict_resolution,
        sync_conflict_type,
        maintenance_status,
        payment_method,
        sync_status,
        booking_status,
    ):
        enum_type.drop(bind, checkfirst=True)
