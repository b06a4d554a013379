"""Create sides, bookings, instances, capacity schedules and activity log.

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

_BOOKING_STATUS = sa.Enum(
    "DRAFT",
    "PENDING",
    "PROCESSED",
    "CONFIRMED",
    "COMPLETED",
    "CANCELLED",
    "PENDING_CANCELLATION",
    name="bookingstatus",
)
_PERIOD_TYPE = sa.Enum(
    "High Hybrid",
    "Low Hybrid",
    "Performance",
    "General User",
    "Closed",
    name="periodtype",
)
_RECURRENCE_TYPE = sa.Enum(
    "SINGLE", "WEEKDAY", "WEEKEND", "WEEKLY", "ALL_FUTURE", name="recurrencetype"
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


def _side_fk() -> sa.Column:
    return sa.Column(
        "side_id",
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("sides.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "sides",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("key", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(120), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        _side_fk(),
        sa.Column("created_by", sa.Uuid(as_uuid=True)),
        sa.Column("color", sa.String(32)),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", _BOOKING_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("areas", sa.JSON(), nullable=False),
        sa.Column("racks", sa.JSON(), nullable=False),
        sa.Column("capacity_template", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("processed_by", sa.Uuid(as_uuid=True)),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("processed_snapshot", sa.JSON()),
        sa.Column("last_edited_at", sa.DateTime(timezone=True)),
        sa.Column("last_edited_by", sa.Uuid(as_uuid=True)),
        sa.Column(
            "last_minute_change", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("cutoff_at", sa.DateTime(timezone=True)),
        sa.Column("override_by", sa.Uuid(as_uuid=True)),
        sa.Column("override_reason", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_bookings_side_status", "bookings", ["side_id", "status"])

    op.create_table(
        "booking_instances",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _side_fk(),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("racks", sa.JSON(), nullable=False),
        sa.Column("areas", sa.JSON(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 0", name="ck_booking_instances_capacity"),
        sa.CheckConstraint("end_at > start_at", name="ck_booking_instances_window"),
    )
    op.create_index(
        "ix_booking_instances_booking_id", "booking_instances", ["booking_id"]
    )
    op.create_index(
        "ix_booking_instances_side_window",
        "booking_instances",
        ["side_id", "start_at", "end_at"],
    )

    op.create_table(
        "capacity_schedules",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _side_fk(),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("period_type", _PERIOD_TYPE, nullable=False),
        sa.Column(
            "recurrence_type", _RECURRENCE_TYPE, nullable=False, server_default="WEEKLY"
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("excluded_dates", sa.JSON(), nullable=False),
        sa.Column("platforms", sa.JSON()),
        *_timestamps(),
        sa.CheckConstraint(
            "day_of_week BETWEEN 0 AND 6", name="ck_capacity_schedules_day"
        ),
    )
    op.create_index(
        "ix_capacity_schedules_side_id", "capacity_schedules", ["side_id"]
    )

    op.create_table(
        "period_type_defaults",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _side_fk(),
        sa.Column("period_type", _PERIOD_TYPE, nullable=False),
        sa.Column("capacity", sa.Integer()),
        sa.Column("platforms", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "side_id", "period_type", name="uq_period_default_side_type"
        ),
    )

    op.create_table(
        "activity_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(120), nullable=False),
        sa.Column("actor_id", sa.Uuid(as_uuid=True)),
        sa.Column("booking_id", sa.Uuid(as_uuid=True)),
        sa.Column("description", sa.String(1024)),
        sa.Column("payload", sa.JSON()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_activity_events_booking_id", "activity_events", ["booking_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_activity_events_booking_id", table_name="activity_events")
    op.drop_table("activity_events")
    op.drop_table("period_type_defaults")
    op.drop_index("ix_capacity_schedules_side_id", table_name="capacity_schedules")
    op.drop_table("capacity_schedules")
    op.drop_index("ix_booking_instances_side_window", table_name="booking_instances")
    op.drop_index("ix_booking_instances_booking_id", table_name="booking_instances")
    op.drop_table("booking_instances")
    op.drop_index("ix_bookings_side_status", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("sides")
    bind = op.get_bind()
    for enum_type in (_RECURRENCE_TYPE, _PERIOD_TYPE, _BOOKING_STATUS):
        enum_type.drop(bind, checkfirst=True)
