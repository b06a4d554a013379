"""Booking series and their concrete instances."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import TimestampMixin


class BookingStatus(str, enum.Enum):
    """Workflow states for a booking series."""

    DRAFT = "draft"
    PENDING = "pending"
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PENDING_CANCELLATION = "pending_cancellation"


class Booking(TimestampMixin, Base):
    """Named recurring reservation of racks on one side."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    side_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sides.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    color: Mapped[str | None] = mapped_column(String(32))
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False
    )
    areas: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    racks: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    capacity_template: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    processed_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    processed_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    last_edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_edited_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    last_minute_change: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    cutoff_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    override_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text)

    instances: Mapped[list["BookingInstance"]] = relationship(
        "BookingInstance",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingInstance.start_at",
    )


class BookingInstance(TimestampMixin, Base):
    """One scheduled occurrence of a booking."""

    __tablename__ = "booking_instances"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    side_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sides.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    racks: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    areas: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    booking: Mapped[Booking] = relationship("Booking", back_populates="instances")
