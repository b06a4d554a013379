"""Capacity schedules and per-period defaults."""

from __future__ import annotations

import enum
import uuid
from datetime import date, time
from typing import TYPE_CHECKING

from sqlalchemy import (
    Date,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.models.side import Side


class PeriodType(str, enum.Enum):
    """Named capacity regimes."""

    HIGH_HYBRID = "High Hybrid"
    LOW_HYBRID = "Low Hybrid"
    PERFORMANCE = "Performance"
    GENERAL_USER = "General User"
    CLOSED = "Closed"


class RecurrenceType(str, enum.Enum):
    """How a schedule repeats across dates."""

    SINGLE = "single"
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    WEEKLY = "weekly"
    ALL_FUTURE = "all_future"


class CapacitySchedule(TimestampMixin, Base):
    """Athlete limit for a time-of-day window on a given weekday."""

    __tablename__ = "capacity_schedules"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    side_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sides.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time(), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(
        Enum(PeriodType, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
    )
    recurrence_type: Mapped[RecurrenceType] = mapped_column(
        Enum(RecurrenceType), default=RecurrenceType.WEEKLY, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    excluded_dates: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    platforms: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)

    side: Mapped["Side"] = relationship("Side", back_populates="capacity_schedules")


class PeriodTypeDefault(TimestampMixin, Base):
    """Default capacity and rack allow-list for a period type on a side."""

    __tablename__ = "period_type_defaults"
    __table_args__ = (
        UniqueConstraint("side_id", "period_type", name="uq_period_default_side_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    side_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sides.id", ondelete="CASCADE"), nullable=False
    )
    period_type: Mapped[PeriodType] = mapped_column(
        Enum(PeriodType, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
    )
    capacity: Mapped[int | None] = mapped_column(Integer())
    platforms: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
