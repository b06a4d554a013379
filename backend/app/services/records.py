"""Plain value types exchanged between the engine and a booking store."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Any

from app.models.booking import BookingStatus
from app.models.capacity_schedule import PeriodType, RecurrenceType


@dataclass(slots=True, frozen=True)
class InstanceRecord:
    """Persisted occurrence of a booking as seen by the engine."""

    id: uuid.UUID | None
    booking_id: uuid.UUID
    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: tuple[int, ...]
    areas: tuple[str, ...] = ()
    capacity: int = 1
    booking_title: str = "Unknown"
    is_locked: bool = False
    cancelled_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class BookingRecord:
    """Booking series header."""

    id: uuid.UUID
    title: str
    side_id: uuid.UUID
    status: BookingStatus
    created_by: uuid.UUID | None = None
    is_locked: bool = False
    color: str | None = None
    areas: tuple[str, ...] = ()
    racks: tuple[int, ...] = ()
    capacity_template: int = 1
    last_minute_change: bool = False
    processed_at: datetime | None = None
    last_edited_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class ScheduleRecord:
    """Capacity rule for a weekday/time window."""

    id: uuid.UUID | None
    side_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    capacity: int
    period_type: PeriodType
    recurrence_type: RecurrenceType
    start_date: date
    end_date: date | None = None
    excluded_dates: frozenset[date] = frozenset()
    platforms: tuple[int, ...] | None = None

    @property
    def is_closed(self) -> bool:
        return self.period_type == PeriodType.CLOSED


@dataclass(slots=True, frozen=True)
class InstanceDescriptor:
    """Proposed state of one instance, new or existing."""

    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: tuple[int, ...]
    areas: tuple[str, ...] = ()
    capacity: int = 1
    instance_id: uuid.UUID | None = None
    week: int | None = None

    def to_record(self, booking_id: uuid.UUID, booking_title: str) -> InstanceRecord:
        return InstanceRecord(
            id=self.instance_id,
            booking_id=booking_id,
            side_id=self.side_id,
            start_at=self.start_at,
            end_at=self.end_at,
            racks=self.racks,
            areas=self.areas,
            capacity=self.capacity,
            booking_title=booking_title,
        )

    def shifted(self, **changes: Any) -> "InstanceDescriptor":
        return replace(self, **changes)


class ChangeKind(str, enum.Enum):
    """Write operations applied to booking instances."""

    CREATE = "create"
    UPDATE = "update"
    CANCEL = "cancel"


@dataclass(slots=True, frozen=True)
class InstanceChange:
    """Single instance write in an all-or-nothing change set."""

    kind: ChangeKind
    instance_id: uuid.UUID | None = None
    descriptor: InstanceDescriptor | None = None
    cancelled_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class ActivityRecord:
    """Activity log entry written alongside a committed mutation."""

    event_type: str
    actor_id: uuid.UUID | None
    booking_id: uuid.UUID | None
    description: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class NewBooking:
    """Booking header to insert together with its first instances."""

    title: str
    side_id: uuid.UUID
    created_by: uuid.UUID | None
    areas: tuple[str, ...]
    racks: tuple[int, ...]
    capacity_template: int
    color: str | None = None
    is_locked: bool = False
    status: BookingStatus = BookingStatus.PENDING
    last_minute_change: bool = False
    cutoff_at: datetime | None = None
    override_by: uuid.UUID | None = None
    override_reason: str | None = None
