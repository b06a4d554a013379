"""ORM models package export."""

from app.models.activity_event import ActivityEvent
from app.models.booking import Booking, BookingInstance, BookingStatus
from app.models.capacity_schedule import (
    CapacitySchedule,
    PeriodType,
    PeriodTypeDefault,
    RecurrenceType,
)
from app.models.side import Side

__all__ = [
    "ActivityEvent",
    "Booking",
    "BookingInstance",
    "BookingStatus",
    "CapacitySchedule",
    "PeriodType",
    "PeriodTypeDefault",
    "RecurrenceType",
    "Side",
]
