"""Schemas for capacity schedules and period defaults."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.capacity_schedule import PeriodType, RecurrenceType


class CapacityScheduleBase(BaseModel):
    """Shared fields for capacity schedules."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    capacity: int = Field(ge=0)
    period_type: PeriodType
    recurrence_type: RecurrenceType = RecurrenceType.WEEKLY
    start_date: date
    end_date: date | None = None
    excluded_dates: list[date] = Field(default_factory=list)
    platforms: list[int] | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "CapacityScheduleBase":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class CapacityScheduleCreate(CapacityScheduleBase):
    """Payload to create a capacity schedule for a side."""


class CapacityScheduleUpdate(BaseModel):
    """Mutable capacity schedule fields."""

    start_time: time | None = None
    end_time: time | None = None
    capacity: int | None = Field(default=None, ge=0)
    period_type: PeriodType | None = None
    recurrence_type: RecurrenceType | None = None
    end_date: date | None = None
    excluded_dates: list[date] | None = None
    platforms: list[int] | None = None


class CapacityScheduleRead(CapacityScheduleBase):
    """Serialized capacity schedule response."""

    id: uuid.UUID
    side_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PeriodTypeDefaultUpsert(BaseModel):
    capacity: int | None = Field(default=None, ge=0)
    platforms: list[int] = Field(default_factory=list)


class PeriodTypeDefaultRead(PeriodTypeDefaultUpsert):
    id: uuid.UUID
    side_id: uuid.UUID
    period_type: PeriodType

    model_config = ConfigDict(from_attributes=True)
