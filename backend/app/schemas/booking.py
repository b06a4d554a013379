"""Pydantic schemas for bookings and their instances."""

from __future__ import annotations

import uuid
from datetime import datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.config import get_settings
from app.models.booking import BookingStatus
from app.services.booking_planner import CancelMode


def _as_facility_time(value: datetime) -> datetime:
    """Naive timestamps are read as facility wall-clock time."""
    if value.tzinfo is None:
        return value.replace(tzinfo=get_settings().facility_tz)
    return value


class BookingInstanceRead(BaseModel):
    """Serialized booking instance."""

    id: uuid.UUID
    booking_id: uuid.UUID
    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: list[int]
    areas: list[str] = Field(default_factory=list)
    capacity: int
    is_locked: bool = False
    cancelled_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    """Serialized booking series."""

    id: uuid.UUID
    title: str
    side_id: uuid.UUID
    created_by: uuid.UUID | None = None
    color: str | None = None
    is_locked: bool
    status: BookingStatus
    areas: list[str] = Field(default_factory=list)
    racks: list[int] = Field(default_factory=list)
    capacity_template: int
    processed_by: uuid.UUID | None = None
    processed_at: datetime | None = None
    processed_snapshot: dict[str, Any] | None = None
    last_edited_at: datetime | None = None
    last_edited_by: uuid.UUID | None = None
    last_minute_change: bool = False
    cutoff_at: datetime | None = None
    override_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime
    instances: list[BookingInstanceRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class BookingMutationRead(BaseModel):
    """Booking returned from a committed mutation plus non-blocking warnings."""

    booking: BookingRead
    warnings: list[str] = Field(default_factory=list)
    last_minute_change: bool = False


class BookingCreate(BaseModel):
    """Payload for creating a weekly booking."""

    title: str = Field(min_length=1, max_length=200)
    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: list[int] = Field(min_length=1)
    areas: list[str] = Field(default_factory=list)
    capacity: int = Field(default=1, ge=1)
    weeks: int = Field(default=1, ge=1)
    rack_overrides: dict[int, list[int]] = Field(default_factory=dict)
    capacity_overrides: dict[int, int] = Field(default_factory=dict)
    color: str | None = Field(default=None, max_length=32)
    is_locked: bool = False

    @field_validator("start_at", "end_at")
    @classmethod
    def _facility_aware(cls, value: datetime) -> datetime:
        return _as_facility_time(value)

    @model_validator(mode="after")
    def _check_window(self) -> "BookingCreate":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class InstanceUpdate(BaseModel):
    """Selection edit applied to chosen instances of a booking."""

    instance_ids: list[uuid.UUID] = Field(default_factory=list)
    apply_to_all: bool = False
    start_time: time | None = None
    end_time: time | None = None
    capacity: int | None = Field(default=None, ge=1)
    racks: list[int] | None = None
    areas: list[str] | None = None

    @model_validator(mode="after")
    def _check_selection(self) -> "InstanceUpdate":
        if not self.apply_to_all and not self.instance_ids:
            raise ValueError("Select instances or set apply_to_all")
        if self.racks is not None and not self.racks:
            raise ValueError("Select at least one rack")
        return self


class BookingExtendRequest(BaseModel):
    weeks: int = Field(ge=1)


class BookingCancelRequest(BaseModel):
    """Cancellation scope; ``instance_id`` is required unless mode is ``all``."""

    mode: CancelMode = CancelMode.SINGLE
    instance_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _check_target(self) -> "BookingCancelRequest":
        if self.mode != CancelMode.ALL and self.instance_id is None:
            raise ValueError("instance_id is required for single and future cancellation")
        return self


class CandidateCheckRequest(BaseModel):
    """Ad-hoc conflict or capacity check for a proposed instance."""

    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: list[int] = Field(default_factory=list)
    capacity: int = Field(default=1, ge=0)
    exclude_booking_id: uuid.UUID | None = None
    exclude_instance_ids: list[uuid.UUID] = Field(default_factory=list)

    @field_validator("start_at", "end_at")
    @classmethod
    def _facility_aware(cls, value: datetime) -> datetime:
        return _as_facility_time(value)

    @model_validator(mode="after")
    def _check_window(self) -> "CandidateCheckRequest":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class ConflictRead(BaseModel):
    booking_title: str
    racks: list[int]
    start_at: datetime
    end_at: datetime


class ConflictCheckRead(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictRead] = Field(default_factory=list)
    message: str | None = None


class CapacityCheckRead(BaseModel):
    is_valid: bool
    closed: bool = False
    used: int
    limit: int | None = None
    peak_at: datetime | None = None
    period_type: str | None = None
    available_racks: list[int] | None = None
    racks_outside_period: list[int] = Field(default_factory=list)
    message: str | None = None


class ActivityEventRead(BaseModel):
    id: uuid.UUID
    event_type: str
    actor_id: uuid.UUID | None = None
    booking_id: uuid.UUID | None = None
    description: str | None = None
    payload: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlannedInstanceRead(BaseModel):
    week: int | None = None
    start_at: datetime
    end_at: datetime
    racks: list[int]
    capacity: int


class ExtendPlanRead(BaseModel):
    """Extension preview: every generated instance or the blocking violations."""

    blocked: bool
    accepted: list[PlannedInstanceRead] = Field(default_factory=list)
    violation: dict[str, Any] | None = None
    message: str | None = None
    warnings: list[str] = Field(default_factory=list)
