"""Schemas for gym sides and their occupancy snapshot."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class SideRead(BaseModel):
    id: uuid.UUID
    key: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class ActiveInstanceRead(BaseModel):
    """Instance currently occupying racks on a side."""

    instance_id: uuid.UUID | None
    booking_id: uuid.UUID
    booking_title: str
    start_at: datetime
    end_at: datetime
    racks: list[int]
    areas: list[str] = Field(default_factory=list)
    capacity: int


class SideSnapshotRead(BaseModel):
    side_id: uuid.UUID
    at: datetime
    current: list[ActiveInstanceRead] = Field(default_factory=list)
    racks_in_use: list[int] = Field(default_factory=list)
    next_use_by_rack: dict[int, datetime] = Field(default_factory=dict)
    next_use_by_area: dict[str, datetime] = Field(default_factory=dict)


class CutoffRead(BaseModel):
    session_date: date
    cutoff_at: datetime
    is_after_cutoff: bool
    message: str
