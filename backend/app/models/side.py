"""Gym sides (Power / Base) with independent rack numbering."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.models.capacity_schedule import CapacitySchedule


class Side(TimestampMixin, Base):
    """A bookable area of the facility."""

    __tablename__ = "sides"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    key: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    capacity_schedules: Mapped[list["CapacitySchedule"]] = relationship(
        "CapacitySchedule", back_populates="side", cascade="all, delete-orphan"
    )
