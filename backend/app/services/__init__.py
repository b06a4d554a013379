"""Service layer exports."""

from app.services import (
    capacity_service,
    conflict_service,
    cutoff_service,
    recurrence_service,
)

__all__ = [
    "capacity_service",
    "conflict_service",
    "cutoff_service",
    "recurrence_service",
]
