"""Schema exports."""

from app.schemas.booking import (
    ActivityEventRead,
    BookingCancelRequest,
    BookingCreate,
    BookingExtendRequest,
    BookingInstanceRead,
    BookingMutationRead,
    BookingRead,
    CandidateCheckRequest,
    CapacityCheckRead,
    ConflictCheckRead,
    ConflictRead,
    ExtendPlanRead,
    InstanceUpdate,
    PlannedInstanceRead,
)
from app.schemas.capacity import (
    CapacityScheduleCreate,
    CapacityScheduleRead,
    CapacityScheduleUpdate,
    PeriodTypeDefaultRead,
    PeriodTypeDefaultUpsert,
)
from app.schemas.side import ActiveInstanceRead, CutoffRead, SideRead, SideSnapshotRead

__all__ = [
    "ActiveInstanceRead",
    "ActivityEventRead",
    "BookingCancelRequest",
    "BookingCreate",
    "BookingExtendRequest",
    "BookingInstanceRead",
    "BookingMutationRead",
    "BookingRead",
    "CandidateCheckRequest",
    "CapacityCheckRead",
    "CapacityScheduleCreate",
    "CapacityScheduleRead",
    "CapacityScheduleUpdate",
    "ConflictCheckRead",
    "ConflictRead",
    "CutoffRead",
    "ExtendPlanRead",
    "InstanceUpdate",
    "PeriodTypeDefaultRead",
    "PeriodTypeDefaultUpsert",
    "PlannedInstanceRead",
    "SideRead",
    "SideSnapshotRead",
]
