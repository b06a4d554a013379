"""Point-in-time occupancy view of a side, used by the kiosk display."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from app.services.booking_store import BookingStore
from app.services.records import InstanceRecord

DEFAULT_LOOKAHEAD = timedelta(days=7)


@dataclass(slots=True, frozen=True)
class SideSnapshot:
    side_id: uuid.UUID
    at: datetime
    current: tuple[InstanceRecord, ...] = ()
    next_use_by_rack: dict[int, datetime] = field(default_factory=dict)
    next_use_by_area: dict[str, datetime] = field(default_factory=dict)

    @property
    def racks_in_use(self) -> list[int]:
        return sorted({rack for inst in self.current for rack in inst.racks})


def build_snapshot(
    side_id: uuid.UUID, at: datetime, instances: list[InstanceRecord]
) -> SideSnapshot:
    """Split instances into those active at ``at`` and the next start per rack/area."""
    current: list[InstanceRecord] = []
    next_by_rack: dict[int, datetime] = {}
    next_by_area: dict[str, datetime] = {}
    for inst in sorted(instances, key=lambda item: item.start_at):
        if inst.side_id != side_id or inst.cancelled_at is not None:
            continue
        if inst.start_at <= at < inst.end_at:
            current.append(inst)
            continue
        if inst.start_at <= at:
            continue
        for rack in inst.racks:
            next_by_rack.setdefault(rack, inst.start_at)
        for area in inst.areas:
            next_by_area.setdefault(area, inst.start_at)
    return SideSnapshot(
        side_id=side_id,
        at=at,
        current=tuple(current),
        next_use_by_rack=next_by_rack,
        next_use_by_area=next_by_area,
    )


async def side_snapshot(
    store: BookingStore,
    side_id: uuid.UUID,
    at: datetime,
    *,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
) -> SideSnapshot:
    instances = await store.fetch_overlapping_instances(side_id, at, at + lookahead)
    return build_snapshot(side_id, at, instances)
