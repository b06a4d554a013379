"""Rack-level time overlap detection between booking instances."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Any

from app.services.records import InstanceDescriptor, InstanceRecord

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.services.booking_store import BookingStore


@dataclass(slots=True, frozen=True)
class ConflictTriple:
    """A rack claimed by another booking during an overlapping window."""

    rack: int
    booking_title: str
    start_at: datetime
    end_at: datetime
    booking_id: uuid.UUID | None = None


@dataclass(slots=True)
class ConflictReport:
    """Conflicts found for each candidate of a mutation attempt."""

    entries: list[tuple[InstanceDescriptor, list[ConflictTriple]]] = field(
        default_factory=list
    )

    def add(self, candidate: InstanceDescriptor, triples: list[ConflictTriple]) -> None:
        if triples:
            self.entries.append((candidate, triples))

    @property
    def has_conflicts(self) -> bool:
        return bool(self.entries)

    def to_detail(self) -> list[dict[str, Any]]:
        detail: list[dict[str, Any]] = []
        for candidate, triples in self.entries:
            detail.append(
                {
                    "instance_id": str(candidate.instance_id) if candidate.instance_id else None,
                    "week": candidate.week,
                    "start_at": candidate.start_at.isoformat(),
                    "end_at": candidate.end_at.isoformat(),
                    "conflicts": [
                        {
                            "booking_title": title,
                            "racks": racks,
                            "start_at": start_at.isoformat(),
                            "end_at": end_at.isoformat(),
                        }
                        for (title, start_at, end_at), racks in group_by_booking(triples)
                    ],
                }
            )
        return detail


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open overlap test: touching boundaries do not overlap."""
    return start_a < end_b and start_b < end_a


def find_conflicts(
    candidate: InstanceDescriptor, others: Iterable[InstanceRecord]
) -> list[ConflictTriple]:
    """Return every (rack, booking, window) the candidate collides with."""
    wanted = set(candidate.racks)
    triples: list[ConflictTriple] = []
    if not wanted:
        return triples
    for other in others:
        if other.side_id != candidate.side_id or other.cancelled_at is not None:
            continue
        if candidate.instance_id is not None and other.id == candidate.instance_id:
            continue
        if not intervals_overlap(
            candidate.start_at, candidate.end_at, other.start_at, other.end_at
        ):
            continue
        for rack in wanted.intersection(other.racks):
            triples.append(
                ConflictTriple(
                    rack=rack,
                    booking_title=other.booking_title,
                    start_at=other.start_at,
                    end_at=other.end_at,
                    booking_id=other.booking_id,
                )
            )
    triples.sort(key=lambda t: (t.rack, t.start_at, t.booking_title, str(t.booking_id)))
    return triples


async def check_conflicts(
    store: "BookingStore",
    candidate: InstanceDescriptor,
    *,
    exclude_booking_id: uuid.UUID | None = None,
    pending: Sequence[InstanceRecord] = (),
) -> list[ConflictTriple]:
    """Check a candidate against persisted instances plus same-batch acceptances."""
    existing = await store.fetch_overlapping_instances(
        candidate.side_id,
        candidate.start_at,
        candidate.end_at,
        exclude_booking_id=exclude_booking_id,
    )
    return find_conflicts(candidate, [*existing, *pending])


def group_by_booking(
    triples: Iterable[ConflictTriple],
) -> list[tuple[tuple[str, datetime, datetime], list[int]]]:
    grouped: dict[tuple[str, datetime, datetime], list[int]] = {}
    for triple in triples:
        key = (triple.booking_title, triple.start_at, triple.end_at)
        racks = grouped.setdefault(key, [])
        if triple.rack not in racks:
            racks.append(triple.rack)
    return [(key, sorted(racks)) for key, racks in grouped.items()]


def format_range(start_at: datetime, end_at: datetime, tz: tzinfo) -> str:
    """Render an interval in facility time, e.g. ``Mon 17 Jun 09:00 - 10:30``."""
    local_start = start_at.astimezone(tz)
    local_end = end_at.astimezone(tz)
    if local_start.date() == local_end.date():
        return f"{local_start:%a %d %b %H:%M} - {local_end:%H:%M}"
    return f"{local_start:%a %d %b %H:%M} - {local_end:%a %d %b %H:%M}"


def describe_conflicts(report: ConflictReport, tz: tzinfo) -> str:
    """Human-readable breakdown grouped per instance, then per conflicting booking."""
    lines = ["Booking conflicts detected:"]
    for candidate, triples in report.entries:
        window = format_range(candidate.start_at, candidate.end_at, tz)
        label = f"Week {candidate.week} ({window})" if candidate.week else window
        lines.append(f"{label}:")
        for (title, start_at, end_at), racks in group_by_booking(triples):
            noun = "Racks" if len(racks) > 1 else "Rack"
            rack_list = ", ".join(str(rack) for rack in racks)
            lines.append(
                f'  - {noun} {rack_list} conflict with "{title}" '
                f"({format_range(start_at, end_at, tz)})"
            )
    return "\n".join(lines)
