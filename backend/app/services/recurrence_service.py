"""Weekly instance generation for booking series."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta, tzinfo

from app.services.records import InstanceDescriptor, InstanceRecord

WEEK = timedelta(days=7)


def shift_weeks(moment: datetime, weeks: int, tz: tzinfo) -> datetime:
    """Move by whole weeks keeping the facility wall-clock time across DST."""
    local = moment.astimezone(tz).replace(tzinfo=None) + WEEK * weeks
    return local.replace(tzinfo=tz).astimezone(UTC)


def infer_week_offset(series: Sequence[InstanceRecord]) -> int:
    """Spacing of the series in whole weeks; single-instance series repeat weekly."""
    ordered = sorted(series, key=lambda inst: inst.start_at)
    if len(ordered) < 2:
        return 1
    gap = ordered[1].start_at - ordered[0].start_at
    return max(1, round(gap / WEEK))


def template_capacity(series: Sequence[InstanceRecord]) -> int:
    ordered = sorted(series, key=lambda inst: inst.start_at)
    if not ordered:
        return 1
    return ordered[0].capacity or ordered[-1].capacity or 1


def generate_extension(
    series: Sequence[InstanceRecord], weeks: int, tz: tzinfo
) -> list[InstanceDescriptor]:
    """Append ``weeks`` occurrences after the last instance, keeping its spacing.

    Racks and areas come from the first instance of the series so that later
    one-off edits are not propagated.
    """
    if not series or weeks < 1:
        return []
    ordered = sorted(series, key=lambda inst: inst.start_at)
    first, last = ordered[0], ordered[-1]
    offset = infer_week_offset(ordered)
    duration = last.end_at - last.start_at
    capacity = template_capacity(ordered)
    generated: list[InstanceDescriptor] = []
    for index in range(1, weeks + 1):
        start_at = shift_weeks(last.start_at, offset * index, tz)
        generated.append(
            InstanceDescriptor(
                side_id=last.side_id,
                start_at=start_at,
                end_at=start_at + duration,
                racks=first.racks,
                areas=first.areas,
                capacity=capacity,
                week=len(ordered) + index,
            )
        )
    return generated


def expand_weekly(
    template: InstanceDescriptor,
    weeks: int,
    tz: tzinfo,
    *,
    rack_overrides: dict[int, Sequence[int]] | None = None,
    capacity_overrides: dict[int, int] | None = None,
) -> list[InstanceDescriptor]:
    """Build the initial weekly occurrences of a new booking.

    Overrides are keyed by 1-based week number.
    """
    rack_overrides = rack_overrides or {}
    capacity_overrides = capacity_overrides or {}
    duration = template.end_at - template.start_at
    occurrences: list[InstanceDescriptor] = []
    for week in range(1, weeks + 1):
        start_at = shift_weeks(template.start_at, week - 1, tz)
        racks = rack_overrides.get(week)
        occurrences.append(
            template.shifted(
                start_at=start_at,
                end_at=start_at + duration,
                racks=tuple(sorted(set(racks))) if racks is not None else template.racks,
                capacity=capacity_overrides.get(week, template.capacity),
                week=week,
            )
        )
    return occurrences
