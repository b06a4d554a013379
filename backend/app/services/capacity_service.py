"""Capacity schedule resolution and athlete-load evaluation."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING, Any

from app.models.capacity_schedule import PeriodType, RecurrenceType
from app.services.conflict_service import format_range, intervals_overlap
from app.services.records import InstanceDescriptor, InstanceRecord, ScheduleRecord

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.services.booking_store import BookingStore


@dataclass(slots=True, frozen=True)
class CapacityViolation:
    """Point in time where the proposed load breaks the schedule."""

    at: datetime
    used: int
    limit: int
    period_type: PeriodType
    closed: bool = False

    @property
    def excess(self) -> int:
        return self.used - self.limit


@dataclass(slots=True, frozen=True)
class CapacityCheck:
    """Outcome of evaluating one candidate against the capacity schedules."""

    is_valid: bool
    violations: tuple[CapacityViolation, ...] = ()
    max_used: int = 0
    max_limit: int | None = None
    period_type: PeriodType | None = None
    available_racks: frozenset[int] | None = None
    racks_outside_period: tuple[int, ...] = ()

    @property
    def closed(self) -> bool:
        return any(violation.closed for violation in self.violations)

    @property
    def peak(self) -> CapacityViolation | None:
        if not self.violations:
            return None
        return max(self.violations, key=lambda v: (v.closed, v.used, -v.at.timestamp()))


def day_of_week(day: date) -> int:
    """Sunday-based weekday index used by stored schedules."""
    return (day.weekday() + 1) % 7


def schedule_applies(schedule: ScheduleRecord, day: date, moment: time) -> bool:
    """Whether a schedule covers a local date and time of day."""
    # [start_time, end_time): a window ending at 09:00 does not cover 09:00
    if not (schedule.start_time <= moment < schedule.end_time):
        return False
    if day in schedule.excluded_dates:
        return False
    if schedule.end_date is not None and day > schedule.end_date:
        return False
    weekday = day_of_week(day)
    if schedule.day_of_week != weekday:
        return False
    if schedule.recurrence_type == RecurrenceType.SINGLE:
        return schedule.start_date == day
    if day < schedule.start_date:
        return False
    if schedule.recurrence_type == RecurrenceType.WEEKDAY:
        return 1 <= weekday <= 5
    if schedule.recurrence_type == RecurrenceType.WEEKEND:
        return weekday in (0, 6)
    return True


def _precedence(schedule: ScheduleRecord) -> tuple[bool, int, str]:
    start = schedule.start_time
    seconds = start.hour * 3600 + start.minute * 60 + start.second
    return (schedule.is_closed, -seconds, str(schedule.id))


def select_schedule(
    schedules: Iterable[ScheduleRecord], day: date, moment: time
) -> ScheduleRecord | None:
    """Pick the governing schedule: non-closed beats closed, later start wins."""
    applicable = [s for s in schedules if schedule_applies(s, day, moment)]
    if not applicable:
        return None
    return min(applicable, key=_precedence)


def schedule_at(
    schedules: Iterable[ScheduleRecord], moment: datetime, tz: tzinfo
) -> ScheduleRecord | None:
    local = moment.astimezone(tz)
    return select_schedule(schedules, local.date(), local.time())


def available_racks(
    schedule: ScheduleRecord | None, default_racks: Sequence[int] = ()
) -> frozenset[int] | None:
    """Racks usable under a schedule; ``None`` means unrestricted."""
    if schedule is None:
        return None
    if schedule.is_closed:
        return frozenset()
    if schedule.platforms is not None:
        return frozenset(schedule.platforms)
    if default_racks:
        return frozenset(default_racks)
    return None


def _evaluation_points(
    candidate: InstanceDescriptor,
    others: Sequence[InstanceRecord],
    schedules: Sequence[ScheduleRecord],
    tz: tzinfo,
) -> list[datetime]:
    # Load only rises at instance starts and limits only change at schedule
    # boundaries, so these points cover every peak in the interval.
    start, end = candidate.start_at, candidate.end_at
    points = {start}
    for other in others:
        if start < other.start_at < end:
            points.add(other.start_at)
    local_day = start.astimezone(tz).date()
    last_day = end.astimezone(tz).date()
    while local_day <= last_day:
        for schedule in schedules:
            for boundary in (schedule.start_time, schedule.end_time):
                moment = datetime.combine(local_day, boundary, tzinfo=tz)
                if start < moment < end:
                    points.add(moment)
        local_day += timedelta(days=1)
    return sorted(points)


def evaluate_capacity(
    candidate: InstanceDescriptor,
    existing: Iterable[InstanceRecord],
    schedules: Sequence[ScheduleRecord],
    *,
    tz: tzinfo,
    default_racks: Sequence[int] = (),
) -> CapacityCheck:
    """Sum overlapping load at each change point and compare with the limit."""
    others = [
        inst
        for inst in existing
        if inst.side_id == candidate.side_id
        and inst.cancelled_at is None
        and (candidate.instance_id is None or inst.id != candidate.instance_id)
        and intervals_overlap(
            candidate.start_at, candidate.end_at, inst.start_at, inst.end_at
        )
    ]

    violations: list[CapacityViolation] = []
    max_used = 0
    max_limit: int | None = None
    for point in _evaluation_points(candidate, others, schedules, tz):
        used = candidate.capacity + sum(
            inst.capacity for inst in others if inst.start_at <= point < inst.end_at
        )
        schedule = schedule_at(schedules, point, tz)
        limit: int | None = None
        if schedule is not None and schedule.is_closed:
            limit = 0
            if candidate.capacity > 0:
                violations.append(
                    CapacityViolation(
                        at=point,
                        used=used,
                        limit=0,
                        period_type=schedule.period_type,
                        closed=True,
                    )
                )
        elif schedule is not None:
            limit = schedule.capacity
            if used > limit:
                violations.append(
                    CapacityViolation(
                        at=point, used=used, limit=limit, period_type=schedule.period_type
                    )
                )
        if used > max_used:
            max_used = used
            max_limit = limit

    start_schedule = schedule_at(schedules, candidate.start_at, tz)
    racks = available_racks(start_schedule, default_racks)
    outside: tuple[int, ...] = ()
    if racks is not None:
        outside = tuple(sorted(set(candidate.racks) - racks))
    return CapacityCheck(
        is_valid=not violations,
        violations=tuple(violations),
        max_used=max_used,
        max_limit=max_limit,
        period_type=start_schedule.period_type if start_schedule else None,
        available_racks=racks,
        racks_outside_period=outside,
    )


async def check_capacity(
    store: "BookingStore",
    candidate: InstanceDescriptor,
    *,
    tz: tzinfo,
    exclude_instance_ids: Sequence[uuid.UUID] = (),
    pending: Sequence[InstanceRecord] = (),
) -> CapacityCheck:
    """Evaluate a candidate against stored schedules and instances."""
    range_start = candidate.start_at.astimezone(tz).date()
    range_end = candidate.end_at.astimezone(tz).date()
    schedules = await store.fetch_capacity_schedules(
        candidate.side_id, range_start, range_end
    )
    existing = await store.fetch_overlapping_instances(
        candidate.side_id,
        candidate.start_at,
        candidate.end_at,
        exclude_instance_ids=exclude_instance_ids,
    )
    default_racks: Sequence[int] = ()
    start_schedule = schedule_at(schedules, candidate.start_at, tz)
    if (
        start_schedule is not None
        and not start_schedule.is_closed
        and start_schedule.platforms is None
    ):
        default_racks = await store.fetch_default_racks_for_period_type(
            candidate.side_id, start_schedule.period_type
        )
    return evaluate_capacity(
        candidate,
        [*existing, *pending],
        schedules,
        tz=tz,
        default_racks=default_racks,
    )


def capacity_detail(candidate: InstanceDescriptor, check: CapacityCheck) -> dict[str, Any]:
    peak = check.peak
    return {
        "instance_id": str(candidate.instance_id) if candidate.instance_id else None,
        "week": candidate.week,
        "start_at": candidate.start_at.isoformat(),
        "end_at": candidate.end_at.isoformat(),
        "peak_at": peak.at.isoformat() if peak else None,
        "used": peak.used if peak else check.max_used,
        "limit": peak.limit if peak else check.max_limit,
        "period_type": peak.period_type.value if peak else None,
        "closed": check.closed,
    }


def describe_capacity(
    failures: Sequence[tuple[InstanceDescriptor, CapacityCheck]], tz: tzinfo
) -> str:
    """Human-readable capacity failure summary for each affected instance."""
    closed = any(check.closed for _, check in failures)
    lines = ["Period is closed:" if closed else "Capacity exceeded:"]
    for candidate, check in failures:
        peak = check.peak
        if peak is None:
            continue
        window = format_range(candidate.start_at, candidate.end_at, tz)
        label = f"Week {candidate.week} ({window})" if candidate.week else window
        at = peak.at.astimezone(tz)
        if peak.closed:
            lines.append(f"{label}: the facility is closed at {at:%H:%M}")
            continue
        noun = "athlete" if peak.excess == 1 else "athletes"
        lines.append(
            f"{label}: exceeds capacity by {peak.excess} {noun} at {at:%H:%M} "
            f"({peak.used} / {peak.limit}, {peak.period_type.value})"
        )
    return "\n".join(lines)
