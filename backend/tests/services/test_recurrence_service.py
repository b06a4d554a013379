"""Weekly recurrence generation tests."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from app.services.records import InstanceDescriptor, InstanceRecord
from app.services.recurrence_service import (
    expand_weekly,
    generate_extension,
    infer_week_offset,
)

LONDON = ZoneInfo("Europe/London")


def _instance(start: datetime, *, racks=(1, 2), capacity=4, hours=1) -> InstanceRecord:
    return InstanceRecord(
        id=uuid.uuid4(),
        booking_id=uuid.uuid4(),
        side_id=uuid.uuid4(),
        start_at=start,
        end_at=start + timedelta(hours=hours),
        racks=racks,
        areas=("Platforms",),
        capacity=capacity,
    )


def test_week_offset_falls_back_to_one() -> None:
    start = datetime(2024, 6, 17, 8, tzinfo=UTC)
    assert infer_week_offset([_instance(start)]) == 1
    assert infer_week_offset([]) == 1


def test_week_offset_from_first_gap() -> None:
    start = datetime(2024, 6, 3, 8, tzinfo=UTC)
    series = [_instance(start), _instance(start + timedelta(weeks=2))]
    assert infer_week_offset(series) == 2


def test_extension_continues_after_last_instance() -> None:
    start = datetime(2024, 6, 3, 8, tzinfo=UTC)
    first = _instance(start, racks=(1, 2), capacity=4)
    second = _instance(start + timedelta(weeks=2), racks=(9,), capacity=6)
    generated = generate_extension([second, first], 3, LONDON)

    assert [g.start_at for g in generated] == [
        start + timedelta(weeks=4),
        start + timedelta(weeks=6),
        start + timedelta(weeks=8),
    ]
    assert all(g.racks == (1, 2) for g in generated)
    assert all(g.capacity == 4 for g in generated)
    assert all(g.end_at - g.start_at == timedelta(hours=1) for g in generated)
    assert [g.week for g in generated] == [3, 4, 5]


def test_extension_keeps_wall_clock_across_dst() -> None:
    # Mon 25 Mar 2024 09:00 GMT; clocks go forward on 31 Mar.
    start = datetime(2024, 3, 25, 9, tzinfo=UTC)
    generated = generate_extension([_instance(start)], 1, LONDON)
    local = generated[0].start_at.astimezone(LONDON)
    assert local.hour == 9
    assert generated[0].start_at == datetime(2024, 4, 1, 8, tzinfo=UTC)


def test_expand_weekly_applies_per_week_overrides() -> None:
    template = InstanceDescriptor(
        side_id=uuid.uuid4(),
        start_at=datetime(2024, 6, 17, 8, tzinfo=UTC),
        end_at=datetime(2024, 6, 17, 9, tzinfo=UTC),
        racks=(1,),
        capacity=2,
    )
    weeks = expand_weekly(
        template, 3, LONDON, rack_overrides={2: [5, 4]}, capacity_overrides={3: 7}
    )
    assert [w.week for w in weeks] == [1, 2, 3]
    assert [w.racks for w in weeks] == [(1,), (4, 5), (1,)]
    assert [w.capacity for w in weeks] == [2, 2, 7]
    assert weeks[2].start_at == datetime(2024, 7, 1, 8, tzinfo=UTC)
