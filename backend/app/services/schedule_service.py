"""Capacity schedule and period default management helpers."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import CapacitySchedule, PeriodType, PeriodTypeDefault, Side


def _serialise_dates(values: Sequence[date]) -> list[str]:
    return sorted({value.isoformat() for value in values})


async def list_sides(session: AsyncSession) -> Sequence[Side]:
    result = await session.execute(select(Side).order_by(Side.key))
    return result.scalars().all()


async def _ensure_side(session: AsyncSession, side_id: uuid.UUID) -> Side:
    side = await session.get(Side, side_id)
    if side is None:
        raise ValueError("Side not found")
    return side


async def list_schedules(
    session: AsyncSession, *, side_id: uuid.UUID
) -> Sequence[CapacitySchedule]:
    await _ensure_side(session, side_id)
    stmt = (
        select(CapacitySchedule)
        .where(CapacitySchedule.side_id == side_id)
        .order_by(CapacitySchedule.day_of_week, CapacitySchedule.start_time)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_schedule(
    session: AsyncSession, *, side_id: uuid.UUID, schedule_id: uuid.UUID
) -> CapacitySchedule | None:
    schedule = await session.get(CapacitySchedule, schedule_id)
    if schedule is None or schedule.side_id != side_id:
        return None
    return schedule


async def create_schedule(
    session: AsyncSession, *, side_id: uuid.UUID, values: dict[str, Any]
) -> CapacitySchedule:
    """Create a capacity schedule for a side."""
    await _ensure_side(session, side_id)
    values = dict(values)
    values["excluded_dates"] = _serialise_dates(values.get("excluded_dates") or [])
    schedule = CapacitySchedule(side_id=side_id, **values)
    session.add(schedule)
    await session.commit()
    await session.refresh(schedule)
    return schedule


async def update_schedule(
    session: AsyncSession, *, schedule: CapacitySchedule, values: dict[str, Any]
) -> CapacitySchedule:
    if "excluded_dates" in values:
        values["excluded_dates"] = _serialise_dates(values["excluded_dates"] or [])
    for field_name, value in values.items():
        setattr(schedule, field_name, value)
    if schedule.end_time <= schedule.start_time:
        raise ValueError("end_time must be after start_time")
    await session.commit()
    await session.refresh(schedule)
    return schedule


async def exclude_date(
    session: AsyncSession, *, schedule: CapacitySchedule, day: date
) -> CapacitySchedule:
    """Skip one occurrence of a recurring schedule."""
    current = [date.fromisoformat(value) for value in schedule.excluded_dates or []]
    schedule.excluded_dates = _serialise_dates([*current, day])
    await session.commit()
    await session.refresh(schedule)
    return schedule


async def delete_schedule(session: AsyncSession, *, schedule: CapacitySchedule) -> None:
    await session.delete(schedule)
    await session.commit()


async def list_period_defaults(
    session: AsyncSession, *, side_id: uuid.UUID
) -> Sequence[PeriodTypeDefault]:
    await _ensure_side(session, side_id)
    stmt = (
        select(PeriodTypeDefault)
        .where(PeriodTypeDefault.side_id == side_id)
        .order_by(PeriodTypeDefault.period_type)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def upsert_period_default(
    session: AsyncSession,
    *,
    side_id: uuid.UUID,
    period_type: PeriodType,
    capacity: int | None,
    platforms: Sequence[int],
) -> PeriodTypeDefault:
    """Create or replace the default rack list for a period type on a side."""
    await _ensure_side(session, side_id)
    result = await session.execute(
        select(PeriodTypeDefault).where(
            PeriodTypeDefault.side_id == side_id,
            PeriodTypeDefault.period_type == period_type,
        )
    )
    default = result.scalars().first()
    if default is None:
        default = PeriodTypeDefault(side_id=side_id, period_type=period_type)
        session.add(default)
    default.capacity = capacity
    default.platforms = sorted(set(platforms))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise
    await session.refresh(default)
    return default
