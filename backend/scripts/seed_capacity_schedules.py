"""Seed the Power and Base sides with a default weekly capacity timetable."""

from __future__ import annotations

import asyncio
from datetime import date, time

from sqlalchemy import select

from app.db.session import get_sessionmaker
from app.models.capacity_schedule import (
    CapacitySchedule,
    PeriodType,
    PeriodTypeDefault,
    RecurrenceType,
)
from app.models.side import Side

SIDES = {"Power": "Power side", "Base": "Base side"}

# (start, end, period type, capacity) applied Monday to Friday
WEEKDAY_TIMETABLE = [
    (time(6, 0), time(9, 0), PeriodType.GENERAL_USER, 30),
    (time(9, 0), time(12, 0), PeriodType.PERFORMANCE, 20),
    (time(12, 0), time(16, 0), PeriodType.LOW_HYBRID, 25),
    (time(16, 0), time(20, 0), PeriodType.HIGH_HYBRID, 40),
    (time(20, 0), time(22, 0), PeriodType.GENERAL_USER, 20),
]
WEEKEND_TIMETABLE = [
    (time(8, 0), time(14, 0), PeriodType.GENERAL_USER, 25),
    (time(14, 0), time(18, 0), PeriodType.CLOSED, 0),
]
DEFAULT_RACKS = {
    PeriodType.PERFORMANCE: list(range(1, 13)),
    PeriodType.HIGH_HYBRID: list(range(1, 25)),
}


async def seed_schedules(start_date: date | None = None) -> None:
    start_date = start_date or date.today()
    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        created = 0
        for key, name in SIDES.items():
            side = (
                await session.execute(select(Side).where(Side.key == key))
            ).scalar_one_or_none()
            if side is None:
                side = Side(key=key, name=name)
                session.add(side)
                await session.flush()
            existing = await session.execute(
                select(CapacitySchedule.id).where(CapacitySchedule.side_id == side.id)
            )
            if existing.first() is not None:
                continue
            for day_of_week in range(7):
                weekend = day_of_week in (0, 6)
                timetable = WEEKEND_TIMETABLE if weekend else WEEKDAY_TIMETABLE
                for start, end, period_type, capacity in timetable:
                    session.add(
                        CapacitySchedule(
                            side_id=side.id,
                            day_of_week=day_of_week,
                            start_time=start,
                            end_time=end,
                            capacity=capacity,
                            period_type=period_type,
                            recurrence_type=(
                                RecurrenceType.WEEKEND if weekend else RecurrenceType.WEEKDAY
                            ),
                            start_date=start_date,
                            excluded_dates=[],
                        )
                    )
                    created += 1
            for period_type, racks in DEFAULT_RACKS.items():
                session.add(
                    PeriodTypeDefault(side_id=side.id, period_type=period_type, platforms=racks)
                )
        if created:
            await session.commit()
        print(f"Seeded {created} capacity schedule(s).")


def main() -> None:
    asyncio.run(seed_schedules())


if __name__ == "__main__":
    main()
