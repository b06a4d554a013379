"""SQLAlchemy booking store tests against SQLite."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.db.session import get_sessionmaker
from app.models import CapacitySchedule, PeriodType, RecurrenceType, Side
from app.services.booking_store import SqlAlchemyBookingStore
from app.services.errors import BookingNotFoundError, TransientStoreError
from app.services.records import (
    ActivityRecord,
    ChangeKind,
    InstanceChange,
    InstanceDescriptor,
    NewBooking,
)

pytestmark = pytest.mark.asyncio

START = datetime(2030, 3, 4, 9, 0, tzinfo=UTC)


async def _seed_side(session) -> Side:
    side = Side(key="Power", name="Power side")
    session.add(side)
    await session.commit()
    await session.refresh(side)
    return side


def _descriptor(side_id, week: int, racks=(1,)) -> InstanceDescriptor:
    start = START + timedelta(weeks=week - 1)
    return InstanceDescriptor(
        side_id=side_id,
        start_at=start,
        end_at=start + timedelta(hours=1),
        racks=tuple(racks),
        capacity=2,
        week=week,
    )


async def test_create_and_read_back_series(reset_database: None, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        side = await _seed_side(session)
        store = SqlAlchemyBookingStore(session)

        record = await store.create_booking(
            NewBooking(
                title="Squad A",
                side_id=side.id,
                created_by=None,
                areas=(),
                racks=(1,),
                capacity_template=2,
            ),
            [_descriptor(side.id, 1), _descriptor(side.id, 2)],
            ActivityRecord(event_type="booking.created", actor_id=None, booking_id=None),
        )

        series = await store.fetch_series(record.id)
        assert [inst.start_at for inst in series] == [START, START + timedelta(weeks=1)]
        assert all(inst.start_at.tzinfo is not None for inst in series)

        overlapping = await store.fetch_overlapping_instances(
            side.id, START + timedelta(minutes=30), START + timedelta(hours=2)
        )
        assert [inst.booking_title for inst in overlapping] == ["Squad A"]

        touching = await store.fetch_overlapping_instances(
            side.id, START + timedelta(hours=1), START + timedelta(hours=2)
        )
        assert touching == []


async def test_cancelled_instances_are_not_overlapping(
    reset_database: None, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        side = await _seed_side(session)
        store = SqlAlchemyBookingStore(session)
        record = await store.create_booking(
            NewBooking(
                title="Squad A",
                side_id=side.id,
                created_by=None,
                areas=(),
                racks=(1,),
                capacity_template=2,
            ),
            [_descriptor(side.id, 1)],
        )
        instance = (await store.fetch_series(record.id))[0]

        await store.persist_instance_changes(
            [InstanceChange(kind=ChangeKind.CANCEL, instance_id=instance.id, cancelled_at=START)],
            booking_id=record.id,
            booking_update={"last_edited_at": START},
        )

        assert await store.fetch_overlapping_instances(side.id, START, START + timedelta(hours=1)) == []
        refreshed = await store.fetch_booking(record.id)
        assert refreshed is not None
        assert refreshed.last_edited_at == START


async def test_schedules_and_defaults_are_mapped(reset_database: None, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        side = await _seed_side(session)
        session.add(
            CapacitySchedule(
                side_id=side.id,
                day_of_week=1,
                start_time=time(6, 0),
                end_time=time(12, 0),
                capacity=8,
                period_type=PeriodType.PERFORMANCE,
                recurrence_type=RecurrenceType.WEEKLY,
                start_date=date(2030, 1, 1),
                excluded_dates=["2030-03-11"],
            )
        )
        await session.commit()
        store = SqlAlchemyBookingStore(session)

        schedules = await store.fetch_capacity_schedules(side.id, date(2030, 3, 4), date(2030, 3, 4))
        assert len(schedules) == 1
        assert schedules[0].excluded_dates == frozenset({date(2030, 3, 11)})
        assert schedules[0].platforms is None
        assert await store.fetch_default_racks_for_period_type(side.id, PeriodType.PERFORMANCE) == []


async def test_database_errors_become_transient(
    reset_database: None, db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        side = await _seed_side(session)
        store = SqlAlchemyBookingStore(session)

        async def failing_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "execute", failing_execute)

        with pytest.raises(TransientStoreError):
            await store.fetch_overlapping_instances(side.id, START, START + timedelta(hours=1))


async def test_failed_change_batch_leaves_series_untouched(
    reset_database: None, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        side = await _seed_side(session)
        store = SqlAlchemyBookingStore(session)
        record = await store.create_booking(
            NewBooking(
                title="Squad A",
                side_id=side.id,
                created_by=None,
                areas=(),
                racks=(1,),
                capacity_template=2,
            ),
            [_descriptor(side.id, 1)],
        )
        instance = (await store.fetch_series(record.id))[0]
        moved = replace(_descriptor(side.id, 2, racks=(3,)), instance_id=instance.id)

        with pytest.raises(BookingNotFoundError):
            await store.persist_instance_changes(
                [
                    InstanceChange(
                        kind=ChangeKind.UPDATE, instance_id=instance.id, descriptor=moved
                    ),
                    InstanceChange(kind=ChangeKind.CANCEL, instance_id=uuid.uuid4()),
                ],
                booking_id=record.id,
            )

        series = await store.fetch_series(record.id)
        assert [(inst.start_at, inst.racks) for inst in series] == [(START, (1,))]
