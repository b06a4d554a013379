"""Test fixtures for the booking backend."""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import replace
from datetime import UTC, date, datetime, time
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("FACILITY_TIMEZONE", "Europe/London")

from app.core.config import get_settings
from app.core.security import Actor, ActorRole, create_access_token
from app.db.base import Base
from app.db.session import dispose_engine, get_sessionmaker
from app.main import app
from app.models import (
    BookingStatus,
    CapacitySchedule,
    PeriodType,
    RecurrenceType,
    Side,
)
from app.services.booking_planner import BookingPlanner
from app.services.errors import BookingNotFoundError, TransientStoreError
from app.services.records import (
    ActivityRecord,
    BookingRecord,
    ChangeKind,
    InstanceChange,
    InstanceDescriptor,
    InstanceRecord,
    NewBooking,
    ScheduleRecord,
)

# Wednesday 2024-06-05 09:00 London; comfortably before the cutoff for mid-June sessions.
FIXED_NOW = datetime(2024, 6, 5, 8, 0, tzinfo=UTC)


class InMemoryBookingStore:
    """Dict-backed BookingStore used to drive the planner without a database."""

    def __init__(self) -> None:
        self.bookings: dict[uuid.UUID, BookingRecord] = {}
        self.headers: dict[uuid.UUID, dict[str, Any]] = {}
        self.instances: dict[uuid.UUID, InstanceRecord] = {}
        self.schedules: list[ScheduleRecord] = []
        self.defaults: dict[tuple[uuid.UUID, PeriodType], list[int]] = {}
        self.activity: list[ActivityRecord] = []
        self.write_calls = 0
        self.fail_writes = False

    # -- seeding helpers -------------------------------------------------

    def add_booking(
        self,
        *,
        side_id: uuid.UUID,
        title: str = "Squad",
        windows: Sequence[tuple[datetime, datetime]] = (),
        racks: Sequence[int] = (1,),
        capacity: int = 1,
        status: BookingStatus = BookingStatus.PENDING,
        created_by: uuid.UUID | None = None,
        is_locked: bool = False,
    ) -> BookingRecord:
        booking = BookingRecord(
            id=uuid.uuid4(),
            title=title,
            side_id=side_id,
            status=status,
            created_by=created_by,
            is_locked=is_locked,
            racks=tuple(racks),
            capacity_template=capacity,
        )
        self.bookings[booking.id] = booking
        self.headers[booking.id] = {}
        for start_at, end_at in windows:
            instance = InstanceRecord(
                id=uuid.uuid4(),
                booking_id=booking.id,
                side_id=side_id,
                start_at=start_at,
                end_at=end_at,
                racks=tuple(sorted(racks)),
                capacity=capacity,
                booking_title=title,
            )
            self.instances[instance.id] = instance
        return booking

    def add_schedule(
        self,
        *,
        side_id: uuid.UUID,
        day_of_week: int,
        start_time: time,
        end_time: time,
        capacity: int,
        period_type: PeriodType = PeriodType.PERFORMANCE,
        recurrence_type: RecurrenceType = RecurrenceType.WEEKLY,
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        excluded_dates: Sequence[date] = (),
        platforms: Sequence[int] | None = None,
    ) -> ScheduleRecord:
        schedule = ScheduleRecord(
            id=uuid.uuid4(),
            side_id=side_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            period_type=period_type,
            recurrence_type=recurrence_type,
            start_date=start_date,
            end_date=end_date,
            excluded_dates=frozenset(excluded_dates),
            platforms=tuple(platforms) if platforms is not None else None,
        )
        self.schedules.append(schedule)
        return schedule

    def series(self, booking_id: uuid.UUID) -> list[InstanceRecord]:
        return sorted(
            (inst for inst in self.instances.values() if inst.booking_id == booking_id),
            key=lambda inst: inst.start_at,
        )

    # -- BookingStore ----------------------------------------------------

    async def fetch_overlapping_instances(
        self,
        side_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_booking_id: uuid.UUID | None = None,
        exclude_instance_ids: Sequence[uuid.UUID] = (),
    ) -> list[InstanceRecord]:
        found = [
            inst
            for inst in self.instances.values()
            if inst.side_id == side_id
            and inst.cancelled_at is None
            and inst.start_at < end_at
            and inst.end_at > start_at
            and inst.booking_id != exclude_booking_id
            and inst.id not in exclude_instance_ids
            and self.bookings[inst.booking_id].status != BookingStatus.CANCELLED
        ]
        return sorted(found, key=lambda inst: inst.start_at)

    async def fetch_capacity_schedules(
        self, side_id: uuid.UUID, range_start: date, range_end: date
    ) -> list[ScheduleRecord]:
        return [
            schedule
            for schedule in self.schedules
            if schedule.side_id == side_id
            and schedule.start_date <= range_end
            and (schedule.end_date is None or schedule.end_date >= range_start)
        ]

    async def fetch_default_racks_for_period_type(
        self, side_id: uuid.UUID, period_type: PeriodType
    ) -> list[int]:
        return list(self.defaults.get((side_id, period_type), []))

    async def fetch_booking(self, booking_id: uuid.UUID) -> BookingRecord | None:
        return self.bookings.get(booking_id)

    async def fetch_series(self, booking_id: uuid.UUID) -> list[InstanceRecord]:
        return self.series(booking_id)

    async def create_booking(
        self,
        booking: NewBooking,
        instances: Sequence[InstanceDescriptor],
        activity: ActivityRecord | None = None,
    ) -> BookingRecord:
        if self.fail_writes:
            raise TransientStoreError("write failed")
        self.write_calls += 1
        record = BookingRecord(
            id=uuid.uuid4(),
            title=booking.title,
            side_id=booking.side_id,
            status=booking.status,
            created_by=booking.created_by,
            is_locked=booking.is_locked,
            color=booking.color,
            areas=booking.areas,
            racks=booking.racks,
            capacity_template=booking.capacity_template,
            last_minute_change=booking.last_minute_change,
        )
        self.bookings[record.id] = record
        self.headers[record.id] = {
            "cutoff_at": booking.cutoff_at,
            "override_by": booking.override_by,
        }
        for descriptor in instances:
            instance = replace(
                descriptor.to_record(record.id, record.title),
                id=uuid.uuid4(),
                is_locked=booking.is_locked,
            )
            self.instances[instance.id] = instance
        if activity is not None:
            self.activity.append(replace(activity, booking_id=record.id))
        return record

    async def persist_instance_changes(
        self,
        changes: Sequence[InstanceChange],
        *,
        booking_id: uuid.UUID,
        booking_update: dict[str, Any] | None = None,
        activity: ActivityRecord | None = None,
    ) -> list[InstanceRecord]:
        if self.fail_writes:
            raise TransientStoreError("write failed")
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        self.write_calls += 1
        for change in changes:
            if change.kind == ChangeKind.CREATE:
                instance = replace(
                    change.descriptor.to_record(booking_id, booking.title), id=uuid.uuid4()
                )
                self.instances[instance.id] = instance
            elif change.kind == ChangeKind.UPDATE:
                current = self.instances[change.instance_id]
                descriptor = change.descriptor
                self.instances[change.instance_id] = replace(
                    current,
                    start_at=descriptor.start_at,
                    end_at=descriptor.end_at,
                    racks=descriptor.racks,
                    areas=descriptor.areas,
                    capacity=descriptor.capacity,
                )
            else:
                current = self.instances[change.instance_id]
                self.instances[change.instance_id] = replace(
                    current, cancelled_at=change.cancelled_at
                )
        update = dict(booking_update or {})
        record_fields = set(BookingRecord.__dataclass_fields__)
        self.bookings[booking_id] = replace(
            booking, **{k: v for k, v in update.items() if k in record_fields}
        )
        self.headers[booking_id].update(update)
        if activity is not None:
            self.activity.append(activity)
        return self.series(booking_id)


@pytest.fixture()
def side_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def memory_store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture()
def planner(memory_store: InMemoryBookingStore, clock: Callable[[], datetime]) -> BookingPlanner:
    return BookingPlanner(memory_store, get_settings(), clock=clock)


@pytest.fixture()
def admin() -> Actor:
    return Actor(id=uuid.uuid4(), role=ActorRole.ADMIN)


@pytest.fixture()
def coach() -> Actor:
    return Actor(id=uuid.uuid4(), role=ActorRole.COACH)


@pytest.fixture()
def bookings_team() -> Actor:
    return Actor(id=uuid.uuid4(), role=ActorRole.BOOKINGS_TEAM)


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


def _token_headers(actor_id: uuid.UUID, role: ActorRole) -> dict[str, str]:
    token = create_access_token(str(actor_id), app_role=role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def app_context(
    reset_database: AsyncIterator[None], db_url: str
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client, seeded sides and auth headers per role."""
    sessionmaker = get_sessionmaker(db_url)

    async with sessionmaker() as session:
        power = Side(key="Power", name="Power side")
        base = Side(key="Base", name="Base side")
        session.add_all([power, base])
        await session.flush()

        # Mondays 06:00-22:00 Performance, capacity 8, on the Power side.
        session.add(
            CapacitySchedule(
                side_id=power.id,
                day_of_week=1,
                start_time=time(6, 0),
                end_time=time(22, 0),
                capacity=8,
                period_type=PeriodType.PERFORMANCE,
                recurrence_type=RecurrenceType.WEEKLY,
                start_date=date(2024, 1, 1),
                excluded_dates=[],
            )
        )
        await session.commit()

        admin_id = uuid.uuid4()
        coach_id = uuid.uuid4()
        other_coach_id = uuid.uuid4()
        team_id = uuid.uuid4()
        context: dict[str, object] = {
            "power_id": power.id,
            "base_id": base.id,
            "admin_id": admin_id,
            "coach_id": coach_id,
            "admin_headers": _token_headers(admin_id, ActorRole.ADMIN),
            "coach_headers": _token_headers(coach_id, ActorRole.COACH),
            "other_coach_headers": _token_headers(other_coach_id, ActorRole.COACH),
            "team_headers": _token_headers(team_id, ActorRole.BOOKINGS_TEAM),
            "viewer_headers": _token_headers(uuid.uuid4(), ActorRole.VIEWER),
        }

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        context["client"] = client
        yield context
