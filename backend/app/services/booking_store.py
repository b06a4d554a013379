"""Row store access for the booking engine."""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any, Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models import (
    ActivityEvent,
    Booking,
    BookingInstance,
    BookingStatus,
    CapacitySchedule,
    PeriodType,
    PeriodTypeDefault,
    Side,
)
from app.services import schedule_service
from app.services.activity_service import add_activity, list_activity
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

logger = logging.getLogger(__name__)

_INACTIVE_STATUSES = (BookingStatus.CANCELLED,)


class BookingStore(Protocol):
    """Persistence operations the booking engine depends on."""

    async def fetch_overlapping_instances(
        self,
        side_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_booking_id: uuid.UUID | None = None,
        exclude_instance_ids: Sequence[uuid.UUID] = (),
    ) -> list[InstanceRecord]: ...

    async def fetch_capacity_schedules(
        self, side_id: uuid.UUID, range_start: date, range_end: date
    ) -> list[ScheduleRecord]: ...

    async def fetch_default_racks_for_period_type(
        self, side_id: uuid.UUID, period_type: PeriodType
    ) -> list[int]: ...

    async def fetch_booking(self, booking_id: uuid.UUID) -> BookingRecord | None: ...

    async def fetch_series(self, booking_id: uuid.UUID) -> list[InstanceRecord]: ...

    async def create_booking(
        self,
        booking: NewBooking,
        instances: Sequence[InstanceDescriptor],
        activity: ActivityRecord | None = None,
    ) -> BookingRecord: ...

    async def persist_instance_changes(
        self,
        changes: Sequence[InstanceChange],
        *,
        booking_id: uuid.UUID,
        booking_update: dict[str, Any] | None = None,
        activity: ActivityRecord | None = None,
    ) -> list[InstanceRecord]: ...


def _coerce_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def instance_to_record(instance: BookingInstance, title: str) -> InstanceRecord:
    return InstanceRecord(
        id=instance.id,
        booking_id=instance.booking_id,
        side_id=instance.side_id,
        start_at=_coerce_utc(instance.start_at),
        end_at=_coerce_utc(instance.end_at),
        racks=tuple(sorted(instance.racks or ())),
        areas=tuple(instance.areas or ()),
        capacity=instance.capacity,
        booking_title=title or "Unknown",
        is_locked=instance.is_locked,
        cancelled_at=_coerce_utc(instance.cancelled_at),
    )


def booking_to_record(booking: Booking) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        title=booking.title,
        side_id=booking.side_id,
        status=booking.status,
        created_by=booking.created_by,
        is_locked=booking.is_locked,
        color=booking.color,
        areas=tuple(booking.areas or ()),
        racks=tuple(booking.racks or ()),
        capacity_template=booking.capacity_template,
        last_minute_change=booking.last_minute_change,
        processed_at=_coerce_utc(booking.processed_at),
        last_edited_at=_coerce_utc(booking.last_edited_at),
    )


def schedule_to_record(schedule: CapacitySchedule) -> ScheduleRecord:
    return ScheduleRecord(
        id=schedule.id,
        side_id=schedule.side_id,
        day_of_week=schedule.day_of_week,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        capacity=schedule.capacity,
        period_type=schedule.period_type,
        recurrence_type=schedule.recurrence_type,
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        excluded_dates=frozenset(
            date.fromisoformat(value) for value in schedule.excluded_dates or ()
        ),
        platforms=tuple(schedule.platforms) if schedule.platforms is not None else None,
    )


def _apply_descriptor(instance: BookingInstance, descriptor: InstanceDescriptor) -> None:
    instance.start_at = _coerce_utc(descriptor.start_at)
    instance.end_at = _coerce_utc(descriptor.end_at)
    instance.racks = sorted(descriptor.racks)
    instance.areas = list(descriptor.areas)
    instance.capacity = descriptor.capacity


class SqlAlchemyBookingStore:
    """BookingStore backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Booking store failure during %s", action)
            raise TransientStoreError(f"Booking store unavailable during {action}") from exc
        except Exception:
            await self.session.rollback()
            raise

    async def fetch_overlapping_instances(
        self,
        side_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_booking_id: uuid.UUID | None = None,
        exclude_instance_ids: Sequence[uuid.UUID] = (),
    ) -> list[InstanceRecord]:
        stmt = (
            select(BookingInstance, Booking.title)
            .join(Booking, Booking.id == BookingInstance.booking_id)
            .where(
                BookingInstance.side_id == side_id,
                BookingInstance.cancelled_at.is_(None),
                Booking.status.not_in(_INACTIVE_STATUSES),
                BookingInstance.end_at > _coerce_utc(start_at),
                BookingInstance.start_at < _coerce_utc(end_at),
            )
            .order_by(BookingInstance.start_at)
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(BookingInstance.booking_id != exclude_booking_id)
        if exclude_instance_ids:
            stmt = stmt.where(BookingInstance.id.not_in(list(exclude_instance_ids)))
        async with self._guard("overlap lookup"):
            result = await self.session.execute(stmt)
            rows = result.all()
        return [instance_to_record(instance, title) for instance, title in rows]

    async def fetch_capacity_schedules(
        self, side_id: uuid.UUID, range_start: date, range_end: date
    ) -> list[ScheduleRecord]:
        stmt = (
            select(CapacitySchedule)
            .where(
                CapacitySchedule.side_id == side_id,
                CapacitySchedule.start_date <= range_end,
                or_(
                    CapacitySchedule.end_date.is_(None),
                    CapacitySchedule.end_date >= range_start,
                ),
            )
            .order_by(CapacitySchedule.day_of_week, CapacitySchedule.start_time)
        )
        async with self._guard("schedule lookup"):
            result = await self.session.execute(stmt)
            schedules = result.scalars().all()
        return [schedule_to_record(schedule) for schedule in schedules]

    async def fetch_default_racks_for_period_type(
        self, side_id: uuid.UUID, period_type: PeriodType
    ) -> list[int]:
        stmt = select(PeriodTypeDefault).where(
            PeriodTypeDefault.side_id == side_id,
            PeriodTypeDefault.period_type == period_type,
        )
        async with self._guard("period default lookup"):
            result = await self.session.execute(stmt)
            default = result.scalars().first()
        if default is None:
            return []
        return sorted(default.platforms or [])

    async def get_booking_model(self, booking_id: uuid.UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.instances))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        async with self._guard("booking lookup"):
            result = await self.session.execute(stmt)
            return result.scalars().unique().one_or_none()

    async def list_booking_models(
        self,
        *,
        side_id: uuid.UUID | None = None,
        status: BookingStatus | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[Booking]:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.instances))
            .order_by(Booking.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        if side_id is not None:
            stmt = stmt.where(Booking.side_id == side_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        async with self._guard("booking listing"):
            result = await self.session.execute(stmt)
            return result.scalars().unique().all()

    async def fetch_booking(self, booking_id: uuid.UUID) -> BookingRecord | None:
        booking = await self.get_booking_model(booking_id)
        return booking_to_record(booking) if booking is not None else None

    async def fetch_series(self, booking_id: uuid.UUID) -> list[InstanceRecord]:
        booking = await self.get_booking_model(booking_id)
        if booking is None:
            return []
        return [instance_to_record(inst, booking.title) for inst in booking.instances]

    async def get_side(self, side_id: uuid.UUID) -> Side | None:
        async with self._guard("side lookup"):
            return await self.session.get(Side, side_id)

    async def list_sides(self) -> Sequence[Side]:
        async with self._guard("side listing"):
            return await schedule_service.list_sides(self.session)

    async def list_activity(
        self, booking_id: uuid.UUID, *, limit: int = 100
    ) -> Sequence[ActivityEvent]:
        async with self._guard("activity listing"):
            return await list_activity(self.session, booking_id=booking_id, limit=limit)

    async def create_booking(
        self,
        booking: NewBooking,
        instances: Sequence[InstanceDescriptor],
        activity: ActivityRecord | None = None,
    ) -> BookingRecord:
        model = Booking(
            title=booking.title,
            side_id=booking.side_id,
            created_by=booking.created_by,
            color=booking.color,
            is_locked=booking.is_locked,
            status=booking.status,
            areas=list(booking.areas),
            racks=sorted(booking.racks),
            capacity_template=booking.capacity_template,
            last_minute_change=booking.last_minute_change,
            cutoff_at=booking.cutoff_at,
            override_by=booking.override_by,
            override_reason=booking.override_reason,
        )
        async with self._guard("booking create"):
            self.session.add(model)
            await self.session.flush()
            for descriptor in instances:
                instance = BookingInstance(
                    booking_id=model.id,
                    side_id=descriptor.side_id,
                    is_locked=booking.is_locked,
                )
                _apply_descriptor(instance, descriptor)
                self.session.add(instance)
            if activity is not None:
                add_activity(self.session, _bind_activity(activity, model.id))
            await self.session.commit()
        record = await self.fetch_booking(model.id)
        if record is None:  # pragma: no cover - row vanished between commit and read
            raise BookingNotFoundError(model.id)
        return record

    async def persist_instance_changes(
        self,
        changes: Sequence[InstanceChange],
        *,
        booking_id: uuid.UUID,
        booking_update: dict[str, Any] | None = None,
        activity: ActivityRecord | None = None,
    ) -> list[InstanceRecord]:
        """Apply every change and the header update in a single commit."""
        async with self._guard("instance write"):
            booking = await self.session.get(Booking, booking_id)
            if booking is None:
                raise BookingNotFoundError(booking_id)
            for change in changes:
                if change.kind == ChangeKind.CREATE and change.descriptor is not None:
                    instance = BookingInstance(
                        booking_id=booking_id,
                        side_id=change.descriptor.side_id,
                        is_locked=booking.is_locked,
                    )
                    _apply_descriptor(instance, change.descriptor)
                    self.session.add(instance)
                    continue
                instance = await self.session.get(BookingInstance, change.instance_id)
                if instance is None or instance.booking_id != booking_id:
                    raise BookingNotFoundError(booking_id, "Booking instance not found")
                if change.kind == ChangeKind.UPDATE and change.descriptor is not None:
                    _apply_descriptor(instance, change.descriptor)
                elif change.kind == ChangeKind.CANCEL:
                    instance.cancelled_at = change.cancelled_at or datetime.now(UTC)
            for field_name, value in (booking_update or {}).items():
                setattr(booking, field_name, value)
            if activity is not None:
                add_activity(self.session, activity)
            await self.session.commit()
        return await self.fetch_series(booking_id)


def _bind_activity(activity: ActivityRecord, booking_id: uuid.UUID) -> ActivityRecord:
    if activity.booking_id is not None:
        return activity
    return replace(activity, booking_id=booking_id)
