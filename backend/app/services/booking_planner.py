"""Mutation planning: checks, cutoff gating and atomic commits for bookings."""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, tzinfo
from typing import Any

from app.core.config import Settings, get_settings
from app.core.security import Actor, ActorRole
from app.models.booking import BookingStatus
from app.security.permissions import (
    ensure_can_create,
    ensure_can_edit,
    ensure_can_process,
)
from app.services import capacity_service, conflict_service
from app.services.booking_store import BookingStore
from app.services.capacity_service import CapacityCheck, capacity_detail, describe_capacity
from app.services.conflict_service import ConflictReport, describe_conflicts, format_range
from app.services.cutoff_service import cutoff_status, describe_cutoff, session_date_for
from app.services.errors import (
    BookingNotFoundError,
    CapacityExceededError,
    ClosedPeriodError,
    ConflictError,
    CutoffError,
    InvalidMutationError,
)
from app.services.records import (
    ActivityRecord,
    BookingRecord,
    ChangeKind,
    InstanceChange,
    InstanceDescriptor,
    InstanceRecord,
    NewBooking,
)
from app.services.recurrence_service import expand_weekly, generate_extension

logger = logging.getLogger(__name__)

_SETTLED_STATUSES = {BookingStatus.CANCELLED, BookingStatus.COMPLETED}
_PROCESSABLE_STATUSES = {BookingStatus.DRAFT, BookingStatus.PENDING, BookingStatus.PROCESSED}


class CancelMode(str, enum.Enum):
    """Which instances of a series a cancellation covers."""

    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


@dataclass(slots=True, frozen=True)
class BookingDraft:
    """Caller input for a new weekly booking."""

    title: str
    side_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    racks: tuple[int, ...]
    areas: tuple[str, ...] = ()
    capacity: int = 1
    weeks: int = 1
    rack_overrides: dict[int, tuple[int, ...]] = field(default_factory=dict)
    capacity_overrides: dict[int, int] = field(default_factory=dict)
    color: str | None = None
    is_locked: bool = False


@dataclass(slots=True, frozen=True)
class InstanceEdit:
    """Changes applied to an explicit selection of a series' instances."""

    instance_ids: tuple[uuid.UUID, ...] = ()
    apply_to_all: bool = False
    start_time: time | None = None
    end_time: time | None = None
    capacity: int | None = None
    racks: tuple[int, ...] | None = None
    areas: tuple[str, ...] | None = None


@dataclass(slots=True)
class MutationPlan:
    """Decision for one mutation attempt: accepted descriptors or the violations."""

    candidates: list[InstanceDescriptor]
    conflicts: ConflictReport = field(default_factory=ConflictReport)
    capacity_failures: list[tuple[InstanceDescriptor, CapacityCheck]] = field(
        default_factory=list
    )
    rack_warnings: list[tuple[InstanceDescriptor, CapacityCheck]] = field(
        default_factory=list
    )

    @property
    def blocked(self) -> bool:
        return self.conflicts.has_conflicts or bool(self.capacity_failures)

    @property
    def accepted(self) -> list[InstanceDescriptor]:
        return [] if self.blocked else list(self.candidates)

    @property
    def closed(self) -> bool:
        return any(check.closed for _, check in self.capacity_failures)

    def warnings(self, tz: tzinfo) -> list[str]:
        messages: list[str] = []
        for candidate, check in self.rack_warnings:
            window = format_range(candidate.start_at, candidate.end_at, tz)
            racks = ", ".join(str(rack) for rack in check.racks_outside_period)
            period = check.period_type.value if check.period_type else "current"
            messages.append(f"{window}: racks {racks} are outside the {period} rack list")
        return messages

    def raise_for_violations(self, tz: tzinfo) -> None:
        detail = [capacity_detail(candidate, check) for candidate, check in self.capacity_failures]
        if self.conflicts.has_conflicts:
            # Rack overlaps take precedence; capacity failures ride along.
            raise ConflictError(
                describe_conflicts(self.conflicts, tz),
                detail=self.conflicts.to_detail(),
                capacity_violations=detail,
            )
        if not self.capacity_failures:
            return
        message = describe_capacity(self.capacity_failures, tz)
        if self.closed:
            raise ClosedPeriodError(message, detail=detail)
        raise CapacityExceededError(message, detail=detail)


@dataclass(slots=True, frozen=True)
class MutationOutcome:
    """Committed mutation summary returned to callers."""

    booking: BookingRecord
    instance_ids: tuple[uuid.UUID, ...] = ()
    warnings: tuple[str, ...] = ()
    last_minute_change: bool = False


def plan_cancel(
    series: Sequence[InstanceRecord],
    mode: CancelMode,
    target_id: uuid.UUID | None = None,
) -> list[uuid.UUID]:
    """Instance ids covered by a cancellation, in start order."""
    ordered = sorted(series, key=lambda inst: inst.start_at)
    if mode == CancelMode.ALL:
        return [inst.id for inst in ordered if inst.id is not None]
    target = next((inst for inst in ordered if inst.id == target_id), None)
    if target is None:
        raise InvalidMutationError("Select the instance to cancel")
    if mode == CancelMode.SINGLE:
        return [target.id]
    return [inst.id for inst in ordered if inst.start_at >= target.start_at]


def build_processed_snapshot(instances: Sequence[InstanceRecord]) -> dict[str, Any]:
    """Series state at processing time, used to detect later edits."""
    ordered = sorted(instances, key=lambda inst: inst.start_at)
    first = ordered[0] if ordered else None
    all_racks = sorted({rack for inst in ordered for rack in inst.racks})
    return {
        "instanceCount": len(ordered),
        "firstInstanceStart": first.start_at.isoformat() if first else None,
        "firstInstanceEnd": first.end_at.isoformat() if first else None,
        "capacity": first.capacity if first else None,
        "racks": list(first.racks) if first else [],
        "allRacks": all_racks,
        "allInstanceStarts": [inst.start_at.isoformat() for inst in ordered],
        "allInstanceTimes": [
            {"start": inst.start_at.isoformat(), "end": inst.end_at.isoformat()}
            for inst in ordered
        ],
        "allInstanceCapacities": [inst.capacity for inst in ordered],
        "allInstanceRacks": [list(inst.racks) for inst in ordered],
    }


class BookingPlanner:
    """Single entry point for every booking mutation.

    Each attempt reads the store, evaluates conflicts and capacity for every
    affected instance, and either raises with the full set of violations or
    commits all changes through one ``persist_instance_changes`` call.
    """

    def __init__(
        self,
        store: BookingStore,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.tz = self.settings.facility_tz
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    # -- checks -----------------------------------------------------------

    async def check_conflicts(
        self,
        candidate: InstanceDescriptor,
        *,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> ConflictReport:
        report = ConflictReport()
        report.add(
            candidate,
            await conflict_service.check_conflicts(
                self.store, candidate, exclude_booking_id=exclude_booking_id
            ),
        )
        return report

    async def check_capacity(
        self,
        candidate: InstanceDescriptor,
        *,
        exclude_instance_ids: Sequence[uuid.UUID] = (),
    ) -> CapacityCheck:
        return await capacity_service.check_capacity(
            self.store,
            candidate,
            tz=self.tz,
            exclude_instance_ids=exclude_instance_ids,
        )

    async def evaluate(
        self,
        candidates: Sequence[InstanceDescriptor],
        *,
        booking_id: uuid.UUID | None = None,
        booking_title: str = "This booking",
        exclude_instance_ids: Sequence[uuid.UUID] = (),
    ) -> MutationPlan:
        """Check candidates in order, each against the store plus earlier candidates."""
        plan = MutationPlan(candidates=list(candidates))
        pending: list[InstanceRecord] = []
        placeholder = booking_id or uuid.uuid4()
        for candidate in candidates:
            triples = await conflict_service.check_conflicts(
                self.store, candidate, exclude_booking_id=booking_id, pending=pending
            )
            plan.conflicts.add(candidate, triples)
            check = await capacity_service.check_capacity(
                self.store,
                candidate,
                tz=self.tz,
                exclude_instance_ids=exclude_instance_ids,
                pending=pending,
            )
            if not check.is_valid:
                plan.capacity_failures.append((candidate, check))
            if check.racks_outside_period:
                plan.rack_warnings.append((candidate, check))
            pending.append(candidate.to_record(placeholder, booking_title))
        return plan

    # -- shared rules -----------------------------------------------------

    def _validate_shape(self, descriptor: InstanceDescriptor) -> None:
        label = f"Week {descriptor.week}" if descriptor.week else "Instance"
        if descriptor.end_at <= descriptor.start_at:
            raise InvalidMutationError(f"{label}: end time must be after start time")
        if not descriptor.racks:
            raise InvalidMutationError(f"{label}: select at least one rack")
        limit = self.settings.max_instance_capacity
        if not 1 <= descriptor.capacity <= limit:
            raise InvalidMutationError(f"{label}: capacity must be between 1 and {limit}")

    def _cutoff_gate(self, actor: Actor, starts: Sequence[datetime]) -> dict[str, Any]:
        """Reject non-admins after the cutoff; flag admin overrides."""
        if not starts:
            return {}
        status = cutoff_status(
            session_date_for(min(starts), self.tz), now=self.now(), tz=self.tz
        )
        if not status.is_after_cutoff:
            return {}
        if not actor.is_admin:
            raise CutoffError(
                describe_cutoff(status.cutoff_at, passed=True), cutoff_at=status.cutoff_at
            )
        return {
            "last_minute_change": True,
            "cutoff_at": status.cutoff_at,
            "override_by": actor.id,
        }

    def _edit_metadata(self, booking: BookingRecord, actor: Actor) -> dict[str, Any]:
        update: dict[str, Any] = {"last_edited_at": self.now(), "last_edited_by": actor.id}
        if booking.status == BookingStatus.PROCESSED:
            update["status"] = BookingStatus.PENDING
        return update

    async def _load(self, booking_id: uuid.UUID) -> tuple[BookingRecord, list[InstanceRecord]]:
        booking = await self.store.fetch_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        series = await self.store.fetch_series(booking_id)
        return booking, sorted(series, key=lambda inst: inst.start_at)

    def _blocked(self, action: str, booking_id: uuid.UUID | None, plan: MutationPlan) -> None:
        logger.info(
            "%s blocked for booking %s: %d conflicting instance(s), %d capacity failure(s)",
            action,
            booking_id,
            len(plan.conflicts.entries),
            len(plan.capacity_failures),
        )
        plan.raise_for_violations(self.tz)

    async def _commit(
        self,
        *,
        action: str,
        actor: Actor,
        booking: BookingRecord,
        changes: Sequence[InstanceChange],
        booking_update: dict[str, Any],
        payload: dict[str, Any],
        description: str,
    ) -> BookingRecord:
        activity = ActivityRecord(
            event_type=f"booking.{action}",
            actor_id=actor.id,
            booking_id=booking.id,
            description=description,
            payload=payload,
        )
        await self.store.persist_instance_changes(
            changes, booking_id=booking.id, booking_update=booking_update, activity=activity
        )
        logger.info(
            "Booking %s %s by %s (%d instance change(s))",
            booking.id,
            action,
            actor.id,
            len(changes),
        )
        refreshed = await self.store.fetch_booking(booking.id)
        if refreshed is None:  # pragma: no cover - deleted concurrently
            raise BookingNotFoundError(booking.id)
        return refreshed

    # -- create -----------------------------------------------------------

    def expand_draft(self, draft: BookingDraft) -> list[InstanceDescriptor]:
        if not draft.title.strip():
            raise InvalidMutationError("Title is required")
        if not 1 <= draft.weeks <= self.settings.max_booking_weeks:
            raise InvalidMutationError(
                f"Weeks must be between 1 and {self.settings.max_booking_weeks}"
            )
        for week in (*draft.rack_overrides, *draft.capacity_overrides):
            if not 1 <= week <= draft.weeks:
                raise InvalidMutationError(f"Override for week {week} is outside the booking")
        template = InstanceDescriptor(
            side_id=draft.side_id,
            start_at=draft.start_at.astimezone(UTC),
            end_at=draft.end_at.astimezone(UTC),
            racks=tuple(sorted(set(draft.racks))),
            areas=tuple(draft.areas),
            capacity=draft.capacity,
        )
        descriptors = expand_weekly(
            template,
            draft.weeks,
            self.tz,
            rack_overrides=dict(draft.rack_overrides),
            capacity_overrides=dict(draft.capacity_overrides),
        )
        for descriptor in descriptors:
            self._validate_shape(descriptor)
        return descriptors

    async def plan_create(self, draft: BookingDraft) -> MutationPlan:
        descriptors = self.expand_draft(draft)
        return await self.evaluate(descriptors, booking_title=draft.title)

    async def create_booking(self, actor: Actor, draft: BookingDraft) -> MutationOutcome:
        ensure_can_create(actor, locked=draft.is_locked)
        descriptors = self.expand_draft(draft)
        override = self._cutoff_gate(actor, [descriptors[0].start_at])
        plan = await self.evaluate(descriptors, booking_title=draft.title)
        if plan.blocked:
            self._blocked("Create", None, plan)
        new_booking = NewBooking(
            title=draft.title.strip(),
            side_id=draft.side_id,
            created_by=actor.id,
            areas=tuple(draft.areas),
            racks=descriptors[0].racks,
            capacity_template=draft.capacity,
            color=draft.color,
            is_locked=draft.is_locked,
            last_minute_change=bool(override),
            cutoff_at=override.get("cutoff_at"),
            override_by=override.get("override_by"),
        )
        activity = ActivityRecord(
            event_type="booking.created",
            actor_id=actor.id,
            booking_id=None,
            description=f'Created "{new_booking.title}" with {len(descriptors)} session(s)',
            payload={"weeks": draft.weeks, "last_minute_change": bool(override)},
        )
        booking = await self.store.create_booking(new_booking, plan.accepted, activity)
        logger.info(
            "Booking %s created by %s with %d instance(s)",
            booking.id,
            actor.id,
            len(descriptors),
        )
        return MutationOutcome(
            booking=booking,
            warnings=tuple(plan.warnings(self.tz)),
            last_minute_change=bool(override),
        )

    # -- selection edit ---------------------------------------------------

    def _select(
        self, series: Sequence[InstanceRecord], edit: InstanceEdit
    ) -> list[InstanceRecord]:
        active = [inst for inst in series if inst.cancelled_at is None]
        if edit.apply_to_all:
            return active
        if not edit.instance_ids:
            raise InvalidMutationError("Select at least one instance to change")
        by_id = {inst.id: inst for inst in active}
        missing = [str(i) for i in edit.instance_ids if i not in by_id]
        if missing:
            raise InvalidMutationError(
                "Instances are not active members of this booking: " + ", ".join(missing)
            )
        return sorted(
            (by_id[i] for i in dict.fromkeys(edit.instance_ids)),
            key=lambda inst: inst.start_at,
        )

    def _apply_edit(self, instance: InstanceRecord, edit: InstanceEdit) -> InstanceDescriptor:
        local_start = instance.start_at.astimezone(self.tz)
        local_end = instance.end_at.astimezone(self.tz)
        start_at, end_at = instance.start_at, instance.end_at
        if edit.start_time is not None:
            start_at = datetime.combine(
                local_start.date(), edit.start_time, tzinfo=self.tz
            ).astimezone(UTC)
        if edit.end_time is not None:
            end_at = datetime.combine(
                local_end.date(), edit.end_time, tzinfo=self.tz
            ).astimezone(UTC)
        return InstanceDescriptor(
            side_id=instance.side_id,
            start_at=start_at,
            end_at=end_at,
            racks=tuple(sorted(set(edit.racks))) if edit.racks is not None else instance.racks,
            areas=tuple(edit.areas) if edit.areas is not None else instance.areas,
            capacity=edit.capacity if edit.capacity is not None else instance.capacity,
            instance_id=instance.id,
        )

    async def plan_update(self, booking_id: uuid.UUID, edit: InstanceEdit) -> MutationPlan:
        booking, series = await self._load(booking_id)
        return await self._plan_update(booking, series, edit)

    async def _plan_update(
        self, booking: BookingRecord, series: Sequence[InstanceRecord], edit: InstanceEdit
    ) -> MutationPlan:
        selected = self._select(series, edit)
        descriptors = [self._apply_edit(inst, edit) for inst in selected]
        for descriptor in descriptors:
            self._validate_shape(descriptor)
        return await self.evaluate(
            descriptors,
            booking_id=booking.id,
            booking_title=booking.title,
            exclude_instance_ids=[inst.id for inst in selected if inst.id is not None],
        )

    async def update_instances(
        self, actor: Actor, booking_id: uuid.UUID, edit: InstanceEdit
    ) -> MutationOutcome:
        booking, series = await self._load(booking_id)
        selected = self._select(series, edit)
        ensure_can_edit(actor, booking, selected)
        override = self._cutoff_gate(actor, [inst.start_at for inst in selected])
        plan = await self._plan_update(booking, series, edit)
        if plan.blocked:
            self._blocked("Update", booking.id, plan)
        changes = [
            InstanceChange(
                kind=ChangeKind.UPDATE, instance_id=descriptor.instance_id, descriptor=descriptor
            )
            for descriptor in plan.accepted
        ]
        update = {**self._edit_metadata(booking, actor), **override}
        refreshed = await self._commit(
            action="updated",
            actor=actor,
            booking=booking,
            changes=changes,
            booking_update=update,
            payload={"instance_ids": [str(c.instance_id) for c in changes]},
            description=f"Updated {len(changes)} session(s)",
        )
        return MutationOutcome(
            booking=refreshed,
            instance_ids=tuple(c.instance_id for c in changes if c.instance_id),
            warnings=tuple(plan.warnings(self.tz)),
            last_minute_change=bool(override),
        )

    # -- extend -----------------------------------------------------------

    def _extension(self, series: Sequence[InstanceRecord], weeks: int) -> list[InstanceDescriptor]:
        if not 1 <= weeks <= self.settings.max_extend_weeks:
            raise InvalidMutationError(
                f"Weeks must be between 1 and {self.settings.max_extend_weeks}"
            )
        active = [inst for inst in series if inst.cancelled_at is None]
        if not active:
            raise InvalidMutationError("Booking has no active sessions to extend")
        return generate_extension(active, weeks, self.tz)

    async def plan_extend(self, booking_id: uuid.UUID, weeks: int) -> MutationPlan:
        booking, series = await self._load(booking_id)
        generated = self._extension(series, weeks)
        return await self.evaluate(generated, booking_id=booking.id, booking_title=booking.title)

    async def extend_booking(
        self, actor: Actor, booking_id: uuid.UUID, weeks: int
    ) -> MutationOutcome:
        booking, series = await self._load(booking_id)
        ensure_can_edit(actor, booking, series)
        generated = self._extension(series, weeks)
        override = self._cutoff_gate(actor, [generated[0].start_at])
        plan = await self.evaluate(generated, booking_id=booking.id, booking_title=booking.title)
        if plan.blocked:
            self._blocked("Extension", booking.id, plan)
        changes = [
            InstanceChange(kind=ChangeKind.CREATE, descriptor=descriptor)
            for descriptor in plan.accepted
        ]
        update = {**self._edit_metadata(booking, actor), **override}
        refreshed = await self._commit(
            action="extended",
            actor=actor,
            booking=booking,
            changes=changes,
            booking_update=update,
            payload={"weeks": weeks},
            description=f"Extended by {weeks} week(s)",
        )
        return MutationOutcome(
            booking=refreshed,
            warnings=tuple(plan.warnings(self.tz)),
            last_minute_change=bool(override),
        )

    # -- cancel -----------------------------------------------------------

    async def cancel_booking(
        self,
        actor: Actor,
        booking_id: uuid.UUID,
        mode: CancelMode,
        instance_id: uuid.UUID | None = None,
    ) -> MutationOutcome:
        booking, series = await self._load(booking_id)
        if booking.status in _SETTLED_STATUSES:
            raise InvalidMutationError(f"Booking is already {booking.status.value}")
        ids = set(plan_cancel(series, mode, instance_id))
        targets = [inst for inst in series if inst.id in ids and inst.cancelled_at is None]
        if not targets:
            raise InvalidMutationError("Nothing left to cancel")
        ensure_can_edit(actor, booking, targets)
        now = self.now()
        upcoming = [inst.start_at for inst in targets if inst.start_at >= now]
        override = self._cutoff_gate(actor, upcoming)

        changes = [
            InstanceChange(kind=ChangeKind.CANCEL, instance_id=inst.id, cancelled_at=now)
            for inst in targets
        ]
        update = {**self._edit_metadata(booking, actor), **override}
        remaining = [
            inst for inst in series if inst.cancelled_at is None and inst.id not in ids
        ]
        if not remaining:
            if actor.role in (ActorRole.ADMIN, ActorRole.BOOKINGS_TEAM):
                update["status"] = BookingStatus.CANCELLED
            else:
                update["status"] = BookingStatus.PENDING_CANCELLATION
        refreshed = await self._commit(
            action="cancelled",
            actor=actor,
            booking=booking,
            changes=changes,
            booking_update=update,
            payload={"mode": mode.value, "instance_ids": [str(inst.id) for inst in targets]},
            description=f"Cancelled {len(targets)} session(s) ({mode.value})",
        )
        return MutationOutcome(
            booking=refreshed,
            instance_ids=tuple(inst.id for inst in targets if inst.id),
            last_minute_change=bool(override),
        )

    # -- bookings team ----------------------------------------------------

    async def process_booking(self, actor: Actor, booking_id: uuid.UUID) -> MutationOutcome:
        ensure_can_process(actor)
        booking, series = await self._load(booking_id)
        if booking.status not in _PROCESSABLE_STATUSES:
            raise InvalidMutationError(
                f"Booking cannot be processed from status {booking.status.value}"
            )
        active = [inst for inst in series if inst.cancelled_at is None]
        update = {
            "status": BookingStatus.PROCESSED,
            "processed_by": actor.id,
            "processed_at": self.now(),
            "processed_snapshot": build_processed_snapshot(active),
        }
        refreshed = await self._commit(
            action="processed",
            actor=actor,
            booking=booking,
            changes=(),
            booking_update=update,
            payload={"instance_count": len(active)},
            description="Processed by bookings team",
        )
        return MutationOutcome(booking=refreshed)

    async def confirm_cancellation(
        self, actor: Actor, booking_id: uuid.UUID
    ) -> MutationOutcome:
        ensure_can_process(actor)
        booking, _ = await self._load(booking_id)
        if booking.status != BookingStatus.PENDING_CANCELLATION:
            raise InvalidMutationError("Booking is not awaiting cancellation")
        refreshed = await self._commit(
            action="cancellation_confirmed",
            actor=actor,
            booking=booking,
            changes=(),
            booking_update={"status": BookingStatus.CANCELLED},
            payload={},
            description="Cancellation confirmed",
        )
        return MutationOutcome(booking=refreshed)
