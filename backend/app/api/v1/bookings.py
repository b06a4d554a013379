"""Booking management API."""

from __future__ import annotations

import uuid
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api import deps
from app.core.security import Actor
from app.models.booking import BookingStatus
from app.schemas.booking import (
    ActivityEventRead,
    BookingCancelRequest,
    BookingCreate,
    BookingExtendRequest,
    BookingMutationRead,
    BookingRead,
    CandidateCheckRequest,
    CapacityCheckRead,
    ConflictCheckRead,
    ConflictRead,
    ExtendPlanRead,
    InstanceUpdate,
    PlannedInstanceRead,
)
from app.services.booking_planner import (
    BookingDraft,
    BookingPlanner,
    InstanceEdit,
    MutationOutcome,
)
from app.services.booking_store import SqlAlchemyBookingStore
from app.services.capacity_service import describe_capacity
from app.services.conflict_service import ConflictReport, describe_conflicts, group_by_booking
from app.services.errors import (
    BookingNotFoundError,
    BookingRuleError,
    CutoffError,
    EditPermissionError,
    InvalidMutationError,
    TransientStoreError,
)
from app.services.records import InstanceDescriptor

router = APIRouter()

StoreDep = Annotated[SqlAlchemyBookingStore, Depends(deps.get_booking_store)]
PlannerDep = Annotated[BookingPlanner, Depends(deps.get_planner)]
ActorDep = Annotated[Actor, Depends(deps.get_current_actor)]


def _raise_http(exc: Exception) -> NoReturn:
    """Translate engine exceptions into HTTP errors."""
    if isinstance(exc, InvalidMutationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.to_payload()
        ) from exc
    if isinstance(exc, BookingRuleError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_payload()) from exc
    if isinstance(exc, CutoffError):
        detail = {
            "code": exc.code,
            "message": exc.message,
            "cutoff_at": exc.cutoff_at.isoformat() if exc.cutoff_at else None,
        }
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail) from exc
    if isinstance(exc, EditPermissionError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
    if isinstance(exc, BookingNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, TransientStoreError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking store temporarily unavailable; please retry",
            headers={"Retry-After": "1"},
        ) from exc
    raise exc


_ENGINE_ERRORS = (
    BookingRuleError,
    BookingNotFoundError,
    CutoffError,
    EditPermissionError,
    TransientStoreError,
)


async def _mutation_response(
    store: SqlAlchemyBookingStore, outcome: MutationOutcome
) -> BookingMutationRead:
    booking = await store.get_booking_model(outcome.booking.id)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return BookingMutationRead(
        booking=BookingRead.model_validate(booking),
        warnings=list(outcome.warnings),
        last_minute_change=outcome.last_minute_change,
    )


@router.get("", response_model=list[BookingRead], summary="List bookings")
async def list_bookings(
    store: StoreDep,
    current_actor: ActorDep,
    side_id: uuid.UUID | None = None,
    status_filter: Annotated[BookingStatus | None, Query(alias="status")] = None,
    skip: int = 0,
    limit: Annotated[int, Query(le=200)] = 50,
) -> list[BookingRead]:
    try:
        bookings = await store.list_booking_models(
            side_id=side_id, status=status_filter, skip=skip, limit=limit
        )
    except TransientStoreError as exc:
        _raise_http(exc)
    return [BookingRead.model_validate(booking) for booking in bookings]


@router.post(
    "",
    response_model=BookingMutationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create weekly booking",
)
async def create_booking(
    payload: BookingCreate,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    draft = BookingDraft(
        title=payload.title,
        side_id=payload.side_id,
        start_at=payload.start_at,
        end_at=payload.end_at,
        racks=tuple(payload.racks),
        areas=tuple(payload.areas),
        capacity=payload.capacity,
        weeks=payload.weeks,
        rack_overrides={week: tuple(racks) for week, racks in payload.rack_overrides.items()},
        capacity_overrides=dict(payload.capacity_overrides),
        color=payload.color,
        is_locked=payload.is_locked,
    )
    if await store.get_side(payload.side_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Side not found")
    try:
        outcome = await planner.create_booking(current_actor, draft)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)


@router.post(
    "/check-conflicts",
    response_model=ConflictCheckRead,
    summary="Check a proposed instance for rack conflicts",
)
async def check_conflicts(
    payload: CandidateCheckRequest,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> ConflictCheckRead:
    candidate = InstanceDescriptor(
        side_id=payload.side_id,
        start_at=payload.start_at,
        end_at=payload.end_at,
        racks=tuple(sorted(set(payload.racks))),
        capacity=payload.capacity,
    )
    try:
        report: ConflictReport = await planner.check_conflicts(
            candidate, exclude_booking_id=payload.exclude_booking_id
        )
    except TransientStoreError as exc:
        _raise_http(exc)
    triples = [triple for _, entry in report.entries for triple in entry]
    return ConflictCheckRead(
        has_conflicts=report.has_conflicts,
        conflicts=[
            ConflictRead(booking_title=title, racks=racks, start_at=start_at, end_at=end_at)
            for (title, start_at, end_at), racks in group_by_booking(triples)
        ],
        message=describe_conflicts(report, planner.tz) if report.has_conflicts else None,
    )


@router.post(
    "/check-capacity",
    response_model=CapacityCheckRead,
    summary="Check a proposed instance against capacity schedules",
)
async def check_capacity(
    payload: CandidateCheckRequest,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> CapacityCheckRead:
    candidate = InstanceDescriptor(
        side_id=payload.side_id,
        start_at=payload.start_at,
        end_at=payload.end_at,
        racks=tuple(sorted(set(payload.racks))),
        capacity=payload.capacity,
    )
    try:
        check = await planner.check_capacity(
            candidate, exclude_instance_ids=payload.exclude_instance_ids
        )
    except TransientStoreError as exc:
        _raise_http(exc)
    peak = check.peak
    return CapacityCheckRead(
        is_valid=check.is_valid,
        closed=check.closed,
        used=peak.used if peak else check.max_used,
        limit=peak.limit if peak else check.max_limit,
        peak_at=peak.at if peak else None,
        period_type=check.period_type.value if check.period_type else None,
        available_racks=sorted(check.available_racks)
        if check.available_racks is not None
        else None,
        racks_outside_period=list(check.racks_outside_period),
        message=None if check.is_valid else describe_capacity([(candidate, check)], planner.tz),
    )


@router.get("/{booking_id}", response_model=BookingRead, summary="Get booking")
async def get_booking(
    booking_id: uuid.UUID,
    store: StoreDep,
    current_actor: ActorDep,
) -> BookingRead:
    try:
        booking = await store.get_booking_model(booking_id)
    except TransientStoreError as exc:
        _raise_http(exc)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return BookingRead.model_validate(booking)


@router.get(
    "/{booking_id}/activity",
    response_model=list[ActivityEventRead],
    summary="List activity for a booking",
)
async def list_booking_activity(
    booking_id: uuid.UUID,
    store: StoreDep,
    current_actor: ActorDep,
) -> list[ActivityEventRead]:
    try:
        if await store.get_booking_model(booking_id) is None:
            raise BookingNotFoundError(booking_id)
        events = await store.list_activity(booking_id)
    except (BookingNotFoundError, TransientStoreError) as exc:
        _raise_http(exc)
    return [ActivityEventRead.model_validate(event) for event in events]


@router.patch(
    "/{booking_id}/instances",
    response_model=BookingMutationRead,
    summary="Edit selected instances of a booking",
)
async def update_instances(
    booking_id: uuid.UUID,
    payload: InstanceUpdate,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    edit = InstanceEdit(
        instance_ids=tuple(payload.instance_ids),
        apply_to_all=payload.apply_to_all,
        start_time=payload.start_time,
        end_time=payload.end_time,
        capacity=payload.capacity,
        racks=tuple(payload.racks) if payload.racks is not None else None,
        areas=tuple(payload.areas) if payload.areas is not None else None,
    )
    try:
        outcome = await planner.update_instances(current_actor, booking_id, edit)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)


@router.post(
    "/{booking_id}/extend/plan",
    response_model=ExtendPlanRead,
    summary="Preview a weekly extension without writing it",
)
async def plan_extension(
    booking_id: uuid.UUID,
    payload: BookingExtendRequest,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> ExtendPlanRead:
    try:
        plan = await planner.plan_extend(booking_id, payload.weeks)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    message = None
    violation: dict[str, Any] | None = None
    if plan.blocked:
        try:
            plan.raise_for_violations(planner.tz)
        except BookingRuleError as exc:
            message = exc.message
            violation = exc.to_payload()
    return ExtendPlanRead(
        blocked=plan.blocked,
        accepted=[
            PlannedInstanceRead(
                week=descriptor.week,
                start_at=descriptor.start_at,
                end_at=descriptor.end_at,
                racks=list(descriptor.racks),
                capacity=descriptor.capacity,
            )
            for descriptor in plan.accepted
        ],
        violation=violation,
        message=message,
        warnings=plan.warnings(planner.tz),
    )


@router.post(
    "/{booking_id}/extend",
    response_model=BookingMutationRead,
    summary="Extend a booking by whole weeks",
)
async def extend_booking(
    booking_id: uuid.UUID,
    payload: BookingExtendRequest,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    try:
        outcome = await planner.extend_booking(current_actor, booking_id, payload.weeks)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingMutationRead,
    summary="Cancel one, future or all instances",
)
async def cancel_booking(
    booking_id: uuid.UUID,
    payload: BookingCancelRequest,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    try:
        outcome = await planner.cancel_booking(
            current_actor, booking_id, payload.mode, payload.instance_id
        )
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)


@router.post(
    "/{booking_id}/process",
    response_model=BookingMutationRead,
    summary="Mark booking as processed by the bookings team",
)
async def process_booking(
    booking_id: uuid.UUID,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    try:
        outcome = await planner.process_booking(current_actor, booking_id)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)


@router.post(
    "/{booking_id}/confirm-cancellation",
    response_model=BookingMutationRead,
    summary="Confirm a pending cancellation",
)
async def confirm_cancellation(
    booking_id: uuid.UUID,
    store: StoreDep,
    planner: PlannerDep,
    current_actor: ActorDep,
) -> BookingMutationRead:
    try:
        outcome = await planner.confirm_cancellation(current_actor, booking_id)
    except _ENGINE_ERRORS as exc:
        _raise_http(exc)
    return await _mutation_response(store, outcome)
