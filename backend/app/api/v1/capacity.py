"""Capacity schedule management API."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.security import Actor, ActorRole
from app.models.capacity_schedule import PeriodType
from app.schemas.capacity import (
    CapacityScheduleCreate,
    CapacityScheduleRead,
    CapacityScheduleUpdate,
    PeriodTypeDefaultRead,
    PeriodTypeDefaultUpsert,
)
from app.security.permissions import require_roles
from app.services import schedule_service

router = APIRouter(prefix="/sides/{side_id}")

_SCHEDULE_MANAGERS = {ActorRole.ADMIN}


@router.get(
    "/capacity-schedules",
    response_model=list[CapacityScheduleRead],
    summary="List capacity schedules for a side",
)
async def list_capacity_schedules(
    side_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> list[CapacityScheduleRead]:
    try:
        schedules = await schedule_service.list_schedules(session, side_id=side_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [CapacityScheduleRead.model_validate(schedule) for schedule in schedules]


@router.post(
    "/capacity-schedules",
    response_model=CapacityScheduleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create capacity schedule",
)
async def create_capacity_schedule(
    side_id: uuid.UUID,
    payload: CapacityScheduleCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> CapacityScheduleRead:
    require_roles(current_actor, _SCHEDULE_MANAGERS)
    try:
        schedule = await schedule_service.create_schedule(
            session, side_id=side_id, values=payload.model_dump()
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CapacityScheduleRead.model_validate(schedule)


@router.patch(
    "/capacity-schedules/{schedule_id}",
    response_model=CapacityScheduleRead,
    summary="Update capacity schedule",
)
async def update_capacity_schedule(
    side_id: uuid.UUID,
    schedule_id: uuid.UUID,
    payload: CapacityScheduleUpdate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> CapacityScheduleRead:
    require_roles(current_actor, _SCHEDULE_MANAGERS)
    schedule = await schedule_service.get_schedule(
        session, side_id=side_id, schedule_id=schedule_id
    )
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Capacity schedule not found")
    try:
        updated = await schedule_service.update_schedule(
            session, schedule=schedule, values=payload.model_dump(exclude_unset=True)
        )
    except ValueError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CapacityScheduleRead.model_validate(updated)


@router.post(
    "/capacity-schedules/{schedule_id}/exclusions",
    response_model=CapacityScheduleRead,
    summary="Skip one date of a recurring schedule",
)
async def exclude_schedule_date(
    side_id: uuid.UUID,
    schedule_id: uuid.UUID,
    day: Annotated[date, Body(embed=True)],
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> CapacityScheduleRead:
    require_roles(current_actor, _SCHEDULE_MANAGERS)
    schedule = await schedule_service.get_schedule(
        session, side_id=side_id, schedule_id=schedule_id
    )
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Capacity schedule not found")
    updated = await schedule_service.exclude_date(session, schedule=schedule, day=day)
    return CapacityScheduleRead.model_validate(updated)


@router.delete(
    "/capacity-schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete capacity schedule",
)
async def delete_capacity_schedule(
    side_id: uuid.UUID,
    schedule_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> None:
    require_roles(current_actor, _SCHEDULE_MANAGERS)
    schedule = await schedule_service.get_schedule(
        session, side_id=side_id, schedule_id=schedule_id
    )
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Capacity schedule not found")
    await schedule_service.delete_schedule(session, schedule=schedule)


@router.get(
    "/period-defaults",
    response_model=list[PeriodTypeDefaultRead],
    summary="List period type defaults for a side",
)
async def list_period_defaults(
    side_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> list[PeriodTypeDefaultRead]:
    try:
        defaults = await schedule_service.list_period_defaults(session, side_id=side_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [PeriodTypeDefaultRead.model_validate(default) for default in defaults]


@router.put(
    "/period-defaults/{period_type}",
    response_model=PeriodTypeDefaultRead,
    summary="Set the default racks for a period type",
)
async def upsert_period_default(
    side_id: uuid.UUID,
    period_type: PeriodType,
    payload: PeriodTypeDefaultUpsert,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> PeriodTypeDefaultRead:
    require_roles(current_actor, _SCHEDULE_MANAGERS)
    try:
        default = await schedule_service.upsert_period_default(
            session,
            side_id=side_id,
            period_type=period_type,
            capacity=payload.capacity,
            platforms=payload.platforms,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except IntegrityError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Period default already exists") from exc
    return PeriodTypeDefaultRead.model_validate(default)
