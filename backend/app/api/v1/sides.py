"""Side listing, occupancy snapshot and cutoff lookup API."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api import deps
from app.core.config import get_settings
from app.core.security import Actor
from app.schemas.side import ActiveInstanceRead, CutoffRead, SideRead, SideSnapshotRead
from app.services import snapshot_service
from app.services.booking_store import SqlAlchemyBookingStore
from app.services.cutoff_service import cutoff_status
from app.services.errors import TransientStoreError

router = APIRouter()

StoreDep = Annotated[SqlAlchemyBookingStore, Depends(deps.get_booking_store)]


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Booking store temporarily unavailable; please retry",
        headers={"Retry-After": "1"},
    )


@router.get("/sides", response_model=list[SideRead], summary="List sides")
async def list_sides(
    store: StoreDep,
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> list[SideRead]:
    try:
        sides = await store.list_sides()
    except TransientStoreError as exc:
        raise _unavailable() from exc
    return [SideRead.model_validate(side) for side in sides]


@router.get(
    "/sides/{side_id}/snapshot",
    response_model=SideSnapshotRead,
    summary="Instances active on a side and upcoming rack usage",
)
async def get_side_snapshot(
    side_id: uuid.UUID,
    store: StoreDep,
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
    at: datetime | None = None,
) -> SideSnapshotRead:
    moment = at or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=get_settings().facility_tz)
    try:
        if await store.get_side(side_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Side not found")
        snapshot = await snapshot_service.side_snapshot(store, side_id, moment)
    except TransientStoreError as exc:
        raise _unavailable() from exc
    return SideSnapshotRead(
        side_id=snapshot.side_id,
        at=snapshot.at,
        current=[
            ActiveInstanceRead(
                instance_id=inst.id,
                booking_id=inst.booking_id,
                booking_title=inst.booking_title,
                start_at=inst.start_at,
                end_at=inst.end_at,
                racks=list(inst.racks),
                areas=list(inst.areas),
                capacity=inst.capacity,
            )
            for inst in snapshot.current
        ],
        racks_in_use=snapshot.racks_in_use,
        next_use_by_rack=snapshot.next_use_by_rack,
        next_use_by_area=snapshot.next_use_by_area,
    )


@router.get("/cutoff", response_model=CutoffRead, summary="Edit cutoff for a session date")
async def get_cutoff(
    session_date: Annotated[date, Query()],
    current_actor: Annotated[Actor, Depends(deps.get_current_actor)],
) -> CutoffRead:
    result = cutoff_status(session_date, tz=get_settings().facility_tz)
    return CutoffRead(
        session_date=result.session_date,
        cutoff_at=result.cutoff_at,
        is_after_cutoff=result.is_after_cutoff,
        message=result.describe(),
    )
