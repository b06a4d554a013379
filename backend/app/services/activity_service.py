"""Helper utilities for recording booking activity events."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity_event import ActivityEvent
from app.services.records import ActivityRecord


def add_activity(session: AsyncSession, record: ActivityRecord) -> ActivityEvent:
    """Stage an activity event in the caller's transaction."""
    event = ActivityEvent(
        event_type=record.event_type,
        actor_id=record.actor_id,
        booking_id=record.booking_id,
        description=record.description,
        payload=record.payload or None,
    )
    session.add(event)
    return event


async def list_activity(
    session: AsyncSession, *, booking_id: uuid.UUID, limit: int = 100
) -> Sequence[ActivityEvent]:
    stmt = (
        select(ActivityEvent)
        .where(ActivityEvent.booking_id == booking_id)
        .order_by(ActivityEvent.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all()
