"""Role and ownership checks for booking mutations."""

from __future__ import annotations

from collections.abc import Iterable

from fastapi import HTTPException, status

from app.core.security import Actor, ActorRole
from app.services.errors import EditPermissionError
from app.services.records import BookingRecord, InstanceRecord

BOOKING_CREATORS = {ActorRole.ADMIN, ActorRole.BOOKINGS_TEAM, ActorRole.COACH}
BOOKING_PROCESSORS = {ActorRole.ADMIN, ActorRole.BOOKINGS_TEAM}


def require_roles(actor: Actor, allowed: set[ActorRole]) -> None:
    """Raise HTTP 403 if the actor is not a member of the allowed role set."""

    if actor.role not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )


def can_edit_booking(
    actor: Actor, booking: BookingRecord, instances: Iterable[InstanceRecord] = ()
) -> bool:
    if actor.is_admin:
        return True
    if booking.is_locked or any(instance.is_locked for instance in instances):
        return False
    if actor.role == ActorRole.COACH:
        return booking.created_by == actor.id
    return False


def ensure_can_edit(
    actor: Actor, booking: BookingRecord, instances: Iterable[InstanceRecord] = ()
) -> None:
    instances = list(instances)
    if can_edit_booking(actor, booking, instances):
        return
    if booking.is_locked or any(instance.is_locked for instance in instances):
        raise EditPermissionError("This booking is locked and can only be changed by an admin")
    raise EditPermissionError("You can only change bookings you created")


def ensure_can_create(actor: Actor, *, locked: bool = False) -> None:
    if actor.role not in BOOKING_CREATORS:
        raise EditPermissionError("Your role cannot create bookings")
    if locked and not actor.is_admin:
        raise EditPermissionError("Only admins can lock bookings")


def ensure_can_process(actor: Actor) -> None:
    if actor.role not in BOOKING_PROCESSORS:
        raise EditPermissionError("Only admins and the bookings team can process bookings")


__all__ = [
    "can_edit_booking",
    "ensure_can_create",
    "ensure_can_edit",
    "ensure_can_process",
    "require_roles",
]
