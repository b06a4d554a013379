"""Common API dependencies."""

from __future__ import annotations

import uuid
from typing import Annotated
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.security import Actor, decode_access_token, resolve_role
from app.db.session import get_session
from app.services.booking_planner import BookingPlanner
from app.services.booking_store import SqlAlchemyBookingStore

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Actor:
    """Authenticate request via a bearer token issued by the auth provider."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception

    try:
        actor_id = uuid.UUID(subject)
    except (ValueError, TypeError) as exc:
        raise credentials_exception from exc
    return Actor(id=actor_id, role=resolve_role(payload))


async def get_booking_store(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> SqlAlchemyBookingStore:
    return SqlAlchemyBookingStore(session)


async def get_planner(
    store: Annotated[SqlAlchemyBookingStore, Depends(get_booking_store)],
) -> BookingPlanner:
    return BookingPlanner(store, get_settings())
