"""JWT handling for tokens issued by the external auth provider."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt

from app.core.config import get_settings


class ActorRole(str, enum.Enum):
    """Organisation roles recognised by the booking rules."""

    ADMIN = "admin"
    BOOKINGS_TEAM = "bookings_team"
    COACH = "coach"
    VIEWER = "viewer"


@dataclass(slots=True, frozen=True)
class Actor:
    """Authenticated caller resolved from a bearer token."""

    id: uuid.UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def create_access_token(
    subject: str, expires_delta: timedelta | None = None, **extra: Any
) -> str:
    """Create a JWT access token signed with the shared provider secret."""
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = datetime.now(UTC) + expires_delta
    claims: dict[str, Any] = {"sub": subject, "exp": expire}
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    claims.update(extra)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT token, raising JWTError on failure."""
    settings = get_settings()
    options = {"verify_aud": settings.jwt_audience is not None}
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options=options,
    )


def resolve_role(payload: dict[str, Any]) -> ActorRole:
    """Pull the organisation role from token claims, defaulting to viewer."""
    claim = get_settings().jwt_role_claim
    raw = payload.get(claim)
    if raw is None:
        metadata = payload.get("app_metadata")
        if isinstance(metadata, dict):
            raw = metadata.get(claim) or metadata.get("role")
    try:
        return ActorRole(str(raw))
    except ValueError:
        return ActorRole.VIEWER
