"""Exceptions raised by the booking reconciliation engine."""

from __future__ import annotations

import uuid
from typing import Any


class BookingRuleError(ValueError):
    """A proposed mutation violates a booking rule; nothing was written."""

    code = "rule_violation"

    def __init__(
        self,
        message: str,
        *,
        detail: list[dict[str, Any]] | None = None,
        capacity_violations: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or []
        self.capacity_violations = capacity_violations or []

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "violations": self.detail,
        }
        if self.capacity_violations:
            payload["capacity_violations"] = self.capacity_violations
        return payload


class ConflictError(BookingRuleError):
    """One or more rack/time overlaps with other bookings."""

    code = "conflict"


class CapacityExceededError(BookingRuleError):
    """Proposed athlete load exceeds the applicable schedule limit."""

    code = "capacity_exceeded"


class ClosedPeriodError(BookingRuleError):
    """Requested interval falls inside a closed period."""

    code = "closed_period"


class InvalidMutationError(BookingRuleError):
    """Malformed request: bad times, capacity, or instance selection."""

    code = "invalid"


class CutoffError(PermissionError):
    """Non-admin mutation attempted after the cutoff deadline."""

    code = "cutoff_passed"

    def __init__(self, message: str, *, cutoff_at: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.cutoff_at = cutoff_at


class EditPermissionError(PermissionError):
    """Actor may not modify the booking."""

    code = "forbidden"


class BookingNotFoundError(LookupError):
    """Requested booking or instance does not exist."""

    def __init__(self, booking_id: uuid.UUID | None = None, message: str | None = None) -> None:
        super().__init__(message or "Booking not found")
        self.booking_id = booking_id


class TransientStoreError(RuntimeError):
    """The row store call failed; state is unchanged and the caller may retry."""


__all__ = [
    "BookingNotFoundError",
    "BookingRuleError",
    "CapacityExceededError",
    "ClosedPeriodError",
    "ConflictError",
    "CutoffError",
    "EditPermissionError",
    "InvalidMutationError",
    "TransientStoreError",
]
