"""Weekly processing cutoff for booking changes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from app.core.config import get_settings

CUTOFF_WEEKDAY_OFFSET = 3
CUTOFF_TIME = time(23, 59, 59)


@dataclass(slots=True, frozen=True)
class CutoffStatus:
    session_date: date
    cutoff_at: datetime
    is_after_cutoff: bool

    def describe(self) -> str:
        return describe_cutoff(self.cutoff_at, self.is_after_cutoff)


def _facility_tz(tz: tzinfo | None) -> tzinfo:
    return tz if tz is not None else get_settings().facility_tz


def compute_cutoff(session_date: date, tz: tzinfo | None = None) -> datetime:
    """Thursday 23:59:59 of the week before the session's week, facility time."""
    monday = session_date - timedelta(days=session_date.weekday())
    thursday = monday - timedelta(days=7) + timedelta(days=CUTOFF_WEEKDAY_OFFSET)
    return datetime.combine(thursday, CUTOFF_TIME, tzinfo=_facility_tz(tz))


def session_date_for(start_at: datetime, tz: tzinfo | None = None) -> date:
    return start_at.astimezone(_facility_tz(tz)).date()


def is_after_cutoff(
    session_date: date, now: datetime | None = None, tz: tzinfo | None = None
) -> bool:
    current = now or datetime.now(UTC)
    return current > compute_cutoff(session_date, tz)


def cutoff_status(
    session_date: date, now: datetime | None = None, tz: tzinfo | None = None
) -> CutoffStatus:
    cutoff_at = compute_cutoff(session_date, tz)
    current = now or datetime.now(UTC)
    return CutoffStatus(
        session_date=session_date,
        cutoff_at=cutoff_at,
        is_after_cutoff=current > cutoff_at,
    )


def describe_cutoff(cutoff_at: datetime, passed: bool) -> str:
    stamp = f"{cutoff_at:%A %d %B %Y} at {cutoff_at:%H:%M}"
    if passed:
        return f"Cutoff passed on {stamp}; changes now require an admin override"
    return f"Changes accepted until {stamp}"
