"""
MatriMatch — Clock abstraction

Every "now", "today", quiet-hours and expiry computation goes through a
``Clock`` so behaviour around day boundaries can be pinned in tests and in
date-specific backfills.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """A settable clock; ``advance`` moves it forward."""

    def __init__(self, moment: datetime) -> None:
        self._moment = as_utc(moment)

    def now(self) -> datetime:
        return self._moment

    def today(self) -> date:
        return self._moment.date()

    def set(self, moment: datetime) -> None:
        self._moment = as_utc(moment)

    def advance(self, **kwargs: float) -> datetime:
        self._moment = self._moment + timedelta(**kwargs)
        return self._moment


def as_utc(moment: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def resolve_zone(name: str | None) -> ZoneInfo:
    """Return the member's zone, defaulting to UTC for unknown names."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_day_start_utc(moment: datetime, zone: ZoneInfo) -> datetime:
    """UTC instant of the local midnight that starts ``moment``'s day in ``zone``."""
    local = as_utc(moment).astimezone(zone)
    midnight = datetime.combine(local.date(), time.min, tzinfo=zone)
    return midnight.astimezone(timezone.utc)


def seconds_until_end_of_day(moment: datetime) -> int:
    """Whole seconds left in ``moment``'s UTC day (at least one)."""
    moment = as_utc(moment)
    tomorrow = datetime.combine(moment.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return max(1, int((tomorrow - moment).total_seconds()))
