"""Wall-clock abstraction and day-boundary helpers.

Punch timestamps are stored as naive UTC. "Today" is the calendar day of the
injected clock in ``settings.TIMEZONE``, starting at local midnight.
"""

from datetime import datetime, time, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from timeclock.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at ``current``; ``advance_to`` moves it."""

    def __init__(self, current: datetime):
        self.current = current

    def advance_to(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current


def local_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.TIMEZONE)


def to_utc_naive(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Normalize to naive UTC. Naive input is read as local time in the configured zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_zone(tz_name))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).replace(tzinfo=None)


def start_of_today(clock: Clock, tz_name: Optional[str] = None) -> datetime:
    """Local midnight of the clock's current day, as naive UTC."""
    zone = local_zone(tz_name)
    now = clock.now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_midnight = datetime.combine(now.astimezone(zone).date(), time.min, tzinfo=zone)
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now_naive(clock: Clock) -> datetime:
    now = clock.now()
    if now.tzinfo is None:
        return now
    return now.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a stored naive timestamp for serialization."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
