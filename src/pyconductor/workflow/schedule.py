"""
Helpers for computing target times of schedule waits.

All helpers return timezone-aware datetimes. `tz` accepts an IANA name
("Europe/Berlin") or a tzinfo and defaults to UTC.

Example:
    wait_until(time=lambda ctx: next_weekday_at(9, 0, tz="America/New_York"))
"""

from __future__ import annotations

import calendar
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _zone(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return UTC
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def _now(tz: str | tzinfo | None, now: datetime | None) -> datetime:
    zone = _zone(tz)
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def from_now(
    seconds: float = 0, *, minutes: float = 0, hours: float = 0, days: float = 0
) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)


def next_hour(tz: str | tzinfo | None = None, now: datetime | None = None) -> datetime:
    """Start of the next full hour."""
    current = _now(tz, now)
    return current.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def tomorrow_at(
    hour: int, minute: int = 0, tz: str | tzinfo | None = None, now: datetime | None = None
) -> datetime:
    current = _now(tz, now)
    return (current + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)


def next_day_at(
    hour: int, minute: int = 0, tz: str | tzinfo | None = None, now: datetime | None = None
) -> datetime:
    """Today at hour:minute if that is still ahead, otherwise tomorrow."""
    current = _now(tz, now)
    target = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return target


def next_weekday_at(
    hour: int,
    minute: int = 0,
    tz: str | tzinfo | None = None,
    now: datetime | None = None,
    weekday: str | int | None = None,
) -> datetime:
    """
    Next business day (Mon-Fri) at hour:minute, or the next given weekday.

    `weekday` is a name ("friday") or an int (0 = Monday).
    """
    current = _now(tz, now)
    if isinstance(weekday, str):
        weekday = WEEKDAYS.index(weekday.lower())

    candidate = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= current:
        candidate += timedelta(days=1)
    while True:
        day = candidate.weekday()
        if (weekday is None and day < 5) or day == weekday:
            return candidate
        candidate += timedelta(days=1)


def next_month_at(
    day: int,
    hour: int = 0,
    minute: int = 0,
    tz: str | tzinfo | None = None,
    now: datetime | None = None,
) -> datetime:
    """`day` of next month at hour:minute, clamped to the month's last day."""
    current = _now(tz, now)
    year, month = (current.year + 1, 1) if current.month == 12 else (current.year, current.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return current.replace(
        year=year,
        month=month,
        day=min(day, last_day),
        hour=hour,
        minute=minute,
        second=0,
        microsecond=0,
    )


def in_business_hours(
    start_hour: int = 9,
    end_hour: int = 17,
    tz: str | tzinfo | None = None,
    now: datetime | None = None,
) -> datetime:
    """
    Now if inside business hours (Mon-Fri, start_hour to end_hour), else the
    start of the next business period.
    """
    current = _now(tz, now)
    if current.weekday() < 5 and start_hour <= current.hour < end_hour:
        return current
    return next_weekday_at(start_hour, tz=tz, now=current)
