"""Timezone helpers shared by the recurrence engine and repositories."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytz


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes; everything we write is UTC, so a naive
    value is interpreted as UTC wall time.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(name: str) -> pytz.BaseTzInfo:
    return pytz.timezone(name)


def to_local(value: datetime, zone: pytz.BaseTzInfo) -> datetime:
    return as_utc(value).astimezone(zone)


def local_instant(day: date, at: time, zone: pytz.BaseTzInfo) -> datetime:
    """Resolve a local wall time on ``day`` to a UTC instant.

    Wall times inside a DST gap are normalised forward.
    """

    naive = datetime.combine(day, at)
    localized = zone.normalize(zone.localize(naive, is_dst=False))
    return localized.astimezone(timezone.utc)


def local_date(value: datetime, timezone_name: str) -> date:
    """Calendar date of ``value`` in the named timezone."""

    return to_local(value, get_zone(timezone_name)).date()


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def sunday_weekday(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""

    return (day.weekday() + 1) % 7
