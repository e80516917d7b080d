from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(moment: dt.datetime) -> dt.datetime:
    """Aware UTC datetime; naive values are treated as UTC (how they are stored)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=dt.timezone.utc)
    return moment.astimezone(dt.timezone.utc)


def to_storage(moment: dt.datetime) -> dt.datetime:
    return as_utc(moment).replace(tzinfo=None)


def business_day(moment: dt.datetime, timezone: str) -> dt.date:
    """Calendar day of ``moment`` in the operator's local time zone."""
    return as_utc(moment).astimezone(ZoneInfo(timezone)).date()


def scheduled_at(day: dt.date, time_of_day: str, timezone: str) -> dt.datetime:
    hours, minutes = (int(part) for part in time_of_day.split(":", 1))
    return dt.datetime.combine(day, dt.time(hours, minutes), tzinfo=ZoneInfo(timezone))
