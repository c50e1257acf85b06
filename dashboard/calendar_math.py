from __future__ import annotations

import calendar as _calendar
from datetime import date, datetime, timedelta


def today() -> date:
    return date.today()


def normalize_day(value) -> date:
    """Truncate a timestamp to its local calendar day.

    Accepts ``date``, ``datetime`` (aware values are converted to local time,
    naive values are taken as local), epoch seconds and ISO strings.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value).date()
    value_str = str(value).strip()
    if not value_str:
        raise ValueError("Empty timestamp")
    if len(value_str) == 10:
        return date.fromisoformat(value_str)
    return normalize_day(datetime.fromisoformat(value_str.replace("Z", "+00:00")))


def day_difference(a, b) -> int:
    return (normalize_day(a) - normalize_day(b)).days


def shift_days(day, days: int) -> date:
    return normalize_day(day) + timedelta(days=days)


def days_in_month(year: int, month: int) -> int:
    return _calendar.monthrange(year, month)[1]


def format_iso_date(day) -> str:
    return normalize_day(day).isoformat()
