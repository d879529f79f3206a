# Overview: Business-day arithmetic for case delivery deadlines.

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TypeVar

D = TypeVar("D", date, datetime)

# Saturday and Sunday (date.weekday(): Monday == 0)
WEEKEND_DAYS = frozenset({5, 6})


def is_business_day(day: date) -> bool:
    return day.weekday() not in WEEKEND_DAYS


def add_business_days(start: D, days: int) -> D:
    """
    Advance start by `days` business days, skipping Saturdays and Sundays.

    The start day itself never counts, so Friday + 1 is the following Monday
    and Monday + 5 is the following Monday. Time of day is preserved. No
    holiday calendar is consulted. days <= 0 returns start unchanged.
    """
    result = start
    added = 0
    while added < days:
        result += timedelta(days=1)
        if is_business_day(result):
            added += 1
    return result


def default_sla_date(created_at: datetime, lead_days: int) -> datetime:
    """Deadline for a case created at created_at with the catalog's lead time."""
    return add_business_days(created_at, lead_days)
