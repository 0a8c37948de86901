"""
Occurrence dates for repeating payments.
"""

import calendar
from datetime import date, timedelta
from typing import List, Optional

MAX_OCCURRENCES = 100

# Fixed-length cycles; everything else steps by calendar month
CYCLE_DAYS = {"daily": 1, "weekly": 7, "biweekly": 14}


def add_months(start: date, months: int, day: Optional[int] = None) -> date:
    """Move `months` calendar months, clamping the day to the month's end."""
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day or start.day, last))


def _month_days(anchor_day: int, frequency: str) -> List[int]:
    if frequency != "semimonthly":
        return [anchor_day]
    second = anchor_day + 15 if anchor_day <= 15 else anchor_day - 15
    return sorted({anchor_day, second})


def cycle_dates(
    anchor: date,
    frequency: str,
    start: date,
    end: date,
    limit: int = MAX_OCCURRENCES,
    day: Optional[int] = None,
) -> List[date]:
    """
    Occurrences of a cycle anchored at `anchor` that fall in [start, end].

    Args:
        anchor: First occurrence; nothing earlier is returned
        frequency: daily, weekly, biweekly, semimonthly or monthly
        start: Earliest date to return
        end: Latest date to return
        limit: Maximum number of dates
        day: Day of month for monthly cycles; defaults to the anchor's day.
            Short months use their last day.
    """
    start = max(start, anchor)
    dates: List[date] = []
    if start > end or limit <= 0:
        return dates

    step = CYCLE_DAYS.get(frequency)
    if step is not None:
        elapsed = (start - anchor).days
        current = anchor + timedelta(days=-(-elapsed // step) * step)
        while current <= end and len(dates) < limit:
            dates.append(current)
            current += timedelta(days=step)
        return dates

    days = _month_days(day or anchor.day, frequency)
    base = start.replace(day=1)
    offset = 0
    while len(dates) < limit and add_months(base, offset, 1) <= end:
        for month_day in days:
            current = add_months(base, offset, month_day)
            if start <= current <= end and len(dates) < limit:
                dates.append(current)
        offset += 1
    return dates
