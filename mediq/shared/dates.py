"""Shared date helpers"""

from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from fastapi import HTTPException


def parse_local_ymd(value) -> Optional[date]:
    """
    Parse a calendar date given as YYYY-MM-DD or DD-MM-YYYY.

    Returns None for anything that is not a valid date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    parts = value.strip().split("T")[0].split("-")
    if len(parts) != 3:
        return None

    try:
        if len(parts[0]) == 4:
            year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
        else:
            day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
        return date(year, month, day)
    except ValueError:
        return None


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every calendar day in [start, end]"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, next_first - timedelta(days=1)


def parse_date_param(value: Optional[str], field: str = "date") -> Optional[date]:
    """Optional query/body date; malformed input is a 400"""
    if value is None or value == "":
        return None
    parsed = parse_local_ymd(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {field}. Use YYYY-MM-DD or DD-MM-YYYY")
    return parsed
