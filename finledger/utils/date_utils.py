"""Date manipulation utilities"""

import calendar
from datetime import date
from typing import Tuple


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, moving days past the end of a short month onto its last day"""
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(from_date: date, months: int) -> date:
    """Shift a date by whole calendar months (Jan 31 + 1 month -> Feb 28/29)"""
    index = from_date.year * 12 + (from_date.month - 1) + months
    year, month_zero = divmod(index, 12)
    return clamp_day(year, month_zero + 1, from_date.day)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a calendar month"""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def previous_period(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def months_between(start: date, year: int, month: int) -> int:
    """Calendar-month difference between start's month and (year, month)"""
    return (year - start.year) * 12 + (month - start.month)
