from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    year: int
    month: int
    start: date
    end: date


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    start = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return Period(year, month, start, next_month - date.resolution)


def current_month(today: Optional[date] = None) -> Period:
    today = today or date.today()
    return month_period(today.year, today.month)
