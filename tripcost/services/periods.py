"""Calendar arithmetic for report periods, quarters and budget windows."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Dict, Tuple

from tripcost.models.constants import BudgetPeriod

Window = Tuple[date, date]


def period_of(day: date) -> Tuple[int, int]:
    """(month, year) of the report a journey on ``day`` belongs to."""
    return day.month, day.year


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


def quarter_months(quarter: int) -> range:
    if not 1 <= quarter <= 4:
        raise ValueError("quarter must be between 1 and 4")
    first = (quarter - 1) * 3 + 1
    return range(first, first + 3)


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def shift_month(year: int, month: int, months: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def add_months(day: date, months: int) -> date:
    """Same day-of-month ``months`` later, clamped to the target month's end."""
    year, month = shift_month(day.year, day.month, months)
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def budget_window_end(start: date, period: BudgetPeriod) -> date:
    """Last day of the budget window opening at ``start``.

    The window is one period long and ends the day before the next window
    would open: a monthly limit starting 15 Jan ends 14 Feb, a quarterly one
    starting 1 Feb ends 30 Apr.
    """
    return add_months(start, period.months) - timedelta(days=1)


def windows_overlap(a: Window, b: Window) -> bool:
    return a[0] <= b[1] and a[1] >= b[0]


def current_windows(today: date) -> Dict[BudgetPeriod, Window]:
    """Calendar month, quarter and year containing ``today``."""
    q_first = quarter_months(quarter_of(today.month))[0]
    q_end_year, q_end_month = shift_month(today.year, q_first, 2)
    return {
        BudgetPeriod.MONTHLY: (
            date(today.year, today.month, 1),
            last_day_of_month(today.year, today.month),
        ),
        BudgetPeriod.QUARTERLY: (
            date(today.year, q_first, 1),
            last_day_of_month(q_end_year, q_end_month),
        ),
        BudgetPeriod.YEARLY: (date(today.year, 1, 1), date(today.year, 12, 31)),
    }
