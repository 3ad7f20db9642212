from datetime import date

import pytest

from tripcost.models.constants import BudgetPeriod
from tripcost.services.money import compute_total_cost, round2
from tripcost.services.periods import (
    add_months,
    budget_window_end,
    current_windows,
    quarter_months,
    quarter_of,
    shift_month,
    windows_overlap,
)


def test_quarter_helpers():
    assert [quarter_of(m) for m in (1, 3, 4, 9, 10, 12)] == [1, 1, 2, 3, 4, 4]
    assert list(quarter_months(4)) == [10, 11, 12]
    with pytest.raises(ValueError):
        quarter_months(5)


def test_shift_month_crosses_years():
    assert shift_month(2024, 11, 2) == (2025, 1)
    assert shift_month(2024, 1, -1) == (2023, 12)


def test_window_end_is_one_period_minus_a_day():
    assert budget_window_end(date(2023, 2, 10), BudgetPeriod.MONTHLY) == date(2023, 3, 9)
    assert budget_window_end(date(2024, 1, 1), BudgetPeriod.MONTHLY) == date(2024, 1, 31)
    assert budget_window_end(date(2024, 12, 31), BudgetPeriod.QUARTERLY) == date(2025, 3, 30)
    assert budget_window_end(date(2024, 1, 1), BudgetPeriod.YEARLY) == date(2024, 12, 31)
    assert budget_window_end(date(2024, 2, 29), BudgetPeriod.YEARLY) == date(2025, 2, 27)


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_months(date(2024, 5, 15), 12) == date(2025, 5, 15)



def test_windows_overlap_is_inclusive():
    jan = (date(2024, 1, 1), date(2024, 1, 31))
    assert windows_overlap(jan, (date(2024, 1, 31), date(2024, 2, 29)))
    assert not windows_overlap(jan, (date(2024, 2, 1), date(2024, 2, 29)))


def test_current_windows():
    windows = current_windows(date(2024, 8, 15))
    assert windows[BudgetPeriod.MONTHLY] == (date(2024, 8, 1), date(2024, 8, 31))
    assert windows[BudgetPeriod.QUARTERLY] == (date(2024, 7, 1), date(2024, 9, 30))
    assert windows[BudgetPeriod.YEARLY] == (date(2024, 1, 1), date(2024, 12, 31))


def test_money_rounding():
    assert round2(2.675) == 2.68
    assert compute_total_cost(12.345, 0.33) == 4.07
    assert compute_total_cost(0.1, 0.2) == 0.02
