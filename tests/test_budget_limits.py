from __future__ import annotations

import sqlite3
from datetime import date

import pytest

from conftest import ADMIN, ALICE
from tripcost.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tripcost.models.category import BudgetLimitIn, BudgetLimitUpdate
from tripcost.models.constants import BudgetPeriod
from tripcost.services.budget_limits import BudgetLimitRegistry


def _limit(period, start, amount=500.0, **extra):
    return BudgetLimitIn(amount=amount, period=period, start_date=start, **extra)


@pytest.mark.parametrize(
    "period, start, end",
    [
        (BudgetPeriod.MONTHLY, date(2024, 1, 15), date(2024, 2, 14)),
        (BudgetPeriod.MONTHLY, date(2024, 2, 1), date(2024, 2, 29)),
        (BudgetPeriod.QUARTERLY, date(2024, 2, 1), date(2024, 4, 30)),
        (BudgetPeriod.QUARTERLY, date(2024, 11, 10), date(2025, 2, 9)),
        (BudgetPeriod.YEARLY, date(2024, 3, 1), date(2025, 2, 28)),
        (BudgetPeriod.MONTHLY, date(2024, 1, 31), date(2024, 2, 28)),
    ],
)
def test_window_end_is_derived(registry, category_id, period, start, end):
    out = registry.add(ADMIN, category_id, _limit(period, start))
    assert out.start_date == start
    assert out.end_date == end
    assert out.notification_threshold == 80


def test_overlapping_active_limit_conflicts(registry, category_id):
    first = registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))

    with pytest.raises(ConflictError) as excinfo:
        registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 20)))

    assert excinfo.value.conflict == {
        "budget_id": first.id,
        "period": "monthly",
        "start_date": "2024-01-01",
        "end_date": "2024-01-31",
    }


def test_mid_month_window_runs_into_next_month(registry, category_id):
    first = registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 15)))

    with pytest.raises(ConflictError) as excinfo:
        registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 2, 1)))

    assert excinfo.value.conflict["budget_id"] == first.id
    assert excinfo.value.conflict["end_date"] == "2024-02-14"
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 2, 15)))


def test_non_overlapping_cases_are_accepted(registry, category_id):
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 2, 1)))
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.QUARTERLY, date(2024, 1, 1)))
    registry.add(
        ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 5), is_active=False)
    )
    assert len(registry.list(category_id)) == 4


def test_update_ignores_own_window(registry, category_id):
    out = registry.add(ADMIN, category_id, _limit(BudgetPeriod.QUARTERLY, date(2024, 1, 1)))

    updated = registry.update(
        ADMIN, category_id, out.id, BudgetLimitUpdate(amount=900, notification_threshold=50)
    )

    assert updated.amount == 900
    assert updated.notification_threshold == 50
    assert updated.end_date == date(2024, 3, 31)


def test_update_into_other_window_conflicts(registry, category_id):
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))
    other = registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 3, 1)))

    with pytest.raises(ConflictError):
        registry.update(
            ADMIN, category_id, other.id, BudgetLimitUpdate(start_date=date(2024, 1, 10))
        )


def test_reactivating_overlapping_limit_conflicts(registry, category_id):
    registry.add(ADMIN, category_id, _limit(BudgetPeriod.YEARLY, date(2024, 1, 1)))
    dormant = registry.add(
        ADMIN, category_id, _limit(BudgetPeriod.YEARLY, date(2024, 6, 1), is_active=False)
    )
    with pytest.raises(ConflictError):
        registry.update(ADMIN, category_id, dormant.id, BudgetLimitUpdate(is_active=True))


def test_storage_rejects_overlap_without_service_check(db, category_id):
    with db.transaction() as cur:
        db.insert_budget_limit(
            cur, category_id, 100, "monthly", date(2024, 1, 1), date(2024, 1, 31), True, 80
        )
    with pytest.raises(sqlite3.IntegrityError, match="budget_limit_overlap"):
        with db.transaction() as cur:
            db.insert_budget_limit(
                cur, category_id, 100, "monthly", date(2024, 1, 15), date(2024, 1, 31), True, 80
            )
    assert len(db.list_budget_limits(category_id)) == 1


def test_limits_validate_amount_and_threshold(registry, category_id):
    with pytest.raises(ValidationError):
        registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1), amount=0))
    with pytest.raises(ValidationError):
        registry.add(
            ADMIN,
            category_id,
            _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1), notification_threshold=101),
        )


def test_limits_are_admin_managed(registry, category_id):
    with pytest.raises(AuthorizationError):
        registry.add(ALICE, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))
    out = registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))
    with pytest.raises(AuthorizationError):
        registry.delete(ALICE, category_id, out.id)

    registry.delete(ADMIN, category_id, out.id)
    assert registry.list(category_id) == []
    with pytest.raises(NotFoundError):
        registry.delete(ADMIN, category_id, out.id)


def test_unknown_category(registry):
    with pytest.raises(NotFoundError):
        registry.add(ADMIN, 999, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))


def test_configured_default_threshold(db, category_id):
    registry = BudgetLimitRegistry(db, default_threshold=65)
    out = registry.add(ADMIN, category_id, _limit(BudgetPeriod.MONTHLY, date(2024, 1, 1)))
    assert out.notification_threshold == 65
