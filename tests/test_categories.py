from __future__ import annotations

from datetime import date

import pytest

from conftest import ADMIN, ALICE
from tripcost.core.errors import AuthorizationError, NotFoundError, ValidationError
from tripcost.models.category import BudgetLimitIn, CategoryIn
from tripcost.models.constants import BudgetPeriod
from tripcost.models.expense import ExpenseIn
from tripcost.services.budget_usage import UsageCacheRefresher
from tripcost.services.categories import CategoryService


@pytest.fixture
def categories(db):
    return CategoryService(db)


def test_unused_category_is_deleted_with_its_limits_and_cache(db, categories, registry):
    category = categories.create(ADMIN, CategoryIn(name="Tolls"))
    registry.add(
        ADMIN,
        category.id,
        BudgetLimitIn(amount=100, period=BudgetPeriod.MONTHLY, start_date=date(2024, 1, 1)),
    )
    UsageCacheRefresher(db).refresh(category.id, today=date(2024, 1, 10))
    assert db.list_usage_cache(category.id)

    categories.delete(ADMIN, category.id)

    with pytest.raises(NotFoundError):
        categories.get(category.id)
    assert db.list_budget_limits(category.id) == []
    assert db.list_usage_cache(category.id) == []


def test_category_with_expenses_is_kept(db, categories, coordinator, category_id):
    coordinator.create(
        ALICE,
        ExpenseIn(category_id=category_id, distance=10, rate=1, journey_date=date(2024, 1, 2)),
    )

    with pytest.raises(ValidationError, match="1 expense"):
        categories.delete(ADMIN, category_id)
    assert categories.get(category_id).name == "Mileage"


def test_delete_is_admin_only_and_needs_a_known_category(categories, category_id):
    with pytest.raises(AuthorizationError):
        categories.delete(ALICE, category_id)
    with pytest.raises(NotFoundError):
        categories.delete(ADMIN, 999)
