from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, Response

from tripcost.core.deps import (
    get_calculator,
    get_categories,
    get_evaluator,
    get_refresher,
    get_registry,
)
from tripcost.core.security import Actor, get_actor
from tripcost.models.category import (
    BudgetLimitIn,
    BudgetLimitOut,
    BudgetLimitUpdate,
    BudgetUsage,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    UsageSnapshotEntry,
    UsageWindow,
)
from tripcost.services.alerts import BudgetAlertEvaluator
from tripcost.services.budget_limits import BudgetLimitRegistry
from tripcost.services.budget_usage import BudgetUsageCalculator, UsageCacheRefresher
from tripcost.services.categories import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


# Categories --------------------------------------------------------
@router.post("/", response_model=CategoryOut, status_code=201, summary="Create a category")
def create_category(
    payload: CategoryIn,
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
):
    return categories.create(actor, payload)


@router.get("/", response_model=List[CategoryOut], summary="List categories")
def list_categories(
    active_only: bool = Query(False),
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
):
    return categories.list(active_only=active_only)


@router.get("/{category_id}", response_model=CategoryOut, summary="Get a category")
def get_category(
    category_id: int,
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
):
    return categories.get(category_id)


@router.patch("/{category_id}", response_model=CategoryOut, summary="Update a category")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
):
    return categories.update(actor, category_id, payload)


@router.delete("/{category_id}", status_code=204, summary="Delete an unused category")
def delete_category(
    category_id: int,
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
):
    categories.delete(actor, category_id)
    return Response(status_code=204)


# Budget limits -----------------------------------------------------
@router.get(
    "/{category_id}/budget-limits",
    response_model=List[BudgetLimitOut],
    summary="List budget limits of a category",
)
def list_budget_limits(
    category_id: int,
    actor: Actor = Depends(get_actor),
    registry: BudgetLimitRegistry = Depends(get_registry),
):
    return registry.list(category_id)


@router.post(
    "/{category_id}/budget-limits",
    response_model=BudgetLimitOut,
    status_code=201,
    summary="Add a budget limit",
)
def add_budget_limit(
    category_id: int,
    payload: BudgetLimitIn,
    actor: Actor = Depends(get_actor),
    registry: BudgetLimitRegistry = Depends(get_registry),
):
    return registry.add(actor, category_id, payload)


@router.put(
    "/{category_id}/budget-limits/{limit_id}",
    response_model=BudgetLimitOut,
    summary="Update a budget limit",
)
def update_budget_limit(
    category_id: int,
    limit_id: int,
    payload: BudgetLimitUpdate,
    actor: Actor = Depends(get_actor),
    registry: BudgetLimitRegistry = Depends(get_registry),
):
    return registry.update(actor, category_id, limit_id, payload)


@router.delete(
    "/{category_id}/budget-limits/{limit_id}",
    status_code=204,
    summary="Delete a budget limit",
)
def delete_budget_limit(
    category_id: int,
    limit_id: int,
    actor: Actor = Depends(get_actor),
    registry: BudgetLimitRegistry = Depends(get_registry),
):
    registry.delete(actor, category_id, limit_id)
    return Response(status_code=204)


# Usage & alerts ----------------------------------------------------
@router.get(
    "/{category_id}/usage",
    response_model=UsageWindow,
    summary="Category spend within a date window (inclusive)",
)
def category_usage(
    category_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    actor: Actor = Depends(get_actor),
    calculator: BudgetUsageCalculator = Depends(get_calculator),
):
    usage = calculator.usage(category_id, start_date, end_date)
    return UsageWindow(
        category_id=category_id, start_date=start_date, end_date=end_date, usage=usage
    )


@router.get(
    "/{category_id}/budget/status",
    response_model=List[BudgetUsage],
    summary="Usage and alert status for every active budget limit",
)
def budget_status(
    category_id: int,
    actor: Actor = Depends(get_actor),
    evaluator: BudgetAlertEvaluator = Depends(get_evaluator),
):
    return evaluator.evaluate(category_id)


@router.get(
    "/{category_id}/budget/alerts",
    response_model=List[BudgetUsage],
    summary="Active budget limits in warning or exceeded state",
)
def budget_alerts(
    category_id: int,
    actor: Actor = Depends(get_actor),
    evaluator: BudgetAlertEvaluator = Depends(get_evaluator),
):
    return evaluator.alerts(category_id)


@router.get(
    "/{category_id}/usage-snapshot",
    response_model=List[UsageSnapshotEntry],
    summary="Cached usage for the current month, quarter and year",
)
def usage_snapshot(
    category_id: int,
    actor: Actor = Depends(get_actor),
    categories: CategoryService = Depends(get_categories),
    refresher: UsageCacheRefresher = Depends(get_refresher),
):
    categories.get(category_id)
    return refresher.snapshot(category_id)
