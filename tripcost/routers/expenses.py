from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from tripcost.core.deps import get_coordinator, get_db
from tripcost.core.errors import NotFoundError, ValidationError
from tripcost.core.security import Actor, get_actor, require_owner_or_admin
from tripcost.db.dal import Database
from tripcost.models.expense import (
    ExpenseIn,
    ExpenseMutationResult,
    ExpenseOut,
    ExpenseUpdateIn,
)
from tripcost.services.expense_mutations import ExpenseMutationCoordinator, expense_out

router = APIRouter(prefix="/expenses", tags=["expenses"])


# Routes -----------------------------------------------------------
@router.post(
    "/",
    response_model=ExpenseMutationResult,
    status_code=201,
    summary="Create an expense",
)
def create_expense(
    payload: ExpenseIn,
    actor: Actor = Depends(get_actor),
    coordinator: ExpenseMutationCoordinator = Depends(get_coordinator),
):
    return coordinator.create(actor, payload)


@router.get(
    "/", response_model=List[ExpenseOut], summary="List expenses with optional filters"
)
def list_expenses_endpoint(
    start_date: Optional[date] = Query(None, description="Filter: start date inclusive"),
    end_date: Optional[date] = Query(None, description="Filter: end date inclusive"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    owner_id: Optional[str] = Query(
        None, description="Owner whose expenses to list (admins only; defaults to caller)"
    ),
    actor: Actor = Depends(get_actor),
    db: Database = Depends(get_db),
):
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date cannot be after end_date")
    owner = owner_id or actor.user_id
    require_owner_or_admin(actor, owner, "expense")
    rows = db.list_expenses(
        owner_id=owner, start_date=start_date, end_date=end_date, category_id=category_id
    )
    return [expense_out(r) for r in rows]


@router.get("/{expense_id}", response_model=ExpenseOut, summary="Get one expense")
def get_expense(
    expense_id: int,
    actor: Actor = Depends(get_actor),
    db: Database = Depends(get_db),
):
    row = db.get_expense(expense_id)
    if not row:
        raise NotFoundError(f"No expense found with id of {expense_id}")
    require_owner_or_admin(actor, row["owner_id"], "expense")
    return expense_out(row)


@router.patch(
    "/{expense_id}",
    response_model=ExpenseMutationResult,
    summary="Edit an expense (partial)",
)
def patch_expense(
    expense_id: int,
    payload: ExpenseUpdateIn,
    actor: Actor = Depends(get_actor),
    coordinator: ExpenseMutationCoordinator = Depends(get_coordinator),
):
    return coordinator.update(actor, expense_id, payload)


@router.delete(
    "/{expense_id}", status_code=204, summary="Delete an expense and adjust its report"
)
def delete_expense(
    expense_id: int,
    actor: Actor = Depends(get_actor),
    coordinator: ExpenseMutationCoordinator = Depends(get_coordinator),
):
    coordinator.delete(actor, expense_id)
    return Response(status_code=204)
