"""Expense create/update/delete with monthly report upkeep.

Every live report's ``total_distance`` / ``total_expense_amount`` must equal
the sum over the expenses it references. Each operation below therefore writes
the expense row and every report it touches inside one ``BEGIN IMMEDIATE``
transaction, and moves report totals only with in-SQL deltas.

Report membership follows ``journey_date``: an expense belongs to the report of
its (owner, month, year). Reports are created on the first expense of a period
and deleted when their last expense leaves. A submitted or approved report
whose totals or membership change is demoted to draft with a dated note.

After the transaction commits, the category usage snapshot is refreshed
through the notifier and the category's current budget alerts are attached to
the result. Neither step can fail the write.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

from tripcost.core.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from tripcost.core.security import Actor, require_owner_or_admin
from tripcost.db.dal import Database
from tripcost.models.category import BudgetUsage
from tripcost.models.expense import (
    ExpenseIn,
    ExpenseMutationResult,
    ExpenseOut,
    ExpenseUpdateIn,
)
from tripcost.services.alerts import BudgetAlertEvaluator
from tripcost.services.money import compute_total_cost, round_distance
from tripcost.services.periods import period_of
from tripcost.services.usage_events import UsageRefreshNotifier

logger = logging.getLogger("tripcost.expenses")

# Fields whose change moves report totals or membership.
_REPORT_FIELDS = {"distance", "rate", "journey_date"}


def expense_out(row: Dict[str, Any]) -> ExpenseOut:
    return ExpenseOut(**row)


class ExpenseMutationCoordinator:
    def __init__(
        self,
        db: Database,
        notifier: Optional[UsageRefreshNotifier] = None,
        evaluator: Optional[BudgetAlertEvaluator] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.notifier = notifier
        self.evaluator = evaluator or BudgetAlertEvaluator(db)
        self.today = today

    # ------------------------------------------------------------------
    def create(self, actor: Actor, payload: ExpenseIn) -> ExpenseMutationResult:
        self._check_not_future(payload.journey_date)
        distance = round_distance(payload.distance)
        total_cost = compute_total_cost(distance, payload.rate)
        month, year = period_of(payload.journey_date)

        with self.db.transaction() as cur:
            self._require_category(cur, payload.category_id)
            expense_id = self.db.insert_expense(
                cur,
                owner_id=actor.user_id,
                category_id=payload.category_id,
                distance=distance,
                rate=payload.rate,
                total_cost=total_cost,
                journey_date=payload.journey_date,
                notes=payload.notes,
                starting_point=payload.starting_point,
                destination_point=payload.destination_point,
                created_by=actor.user_id,
            )
            report_id = self.db.get_or_create_report(cur, actor.user_id, month, year)
            self.db.attach_expense(cur, report_id, expense_id)
            self.db.apply_report_delta(cur, report_id, distance, total_cost)
            self._demote(cur, report_id, "new expense added")
            row = self.db.get_expense(expense_id, cur)

        logger.info(
            "expense %s created for %s in report %s (%s/%s, cost %s)",
            expense_id,
            actor.user_id,
            report_id,
            month,
            year,
            total_cost,
        )
        return self._finish(row, [payload.category_id])

    def update(
        self, actor: Actor, expense_id: int, payload: ExpenseUpdateIn
    ) -> ExpenseMutationResult:
        changes = payload.model_dump(exclude_unset=True)
        if "status" in changes and not actor.is_admin:
            raise AuthorizationError("Only administrators can change expense status")
        for required in ("category_id", "distance", "rate", "journey_date", "status"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")
        if "distance" in changes:
            changes["distance"] = round_distance(changes["distance"])
        if "journey_date" in changes:
            self._check_not_future(changes["journey_date"])

        with self.db.transaction() as cur:
            old = self._load(cur, expense_id)
            require_owner_or_admin(actor, old["owner_id"], "expense")
            if "category_id" in changes:
                self._require_category(cur, changes["category_id"])

            old_date = date.fromisoformat(old["journey_date"])
            new_date = changes.get("journey_date", old_date)
            new_distance = changes.get("distance", old["distance"])
            new_rate = changes.get("rate", old["rate"])
            new_cost = compute_total_cost(new_distance, new_rate)
            changes["total_cost"] = new_cost
            if "status" in changes:
                changes["status"] = changes["status"].value
            self.db.update_expense(cur, expense_id, changes, updated_by=actor.user_id)

            if _REPORT_FIELDS & changes.keys():
                self._rebalance(
                    cur,
                    old,
                    old_date=old_date,
                    new_date=new_date,
                    new_distance=new_distance,
                    new_cost=new_cost,
                )
            row = self.db.get_expense(expense_id, cur)

        categories = {old["category_id"], row["category_id"]}
        return self._finish(row, sorted(categories))

    def delete(self, actor: Actor, expense_id: int) -> None:
        with self.db.transaction() as cur:
            old = self._load(cur, expense_id)
            if not actor.can_act_for(old["owner_id"]):
                raise AuthorizationError("Not authorized to delete this expense")
            report = self.db.report_for_expense(expense_id, cur)
            if report is not None:
                self._leave_report(
                    cur, report["id"], old, "expense deletion"
                )
            else:
                logger.warning("expense %s had no report membership on delete", expense_id)
            self.db.delete_expense(cur, expense_id)

        logger.info("expense %s deleted by %s", expense_id, actor.user_id)
        self._refresh_usage([old["category_id"]])

    # ------------------------------------------------------------------
    def _rebalance(
        self,
        cur: sqlite3.Cursor,
        old: Dict[str, Any],
        old_date: date,
        new_date: date,
        new_distance: float,
        new_cost: float,
    ) -> None:
        expense_id = old["id"]
        report = self.db.report_for_expense(expense_id, cur)
        same_period = period_of(old_date) == period_of(new_date)

        if report is not None and same_period:
            distance_delta = round_distance(new_distance - old["distance"])
            cost_delta = new_cost - old["total_cost"]
            if distance_delta or cost_delta:
                self.db.apply_report_delta(cur, report["id"], distance_delta, cost_delta)
                self._demote(cur, report["id"], "expense update")
            return

        if report is not None:
            self._leave_report(cur, report["id"], old, "expense moved to different month")
        month, year = period_of(new_date)
        target_id = self.db.get_or_create_report(cur, old["owner_id"], month, year)
        self.db.attach_expense(cur, target_id, expense_id)
        self.db.apply_report_delta(cur, target_id, new_distance, new_cost)
        self._demote(cur, target_id, "expense added from another month")
        logger.info(
            "expense %s moved to report %s (%s/%s)", expense_id, target_id, month, year
        )

    def _leave_report(
        self, cur: sqlite3.Cursor, report_id: int, old: Dict[str, Any], reason: str
    ) -> None:
        """Take an expense's old contribution out of a report; drop it if empty."""
        self.db.detach_expense(cur, report_id, old["id"])
        if self.db.count_report_expenses(cur, report_id) == 0:
            self.db.delete_report(cur, report_id)
            logger.info("report %s deleted: last expense removed", report_id)
            return
        self.db.apply_report_delta(cur, report_id, -old["distance"], -old["total_cost"])
        self._demote(cur, report_id, reason)

    def _demote(self, cur: sqlite3.Cursor, report_id: int, reason: str) -> None:
        note = f"Report reverted to draft due to {reason} on {self.today().isoformat()}"
        if self.db.demote_report(cur, report_id, note):
            logger.info("report %s reverted to draft: %s", report_id, reason)

    def _load(self, cur: sqlite3.Cursor, expense_id: int) -> Dict[str, Any]:
        row = self.db.get_expense(expense_id, cur)
        if row is None:
            raise NotFoundError(f"No expense found with id of {expense_id}")
        return row

    def _require_category(self, cur: sqlite3.Cursor, category_id: int) -> None:
        if self.db.get_category(category_id, cur) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")

    def _check_not_future(self, journey_date: date) -> None:
        if journey_date > self.today():
            raise ValidationError("journey_date cannot be in the future")

    # ------------------------------------------------------------------
    # Post-commit side effects
    def _finish(self, row: Dict[str, Any], category_ids: Iterable[int]) -> ExpenseMutationResult:
        category_ids = list(category_ids)
        self._refresh_usage(category_ids)
        alerts = self._budget_alerts(category_ids)
        return ExpenseMutationResult(expense=expense_out(row), budget_alerts=alerts or None)

    def _refresh_usage(self, category_ids: Iterable[int]) -> None:
        if self.notifier is None:
            return
        for category_id in category_ids:
            try:
                self.notifier.notify(category_id)
            except Exception:
                logger.exception("could not publish usage refresh for category %s", category_id)

    def _budget_alerts(self, category_ids: Iterable[int]) -> List[BudgetUsage]:
        alerts: List[BudgetUsage] = []
        for category_id in category_ids:
            try:
                alerts.extend(self.evaluator.alerts(category_id))
            except Exception:
                logger.exception("error checking budget limits for category %s", category_id)
        return alerts
