"""Budget alert evaluation.

For every active budget limit of a category the evaluator recomputes usage
over the limit's own window and classifies it:

  exceeded: usage above 100% of the limit amount
  warning:  notification_threshold <= usage% <= 100
  normal:   anything below the threshold

``evaluate`` returns one record per active limit (dashboards);
``alerts`` keeps only warning/exceeded records (alert-surfacing call sites such
as expense create/update responses).
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from tripcost.core.errors import NotFoundError
from tripcost.db.dal import Database
from tripcost.models.category import BudgetUsage
from tripcost.models.constants import AlertStatus
from tripcost.services.budget_usage import BudgetUsageCalculator
from tripcost.services.money import round2


def classify(usage: float, amount: float, threshold: int) -> AlertStatus:
    percent = (usage / amount) * 100
    if percent > 100:
        return AlertStatus.EXCEEDED
    if percent >= threshold:
        return AlertStatus.WARNING
    return AlertStatus.NORMAL


class BudgetAlertEvaluator:
    def __init__(self, db: Database, calculator: BudgetUsageCalculator | None = None):
        self.db = db
        self.calculator = calculator or BudgetUsageCalculator(db)

    def evaluate(self, category_id: int) -> List[BudgetUsage]:
        if self.db.get_category(category_id) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")
        return [
            self._limit_usage(category_id, row)
            for row in self.db.list_budget_limits(category_id, active_only=True)
        ]

    def alerts(self, category_id: int) -> List[BudgetUsage]:
        return [u for u in self.evaluate(category_id) if u.is_alert]

    def _limit_usage(self, category_id: int, row: Dict[str, Any]) -> BudgetUsage:
        start = date.fromisoformat(row["start_date"])
        end = date.fromisoformat(row["end_date"])
        amount = float(row["amount"])
        threshold = int(row["notification_threshold"])
        usage = self.calculator.usage(category_id, start, end)
        return BudgetUsage(
            budget_id=row["id"],
            category_id=category_id,
            period=row["period"],
            start_date=start,
            end_date=end,
            budget_amount=amount,
            current_usage=usage,
            percent_used=round2((usage / amount) * 100),
            notification_threshold=threshold,
            alert_status=classify(usage, amount, threshold),
        )


__all__ = ["BudgetAlertEvaluator", "classify"]
