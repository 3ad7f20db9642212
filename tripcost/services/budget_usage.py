"""Category budget usage.

``BudgetUsageCalculator`` is the only source of truth for how much a category
has consumed: it sums expense costs straight from the expenses table every
time. ``UsageCacheRefresher`` keeps the per-category snapshot of the current
month, quarter and year windows that dashboards read; nothing that checks
budgets reads that snapshot back.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from tripcost.core.errors import NotFoundError, ValidationError
from tripcost.db.dal import Database
from tripcost.models.category import UsageSnapshotEntry
from tripcost.services.periods import current_windows

logger = logging.getLogger("tripcost.budget_usage")


class BudgetUsageCalculator:
    def __init__(self, db: Database):
        self.db = db

    def usage(self, category_id: int, start_date: date, end_date: date) -> float:
        """Sum of total_cost for the category with journey_date in [start, end]."""
        if start_date > end_date:
            raise ValidationError("start_date cannot be after end_date")
        if self.db.get_category(category_id) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")
        return self.db.sum_category_cost(category_id, start_date, end_date)


class UsageCacheRefresher:
    def __init__(self, db: Database):
        self.db = db

    def refresh(
        self, category_id: int, today: Optional[date] = None
    ) -> List[UsageSnapshotEntry]:
        today = today or date.today()
        with self.db.transaction() as cur:
            if self.db.get_category(category_id, cur) is None:
                raise NotFoundError(f"Category not found with id of {category_id}")
            for period, (start, end) in current_windows(today).items():
                amount = self.db.sum_category_cost(category_id, start, end, cur)
                self.db.upsert_usage_cache(cur, category_id, period.value, amount, start, end)
        logger.info("refreshed usage snapshot for category %s", category_id)
        return self.snapshot(category_id)

    def snapshot(self, category_id: int) -> List[UsageSnapshotEntry]:
        return [
            UsageSnapshotEntry(
                period=row["period"],
                amount=row["amount"],
                window_start=row["window_start"],
                window_end=row["window_end"],
                computed_at=row["computed_at"],
                version=row["version"],
            )
            for row in self.db.list_usage_cache(category_id)
        ]
