"""Budget limit registry.

Validates and stores time-boxed spending caps on categories. Two active limits
of the same category and period type may never cover intersecting date
windows. The store enforces that with triggers (see ``db.migrate``); the scan
here runs first inside the same write transaction so the caller learns which
window is in the way.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any, Dict, List, Optional

from tripcost.core.errors import ConflictError, NotFoundError, ValidationError
from tripcost.core.security import Actor, require_admin
from tripcost.db.dal import Database
from tripcost.db.migrate import OVERLAP_ABORT_MESSAGE
from tripcost.models.category import BudgetLimitIn, BudgetLimitOut, BudgetLimitUpdate
from tripcost.models.constants import DEFAULT_NOTIFICATION_THRESHOLD, BudgetPeriod
from tripcost.services.periods import budget_window_end, windows_overlap

logger = logging.getLogger("tripcost.budget_limits")


def limit_out(row: Dict[str, Any]) -> BudgetLimitOut:
    return BudgetLimitOut(
        id=row["id"],
        category_id=row["category_id"],
        amount=row["amount"],
        period=row["period"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        is_active=bool(row["is_active"]),
        notification_threshold=row["notification_threshold"],
    )


def _validate(
    amount: Optional[float],
    period: Optional[BudgetPeriod],
    start_date: Optional[date],
    threshold: Optional[int],
) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Budget amount must be greater than 0")
    if period is None:
        raise ValidationError("Please specify the budget period (monthly, quarterly or yearly)")
    if start_date is None:
        raise ValidationError("Please add a start date for the budget period")
    if threshold is not None and not 1 <= threshold <= 100:
        raise ValidationError("notification_threshold must be between 1 and 100")


class BudgetLimitRegistry:
    def __init__(
        self, db: Database, default_threshold: int = DEFAULT_NOTIFICATION_THRESHOLD
    ):
        self.db = db
        self.default_threshold = default_threshold

    def list(self, category_id: int) -> List[BudgetLimitOut]:
        self._require_category(category_id)
        return [limit_out(r) for r in self.db.list_budget_limits(category_id)]

    def add(self, actor: Actor, category_id: int, payload: BudgetLimitIn) -> BudgetLimitOut:
        require_admin(actor, "manage budget limits")
        threshold = payload.notification_threshold
        _validate(payload.amount, payload.period, payload.start_date, threshold)
        if threshold is None:
            threshold = self.default_threshold
        end_date = budget_window_end(payload.start_date, payload.period)

        with self.db.transaction() as cur:
            self._require_category(category_id, cur)
            if payload.is_active:
                self._reject_overlap(
                    cur, category_id, payload.period, payload.start_date, end_date
                )
            try:
                limit_id = self.db.insert_budget_limit(
                    cur,
                    category_id,
                    payload.amount,
                    payload.period.value,
                    payload.start_date,
                    end_date,
                    payload.is_active,
                    threshold,
                )
            except sqlite3.IntegrityError as exc:
                raise self._translate(exc, category_id, payload.period) from exc
            row = self.db.get_budget_limit(category_id, limit_id, cur)
        logger.info(
            "budget limit %s added to category %s (%s %s..%s)",
            limit_id,
            category_id,
            payload.period.value,
            payload.start_date,
            end_date,
        )
        return limit_out(row)

    def update(
        self,
        actor: Actor,
        category_id: int,
        limit_id: int,
        payload: BudgetLimitUpdate,
    ) -> BudgetLimitOut:
        require_admin(actor, "manage budget limits")
        changes = payload.model_dump(exclude_unset=True)

        with self.db.transaction() as cur:
            self._require_category(category_id, cur)
            current = self.db.get_budget_limit(category_id, limit_id, cur)
            if current is None:
                raise NotFoundError(f"Budget limit not found with id of {limit_id}")

            amount = changes.get("amount", current["amount"])
            period = BudgetPeriod(changes.get("period") or current["period"])
            start = changes.get("start_date") or date.fromisoformat(current["start_date"])
            is_active = changes.get("is_active")
            if is_active is None:
                is_active = bool(current["is_active"])
            threshold = changes.get("notification_threshold")
            if threshold is None:
                threshold = current["notification_threshold"]
            _validate(amount, period, start, threshold)
            end = budget_window_end(start, period)

            if is_active:
                self._reject_overlap(cur, category_id, period, start, end, exclude_id=limit_id)
            fields = {
                "amount": amount,
                "period": period.value,
                "start_date": start,
                "end_date": end,
                "is_active": is_active,
                "notification_threshold": threshold,
            }
            try:
                self.db.update_budget_limit(cur, limit_id, fields)
            except sqlite3.IntegrityError as exc:
                raise self._translate(exc, category_id, period) from exc
            row = self.db.get_budget_limit(category_id, limit_id, cur)
        return limit_out(row)

    def delete(self, actor: Actor, category_id: int, limit_id: int) -> None:
        """Remove a limit. Usage history is computed from expenses, so nothing cascades."""
        require_admin(actor, "manage budget limits")
        with self.db.transaction() as cur:
            self._require_category(category_id, cur)
            if self.db.get_budget_limit(category_id, limit_id, cur) is None:
                raise NotFoundError(f"Budget limit not found with id of {limit_id}")
            self.db.delete_budget_limit(cur, limit_id)
        logger.info("budget limit %s removed from category %s", limit_id, category_id)

    # ------------------------------------------------------------------
    def _require_category(self, category_id: int, cur: Optional[sqlite3.Cursor] = None) -> None:
        if self.db.get_category(category_id, cur) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")

    def _reject_overlap(
        self,
        cur: sqlite3.Cursor,
        category_id: int,
        period: BudgetPeriod,
        start: date,
        end: date,
        exclude_id: Optional[int] = None,
    ) -> None:
        for other in self.db.list_budget_limits(
            category_id, active_only=True, period=period.value, cur=cur
        ):
            if other["id"] == exclude_id:
                continue
            window = (date.fromisoformat(other["start_date"]), date.fromisoformat(other["end_date"]))
            if windows_overlap((start, end), window):
                logger.info(
                    "rejected %s budget window %s..%s for category %s: overlaps limit %s",
                    period.value,
                    start,
                    end,
                    category_id,
                    other["id"],
                )
                raise ConflictError(
                    f"An active {period.value} budget limit already covers "
                    f"{other['start_date']} to {other['end_date']}",
                    conflict={
                        "budget_id": other["id"],
                        "period": period.value,
                        "start_date": other["start_date"],
                        "end_date": other["end_date"],
                    },
                )

    @staticmethod
    def _translate(
        exc: sqlite3.IntegrityError, category_id: int, period: BudgetPeriod
    ) -> Exception:
        if OVERLAP_ABORT_MESSAGE in str(exc):
            return ConflictError(
                f"An active {period.value} budget limit for category {category_id} "
                "overlaps this window",
                conflict={"category_id": category_id, "period": period.value},
            )
        return ValidationError(f"Invalid budget limit: {exc}")
