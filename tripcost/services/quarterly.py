"""Quarterly rollups: point-in-time snapshots of three monthly reports.

A rollup copies the totals and expense references of the quarter's monthly
reports at build time and remembers which report versions it was built from.
Later edits to those monthly reports do not flow into the rollup; reads flag
it as ``stale`` instead, and ``build(..., rebuild=True)`` replaces it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from tripcost.core.errors import ConflictError, NotFoundError, ValidationError
from tripcost.core.security import Actor, require_owner_or_admin
from tripcost.db.dal import Database
from tripcost.models.report import QuarterlyOut
from tripcost.services.money import round2, round_distance
from tripcost.services.periods import quarter_months

logger = logging.getLogger("tripcost.quarterly")

_TOTAL_FIELDS = (
    "total_distance",
    "total_expense_amount",
    "reimbursed_amount",
    "pending_amount",
)


def fingerprint(reports: List[Dict[str, Any]]) -> str:
    return json.dumps(sorted([r["id"], r["version"]] for r in reports))


class QuarterlyRollupService:
    def __init__(self, db: Database):
        self.db = db

    def build(
        self,
        actor: Actor,
        quarter: int,
        year: int,
        owner_id: Optional[str] = None,
        rebuild: bool = False,
    ) -> QuarterlyOut:
        owner_id = owner_id or actor.user_id
        require_owner_or_admin(actor, owner_id, "report")
        if not 1 <= quarter <= 4:
            raise ValidationError("Quarter must be between 1 and 4")
        months = list(quarter_months(quarter))

        with self.db.transaction() as cur:
            monthly = self.db.list_reports(owner_id, year, months, cur)
            if not monthly:
                raise NotFoundError(f"No monthly reports found for Q{quarter} {year}")
            existing = self.db.find_quarterly(owner_id, quarter, year, cur)
            if existing is not None:
                if not rebuild:
                    raise ConflictError(
                        f"Quarterly report for Q{quarter} {year} already exists",
                        conflict={"quarterly_report_id": existing["id"]},
                    )
                self.db.delete_quarterly(cur, existing["id"])

            totals = {f: sum(float(r[f]) for r in monthly) for f in _TOTAL_FIELDS}
            totals["total_distance"] = round_distance(totals["total_distance"])
            for f in _TOTAL_FIELDS[1:]:
                totals[f] = round2(totals[f])
            expense_ids: List[int] = []
            for r in monthly:
                expense_ids.extend(self.db.report_expense_ids(r["id"], cur))

            quarterly_id = self.db.insert_quarterly(
                cur, owner_id, quarter, year, totals, fingerprint(monthly), expense_ids
            )
            out = self._out(self.db.get_quarterly(quarterly_id, cur), cur)
        logger.info(
            "built Q%s %s rollup %s for %s from %d monthly report(s)",
            quarter,
            year,
            quarterly_id,
            owner_id,
            len(monthly),
        )
        return out

    def get(self, actor: Actor, quarterly_id: int) -> QuarterlyOut:
        row = self.db.get_quarterly(quarterly_id)
        if row is None:
            raise NotFoundError(f"Quarterly report not found with id of {quarterly_id}")
        require_owner_or_admin(actor, row["owner_id"], "report")
        return self._out(row)

    def find(self, actor: Actor, owner_id: str, quarter: int, year: int) -> QuarterlyOut:
        require_owner_or_admin(actor, owner_id, "report")
        row = self.db.find_quarterly(owner_id, quarter, year)
        if row is None:
            raise NotFoundError(f"No quarterly report for Q{quarter} {year}")
        return self._out(row)

    def _out(self, row: Dict[str, Any], cur=None) -> QuarterlyOut:
        current = self.db.list_reports(
            row["owner_id"], row["year"], list(quarter_months(row["quarter"])), cur
        )
        built_from = json.loads(row["source_fingerprint"])
        return QuarterlyOut(
            id=row["id"],
            owner_id=row["owner_id"],
            quarter=row["quarter"],
            year=row["year"],
            total_distance=row["total_distance"],
            total_expense_amount=row["total_expense_amount"],
            reimbursed_amount=row["reimbursed_amount"],
            pending_amount=row["pending_amount"],
            status=row["status"],
            comments=row["comments"],
            expense_ids=self.db.quarterly_expense_ids(row["id"], cur),
            source_report_ids=[pair[0] for pair in built_from],
            stale=fingerprint(current) != row["source_fingerprint"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
