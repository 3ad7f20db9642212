"""Monthly report status workflow and report reads.

    draft --submit (owner)--> submitted --approve (admin)--> approved
                                        --reject (admin)---> rejected

Approved and rejected are terminal for users. The only way back to draft is
an expense change handled by ``ExpenseMutationCoordinator``. Every workflow
write is a compare-and-set on (status, version), so a report that changed
between read and write is reported as a conflict instead of being overwritten.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from tripcost.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tripcost.core.security import Actor, require_admin, require_owner_or_admin
from tripcost.db.dal import Database
from tripcost.models.constants import REPORT_TRANSITIONS, ReportStatus
from tripcost.models.report import (
    ConsistencyReport,
    MonthlySummaryRow,
    ReportOut,
    StatusChangeIn,
    YearlySummary,
)
from tripcost.services.money import round2

logger = logging.getLogger("tripcost.reports")

CONSISTENCY_TOLERANCE = 0.005


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def report_out(db: Database, row: Dict[str, Any], cur=None) -> ReportOut:
    return ReportOut(
        **{k: row[k] for k in ReportOut.model_fields if k in row and k != "expense_ids"},
        expense_ids=db.report_expense_ids(row["id"], cur),
    )


class ReportWorkflow:
    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    def get(self, actor: Actor, report_id: int) -> ReportOut:
        row = self._load(report_id)
        require_owner_or_admin(actor, row["owner_id"], "report")
        return report_out(self.db, row)

    def by_period(self, actor: Actor, owner_id: str, month: int, year: int) -> ReportOut:
        require_owner_or_admin(actor, owner_id, "report")
        row = self.db.find_report(owner_id, month, year)
        if row is None:
            raise NotFoundError(f"No report found for {month}/{year}")
        return report_out(self.db, row)

    def list_for_owner(
        self, actor: Actor, owner_id: str, year: Optional[int] = None
    ) -> List[ReportOut]:
        require_owner_or_admin(actor, owner_id, "report")
        return [report_out(self.db, r) for r in self.db.list_reports(owner_id, year)]

    def yearly_summary(self, actor: Actor, owner_id: str, year: int) -> YearlySummary:
        require_owner_or_admin(actor, owner_id, "report")
        if not 2000 <= year <= 2100:
            raise ValidationError("Invalid year. Year must be between 2000-2100")
        rows = self.db.list_reports(owner_id, year)
        if not rows:
            raise NotFoundError(f"No reports found for year {year}")
        return YearlySummary(
            owner_id=owner_id,
            year=year,
            total_amount=round2(sum(r["total_expense_amount"] for r in rows)),
            reimbursed_amount=round2(sum(r["reimbursed_amount"] for r in rows)),
            pending_amount=round2(sum(r["pending_amount"] for r in rows)),
            monthly_reports=[
                MonthlySummaryRow(
                    id=r["id"],
                    month=r["month"],
                    total_expense_amount=r["total_expense_amount"],
                    reimbursed_amount=r["reimbursed_amount"],
                    pending_amount=r["pending_amount"],
                    status=r["status"],
                )
                for r in rows
            ],
        )

    def check_consistency(self, actor: Actor, report_id: int) -> ConsistencyReport:
        """Compare stored totals with the sum over the referenced expenses."""
        require_admin(actor, "audit report totals")
        with self.db.transaction() as cur:
            row = self._load(report_id, cur)
            computed = self.db.report_member_totals(report_id, cur)
        consistent = (
            abs(row["total_distance"] - computed["distance"]) < CONSISTENCY_TOLERANCE
            and abs(row["total_expense_amount"] - computed["amount"]) < CONSISTENCY_TOLERANCE
        )
        if not consistent:
            logger.warning(
                "report %s totals drifted: stored (%s, %s) computed (%s, %s)",
                report_id,
                row["total_distance"],
                row["total_expense_amount"],
                computed["distance"],
                computed["amount"],
            )
        return ConsistencyReport(
            report_id=report_id,
            stored_distance=row["total_distance"],
            stored_amount=row["total_expense_amount"],
            computed_distance=computed["distance"],
            computed_amount=computed["amount"],
            consistent=consistent,
        )

    # ------------------------------------------------------------------
    # Transitions
    def change_status(self, actor: Actor, report_id: int, payload: StatusChangeIn) -> ReportOut:
        if payload.status is ReportStatus.SUBMITTED:
            return self.submit(actor, report_id)
        if payload.status is ReportStatus.APPROVED:
            return self.approve(actor, report_id, payload.reimbursed_amount, payload.comments)
        if payload.status is ReportStatus.REJECTED:
            return self.reject(actor, report_id, payload.comments or "")
        raise ConflictError(
            "Reports return to draft only when their expenses change",
            conflict={"report_id": report_id, "requested_status": payload.status.value},
        )

    def submit(self, actor: Actor, report_id: int) -> ReportOut:
        with self.db.transaction() as cur:
            row = self._load(report_id, cur)
            if row["owner_id"] != actor.user_id:
                raise AuthorizationError("Only the report owner can submit this report")
            self._ensure_transition(row, ReportStatus.SUBMITTED)
            self._write(
                cur,
                row,
                {"status": ReportStatus.SUBMITTED.value, "submitted_at": _now_iso()},
            )
            out = report_out(self.db, self._load(report_id, cur), cur)
        logger.info("report %s submitted by %s", report_id, actor.user_id)
        return out

    def approve(
        self,
        actor: Actor,
        report_id: int,
        reimbursed_amount: Optional[float] = None,
        comments: Optional[str] = None,
    ) -> ReportOut:
        require_admin(actor, "approve or reject reports")
        with self.db.transaction() as cur:
            row = self._load(report_id, cur)
            self._ensure_transition(row, ReportStatus.APPROVED)
            total = float(row["total_expense_amount"])
            if reimbursed_amount is None:
                reimbursed_amount = total
            self._check_reimbursement(reimbursed_amount, total)
            fields = {
                "status": ReportStatus.APPROVED.value,
                "approved_at": _now_iso(),
                "reimbursed_amount": round2(reimbursed_amount),
                "pending_amount": round2(total - reimbursed_amount),
                "reimbursement_review_required": 0,
            }
            if comments:
                fields["comments"] = comments
            self._write(cur, row, fields)
            out = report_out(self.db, self._load(report_id, cur), cur)
        logger.info(
            "report %s approved by %s (reimbursed %s of %s)",
            report_id,
            actor.user_id,
            out.reimbursed_amount,
            out.total_expense_amount,
        )
        return out

    def reject(self, actor: Actor, report_id: int, comments: str) -> ReportOut:
        require_admin(actor, "approve or reject reports")
        with self.db.transaction() as cur:
            row = self._load(report_id, cur)
            self._ensure_transition(row, ReportStatus.REJECTED)
            if not comments or not comments.strip():
                raise ValidationError("Comments are required when rejecting a report")
            self._write(
                cur,
                row,
                {
                    "status": ReportStatus.REJECTED.value,
                    "rejected_at": _now_iso(),
                    "comments": comments.strip(),
                },
            )
            out = report_out(self.db, self._load(report_id, cur), cur)
        logger.info("report %s rejected by %s", report_id, actor.user_id)
        return out

    def update_reimbursement(
        self,
        actor: Actor,
        report_id: int,
        reimbursed_amount: float,
        comments: Optional[str] = None,
    ) -> ReportOut:
        require_admin(actor, "update reimbursement amounts")
        with self.db.transaction() as cur:
            row = self._load(report_id, cur)
            if ReportStatus(row["status"]) is not ReportStatus.APPROVED:
                raise ConflictError(
                    "Can only update reimbursement for approved reports. "
                    f"Current status: {row['status']}",
                    conflict={"report_id": report_id, "status": row["status"]},
                )
            total = float(row["total_expense_amount"])
            self._check_reimbursement(reimbursed_amount, total)
            self._write(
                cur,
                row,
                {
                    "status": row["status"],
                    "reimbursed_amount": round2(reimbursed_amount),
                    "pending_amount": round2(total - reimbursed_amount),
                    "reimbursement_review_required": 0,
                    "comments": comments
                    or f"Reimbursement updated to {reimbursed_amount} on {date.today().isoformat()}",
                },
            )
            out = report_out(self.db, self._load(report_id, cur), cur)
        return out

    # ------------------------------------------------------------------
    def _load(self, report_id: int, cur=None) -> Dict[str, Any]:
        row = self.db.get_report(report_id, cur)
        if row is None:
            raise NotFoundError(f"Report not found with id of {report_id}")
        return row

    @staticmethod
    def _ensure_transition(row: Dict[str, Any], target: ReportStatus) -> None:
        current = ReportStatus(row["status"])
        if target not in REPORT_TRANSITIONS[current]:
            raise ConflictError(
                f"Cannot move report from {current.value} to {target.value}",
                conflict={"report_id": row["id"], "status": current.value},
            )

    @staticmethod
    def _check_reimbursement(amount: float, total: float) -> None:
        if amount < 0:
            raise ValidationError("Reimbursed amount must be a positive number")
        if round2(amount) > round2(total):
            raise ValidationError("Reimbursed amount cannot exceed total expense amount")

    def _write(self, cur, row: Dict[str, Any], fields: Dict[str, Any]) -> None:
        if not self.db.set_report_status(cur, row["id"], row["status"], row["version"], fields):
            raise ConflictError(
                "Report was modified concurrently; reload and retry",
                conflict={"report_id": row["id"], "version": row["version"]},
            )
