"""Data Access Layer for expenses, report aggregates and category budgets.

Responsibilities
----------------
- Provide CRUD helpers for categories, budget limits, expenses and reports.
- Expose ``transaction()`` so services can group several writes into one
  ``BEGIN IMMEDIATE`` unit; SQLite then serializes concurrent writers.
- Change report totals only through in-SQL increments and bump ``version`` on
  every report write, so no caller ever writes back a total it read earlier.
- Offer aggregation helpers (category usage, report member sums).

Methods that take a ``cur`` argument expect to run inside ``transaction()``;
read helpers accept an optional cursor and open their own connection otherwise.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Any, Dict, Iterator, List, Optional, Sequence
from datetime import date

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

_EXPENSE_UPDATABLE = {
    "category_id",
    "distance",
    "rate",
    "total_cost",
    "journey_date",
    "status",
    "notes",
    "starting_point",
    "destination_point",
}
_CATEGORY_UPDATABLE = {"name", "description", "is_active"}
_LIMIT_UPDATABLE = {
    "amount",
    "period",
    "start_date",
    "end_date",
    "is_active",
    "notification_threshold",
}
_REPORT_STATUS_FIELDS = {
    "status",
    "submitted_at",
    "approved_at",
    "rejected_at",
    "reimbursed_amount",
    "pending_amount",
    "comments",
    "reimbursement_review_required",
}


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


class Database:
    def __init__(self, db_path: Path, busy_timeout: float = 30.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor inside a write transaction; commit or roll back."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn.cursor()
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def _reading(self, cur: Optional[sqlite3.Cursor] = None) -> Iterator[sqlite3.Cursor]:
        if cur is not None:
            yield cur
            return
        conn = self._connect()
        try:
            yield conn.cursor()
        finally:
            conn.close()

    def schema_version(self) -> Optional[int]:
        with self._reading() as cur:
            cur.execute("SELECT value FROM metadata WHERE key = 'schema_version'")
            row = cur.fetchone()
            return int(row[0]) if row else None

    # ------------------------------------------------------------------
    # Categories
    def create_category(
        self, name: str, description: Optional[str], is_active: bool = True
    ) -> int:
        with self.transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO categories (name, description, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                """,
                (name, description, int(is_active)),
            )
            return int(cur.lastrowid)

    def get_category(
        self, category_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute("SELECT * FROM categories WHERE id = ?", (category_id,))
            row = c.fetchone()
            return dict(row) if row else None

    def list_categories(self, active_only: bool = False) -> List[Dict[str, Any]]:
        query = "SELECT * FROM categories"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY name ASC"
        with self._reading() as cur:
            cur.execute(query)
            return [dict(r) for r in cur.fetchall()]

    def update_category(self, category_id: int, fields: Dict[str, Any]) -> None:
        sets = {k: v for k, v in fields.items() if k in _CATEGORY_UPDATABLE}
        if "is_active" in sets:
            sets["is_active"] = int(sets["is_active"])
        if not sets:
            return
        assignments = ", ".join(f"{k} = ?" for k in sets)
        with self.transaction() as cur:
            cur.execute(
                f"UPDATE categories SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (*sets.values(), category_id),
            )

    def delete_category(self, category_id: int) -> int:
        """Delete a category with no expenses; returns the expense count otherwise.

        Limits and usage cache rows go with it (``ON DELETE CASCADE``).
        """
        with self.transaction() as cur:
            cur.execute("SELECT COUNT(*) FROM expenses WHERE category_id = ?", (category_id,))
            in_use = int(cur.fetchone()[0])
            if not in_use:
                cur.execute("DELETE FROM categories WHERE id = ?", (category_id,))
            return in_use

    # ------------------------------------------------------------------
    # Budget limits
    def list_budget_limits(
        self,
        category_id: int,
        active_only: bool = False,
        period: Optional[str] = None,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> List[Dict[str, Any]]:
        clauses = ["category_id = ?"]
        params: List[Any] = [category_id]
        if active_only:
            clauses.append("is_active = 1")
        if period is not None:
            clauses.append("period = ?")
            params.append(period)
        sql = f"SELECT * FROM budget_limits WHERE {' AND '.join(clauses)} ORDER BY id ASC"
        with self._reading(cur) as c:
            c.execute(sql, params)
            return [dict(r) for r in c.fetchall()]

    def get_budget_limit(
        self, category_id: int, limit_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute(
                "SELECT * FROM budget_limits WHERE id = ? AND category_id = ?",
                (limit_id, category_id),
            )
            row = c.fetchone()
            return dict(row) if row else None

    def insert_budget_limit(
        self,
        cur: sqlite3.Cursor,
        category_id: int,
        amount: float,
        period: str,
        start_date: date,
        end_date: date,
        is_active: bool,
        notification_threshold: int,
    ) -> int:
        cur.execute(
            f"""
            INSERT INTO budget_limits (
                category_id, amount, period, start_date, end_date, is_active,
                notification_threshold, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
            """,
            (
                category_id,
                amount,
                period,
                start_date.isoformat(),
                end_date.isoformat(),
                int(is_active),
                notification_threshold,
            ),
        )
        return int(cur.lastrowid)

    def update_budget_limit(
        self, cur: sqlite3.Cursor, limit_id: int, fields: Dict[str, Any]
    ) -> None:
        sets = {k: _iso(v) for k, v in fields.items() if k in _LIMIT_UPDATABLE}
        if "is_active" in sets:
            sets["is_active"] = int(sets["is_active"])
        if not sets:
            return
        assignments = ", ".join(f"{k} = ?" for k in sets)
        cur.execute(
            f"UPDATE budget_limits SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
            (*sets.values(), limit_id),
        )

    def delete_budget_limit(self, cur: sqlite3.Cursor, limit_id: int) -> None:
        cur.execute("DELETE FROM budget_limits WHERE id = ?", (limit_id,))

    # ------------------------------------------------------------------
    # Usage (always computed from expenses) and the usage cache
    def sum_category_cost(
        self,
        category_id: int,
        start_date: date,
        end_date: date,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> float:
        with self._reading(cur) as c:
            c.execute(
                """
                SELECT COALESCE(ROUND(SUM(total_cost), 2), 0.0)
                FROM expenses
                WHERE category_id = ? AND journey_date >= ? AND journey_date <= ?
                """,
                (category_id, start_date.isoformat(), end_date.isoformat()),
            )
            return float(c.fetchone()[0] or 0.0)

    def upsert_usage_cache(
        self,
        cur: sqlite3.Cursor,
        category_id: int,
        period: str,
        amount: float,
        window_start: date,
        window_end: date,
    ) -> None:
        cur.execute(
            f"""
            INSERT INTO category_usage_cache (
                category_id, period, amount, window_start, window_end, computed_at, version
            ) VALUES (?, ?, ?, ?, ?, ({UTC_NOW_SQL}), 1)
            ON CONFLICT(category_id, period) DO UPDATE SET
                amount = excluded.amount,
                window_start = excluded.window_start,
                window_end = excluded.window_end,
                computed_at = excluded.computed_at,
                version = category_usage_cache.version + 1
            """,
            (
                category_id,
                period,
                amount,
                window_start.isoformat(),
                window_end.isoformat(),
            ),
        )

    def list_usage_cache(
        self, category_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> List[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute(
                """
                SELECT * FROM category_usage_cache
                WHERE category_id = ?
                ORDER BY CASE period WHEN 'monthly' THEN 1 WHEN 'quarterly' THEN 2 ELSE 3 END
                """,
                (category_id,),
            )
            return [dict(r) for r in c.fetchall()]

    # ------------------------------------------------------------------
    # Expenses
    def insert_expense(
        self,
        cur: sqlite3.Cursor,
        owner_id: str,
        category_id: int,
        distance: float,
        rate: float,
        total_cost: float,
        journey_date: date,
        notes: Optional[str] = None,
        starting_point: Optional[str] = None,
        destination_point: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> int:
        cur.execute(
            f"""
            INSERT INTO expenses (
                owner_id, category_id, distance, rate, total_cost, journey_date, status,
                notes, starting_point, destination_point, created_by, updated_by,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
            """,
            (
                owner_id,
                category_id,
                distance,
                rate,
                total_cost,
                journey_date.isoformat(),
                notes,
                starting_point,
                destination_point,
                created_by,
                created_by,
            ),
        )
        return int(cur.lastrowid)

    def get_expense(
        self, expense_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute("SELECT * FROM expenses WHERE id = ?", (expense_id,))
            row = c.fetchone()
            return dict(row) if row else None

    def update_expense(
        self,
        cur: sqlite3.Cursor,
        expense_id: int,
        fields: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> None:
        sets = {k: _iso(v) for k, v in fields.items() if k in _EXPENSE_UPDATABLE}
        sets["updated_by"] = updated_by
        assignments = ", ".join(f"{k} = ?" for k in sets)
        cur.execute(
            f"UPDATE expenses SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
            (*sets.values(), expense_id),
        )
        if cur.rowcount != 1:
            raise ValueError("expense not found")

    def delete_expense(self, cur: sqlite3.Cursor, expense_id: int) -> None:
        cur.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
        if cur.rowcount != 1:
            raise ValueError("expense not found")

    def list_expenses(
        self,
        owner_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if start_date:
            clauses.append("journey_date >= ?")
            params.append(start_date.isoformat())
        if end_date:
            clauses.append("journey_date <= ?")
            params.append(end_date.isoformat())
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT * FROM expenses{where} ORDER BY journey_date DESC, id DESC"
        with self._reading() as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Monthly report aggregates
    def get_report(
        self, report_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute("SELECT * FROM reports WHERE id = ?", (report_id,))
            row = c.fetchone()
            return dict(row) if row else None

    def find_report(
        self,
        owner_id: str,
        month: int,
        year: int,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute(
                "SELECT * FROM reports WHERE owner_id = ? AND month = ? AND year = ?",
                (owner_id, month, year),
            )
            row = c.fetchone()
            return dict(row) if row else None

    def list_reports(
        self,
        owner_id: Optional[str] = None,
        year: Optional[int] = None,
        months: Optional[Sequence[int]] = None,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if year is not None:
            clauses.append("year = ?")
            params.append(year)
        if months:
            clauses.append(f"month IN ({','.join('?' for _ in months)})")
            params.extend(months)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT * FROM reports{where} ORDER BY year ASC, month ASC, id ASC"
        with self._reading(cur) as c:
            c.execute(sql, params)
            return [dict(r) for r in c.fetchall()]

    def get_or_create_report(
        self, cur: sqlite3.Cursor, owner_id: str, month: int, year: int
    ) -> int:
        """Return the report id for (owner, month, year), creating an empty draft."""
        cur.execute(
            f"""
            INSERT INTO reports (owner_id, month, year, status, created_at, updated_at)
            VALUES (?, ?, ?, 'draft', ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
            ON CONFLICT(owner_id, month, year) DO NOTHING
            """,
            (owner_id, month, year),
        )
        cur.execute(
            "SELECT id FROM reports WHERE owner_id = ? AND month = ? AND year = ?",
            (owner_id, month, year),
        )
        return int(cur.fetchone()[0])

    def report_for_expense(
        self, expense_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute(
                """
                SELECT r.* FROM reports r
                JOIN report_expenses re ON re.report_id = r.id
                WHERE re.expense_id = ?
                """,
                (expense_id,),
            )
            row = c.fetchone()
            return dict(row) if row else None

    def attach_expense(self, cur: sqlite3.Cursor, report_id: int, expense_id: int) -> None:
        cur.execute(
            "INSERT INTO report_expenses (report_id, expense_id) VALUES (?, ?)",
            (report_id, expense_id),
        )

    def detach_expense(self, cur: sqlite3.Cursor, report_id: int, expense_id: int) -> None:
        cur.execute(
            "DELETE FROM report_expenses WHERE report_id = ? AND expense_id = ?",
            (report_id, expense_id),
        )

    def report_expense_ids(
        self, report_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> List[int]:
        with self._reading(cur) as c:
            c.execute(
                "SELECT expense_id FROM report_expenses WHERE report_id = ? ORDER BY seq ASC",
                (report_id,),
            )
            return [int(r[0]) for r in c.fetchall()]

    def count_report_expenses(self, cur: sqlite3.Cursor, report_id: int) -> int:
        cur.execute("SELECT COUNT(*) FROM report_expenses WHERE report_id = ?", (report_id,))
        return int(cur.fetchone()[0])

    def apply_report_delta(
        self,
        cur: sqlite3.Cursor,
        report_id: int,
        distance_delta: float,
        amount_delta: float,
    ) -> None:
        """Shift a report's totals in place; pending follows the expense amount."""
        cur.execute(
            f"""
            UPDATE reports SET
                total_distance = ROUND(total_distance + ?, 3),
                total_expense_amount = ROUND(total_expense_amount + ?, 2),
                pending_amount = ROUND(pending_amount + ?, 2),
                version = version + 1,
                updated_at = ({UTC_NOW_SQL})
            WHERE id = ?
            """,
            (distance_delta, amount_delta, amount_delta, report_id),
        )

    def demote_report(self, cur: sqlite3.Cursor, report_id: int, note: str) -> bool:
        """Move a submitted/approved report back to draft, appending ``note``.

        Returns False when the report was not in a finalized status. A demoted
        approval that already recorded a reimbursement is flagged for review.
        """
        cur.execute(
            f"""
            UPDATE reports SET
                status = 'draft',
                reimbursement_review_required = CASE
                    WHEN status = 'approved' AND reimbursed_amount > 0 THEN 1
                    ELSE reimbursement_review_required
                END,
                comments = CASE
                    WHEN comments IS NULL OR comments = '' THEN ?
                    ELSE comments || char(10) || ?
                END,
                version = version + 1,
                updated_at = ({UTC_NOW_SQL})
            WHERE id = ? AND status IN ('submitted', 'approved')
            """,
            (note, note, report_id),
        )
        return cur.rowcount == 1

    def delete_report(self, cur: sqlite3.Cursor, report_id: int) -> None:
        cur.execute("DELETE FROM reports WHERE id = ?", (report_id,))

    def set_report_status(
        self,
        cur: sqlite3.Cursor,
        report_id: int,
        expected_status: str,
        expected_version: int,
        fields: Dict[str, Any],
    ) -> bool:
        """Compare-and-set write of workflow fields; False if the row moved on."""
        sets = {k: v for k, v in fields.items() if k in _REPORT_STATUS_FIELDS}
        assignments = ", ".join(f"{k} = ?" for k in sets)
        cur.execute(
            f"""
            UPDATE reports SET {assignments},
                version = version + 1,
                updated_at = ({UTC_NOW_SQL})
            WHERE id = ? AND status = ? AND version = ?
            """,
            (*sets.values(), report_id, expected_status, expected_version),
        )
        return cur.rowcount == 1

    def report_member_totals(
        self, report_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Dict[str, float]:
        with self._reading(cur) as c:
            c.execute(
                """
                SELECT COALESCE(ROUND(SUM(e.distance), 3), 0.0) AS distance,
                       COALESCE(ROUND(SUM(e.total_cost), 2), 0.0) AS amount
                FROM report_expenses re
                JOIN expenses e ON e.id = re.expense_id
                WHERE re.report_id = ?
                """,
                (report_id,),
            )
            row = c.fetchone()
            return {"distance": float(row["distance"]), "amount": float(row["amount"])}

    # ------------------------------------------------------------------
    # Quarterly snapshots
    def find_quarterly(
        self,
        owner_id: str,
        quarter: int,
        year: int,
        cur: Optional[sqlite3.Cursor] = None,
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute(
                "SELECT * FROM quarterly_reports WHERE owner_id = ? AND quarter = ? AND year = ?",
                (owner_id, quarter, year),
            )
            row = c.fetchone()
            return dict(row) if row else None

    def get_quarterly(
        self, quarterly_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> Optional[Dict[str, Any]]:
        with self._reading(cur) as c:
            c.execute("SELECT * FROM quarterly_reports WHERE id = ?", (quarterly_id,))
            row = c.fetchone()
            return dict(row) if row else None

    def insert_quarterly(
        self,
        cur: sqlite3.Cursor,
        owner_id: str,
        quarter: int,
        year: int,
        totals: Dict[str, float],
        source_fingerprint: str,
        expense_ids: Sequence[int],
    ) -> int:
        cur.execute(
            f"""
            INSERT INTO quarterly_reports (
                owner_id, quarter, year, total_distance, total_expense_amount,
                reimbursed_amount, pending_amount, status, source_fingerprint,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 'draft', ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
            """,
            (
                owner_id,
                quarter,
                year,
                totals["total_distance"],
                totals["total_expense_amount"],
                totals["reimbursed_amount"],
                totals["pending_amount"],
                source_fingerprint,
            ),
        )
        quarterly_id = int(cur.lastrowid)
        cur.executemany(
            "INSERT INTO quarterly_report_expenses (quarterly_report_id, expense_id) VALUES (?, ?)",
            [(quarterly_id, eid) for eid in expense_ids],
        )
        return quarterly_id

    def delete_quarterly(self, cur: sqlite3.Cursor, quarterly_id: int) -> None:
        cur.execute("DELETE FROM quarterly_reports WHERE id = ?", (quarterly_id,))

    def quarterly_expense_ids(
        self, quarterly_id: int, cur: Optional[sqlite3.Cursor] = None
    ) -> List[int]:
        with self._reading(cur) as c:
            c.execute(
                """
                SELECT expense_id FROM quarterly_report_expenses
                WHERE quarterly_report_id = ? ORDER BY seq ASC
                """,
                (quarterly_id,),
            )
            return [int(r[0]) for r in c.fetchall()]
