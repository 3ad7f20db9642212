"""Database schema DDL definitions and initialization utilities.

Tables:
  - categories: expense categories (name unique)
  - budget_limits: time-boxed spending caps per category (ordered by id)
  - category_usage_cache: last computed usage per category and standard window
  - expenses: individual journey expense records
  - reports: per-(owner, month, year) rollups with status workflow
  - report_expenses: ordered membership of expenses in a report
  - quarterly_reports: point-in-time quarterly snapshots
  - quarterly_report_expenses: expense references captured by a snapshot
  - metadata: key/value store (schema version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

CATEGORIES_DDL = f"""
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

BUDGET_LIMITS_DDL = f"""
CREATE TABLE IF NOT EXISTS budget_limits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category_id INTEGER NOT NULL,
    amount REAL NOT NULL CHECK (amount > 0),
    period TEXT NOT NULL CHECK (period IN ('monthly','quarterly','yearly')),
    start_date TEXT NOT NULL, -- ISO date (YYYY-MM-DD)
    end_date TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    notification_threshold INTEGER NOT NULL DEFAULT 80
        CHECK (notification_threshold BETWEEN 1 AND 100),
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    CHECK (end_date >= start_date),
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
);
"""

CATEGORY_USAGE_CACHE_DDL = f"""
CREATE TABLE IF NOT EXISTS category_usage_cache (
    category_id INTEGER NOT NULL,
    period TEXT NOT NULL CHECK (period IN ('monthly','quarterly','yearly')),
    amount REAL NOT NULL DEFAULT 0,
    window_start TEXT NOT NULL,
    window_end TEXT NOT NULL,
    computed_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    version INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (category_id, period),
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
);
"""

EXPENSES_DDL = f"""
CREATE TABLE IF NOT EXISTS expenses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    category_id INTEGER NOT NULL,
    distance REAL NOT NULL CHECK (distance > 0),
    rate REAL NOT NULL CHECK (rate > 0),
    total_cost REAL NOT NULL,
    journey_date TEXT NOT NULL, -- ISO date (YYYY-MM-DD)
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','approved','rejected')),
    notes TEXT,
    starting_point TEXT,
    destination_point TEXT,
    created_by TEXT,
    updated_by TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (category_id) REFERENCES categories(id)
);
"""

REPORTS_DDL = f"""
CREATE TABLE IF NOT EXISTS reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    year INTEGER NOT NULL CHECK (year BETWEEN 2000 AND 2100),
    total_distance REAL NOT NULL DEFAULT 0,
    total_expense_amount REAL NOT NULL DEFAULT 0,
    reimbursed_amount REAL NOT NULL DEFAULT 0,
    pending_amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK (status IN ('draft','submitted','approved','rejected')),
    submitted_at TEXT,
    approved_at TEXT,
    rejected_at TEXT,
    comments TEXT,
    reimbursement_review_required INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE (owner_id, month, year)
);
"""

REPORT_EXPENSES_DDL = """
CREATE TABLE IF NOT EXISTS report_expenses (
    seq INTEGER PRIMARY KEY AUTOINCREMENT, -- insertion order
    report_id INTEGER NOT NULL,
    expense_id INTEGER NOT NULL UNIQUE,
    FOREIGN KEY (report_id) REFERENCES reports(id) ON DELETE CASCADE,
    FOREIGN KEY (expense_id) REFERENCES expenses(id) ON DELETE CASCADE
);
"""

QUARTERLY_REPORTS_DDL = f"""
CREATE TABLE IF NOT EXISTS quarterly_reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    quarter INTEGER NOT NULL CHECK (quarter BETWEEN 1 AND 4),
    year INTEGER NOT NULL CHECK (year BETWEEN 2000 AND 2100),
    total_distance REAL NOT NULL DEFAULT 0,
    total_expense_amount REAL NOT NULL DEFAULT 0,
    reimbursed_amount REAL NOT NULL DEFAULT 0,
    pending_amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK (status IN ('draft','submitted','approved','rejected')),
    comments TEXT,
    source_fingerprint TEXT NOT NULL, -- JSON [[report_id, version], ...]
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE (owner_id, quarter, year)
);
"""

QUARTERLY_REPORT_EXPENSES_DDL = """
CREATE TABLE IF NOT EXISTS quarterly_report_expenses (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    quarterly_report_id INTEGER NOT NULL,
    expense_id INTEGER NOT NULL, -- snapshot reference, may outlive the expense
    FOREIGN KEY (quarterly_report_id) REFERENCES quarterly_reports(id) ON DELETE CASCADE
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

EXPENSES_CATEGORY_DATE_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_expenses_category_date ON expenses(category_id, journey_date);"
)
EXPENSES_OWNER_DATE_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_expenses_owner_date ON expenses(owner_id, journey_date);"
)
BUDGET_LIMITS_WINDOW_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_budget_limits_window
ON budget_limits(category_id, period, start_date, end_date)
WHERE is_active = 1;
"""
REPORT_EXPENSES_REPORT_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_report_expenses_report ON report_expenses(report_id, seq);"
)

DDL_ORDER: Sequence[str] = (
    CATEGORIES_DDL,
    BUDGET_LIMITS_DDL,
    CATEGORY_USAGE_CACHE_DDL,
    EXPENSES_DDL,
    REPORTS_DDL,
    REPORT_EXPENSES_DDL,
    QUARTERLY_REPORTS_DDL,
    QUARTERLY_REPORT_EXPENSES_DDL,
    METADATA_DDL,
)

INDEX_ORDER: Sequence[str] = (
    EXPENSES_CATEGORY_DATE_INDEX_DDL,
    EXPENSES_OWNER_DATE_INDEX_DDL,
    BUDGET_LIMITS_WINDOW_INDEX_DDL,
    REPORT_EXPENSES_REPORT_INDEX_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        for ddl in INDEX_ORDER:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
