"""Schema versioning for the tripcost SQLite store.

``init_db`` lays down the version-1 tables. Everything after that is a step
in ``MIGRATIONS``, applied in order and recorded under ``schema_version`` in
the metadata table, so re-running ``apply_migrations`` on a current database
does nothing.

Versions:
  1. base tables (see ``schema.init_db``)
  2. range-exclusion triggers on ``budget_limits``: an active limit may not
     intersect another active limit of the same category and period
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable, Dict, Optional

from .schema import BASIC_UTC_NOW, init_db

logger = logging.getLogger("tripcost.migrate")

SCHEMA_VERSION_KEY = "schema_version"
BASE_SCHEMA_VERSION = 1

# Message raised by the triggers; the budget limit registry maps it to a ConflictError.
OVERLAP_ABORT_MESSAGE = "budget_limit_overlap"

_OVERLAP_PREDICATE = """
    NEW.is_active = 1 AND EXISTS (
        SELECT 1 FROM budget_limits b
        WHERE b.category_id = NEW.category_id
          AND b.period = NEW.period
          AND b.is_active = 1
          AND b.start_date <= NEW.end_date
          AND b.end_date >= NEW.start_date
          {exclude_self}
    )
"""

OVERLAP_INSERT_TRIGGER_DDL = f"""
CREATE TRIGGER IF NOT EXISTS trg_budget_limits_no_overlap_insert
BEFORE INSERT ON budget_limits
WHEN {_OVERLAP_PREDICATE.format(exclude_self="")}
BEGIN
    SELECT RAISE(ABORT, '{OVERLAP_ABORT_MESSAGE}');
END;
"""

OVERLAP_UPDATE_TRIGGER_DDL = f"""
CREATE TRIGGER IF NOT EXISTS trg_budget_limits_no_overlap_update
BEFORE UPDATE ON budget_limits
WHEN {_OVERLAP_PREDICATE.format(exclude_self="AND b.id <> OLD.id")}
BEGIN
    SELECT RAISE(ABORT, '{OVERLAP_ABORT_MESSAGE}');
END;
"""


def _install_overlap_triggers(conn: sqlite3.Connection) -> None:
    conn.execute(OVERLAP_INSERT_TRIGGER_DDL)
    conn.execute(OVERLAP_UPDATE_TRIGGER_DDL)


MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    2: _install_overlap_triggers,
}
CURRENT_SCHEMA_VERSION = max(MIGRATIONS)


def read_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = ?", (SCHEMA_VERSION_KEY,)
        ).fetchone()
    except sqlite3.OperationalError:
        # no metadata table: the database predates init_db
        return None
    return int(row[0]) if row else None


def _record_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        f"""
        INSERT INTO metadata (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = ({BASIC_UTC_NOW})
        """,
        (SCHEMA_VERSION_KEY, str(version)),
    )


def apply_migrations(db_path: Path) -> int:
    """Bring the database at ``db_path`` to ``CURRENT_SCHEMA_VERSION``.

    Each step commits together with its version record; a failing step rolls
    back and leaves the previous version in place.
    """
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        version = read_schema_version(conn) or BASE_SCHEMA_VERSION
        for target in sorted(v for v in MIGRATIONS if v > version):
            try:
                MIGRATIONS[target](conn)
                _record_version(conn, target)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                logger.exception("schema migration to v%s failed", target)
                raise
            logger.info("schema migrated from v%s to v%s", version, target)
            version = target
        _record_version(conn, version)
        conn.commit()
        return version
    finally:
        conn.close()
