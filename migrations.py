# migrations.py
# Schema versioning and migrations for Oil Analysis Tracker.
# Run after core schema creation; migrations are applied in order and each
# one is safe to run against a database that already has its columns.

import sqlite3
import logging

from status_service import classify

logger = logging.getLogger(__name__)

SCHEMA_VERSION_TABLE = "schema_version"
LATEST_VERSION = 3


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return current schema version (0 if table or row missing)."""
    cur = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (SCHEMA_VERSION_TABLE,),
    )
    if cur.fetchone() is None:
        return 0
    cur = conn.execute(f"SELECT MAX(version) AS v FROM {SCHEMA_VERSION_TABLE}")
    row = cur.fetchone()
    if row is None or row[0] is None:
        return 0
    return int(row[0])


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Set schema version (replaces any existing row)."""
    conn.execute(f"CREATE TABLE IF NOT EXISTS {SCHEMA_VERSION_TABLE} (version INTEGER NOT NULL)")
    conn.execute(f"DELETE FROM {SCHEMA_VERSION_TABLE}")
    conn.execute(f"INSERT INTO {SCHEMA_VERSION_TABLE} (version) VALUES (?)", (version,))
    conn.commit()


def _has_column(cur: sqlite3.Cursor, table: str, column: str) -> bool:
    cur.execute(f"PRAGMA table_info({table})")
    return any(r[1] == column for r in cur.fetchall())


def migrate_1_test_image_comment(conn: sqlite3.Connection) -> None:
    """Migration 1: case_tests.image_comment (free-text note shown under the test image)."""
    cur = conn.cursor()
    if not _has_column(cur, "case_tests", "image_comment"):
        conn.execute("ALTER TABLE case_tests ADD COLUMN image_comment TEXT")
    conn.commit()
    logger.info("Migration 1 applied: case_tests.image_comment")


def migrate_2_row_sort_order(conn: sqlite3.Connection) -> None:
    """
    Migration 2: sort_order on result and template parameter rows so the
    report shows parameters in entry order. Existing rows are numbered by rowid.
    """
    cur = conn.cursor()
    for table, parent in (("case_test_results", "case_test_id"), ("test_parameters", "template_id")):
        if _has_column(cur, table, "sort_order"):
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN sort_order INTEGER NOT NULL DEFAULT 0")
        conn.execute(
            f"""
            UPDATE {table}
            SET sort_order = (
                SELECT COUNT(*) FROM {table} AS o
                WHERE o.{parent} = {table}.{parent} AND o.rowid < {table}.rowid
            )
            """
        )
    conn.commit()
    logger.info("Migration 2 applied: sort_order on case_test_results and test_parameters")


def migrate_3_backfill_result_status(conn: sqlite3.Connection) -> None:
    """
    Migration 3: results written without a status get it computed from their
    value and limits, the same way the entry form does at save time.
    """
    cur = conn.execute(
        """
        SELECT rowid, actual_value, lower_limit, upper_limit
        FROM case_test_results
        WHERE status IS NULL OR status = ''
        """
    )
    rows = cur.fetchall()
    for row in rows:
        status = classify(float(row[1]), row[2], row[3])
        conn.execute(
            "UPDATE case_test_results SET status = ? WHERE rowid = ?",
            (status, row[0]),
        )
    conn.commit()
    logger.info("Migration 3 applied: status backfilled on %d result row(s)", len(rows))


def run_migrations(conn: sqlite3.Connection) -> None:
    """Run all pending migrations in order."""
    version = get_schema_version(conn)
    if version < 1:
        migrate_1_test_image_comment(conn)
        set_schema_version(conn, 1)
        version = 1
    if version < 2:
        migrate_2_row_sort_order(conn)
        set_schema_version(conn, 2)
        version = 2
    if version < 3:
        migrate_3_backfill_result_status(conn)
        set_schema_version(conn, 3)
