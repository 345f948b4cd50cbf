# database.py

import logging
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from config import load_db_path
from domain.models import (
    Case,
    CaseDetail,
    CaseTest,
    CompanySettings,
    TemplateParameter,
    TestResult,
    TestTemplate,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Paths
# -----------------------------------------------------------------------------

DB_PATH = load_db_path()

_effective_db_path: Path | None = None


def get_effective_db_path() -> Path:
    """Path of the DB in use (last path passed to get_connection, else the configured one)."""
    return _effective_db_path if _effective_db_path is not None else DB_PATH


def new_id() -> str:
    """Opaque unique identifier for any record."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """ISO-8601 timestamp (UTC, seconds precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

# -----------------------------------------------------------------------------
# Connection helpers
# -----------------------------------------------------------------------------

def get_connection(db_path: Path | str | None = None, timeout: float = 30.0, retries: int = 3):
    """
    Open the SQLite database. ':memory:' is accepted for tests.
    timeout: seconds to wait for locks.
    retries: number of retries on SQLITE_BUSY / database is locked (with exponential backoff).
    """
    global _effective_db_path
    if db_path is None:
        db_path = DB_PATH
    in_memory = str(db_path) == ":memory:"
    if not in_memory:
        db_path = Path(db_path)
        _effective_db_path = db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    last_err = None
    for attempt in range(max(1, retries)):
        try:
            conn = sqlite3.connect(str(db_path), timeout=timeout)
            break
        except sqlite3.OperationalError as e:
            last_err = e
            err_lower = str(e).lower()
            if "unable to open database file" in err_lower:
                raise sqlite3.OperationalError(
                    f"Could not open database at:\n{db_path}\n\n"
                    "Check that the folder exists and that you have read and write permission for it."
                ) from e
            if ("database is locked" in err_lower or "sqlite_busy" in err_lower) and attempt < retries - 1:
                time.sleep(0.1 * (2 ** attempt))
                continue
            raise
    else:
        if last_err:
            raise last_err
        raise RuntimeError("Failed to connect to database")

    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn

# -----------------------------------------------------------------------------
# Schema initialization
# -----------------------------------------------------------------------------

def run_integrity_check(conn: sqlite3.Connection) -> str | None:
    """
    Run PRAGMA integrity_check. Returns None if OK, or an error message string if failed.
    """
    cur = conn.execute("PRAGMA integrity_check")
    row = cur.fetchone()
    if row is None:
        return None
    result = row[0]
    if result == "ok":
        return None
    return result


def initialize_db(conn: sqlite3.Connection, db_path: Path | None = None) -> sqlite3.Connection:
    """
    Initialize database schema and run migrations.
    On read-only error, raises with a clear message so the user can fix permissions.
    Runs integrity check after init; on failure logs a warning (does not block startup).
    """
    try:
        _initialize_db_core(conn)
        err = run_integrity_check(conn)
        if err:
            logger.warning("Database integrity check failed: %s", err)
        return conn
    except sqlite3.OperationalError as e:
        err = str(e).lower()
        if "readonly" in err or "attempt to write" in err:
            path = db_path if db_path is not None else get_effective_db_path()
            raise sqlite3.OperationalError(
                f"The database at {path} is read-only. "
                "Ensure the folder and file have write permission for your user, then try again."
            ) from e
        raise


def _initialize_db_core(conn: sqlite3.Connection) -> None:
    """Internal: run schema creation and migrations. Raises on readonly."""
    cur = conn.cursor()

    cur.execute("PRAGMA foreign_keys = ON")
    cur.execute("PRAGMA journal_mode = WAL")
    cur.execute("PRAGMA synchronous = NORMAL")
    cur.execute("PRAGMA temp_store = MEMORY")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS cases (
            id                  TEXT PRIMARY KEY,
            owner_id            TEXT NOT NULL,
            customer_name       TEXT NOT NULL,
            customer_address    TEXT,
            customer_mobile     TEXT,
            customer_email      TEXT,
            machine_condition   TEXT NOT NULL DEFAULT 'NORMAL'
                CHECK (machine_condition IN ('NORMAL', 'ALERT', 'ALARM')),
            lubricant_condition TEXT NOT NULL DEFAULT 'NORMAL'
                CHECK (lubricant_condition IN ('NORMAL', 'ALERT', 'ALARM')),
            recommendations     TEXT,
            created_at          TEXT NOT NULL,
            updated_at          TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_cases_owner_created ON cases(owner_id, created_at)")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS case_tests (
            id            TEXT PRIMARY KEY,
            case_id       TEXT NOT NULL,
            test_name     TEXT NOT NULL,
            image_url     TEXT,
            image_comment TEXT,
            created_at    TEXT NOT NULL,
            FOREIGN KEY(case_id) REFERENCES cases(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_case_tests_case_id ON case_tests(case_id)")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS case_test_results (
            id             TEXT PRIMARY KEY,
            case_test_id   TEXT NOT NULL,
            parameter_name TEXT NOT NULL,
            lower_limit    REAL,
            upper_limit    REAL,
            actual_value   REAL NOT NULL,
            unit           TEXT,
            particle_size  TEXT,
            status         TEXT NOT NULL CHECK (status IN ('NORMAL', 'ALERT', 'ALARM')),
            sort_order     INTEGER NOT NULL DEFAULT 0,
            created_at     TEXT NOT NULL,
            FOREIGN KEY(case_test_id) REFERENCES case_tests(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_case_test_results_test_id ON case_test_results(case_test_id)"
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS test_templates (
            id         TEXT PRIMARY KEY,
            owner_id   TEXT NOT NULL,
            test_name  TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_test_templates_owner ON test_templates(owner_id)")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS test_parameters (
            id             TEXT PRIMARY KEY,
            template_id    TEXT NOT NULL,
            parameter_name TEXT NOT NULL,
            lower_limit    REAL,
            upper_limit    REAL,
            unit           TEXT,
            sort_order     INTEGER NOT NULL DEFAULT 0,
            created_at     TEXT NOT NULL,
            FOREIGN KEY(template_id) REFERENCES test_templates(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_test_parameters_template_id ON test_parameters(template_id)"
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS company_settings (
            owner_id       TEXT PRIMARY KEY,
            company_name   TEXT NOT NULL,
            logo_url       TEXT,
            contact_number TEXT,
            email          TEXT,
            address        TEXT,
            created_at     TEXT NOT NULL,
            updated_at     TEXT NOT NULL
        )
        """
    )

    cur.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)"
    )
    conn.commit()

    from migrations import run_migrations
    try:
        run_migrations(conn)
    except Exception as e:
        logger.error("Schema migration failed: %s", e, exc_info=True)
        raise RuntimeError(
            f"Database schema migration failed. Your database may be incompatible with this version.\n\n"
            f"Error: {e}"
        ) from e
    conn.commit()


# -----------------------------------------------------------------------------
# Repository
# -----------------------------------------------------------------------------

_CASE_UPDATABLE = ("recommendations", "machine_condition", "lubricant_condition")
_TEST_UPDATABLE = ("test_name", "image_url", "image_comment")


class CaseRepository:
    """
    CRUD storage for cases, tests, results, templates and the company profile.
    Reads are owner-scoped where the record carries an owner.
    Result rows passed to insert/replace are dicts with parameter_name,
    lower_limit, upper_limit, actual_value, unit, particle_size, status.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---------- Cases ----------

    def create_case(self, owner_id: str, data: dict) -> str:
        case_id = new_id()
        now = utc_now()
        self.conn.execute(
            """
            INSERT INTO cases
                (id, owner_id, customer_name, customer_address, customer_mobile,
                 customer_email, machine_condition, lubricant_condition,
                 recommendations, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                case_id,
                owner_id,
                data["customer_name"],
                data.get("customer_address"),
                data.get("customer_mobile"),
                data.get("customer_email"),
                data.get("machine_condition") or "NORMAL",
                data.get("lubricant_condition") or "NORMAL",
                data.get("recommendations"),
                now,
                now,
            ),
        )
        self.conn.commit()
        logger.info("Created case %s for owner %s", case_id, owner_id)
        return case_id

    def get_case(self, case_id: str, owner_id: str | None = None) -> Case | None:
        sql = "SELECT * FROM cases WHERE id = ?"
        params: list = [case_id]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        row = self.conn.execute(sql, params).fetchone()
        return Case.from_row(row) if row else None

    def list_cases(self, owner_id: str) -> list[Case]:
        """All cases for the owner, newest first."""
        cur = self.conn.execute(
            "SELECT * FROM cases WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
            (owner_id,),
        )
        return [Case.from_row(r) for r in cur.fetchall()]

    def update_case(self, case_id: str, data: dict, owner_id: str | None = None) -> bool:
        """
        Update recommendations and/or condition fields. Other keys are rejected.
        With owner_id, only that owner's case is touched. Returns False if no row matched.
        """
        unknown = set(data) - set(_CASE_UPDATABLE)
        if unknown:
            raise ValueError(f"Case fields cannot be updated: {', '.join(sorted(unknown))}")
        if not data:
            return self.get_case(case_id, owner_id) is not None
        cols = [k for k in _CASE_UPDATABLE if k in data]
        sets = ", ".join(f"{c} = ?" for c in cols)
        sql = f"UPDATE cases SET {sets}, updated_at = ? WHERE id = ?"
        params = [data[c] for c in cols] + [utc_now(), case_id]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        cur = self.conn.execute(sql, params)
        self.conn.commit()
        return cur.rowcount > 0

    def get_case_detail(self, case_id: str, owner_id: str | None = None) -> CaseDetail | None:
        """Nested read: case -> tests -> results, tests and results in entry order."""
        case = self.get_case(case_id, owner_id)
        if case is None:
            return None
        cur = self.conn.execute(
            """
            SELECT t.id AS t_id, t.case_id, t.test_name, t.image_url, t.image_comment,
                   t.created_at AS t_created_at,
                   r.id AS r_id, r.parameter_name, r.lower_limit, r.upper_limit,
                   r.actual_value, r.unit, r.particle_size, r.status, r.sort_order,
                   r.created_at AS r_created_at
            FROM case_tests t
            LEFT JOIN case_test_results r ON r.case_test_id = t.id
            WHERE t.case_id = ?
            ORDER BY t.created_at ASC, t.rowid ASC, r.sort_order ASC, r.rowid ASC
            """,
            (case_id,),
        )
        tests: dict[str, CaseTest] = {}
        for row in cur.fetchall():
            d = dict(row)
            test = tests.get(d["t_id"])
            if test is None:
                test = CaseTest(
                    id=d["t_id"],
                    case_id=d["case_id"],
                    test_name=d["test_name"],
                    image_url=d["image_url"],
                    image_comment=d["image_comment"],
                    created_at=d["t_created_at"],
                )
                tests[test.id] = test
            if d["r_id"] is not None:
                test.results.append(
                    TestResult.from_row(
                        {
                            "id": d["r_id"],
                            "case_test_id": test.id,
                            "parameter_name": d["parameter_name"],
                            "lower_limit": d["lower_limit"],
                            "upper_limit": d["upper_limit"],
                            "actual_value": d["actual_value"],
                            "unit": d["unit"],
                            "particle_size": d["particle_size"],
                            "status": d["status"],
                            "sort_order": d["sort_order"],
                            "created_at": d["r_created_at"],
                        }
                    )
                )
        return CaseDetail(case=case, tests=list(tests.values()))

    # ---------- Tests ----------

    def create_test(self, case_id: str, test_name: str,
                    image_url: str | None = None,
                    image_comment: str | None = None) -> str:
        test_id = new_id()
        self.conn.execute(
            """
            INSERT INTO case_tests (id, case_id, test_name, image_url, image_comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (test_id, case_id, test_name, image_url, image_comment, utc_now()),
        )
        self.conn.commit()
        return test_id

    def get_test(self, test_id: str, owner_id: str | None = None) -> CaseTest | None:
        """Test with its results. With owner_id, only if its case belongs to that owner."""
        if owner_id is None:
            row = self.conn.execute("SELECT * FROM case_tests WHERE id = ?", (test_id,)).fetchone()
        else:
            row = self.conn.execute(
                """
                SELECT t.* FROM case_tests t
                JOIN cases c ON c.id = t.case_id
                WHERE t.id = ? AND c.owner_id = ?
                """,
                (test_id, owner_id),
            ).fetchone()
        if not row:
            return None
        return CaseTest.from_row(row, self.list_results(test_id))

    def _test_owned_by(self, test_id: str, owner_id: str) -> bool:
        row = self.conn.execute(
            """
            SELECT 1 FROM case_tests t
            JOIN cases c ON c.id = t.case_id
            WHERE t.id = ? AND c.owner_id = ?
            """,
            (test_id, owner_id),
        ).fetchone()
        return row is not None

    def update_test(self, test_id: str, data: dict) -> None:
        unknown = set(data) - set(_TEST_UPDATABLE)
        if unknown:
            raise ValueError(f"Test fields cannot be updated: {', '.join(sorted(unknown))}")
        self._update_test_no_commit(test_id, data)
        self.conn.commit()

    def _update_test_no_commit(self, test_id: str, data: dict) -> None:
        cols = [k for k in _TEST_UPDATABLE if k in data]
        if not cols:
            return
        sets = ", ".join(f"{c} = ?" for c in cols)
        self.conn.execute(
            f"UPDATE case_tests SET {sets} WHERE id = ?",
            [data[c] for c in cols] + [test_id],
        )

    # ---------- Results ----------

    def list_results(self, test_id: str) -> list[TestResult]:
        cur = self.conn.execute(
            """
            SELECT * FROM case_test_results
            WHERE case_test_id = ?
            ORDER BY sort_order ASC, rowid ASC
            """,
            (test_id,),
        )
        return [TestResult.from_row(r) for r in cur.fetchall()]

    def _insert_results_no_commit(self, test_id: str, rows: Iterable[dict]) -> list[str]:
        ids = []
        now = utc_now()
        for i, r in enumerate(rows):
            rid = new_id()
            self.conn.execute(
                """
                INSERT INTO case_test_results
                    (id, case_test_id, parameter_name, lower_limit, upper_limit,
                     actual_value, unit, particle_size, status, sort_order, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rid,
                    test_id,
                    r["parameter_name"],
                    r.get("lower_limit"),
                    r.get("upper_limit"),
                    r["actual_value"],
                    r.get("unit"),
                    r.get("particle_size"),
                    r["status"],
                    i,
                    now,
                ),
            )
            ids.append(rid)
        return ids

    def insert_results(self, test_id: str, rows: list[dict]) -> list[str]:
        """Insert all rows in one commit. Returns the new result IDs in row order."""
        try:
            ids = self._insert_results_no_commit(test_id, rows)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return ids

    def replace_results(self, test_id: str, rows: list[dict],
                        test_fields: dict | None = None,
                        owner_id: str | None = None) -> list[str]:
        """
        Replace the full result set of a test (and optionally its name/image/comment)
        in a single transaction: delete all, reinsert, commit. Rolls back on any failure,
        leaving the previous set untouched.
        With owner_id, raises ValueError unless the test belongs to one of that owner's cases.
        """
        if test_fields:
            unknown = set(test_fields) - set(_TEST_UPDATABLE)
            if unknown:
                raise ValueError(f"Test fields cannot be updated: {', '.join(sorted(unknown))}")
        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN")
            if owner_id is not None and not self._test_owned_by(test_id, owner_id):
                raise ValueError(f"Test {test_id} not found.")
            if test_fields:
                self._update_test_no_commit(test_id, test_fields)
            cur.execute(
                "DELETE FROM case_test_results WHERE case_test_id = ?",
                (test_id,),
            )
            ids = self._insert_results_no_commit(test_id, rows)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Replaced results for test %s (%d rows)", test_id, len(ids))
        return ids

    # ---------- Templates ----------

    def create_template(self, owner_id: str, test_name: str, parameters: list[dict]) -> str:
        """Create a template and its parameter rows in one transaction."""
        template_id = new_id()
        now = utc_now()
        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN")
            cur.execute(
                "INSERT INTO test_templates (id, owner_id, test_name, created_at) VALUES (?, ?, ?, ?)",
                (template_id, owner_id, test_name, now),
            )
            for i, p in enumerate(parameters):
                cur.execute(
                    """
                    INSERT INTO test_parameters
                        (id, template_id, parameter_name, lower_limit, upper_limit, unit, sort_order, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        new_id(),
                        template_id,
                        p["parameter_name"],
                        p.get("lower_limit"),
                        p.get("upper_limit"),
                        p.get("unit"),
                        i,
                        now,
                    ),
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return template_id

    def list_templates(self, owner_id: str) -> list[TestTemplate]:
        """Templates for the owner (without parameters), ordered by name."""
        cur = self.conn.execute(
            "SELECT * FROM test_templates WHERE owner_id = ? ORDER BY test_name COLLATE NOCASE, created_at",
            (owner_id,),
        )
        return [TestTemplate.from_row(r) for r in cur.fetchall()]

    def get_template(self, template_id: str, owner_id: str | None = None) -> TestTemplate | None:
        sql = "SELECT * FROM test_templates WHERE id = ?"
        params: list = [template_id]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        row = self.conn.execute(sql, params).fetchone()
        if not row:
            return None
        cur = self.conn.execute(
            """
            SELECT * FROM test_parameters
            WHERE template_id = ?
            ORDER BY sort_order ASC, rowid ASC
            """,
            (template_id,),
        )
        params = [TemplateParameter.from_row(r) for r in cur.fetchall()]
        return TestTemplate.from_row(row, params)

    # ---------- Company settings ----------

    def get_company_settings(self, owner_id: str) -> CompanySettings | None:
        row = self.conn.execute(
            "SELECT * FROM company_settings WHERE owner_id = ?", (owner_id,)
        ).fetchone()
        return CompanySettings.from_row(row) if row else None

    def upsert_company_settings(self, owner_id: str, data: dict) -> None:
        now = utc_now()
        self.conn.execute(
            """
            INSERT INTO company_settings
                (owner_id, company_name, logo_url, contact_number, email, address, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(owner_id) DO UPDATE SET
                company_name = excluded.company_name,
                logo_url = excluded.logo_url,
                contact_number = excluded.contact_number,
                email = excluded.email,
                address = excluded.address,
                updated_at = excluded.updated_at
            """,
            (
                owner_id,
                data["company_name"],
                data.get("logo_url"),
                data.get("contact_number"),
                data.get("email"),
                data.get("address"),
                now,
                now,
            ),
        )
        self.conn.commit()
