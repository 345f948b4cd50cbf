# main.py

import argparse
import sqlite3
import sys
from pathlib import Path

from config import load_default_owner
from crash_log import install_global_excepthook, log_current_exception, logger, setup_logging
from database import (
    DB_PATH,
    CaseRepository,
    get_connection,
    initialize_db,
    run_integrity_check,
)
from services.session import sign_in


def _show_startup_error(title: str, message: str) -> None:
    """Critical message box if Qt is usable, else stderr."""
    try:
        from PyQt5.QtWidgets import QApplication, QMessageBox
        app = QApplication.instance()
        if app is None:
            app = QApplication(sys.argv)
        QMessageBox.critical(None, title, message)
    except Exception:
        print(f"{title}: {message}", file=sys.stderr)


def _export_case(repo: CaseRepository, owner: str, case_id: str, out_dir: str) -> int:
    from pdf_export import ReportExportError, export_case_to_pdf

    session = sign_in(owner)
    try:
        path = export_case_to_pdf(repo, session, case_id, out_dir)
    except ReportExportError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return 1
    print(path)
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Oil Analysis Tracker (GUI + headless report export)"
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the SQLite database (default: configured path)",
    )
    parser.add_argument(
        "--owner",
        type=str,
        default=None,
        help="Owner ID to sign in as (skips the sign-in dialog)",
    )
    parser.add_argument(
        "--export-case",
        metavar="CASE_ID",
        default=None,
        help="Run headless: export the case report to PDF, print its path and exit.",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=".",
        help="Output folder for --export-case (default: current folder)",
    )
    return parser


def main(argv=None):
    # Install global hook so any uncaught exception is logged
    install_global_excepthook()
    setup_logging()

    args = build_arg_parser().parse_args(argv)
    db_path = Path(args.db) if args.db else DB_PATH
    logger.info("Program start. args=%s db=%s", sys.argv, db_path)

    try:
        try:
            conn = get_connection(db_path)
            conn = initialize_db(conn, db_path)
        except sqlite3.OperationalError as e:
            logger.error("Database not usable: %s", e)
            _show_startup_error("Cannot open database", str(e) + "\n\nExiting.")
            sys.exit(1)

        integrity_err = run_integrity_check(conn)
        if integrity_err:
            logger.error("Database integrity check failed: %s", integrity_err)
            _show_startup_error(
                "Database integrity check failed",
                f"The database integrity check failed:\n\n{integrity_err}\n\nDatabase: {db_path}",
            )
            sys.exit(1)

        repo = CaseRepository(conn)
        try:
            if args.export_case:
                owner = args.owner or load_default_owner()
                logger.info("Running in headless mode: export case %s as %s", args.export_case, owner)
                code = _export_case(repo, owner, args.export_case, args.out)
                if code:
                    sys.exit(code)
            else:
                from ui.run import run_gui

                logger.info("Starting GUI mode")
                session = sign_in(args.owner) if args.owner else None
                run_gui(repo, session)
        finally:
            conn.close()

        logger.info("Program exit normally")

    except RuntimeError as e:
        err_msg = str(e).lower()
        if "migration" in err_msg or "schema" in err_msg:
            log_current_exception("Migration/schema error in main()")
            _show_startup_error("Database schema error", str(e) + "\n\nExiting.")
            sys.exit(1)
        raise
    except Exception:
        log_current_exception("Fatal error in main()")
        raise


if __name__ == "__main__":
    main()
