# crash_log.py

import logging
import sys
import traceback
from pathlib import Path

from config import get_user_data_dir

LOG_DIR = get_user_data_dir() / "logs"
LOG_FILE = LOG_DIR / "oil_analysis_crash.log"

logger = logging.getLogger("oil_analysis_tracker")
logger.setLevel(logging.INFO)

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> Path:
    """
    Attach a UTF-8 file handler to the root logger so module loggers
    (logging.getLogger(__name__)) end up in the same file. Safe to call twice.
    Returns the log file path.
    """
    path = Path(log_file) if log_file else LOG_FILE
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path.resolve():
            return path
    path.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(path, encoding="utf-8")
    fh.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    root.addHandler(fh)
    return path


def log_exception(exc_type, exc_value, exc_tb):
    """
    Global exception hook: log uncaught exceptions to file and stderr.
    """
    tb_str = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

    try:
        logger.error("Uncaught exception:\n%s", tb_str)
    except Exception:
        # Logging should never crash the crash logger
        pass

    # Also echo to real stderr so you see it if running from console
    try:
        sys.__stderr__.write(tb_str)
        sys.__stderr__.flush()
    except Exception:
        pass


def log_current_exception(context: str = ""):
    """
    Helper to log inside a try/except block if you manually catch something fatal.
    """
    exc_type, exc_value, exc_tb = sys.exc_info()
    if exc_type is None:
        return
    prefix = f"[{context}] " if context else ""
    tb_str = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
    try:
        logger.error("%sCaught exception:\n%s", prefix, tb_str)
    except Exception:
        pass


def install_global_excepthook():
    """
    Install the global excepthook so any uncaught exception is logged.
    """
    sys.excepthook = log_exception
