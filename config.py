# config.py - Runtime configuration (DB path, image store, default owner)
#
# Single place for loading configuration. Persistence (database.py) and the
# image store import from here instead of defining config logic themselves.

import json
import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# Environment variables override config.json (highest priority)
DB_PATH_ENV = "OIL_ANALYSIS_DB_PATH"
STORAGE_DIR_ENV = "OIL_ANALYSIS_STORAGE_DIR"
OWNER_ENV = "OIL_ANALYSIS_OWNER"
CONFIG_PATH_ENV = "OIL_ANALYSIS_CONFIG"

APP_DIR_NAME = "OilAnalysisTracker"
DEFAULT_DB_NAME = "oil_analysis.db"
DEFAULT_IMAGE_FETCH_TIMEOUT = 10.0


def get_app_base_dir() -> Path:
    """Directory containing the app (install dir when frozen, script dir when run from source)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def get_user_data_dir() -> Path:
    """%APPDATA%\\OilAnalysisTracker on Windows, ~/.config/OilAnalysisTracker elsewhere."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", "")
        base = Path(base) if base else Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home() / ".config"
    return base / APP_DIR_NAME


def _config_file() -> Path:
    env = os.environ.get(CONFIG_PATH_ENV)
    if env and env.strip():
        return Path(env.strip())
    return get_app_base_dir() / "config.json"


def load_config_file() -> dict:
    """Read config.json. Missing or unreadable file -> {}."""
    path = _config_file()
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    data["_config_dir"] = str(path.parent)
    return data


def _resolve_path(raw: str, data: dict) -> Path:
    p = Path(raw.strip())
    if not p.is_absolute():
        p = (Path(data.get("_config_dir") or get_app_base_dir()) / p).resolve()
    return p


def load_db_path() -> Path:
    """
    Load database path from configuration.
    Order: OIL_ANALYSIS_DB_PATH > config.json "db_path" > user data dir default.
    """
    env_path = os.environ.get(DB_PATH_ENV)
    if env_path and env_path.strip():
        return Path(env_path.strip()).resolve()
    data = load_config_file()
    raw = data.get("db_path")
    if raw and isinstance(raw, str) and raw.strip():
        return _resolve_path(raw, data)
    return get_user_data_dir() / DEFAULT_DB_NAME


def load_storage_dir(db_path: Path | None = None) -> Path:
    """
    Root directory of the image store.
    Order: OIL_ANALYSIS_STORAGE_DIR > config.json "storage_dir" > "test-images" next to
    the DB (db_path when given, e.g. the one opened via --db, else the configured one).
    """
    env_dir = os.environ.get(STORAGE_DIR_ENV)
    if env_dir and env_dir.strip():
        return Path(env_dir.strip()).resolve()
    data = load_config_file()
    raw = data.get("storage_dir")
    if raw and isinstance(raw, str) and raw.strip():
        return _resolve_path(raw, data)
    base = Path(db_path) if db_path is not None else load_db_path()
    return base.resolve().parent / "test-images"


def load_default_owner() -> str:
    """Owner identity used for sign-in when none is given on the command line."""
    env_owner = os.environ.get(OWNER_ENV)
    if env_owner and env_owner.strip():
        return env_owner.strip()
    raw = load_config_file().get("owner_id")
    if raw and isinstance(raw, str) and raw.strip():
        return raw.strip()
    return "local"


def load_image_fetch_timeout() -> float:
    raw = load_config_file().get("image_fetch_timeout")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_IMAGE_FETCH_TIMEOUT
    return value if value > 0 else DEFAULT_IMAGE_FETCH_TIMEOUT
