# services/storage_service.py - Image object store
#
# Uploaded images are copied to {storage_root}/{owner}/{timestamp}.{ext} and
# referenced by a file:// URI. References may also be http(s) URLs (e.g. a
# company logo hosted elsewhere); fetch_image_bytes reads either kind.

import logging
import shutil
import time
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from config import load_image_fetch_timeout, load_storage_dir
from database import get_effective_db_path
from services.session import SessionContext

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp"}


def object_key(owner_id: str, filename: str, timestamp_ms: int | None = None) -> str:
    """Storage key '{owner}/{timestamp}.{ext}' for an uploaded file."""
    ext = Path(filename).suffix.lstrip(".").lower() or "bin"
    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    return f"{owner_id}/{ts}.{ext}"


def upload_image(session: SessionContext, src_path: str | Path,
                 storage_root: str | Path | None = None) -> str:
    """
    Copy an image into the store under the session owner's folder.
    Returns a durable file:// reference. Raises FileNotFoundError / ValueError.
    """
    owner = session.require_owner()
    src = Path(src_path)
    if not src.is_file():
        raise FileNotFoundError(f"File not found: {src_path}")
    if src.suffix.lower() not in IMAGE_EXTENSIONS:
        raise ValueError(f"Not a supported image file: {src.name}")
    root = Path(storage_root) if storage_root is not None else load_storage_dir(get_effective_db_path())

    ts = int(time.time() * 1000)
    dest = root / object_key(owner, src.name, ts)
    while dest.exists():
        ts += 1
        dest = root / object_key(owner, src.name, ts)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(str(src), str(dest))
    logger.info("Stored image %s as %s", src.name, dest)
    return dest.resolve().as_uri()


def is_remote(reference: str | None) -> bool:
    scheme = urlparse(reference or "").scheme.lower()
    return scheme in ("http", "https")


def local_path(reference: str | None) -> Path | None:
    """Filesystem path for a file:// URI or plain path reference, else None."""
    ref = (reference or "").strip()
    if not ref or is_remote(ref):
        return None
    parsed = urlparse(ref)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme and len(parsed.scheme) > 1:
        # Unknown scheme (a single letter is a Windows drive)
        return None
    return Path(ref)


def fetch_image_bytes(reference: str, timeout: float | None = None) -> bytes:
    """
    Read the bytes behind an image reference. Raises requests.RequestException
    for HTTP failures and OSError for unreadable local files.
    """
    if is_remote(reference):
        resp = requests.get(
            reference,
            timeout=timeout if timeout is not None else load_image_fetch_timeout(),
        )
        resp.raise_for_status()
        return resp.content
    path = local_path(reference)
    if path is None:
        raise OSError(f"Unsupported image reference: {reference}")
    return path.read_bytes()


def remove_image(reference: str | None) -> None:
    """Delete a stored local image. Remote or missing references are ignored."""
    path = local_path(reference)
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove stored image %s: %s", path, e)
        return
    logger.info("Removed stored image %s", path)
