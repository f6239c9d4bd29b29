# app/core/storage_utils.py
"""
Local disk storage for uploads and generated images.

Layout under settings.DATA_DIR:
    uploads/<user_id>/<timestamp>-<random>-<original name>
    generated/<user_id>/headshot_<headshot_id>.png
    examples/<file name>

Paths are stored verbatim in the database.
"""

import logging
import os
import random
import re
import time
import uuid
from pathlib import Path

from app.core.config import get_settings

logger = logging.getLogger(__name__)

UPLOADS = "uploads"
GENERATED = "generated"
EXAMPLES = "examples"


def data_dir() -> Path:
    return Path(get_settings().DATA_DIR).resolve()


def user_dir(kind: str, user_id: int) -> Path:
    """Per-user directory for `kind` (uploads / generated), created on demand."""
    path = data_dir() / kind / str(user_id)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _safe_name(filename: str) -> str:
    name = os.path.basename(filename or "")
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "photo"


def unique_upload_name(filename: str) -> str:
    """
    Unique on-disk name that keeps the client's name for readability.

    Example: "1718000000000-123456789-me.jpg"
    """
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{suffix}-{_safe_name(filename)}"


def generate_filename(ext: str) -> str:
    """
    Generate a random filename using UUID4.

    Args:
        ext: File extension without dot (e.g. "png", "jpg")
    """
    return f"{uuid.uuid4()}.{ext}"


def save_bytes(path: Path, file_bytes: bytes) -> str:
    """Write bytes to `path` (parents created) and return the absolute path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(file_bytes)
    return str(path)


def delete_file(path: str | None) -> None:
    """
    Best-effort removal of a stored file.

    A missing file is not an error; the DB row is the source of truth.
    """
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.exception("Error deleting file %s", path)


def is_within_data_dir(path: str) -> bool:
    """Guard against serving anything outside DATA_DIR."""
    try:
        Path(path).resolve().relative_to(data_dir())
    except ValueError:
        return False
    return True


def file_exists(path: str) -> bool:
    return Path(path).is_file()
