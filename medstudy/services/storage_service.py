from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

from medstudy.core.config import settings


logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^\w.\-]+", re.UNICODE)


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def extracted_dir() -> Path:
    path = upload_dir() / "extracted"
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_basename(filename: str) -> str:
    """Strip directories and odd characters from a client-supplied name."""
    base = Path(str(filename or "").replace("\\", "/")).name
    base = _UNSAFE_NAME_RE.sub("_", base).strip("._")
    return base or "upload"


def unique_path(directory: Path, filename: str) -> Path:
    """``<uuid4 hex>-<name>`` inside ``directory``; never reuses an existing name."""
    return directory / f"{uuid.uuid4().hex}-{safe_basename(filename)}"


def save_upload(data: bytes, filename: str) -> Path:
    path = unique_path(upload_dir(), filename)
    path.write_bytes(data)
    logger.debug("Stored upload %s (%d bytes)", path.name, len(data))
    return path


def remove_quietly(path: str | Path) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete %s: %s", path, e)
