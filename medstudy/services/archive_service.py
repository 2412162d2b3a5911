"""ZIP upload expansion.

An archive is expanded into its supported members (pdf/docx/csv). Each member
is written to its own collision-free path before anything reads it; the
archive itself is deleted once every member has been written.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional

from medstudy.core.config import settings
from medstudy.core.errors import ArchiveCorrupt, UploadTooLarge
from medstudy.services.document_pipeline import MIME_BY_TYPE, resolve_file_type
from medstudy.services.storage_service import extracted_dir, remove_quietly, unique_path
from medstudy.models.enums import DocumentFileType


logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {t.value for t in DocumentFileType}


@dataclass(frozen=True)
class ExtractedEntry:
    extracted_path: Path
    original_name: str
    mime_type: str
    size_bytes: int

    @property
    def file_type(self) -> DocumentFileType:
        return resolve_file_type(self.mime_type)


def _entry_extension(name: str) -> str:
    return PurePosixPath(name).suffix.lower().lstrip(".")


def _is_skipped(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return True
    parts = PurePosixPath(info.filename).parts
    # macOS Finder adds resource forks under __MACOSX/ and ._name files
    if parts and (parts[0] == "__MACOSX" or parts[-1].startswith("._")):
        return True
    return _entry_extension(info.filename) not in SUPPORTED_EXTENSIONS


def expand_archive(archive_path: str | Path, dest_dir: Optional[Path] = None) -> List[ExtractedEntry]:
    """Expand the supported members of a ZIP, in archive order.

    Raises ArchiveCorrupt when the archive (or one of its members) cannot be
    read, and UploadTooLarge when the expanded members add up to more than
    MAX_UPLOAD_BYTES; in both cases nothing written so far is kept.
    """
    dest = dest_dir or extracted_dir()
    dest.mkdir(parents=True, exist_ok=True)

    max_bytes = int(settings.MAX_UPLOAD_BYTES)
    written: List[ExtractedEntry] = []
    total = 0
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for info in zf.infolist():
                if _is_skipped(info):
                    if not info.is_dir():
                        logger.info("Skipping unsupported file in ZIP: %s", info.filename)
                    continue

                total += int(info.file_size)
                if total > max_bytes:
                    raise UploadTooLarge(
                        "Archive contents are too large",
                        details={"max_bytes": max_bytes, "member": info.filename},
                    )

                name = PurePosixPath(info.filename).name
                ext = _entry_extension(name)
                target = unique_path(dest, name)
                target.write_bytes(zf.read(info))
                written.append(
                    ExtractedEntry(
                        extracted_path=target,
                        original_name=name,
                        mime_type=MIME_BY_TYPE[DocumentFileType(ext)],
                        size_bytes=int(info.file_size),
                    )
                )
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, RuntimeError, ValueError) as e:
        # RuntimeError: encrypted members; ValueError: broken headers
        for entry in written:
            remove_quietly(entry.extracted_path)
        raise ArchiveCorrupt("Failed to process ZIP file", details={"reason": str(e)[:200]}) from e
    except UploadTooLarge:
        for entry in written:
            remove_quietly(entry.extracted_path)
        raise

    remove_quietly(archive_path)
    logger.info("Expanded %s: %d supported file(s)", Path(archive_path).name, len(written))
    return written
