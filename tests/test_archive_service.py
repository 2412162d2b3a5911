import io
import zipfile

import pytest

from medstudy.core.config import settings
from medstudy.core.errors import ArchiveCorrupt, UploadTooLarge
from medstudy.models.enums import DocumentFileType
from medstudy.services.archive_service import expand_archive


def _zip(path, members):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members:
            zf.writestr(name, data)
    path.write_bytes(buf.getvalue())
    return path


def test_expands_supported_entries_in_archive_order(tmp_path):
    archive = _zip(
        tmp_path / "curs.zip",
        [
            ("tema1.pdf", b"%PDF-1.4 fake"),
            ("readme.txt", b"ignored"),
            ("carpeta/", b""),
            ("carpeta/tema2.docx", b"docx-bytes"),
            ("__MACOSX/carpeta/._tema2.docx", b"fork"),
            ("dades.CSV", b"a,b\n1,2\n"),
        ],
    )
    dest = tmp_path / "out"

    entries = expand_archive(archive, dest)

    assert [e.original_name for e in entries] == ["tema1.pdf", "tema2.docx", "dades.CSV"]
    assert [e.file_type for e in entries] == [DocumentFileType.PDF, DocumentFileType.DOCX, DocumentFileType.CSV]
    assert entries[0].mime_type == "application/pdf"
    assert entries[1].extracted_path.read_bytes() == b"docx-bytes"
    assert entries[2].size_bytes == len(b"a,b\n1,2\n")
    assert all(e.extracted_path.parent == dest for e in entries)
    assert not archive.exists()


def test_same_name_entries_get_distinct_paths(tmp_path):
    archive = _zip(tmp_path / "a.zip", [("x/notes.csv", b"a\n1\n"), ("y/notes.csv", b"a\n2\n")])

    entries = expand_archive(archive, tmp_path / "out")

    assert len(entries) == 2
    assert entries[0].extracted_path != entries[1].extracted_path
    assert entries[1].extracted_path.read_bytes() == b"a\n2\n"


def test_archive_without_supported_files_yields_nothing(tmp_path):
    archive = _zip(tmp_path / "a.zip", [("foto.png", b"\x89PNG"), ("notes.txt", b"x")])

    assert expand_archive(archive, tmp_path / "out") == []


def test_corrupt_archive_raises_and_keeps_nothing(tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"PK\x03\x04 this is not really a zip")
    dest = tmp_path / "out"

    with pytest.raises(ArchiveCorrupt):
        expand_archive(archive, dest)

    assert list(dest.iterdir()) == []


def test_default_destination_is_extracted_upload_dir(tmp_path, upload_dir):
    archive = _zip(tmp_path / "a.zip", [("t.csv", b"a\n1\n")])

    entries = expand_archive(archive)

    assert entries[0].extracted_path.parent == upload_dir / "extracted"
    assert entries[0].extracted_path.name.endswith("-t.csv")


def test_oversize_contents_raise_and_keep_nothing(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 5000)
    archive = tmp_path / "bomb.zip"
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("petit.csv", "a,b\n1,2\n")
        zf.writestr("gran.csv", "0" * 1_000_000)
    assert archive.stat().st_size < 5000
    dest = tmp_path / "out"

    with pytest.raises(UploadTooLarge) as exc:
        expand_archive(archive, dest)

    assert exc.value.details["max_bytes"] == 5000
    assert list(dest.iterdir()) == []
