from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from medstudy.core.errors import TextExtractionError, UnsupportedFileType
from medstudy.models.enums import DocumentFileType


logger = logging.getLogger(__name__)

# Postgres TEXT/VARCHAR cannot contain NUL (\x00) bytes.
# Some extractors (notably PDF text extraction) may produce NUL/control chars.
_CTRL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

# CSV documents are described, not dumped: the text is cut to a fixed budget
# before it reaches the model, so only a sample of rows is rendered.
CSV_SAMPLE_ROWS = 10

MIME_BY_TYPE = {
    DocumentFileType.PDF: "application/pdf",
    DocumentFileType.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    DocumentFileType.CSV: "text/csv",
}

_TYPE_ALIASES = {
    "pdf": DocumentFileType.PDF,
    ".pdf": DocumentFileType.PDF,
    "application/pdf": DocumentFileType.PDF,
    "docx": DocumentFileType.DOCX,
    ".docx": DocumentFileType.DOCX,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFileType.DOCX,
    "csv": DocumentFileType.CSV,
    ".csv": DocumentFileType.CSV,
    "text/csv": DocumentFileType.CSV,
    "application/csv": DocumentFileType.CSV,
}


@dataclass
class ExtractedText:
    text: str
    word_count: int
    page_count: Optional[int] = None


def _sanitize_text(text: str) -> str:
    """Remove characters that can break DB storage / downstream processing."""
    if not text:
        return ""
    # Replace control chars (including NUL) with spaces, keep \t \n \r.
    return _CTRL_RE.sub(" ", text)


def _word_count(text: str) -> int:
    return len(text.split())


def resolve_file_type(file_type: str | DocumentFileType) -> DocumentFileType:
    """Map an extension or MIME type onto a supported document type."""
    if isinstance(file_type, DocumentFileType):
        return file_type
    key = str(file_type or "").strip().lower()
    # "text/csv; charset=utf-8"
    key = key.split(";", 1)[0].strip()
    resolved = _TYPE_ALIASES.get(key)
    if resolved is None:
        raise UnsupportedFileType(f"Unsupported file type: {key or 'unknown'}", details={"file_type": key})
    return resolved


def _extract_text_pdf_pdfplumber(data: bytes) -> Tuple[str, int]:
    import pdfplumber

    # pdfminer is very chatty on malformed PDFs
    logging.getLogger("pdfminer").setLevel(logging.ERROR)

    pages: List[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            pages.append(_sanitize_text(page.extract_text() or "").strip())
        return "\n\n".join(p for p in pages if p), len(pdf.pages)


def _extract_text_pdf_pypdf(data: bytes) -> Tuple[str, int]:
    """Extract text using pypdf (fallback)."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    pages = [_sanitize_text(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p), len(reader.pages)


def _extract_text_pdf(data: bytes) -> ExtractedText:
    """pdfplumber first; pypdf when pdfplumber fails or finds no text layer."""
    text, page_count = "", 0
    try:
        text, page_count = _extract_text_pdf_pdfplumber(data)
    except Exception as e:
        logger.warning("pdfplumber failed, trying pypdf: %s", e)

    if not text.strip():
        try:
            text2, page_count2 = _extract_text_pdf_pypdf(data)
        except Exception as e:
            if page_count:
                # pdfplumber could open it, there just is no text
                return ExtractedText(text="", word_count=0, page_count=page_count)
            raise TextExtractionError("Failed to process PDF file", details={"reason": str(e)[:200]}) from e
        if text2.strip() or not page_count:
            text, page_count = text2, page_count2

    if not page_count:
        raise TextExtractionError("PDF has no pages")

    return ExtractedText(text=text, word_count=_word_count(text), page_count=page_count)


def _extract_text_docx(data: bytes) -> ExtractedText:
    from docx import Document as DocxDocument

    try:
        doc = DocxDocument(io.BytesIO(data))
    except Exception as e:
        raise TextExtractionError("Failed to process Word document", details={"reason": str(e)[:200]}) from e
    text = "\n".join([p.text for p in doc.paragraphs if p.text and p.text.strip()])
    text = _sanitize_text(text)
    return ExtractedText(text=text, word_count=_word_count(text))


def _decode_csv(data: bytes) -> str:
    for enc in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="ignore")


def describe_csv(content: str, *, sample_rows: int = CSV_SAMPLE_ROWS) -> str:
    """Render a CSV as column list + the first ``sample_rows`` rows."""
    try:
        rows = [r for r in csv.reader(io.StringIO(content)) if any(cell.strip() for cell in r)]
    except csv.Error as e:
        raise TextExtractionError("Failed to process CSV file", details={"reason": str(e)[:200]}) from e
    if not rows:
        return "CSV Document with 0 rows and 0 columns\n"

    headers = [h.strip() for h in rows[0]]
    body = rows[1:]

    lines = [
        f"CSV Document with {len(body)} rows and {len(headers)} columns",
        "",
        f"Columns: {', '.join(headers)}",
        "",
    ]
    for idx, row in enumerate(body[:sample_rows], start=1):
        lines.append(f"Row {idx}:")
        for i, header in enumerate(headers):
            value = row[i].strip() if i < len(row) else ""
            lines.append(f"  {header}: {value}")
        lines.append("")
    return "\n".join(lines)


def _extract_text_csv(data: bytes) -> ExtractedText:
    text = describe_csv(_sanitize_text(_decode_csv(data)))
    return ExtractedText(text=text, word_count=_word_count(text))


def extract_text_from_bytes(data: bytes, file_type: str | DocumentFileType) -> ExtractedText:
    kind = resolve_file_type(file_type)
    if kind is DocumentFileType.PDF:
        return _extract_text_pdf(data)
    if kind is DocumentFileType.DOCX:
        return _extract_text_docx(data)
    return _extract_text_csv(data)


def extract_text(path: str | Path, file_type: str | DocumentFileType) -> ExtractedText:
    """Extract plain text + counts from a stored upload.

    ``file_type`` is an extension ("pdf") or a MIME type ("application/pdf").
    Raises UnsupportedFileType for anything outside pdf/docx/csv.
    """
    kind = resolve_file_type(file_type)
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise TextExtractionError("Stored file could not be read", details={"path": str(path)}) from e
    return extract_text_from_bytes(data, kind)
