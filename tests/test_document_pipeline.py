import io

import pytest

from medstudy.core.errors import TextExtractionError, UnsupportedFileType
from medstudy.models.enums import DocumentFileType
from medstudy.services.document_pipeline import describe_csv, extract_text, extract_text_from_bytes, resolve_file_type


def _csv(rows: int) -> str:
    lines = ["Malaltia,Simptoma,Tractament"]
    for i in range(1, rows + 1):
        lines.append(f"Malaltia {i},Simptoma {i},Tractament {i}")
    return "\n".join(lines) + "\n"


def test_csv_description_lists_columns_and_first_ten_rows():
    text = describe_csv(_csv(15))

    assert text.startswith("CSV Document with 15 rows and 3 columns")
    assert "Columns: Malaltia, Simptoma, Tractament" in text
    assert text.count("Row ") == 10
    assert "Row 10:" in text
    assert "Row 11:" not in text
    assert "  Simptoma: Simptoma 10" in text
    assert "Malaltia 11" not in text


def test_csv_short_rows_and_blank_lines():
    text = describe_csv("a,b,c\n1,2\n\n3,4,5\n")

    assert text.startswith("CSV Document with 2 rows and 3 columns")
    assert "Row 1:\n  a: 1\n  b: 2\n  c: \n" in text


def test_csv_bytes_with_bom_and_latin1():
    out = extract_text_from_bytes("\ufeffnom,edat\nJoan,40\n".encode("utf-8"), "text/csv")
    assert "Columns: nom, edat" in out.text
    assert out.page_count is None
    assert out.word_count > 0

    out = extract_text_from_bytes("malaltia\nInsuficiència\n".encode("cp1252"), "csv")
    assert "Insuficiència" in out.text


def test_docx_paragraphs_one_per_line(tmp_path):
    from docx import Document as DocxDocument

    doc = DocxDocument()
    doc.add_heading("Cardiologia", level=1)
    doc.add_paragraph("La insuficiència cardíaca és un síndrome clínic.")
    doc.add_paragraph("   ")
    doc.add_paragraph("Tractament amb IECA.")
    path = tmp_path / "apunts.docx"
    doc.save(str(path))

    out = extract_text(path, "docx")

    assert out.text.splitlines() == [
        "Cardiologia",
        "La insuficiència cardíaca és un síndrome clínic.",
        "Tractament amb IECA.",
    ]
    assert out.word_count == 11


def test_pdf_text_and_page_count():
    canvas_mod = pytest.importorskip("reportlab.pdfgen.canvas")

    buf = io.BytesIO()
    c = canvas_mod.Canvas(buf)
    c.drawString(72, 720, "Insuficiencia cardiaca congestiva")
    c.showPage()
    c.drawString(72, 720, "Fibril.lacio auricular")
    c.showPage()
    c.save()

    out = extract_text_from_bytes(buf.getvalue(), "application/pdf")

    assert out.page_count == 2
    assert "Insuficiencia cardiaca congestiva" in out.text
    assert "auricular" in out.text


def test_broken_pdf_raises_extraction_error():
    with pytest.raises(TextExtractionError):
        extract_text_from_bytes(b"not a pdf at all", DocumentFileType.PDF)


def test_broken_docx_raises_extraction_error():
    with pytest.raises(TextExtractionError):
        extract_text_from_bytes(b"PK\x03\x04garbage", "docx")


def test_missing_file_raises_extraction_error(tmp_path):
    with pytest.raises(TextExtractionError):
        extract_text(tmp_path / "gone.csv", "csv")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("pdf", DocumentFileType.PDF),
        (".DOCX", DocumentFileType.DOCX),
        ("text/csv; charset=utf-8", DocumentFileType.CSV),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", DocumentFileType.DOCX),
    ],
)
def test_resolve_file_type_accepts_extensions_and_mime(value, expected):
    assert resolve_file_type(value) is expected


@pytest.mark.parametrize("value", ["txt", "image/png", "", "application/zip"])
def test_resolve_file_type_rejects_other_types(value):
    with pytest.raises(UnsupportedFileType):
        resolve_file_type(value)


def test_control_characters_are_stripped():
    out = extract_text_from_bytes(b"col\nvalor\x00amb\x07nul\n", "csv")
    assert "\x00" not in out.text
    assert "\x07" not in out.text
