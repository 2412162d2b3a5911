import io
import zipfile

import pytest

from medstudy.core.config import settings
from medstudy.core.errors import ArchiveCorrupt, InvalidStatusTransition, UploadRejected, UploadTooLarge
from medstudy.models.document import Document
from medstudy.models.enums import DocumentFileType, ProcessingStatus, TopicType
from medstudy.models.subject import Subject
from medstudy.models.topic import Topic
from medstudy.services import ingestion_service
from medstudy.services.ingestion_service import (
    advance_status,
    classify_upload,
    create_documents_for_upload,
    process_document,
)

from conftest import FakeAssistant


def _topics(db, document_id):
    db.expire_all()
    return db.query(Topic).filter(Topic.document_id == document_id).order_by(Topic.id).all()


def _reload(db, document_id):
    db.expire_all()
    return db.get(Document, document_id)


def test_pending_document_is_processed_to_completed(db, make_document):
    doc = make_document("cardio.csv", b"Malaltia,Tractament\nIC,IECA\n")

    summary = process_document(doc.id, assistant=FakeAssistant())

    doc = _reload(db, doc.id)
    assert summary == {"document_id": doc.id, "status": "completed", "topic_count": 2}
    assert doc.processing_status is ProcessingStatus.COMPLETED
    assert doc.word_count > 0
    subject = db.get(Subject, doc.subject_id)
    assert subject.name == "Cardiologia"
    topics = _topics(db, doc.id)
    assert [t.title for t in topics] == ["Insuficiència cardíaca", "Cas clínic: dispnea"]
    assert topics[1].topic_type is TopicType.CLINICAL_CASE
    assert all(t.subject_id == subject.id for t in topics)
    assert all(t.included and not t.deep_focus and not t.corrected_by_user for t in topics)


def test_ai_failure_still_completes_with_fallback_topic(db, make_document):
    doc = make_document("apunts.csv", b"col\nvalor\n")

    process_document(doc.id, assistant=FakeAssistant(error=RuntimeError("rate limited")))

    doc = _reload(db, doc.id)
    assert doc.processing_status is ProcessingStatus.COMPLETED
    topics = _topics(db, doc.id)
    assert len(topics) == 1
    assert topics[0].title == "Content from apunts.csv"
    assert topics[0].topic_type is TopicType.CONCEPT
    assert topics[0].confidence == 50
    assert db.get(Subject, doc.subject_id).name == "General Medicine"


def test_confidence_from_model_is_clamped_before_persisting(db, make_document):
    payload = {
        "topics": [
            {"title": "A", "content": "a", "topicType": "concept", "confidence": 250},
            {"title": "B", "content": "b", "topicType": "concept", "confidence": -40},
        ],
        "suggestedSubject": "Neurologia",
    }
    doc = make_document()

    process_document(doc.id, assistant=FakeAssistant(topics=payload))

    assert [t.confidence for t in _topics(db, doc.id)] == [100, 0]


def test_unreadable_file_fails_the_document(db, make_document):
    doc = make_document("roto.docx", b"definitely not a docx", file_type=DocumentFileType.DOCX)
    fake = FakeAssistant()

    summary = process_document(doc.id, assistant=fake)

    doc = _reload(db, doc.id)
    assert summary["status"] == "failed"
    assert doc.processing_status is ProcessingStatus.FAILED
    assert doc.error_message
    assert fake.calls == []
    assert _topics(db, doc.id) == []


def test_persistence_error_fails_the_document(db, make_document, monkeypatch):
    doc = make_document()

    def _broken(*_args, **_kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(ingestion_service, "resolve_subject", _broken)

    summary = process_document(doc.id, assistant=FakeAssistant())

    doc = _reload(db, doc.id)
    assert summary["status"] == "failed"
    assert doc.processing_status is ProcessingStatus.FAILED
    assert "database is locked" in doc.error_message


def test_terminal_document_is_never_reprocessed(db, make_document):
    doc = make_document()
    process_document(doc.id, assistant=FakeAssistant())
    fake = FakeAssistant(error=RuntimeError("should not run"))

    summary = process_document(doc.id, assistant=fake)

    assert summary["skipped"] is True
    assert fake.calls == []
    assert _reload(db, doc.id).processing_status is ProcessingStatus.COMPLETED
    assert len(_topics(db, doc.id)) == 2


def test_unknown_document_is_skipped(db):
    assert process_document(999, assistant=FakeAssistant())["skipped"] is True


@pytest.mark.parametrize(
    "current, target",
    [
        (ProcessingStatus.PENDING, ProcessingStatus.COMPLETED),
        (ProcessingStatus.COMPLETED, ProcessingStatus.PROCESSING),
        (ProcessingStatus.FAILED, ProcessingStatus.PENDING),
        (ProcessingStatus.PROCESSING, ProcessingStatus.PENDING),
    ],
)
def test_status_only_moves_forward(current, target):
    doc = Document(id=1, processing_status=current)
    with pytest.raises(InvalidStatusTransition):
        advance_status(doc, target)
    assert doc.processing_status is current


def test_classify_upload():
    assert classify_upload("tema.PDF", "application/octet-stream") is DocumentFileType.PDF
    assert classify_upload("blob", "text/csv") is DocumentFileType.CSV
    assert classify_upload("curs.zip", None) is None
    assert classify_upload("curs", "application/x-zip-compressed") is None
    assert classify_upload("tema.pdf", "application/zip") is DocumentFileType.PDF
    with pytest.raises(UploadRejected):
        classify_upload("foto.png", "image/png")


def test_oversized_upload_is_rejected(db, user, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)

    with pytest.raises(UploadTooLarge) as exc:
        create_documents_for_upload(db, user_id=user.id, filename="a.csv", content_type="text/csv", data=b"x" * 11)

    assert exc.value.details["max_bytes"] == 10
    assert db.query(Document).count() == 0


def test_zip_upload_creates_one_pending_document_per_supported_entry(db, user):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("a.csv", "x\n1\n")
        zf.writestr("b.txt", "skip me")
        zf.writestr("sub/c.pdf", b"%PDF-1.4")

    docs = create_documents_for_upload(
        db, user_id=user.id, filename="curs.zip", content_type="application/zip", data=buf.getvalue()
    )

    assert [d.filename for d in docs] == ["a.csv", "c.pdf"]
    assert [d.file_type for d in docs] == [DocumentFileType.CSV, DocumentFileType.PDF]
    assert all(d.processing_status is ProcessingStatus.PENDING for d in docs)
    assert db.query(Document).count() == 2


def test_corrupt_zip_creates_no_documents(db, user, upload_dir):
    with pytest.raises(ArchiveCorrupt):
        create_documents_for_upload(
            db, user_id=user.id, filename="curs.zip", content_type="application/zip", data=b"PK\x03\x04 broken"
        )

    assert db.query(Document).count() == 0
    assert [p for p in upload_dir.iterdir() if p.is_file()] == []


def test_zip_with_oversize_contents_creates_no_documents(db, user, upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 5000)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("gran.csv", "0" * 1_000_000)

    with pytest.raises(UploadTooLarge) as exc:
        create_documents_for_upload(
            db, user_id=user.id, filename="curs.zip", content_type="application/zip", data=buf.getvalue()
        )

    assert exc.value.details["max_bytes"] == 5000
    assert db.query(Document).count() == 0
    assert [p for p in upload_dir.rglob("*") if p.is_file()] == []


def test_long_suggested_subject_still_completes(db, make_document):
    doc = make_document("cardio.csv", b"a\n1\n")
    payload = {
        "topics": [{"title": "Insuficiència cardíaca", "content": "c", "topicType": "concept", "confidence": 80}],
        "suggestedSubject": "Cardiologia " * 40,
    }

    process_document(doc.id, assistant=FakeAssistant(topics=payload))

    doc = _reload(db, doc.id)
    assert doc.processing_status is ProcessingStatus.COMPLETED
    subject = db.get(Subject, doc.subject_id)
    assert len(subject.name) <= 255
    assert len(subject.name_key) <= 255
