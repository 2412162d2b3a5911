"""Upload intake and the background ingestion pipeline.

Upload (synchronous, inside the request):
  validate size/type -> store file -> expand ZIP -> one ``pending`` Document
  per supported file.

Processing (one job per Document, see ``medstudy.infra.queue``):
  pending -> processing -> text extraction -> topic extraction -> subject
  resolution -> Topic rows -> completed | failed

Status only ever moves forward; a terminal document is never reprocessed.
Topic rows and the final status are committed together. If that commit
fails the document is marked failed; nothing already committed is removed.
"""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from medstudy.core.config import settings
from medstudy.core.errors import (
    ArchiveCorrupt,
    InvalidStatusTransition,
    TextExtractionError,
    UnsupportedFileType,
    UploadRejected,
    UploadTooLarge,
)
from medstudy.db import session as db_session
from medstudy.models.document import Document
from medstudy.models.enums import DocumentFileType, ProcessingStatus
from medstudy.models.topic import Topic
from medstudy.services import ai_service
from medstudy.services.ai_service import StudyAssistant, clamp_confidence
from medstudy.services.archive_service import expand_archive
from medstudy.services.document_pipeline import extract_text, resolve_file_type
from medstudy.services.storage_service import remove_quietly, save_upload
from medstudy.services.subject_service import resolve_subject


logger = logging.getLogger(__name__)

ZIP_MIME_TYPES = {"application/zip", "application/x-zip-compressed"}

ALLOWED_TRANSITIONS = {
    ProcessingStatus.PENDING: {ProcessingStatus.PROCESSING},
    ProcessingStatus.PROCESSING: {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.FAILED: set(),
}


def advance_status(document: Document, new_status: ProcessingStatus) -> None:
    current = ProcessingStatus(document.processing_status)
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Document {document.id} cannot move from {current.value} to {new_status.value}",
            details={"document_id": document.id, "from": current.value, "to": new_status.value},
        )
    document.processing_status = new_status
    logger.info("Document %s: %s -> %s", document.id, current.value, new_status.value)


# ---------------------------------------------------------------------------
# Upload intake
# ---------------------------------------------------------------------------


def _extension(filename: str) -> str:
    return PurePath(str(filename or "")).suffix.lower().lstrip(".")


def _is_zip(filename: str, content_type: Optional[str]) -> bool:
    ext = _extension(filename)
    if ext:
        return ext == "zip"
    mime = str(content_type or "").split(";", 1)[0].strip().lower()
    return mime in ZIP_MIME_TYPES


def classify_upload(filename: str, content_type: Optional[str]) -> Optional[DocumentFileType]:
    """Document type of a single-file upload; None for a ZIP archive.

    The extension wins over the browser-reported MIME type, which is often
    ``application/octet-stream``. Raises UploadRejected for anything else.
    """
    if _is_zip(filename, content_type):
        return None
    for candidate in (_extension(filename), content_type):
        if not candidate:
            continue
        try:
            return resolve_file_type(candidate)
        except UnsupportedFileType:
            continue
    raise UploadRejected(
        "Invalid file type. Only PDF, DOCX, CSV and ZIP files are allowed.",
        details={"filename": filename, "content_type": content_type},
    )


def check_upload_size(size: int) -> None:
    max_bytes = int(settings.MAX_UPLOAD_BYTES)
    if int(size) > max_bytes:
        raise UploadTooLarge("File is too large", details={"max_bytes": max_bytes, "size_bytes": int(size)})


def create_documents_for_upload(
    db: Session,
    *,
    user_id: int,
    filename: str,
    content_type: Optional[str],
    data: bytes,
) -> List[Document]:
    """Store an upload and create its ``pending`` Document row(s).

    A ZIP never becomes a Document itself: every supported member does, in
    archive order. A corrupt ZIP creates nothing.
    """
    check_upload_size(len(data))
    file_type = classify_upload(filename, content_type)
    stored = save_upload(data, filename)

    if file_type is not None:
        docs = [
            Document(
                user_id=int(user_id),
                filename=PurePath(filename or stored.name).name,
                file_type=file_type,
                file_size_bytes=len(data),
                storage_path=str(stored),
                processing_status=ProcessingStatus.PENDING,
            )
        ]
    else:
        try:
            entries = expand_archive(stored)
        except (ArchiveCorrupt, UploadTooLarge):
            remove_quietly(stored)
            raise
        docs = [
            Document(
                user_id=int(user_id),
                filename=e.original_name,
                file_type=e.file_type,
                file_size_bytes=e.size_bytes,
                storage_path=str(e.extracted_path),
                processing_status=ProcessingStatus.PENDING,
            )
            for e in entries
        ]

    db.add_all(docs)
    db.commit()
    for d in docs:
        db.refresh(d)
    logger.info("Upload %r from user %s created %d document(s)", filename, user_id, len(docs))
    return docs


# ---------------------------------------------------------------------------
# Background processing
# ---------------------------------------------------------------------------


def _mark_failed(db: Session, document: Document, message: str) -> None:
    advance_status(document, ProcessingStatus.FAILED)
    document.error_message = (message or "Processing failed")[:2000]
    db.commit()


def process_document(document_id: int, assistant: Optional[StudyAssistant] = None) -> Dict[str, Any]:
    """Run the ingestion pipeline for one document; returns a short summary.

    Never raises for pipeline failures: they end in the ``failed`` state with
    ``error_message`` set. Re-delivery of an already started or finished
    document is a no-op.
    """
    assistant = assistant or ai_service.get_study_assistant()
    summary: Dict[str, Any] = {"document_id": int(document_id), "status": None, "topic_count": 0}

    with db_session.session_scope() as db:
        doc = db.get(Document, int(document_id))
        if doc is None:
            logger.warning("Document %s not found; nothing to process", document_id)
            summary["skipped"] = True
            return summary
        if doc.processing_status != ProcessingStatus.PENDING:
            logger.info("Document %s is %s; skipping", doc.id, ProcessingStatus(doc.processing_status).value)
            summary.update(status=ProcessingStatus(doc.processing_status).value, skipped=True)
            return summary

        advance_status(doc, ProcessingStatus.PROCESSING)
        db.commit()

        try:
            try:
                extracted = extract_text(doc.storage_path, doc.file_type)
            except (UnsupportedFileType, TextExtractionError) as e:
                logger.warning("Document %s: text extraction failed: %s", doc.id, e.message)
                _mark_failed(db, doc, e.message)
                summary["status"] = ProcessingStatus.FAILED.value
                return summary

            doc.page_count = extracted.page_count
            doc.word_count = extracted.word_count

            result = assistant.extract_topics(extracted.text, doc.filename)
            if result.fallback_used:
                logger.info("Document %s: using fallback topic", doc.id)

            subject = resolve_subject(db, result.suggested_subject)
            doc.subject_id = subject.id

            for t in result.topics:
                db.add(
                    Topic(
                        document_id=doc.id,
                        subject_id=subject.id,
                        title=t.title,
                        content=t.content,
                        topic_type=t.topic_type,
                        confidence=clamp_confidence(t.confidence),
                    )
                )
            advance_status(doc, ProcessingStatus.COMPLETED)
            db.commit()
            logger.info("Document %s: %d topic(s) under subject %r", doc.id, len(result.topics), subject.name)
            summary.update(status=ProcessingStatus.COMPLETED.value, topic_count=len(result.topics))
        except Exception as e:
            logger.exception("Document %s: processing failed", document_id)
            db.rollback()
            doc = db.get(Document, int(document_id))
            if doc is not None and doc.processing_status == ProcessingStatus.PROCESSING:
                _mark_failed(db, doc, f"Processing failed: {e}")
            summary["status"] = ProcessingStatus.FAILED.value

    return summary
