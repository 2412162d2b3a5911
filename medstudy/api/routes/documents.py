from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from medstudy.api.deps import require_user
from medstudy.core.errors import NotFound
from medstudy.db.session import get_db
from medstudy.infra import queue
from medstudy.models.document import Document
from medstudy.models.enums import DocumentFileType, ProcessingStatus
from medstudy.models.user import User
from medstudy.schemas.topics import ConfirmTopicsRequest
from medstudy.services.ingestion_service import create_documents_for_upload
from medstudy.services.topic_review_service import confirm_topics, list_review_topics, mark_all_deep_focus
from medstudy.tasks.ingest_tasks import task_process_document

router = APIRouter(tags=["documents"])


def _document_to_dict(d: Document) -> Dict[str, Any]:
    return {
        "id": int(d.id),
        "filename": d.filename,
        "file_type": DocumentFileType(d.file_type).value,
        "file_size_bytes": int(d.file_size_bytes or 0),
        "processing_status": ProcessingStatus(d.processing_status).value,
        "subject_id": d.subject_id,
        "page_count": d.page_count,
        "word_count": d.word_count,
        "error_message": d.error_message,
        "uploaded_at": d.uploaded_at.isoformat() if d.uploaded_at else None,
    }


def _own_document(db: Session, user: User, document_id: int) -> Document:
    doc = (
        db.query(Document)
        .filter(Document.id == int(document_id), Document.user_id == int(user.id))
        .first()
    )
    if not doc:
        raise NotFound("Document not found", details={"document_id": int(document_id)})
    return doc


@router.post("/documents/upload")
async def upload_document(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    file: UploadFile = File(...),
):
    data = await file.read()
    docs = create_documents_for_upload(
        db,
        user_id=int(user.id),
        filename=file.filename or "upload",
        content_type=file.content_type,
        data=data,
    )

    out = []
    for d in docs:
        job = queue.submit(task_process_document, int(d.id))
        if not job.rq_backed:
            background_tasks.add_task(queue.run, job)
        out.append({**_document_to_dict(d), "job_id": job.id})

    return {
        "request_id": request.state.request_id,
        "data": {"documents": out, "count": len(out)},
        "error": None,
    }


@router.get("/documents")
def list_documents(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    rows = (
        db.query(Document)
        .filter(Document.user_id == int(user.id))
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
        .all()
    )
    return {"request_id": request.state.request_id, "data": [_document_to_dict(d) for d in rows], "error": None}


@router.get("/documents/{document_id}")
def read_document(
    request: Request,
    document_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    doc = _own_document(db, user, document_id)
    return {"request_id": request.state.request_id, "data": _document_to_dict(doc), "error": None}


@router.get("/documents/{document_id}/topics")
def document_topics(
    request: Request,
    document_id: int,
    low_confidence_only: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    doc = _own_document(db, user, document_id)
    topics = list_review_topics(db, int(doc.id), low_confidence_only=bool(low_confidence_only))
    return {
        "request_id": request.state.request_id,
        "data": {
            "document_id": int(doc.id),
            "processing_status": ProcessingStatus(doc.processing_status).value,
            "topics": topics,
        },
        "error": None,
    }


@router.post("/documents/{document_id}/topics/confirm")
def confirm_document_topics(
    request: Request,
    document_id: int,
    payload: ConfirmTopicsRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    doc = _own_document(db, user, document_id)
    edits = [t.model_dump(exclude_unset=True) for t in payload.topics]
    topics = confirm_topics(db, int(doc.id), edits)
    return {"request_id": request.state.request_id, "data": {"document_id": int(doc.id), "topics": topics}, "error": None}


@router.post("/documents/{document_id}/topics/deep-focus")
def deep_focus_all(
    request: Request,
    document_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    doc = _own_document(db, user, document_id)
    updated = mark_all_deep_focus(db, int(doc.id))
    return {"request_id": request.state.request_id, "data": {"document_id": int(doc.id), "updated": updated}, "error": None}
