from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

from medstudy.models.document import Document
from medstudy.models.progress import Progress
from medstudy.models.study_session import StudySession
from medstudy.models.subject import Subject
from medstudy.services.progress_service import percent, total_study_minutes
from medstudy.services.subject_service import subject_to_dict
from medstudy.services.topic_review_service import list_user_topics


def dashboard_stats(db: Session, user_id: int) -> Dict[str, Any]:
    total_documents = db.query(Document).filter(Document.user_id == int(user_id)).count()
    topic_ids = {int(t.id) for t in list_user_topics(db, user_id)}
    completed = (
        db.query(Progress)
        .filter(Progress.user_id == int(user_id), Progress.completed.is_(True))
        .all()
    )
    completed_topics = sum(1 for p in completed if int(p.topic_id) in topic_ids)
    return {
        "total_documents": int(total_documents),
        "total_topics": len(topic_ids),
        "study_time_minutes": total_study_minutes(db, user_id),
        "overall_progress": percent(completed_topics, len(topic_ids)),
    }


def subject_stats(db: Session, user_id: int) -> List[Dict[str, Any]]:
    """Documents/topics/completion per subject, only for subjects in use."""
    docs_by_subject: Dict[int, int] = {}
    for d in db.query(Document).filter(Document.user_id == int(user_id)).all():
        if d.subject_id is not None:
            docs_by_subject[int(d.subject_id)] = docs_by_subject.get(int(d.subject_id), 0) + 1

    topics_by_subject: Dict[int, set] = {}
    for t in list_user_topics(db, user_id):
        if t.subject_id is not None:
            topics_by_subject.setdefault(int(t.subject_id), set()).add(int(t.id))

    completed_ids = {
        int(p.topic_id)
        for p in db.query(Progress).filter(Progress.user_id == int(user_id), Progress.completed.is_(True)).all()
    }

    out: List[Dict[str, Any]] = []
    for s in db.query(Subject).order_by(Subject.name.asc()).all():
        document_count = docs_by_subject.get(int(s.id), 0)
        topic_ids = topics_by_subject.get(int(s.id), set())
        if not document_count and not topic_ids:
            continue
        done = len(topic_ids & completed_ids)
        out.append(
            {
                **subject_to_dict(s),
                "document_count": document_count,
                "topic_count": len(topic_ids),
                "completed_topics": done,
                "progress": percent(done, len(topic_ids)),
            }
        )
    return out


def recent_activities(db: Session, user_id: int, limit: int = 5) -> List[Dict[str, Any]]:
    """Latest uploads and study sessions, newest first."""
    items: List[Dict[str, Any]] = []
    docs = (
        db.query(Document)
        .filter(Document.user_id == int(user_id))
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
        .limit(3)
        .all()
    )
    for d in docs:
        items.append(
            {
                "id": f"upload-{d.id}",
                "type": "upload",
                "description": f"Document pujat: {d.filename}",
                "timestamp": d.uploaded_at,
            }
        )
    sessions = (
        db.query(StudySession)
        .filter(StudySession.user_id == int(user_id))
        .order_by(StudySession.started_at.desc(), StudySession.id.desc())
        .limit(2)
        .all()
    )
    for s in sessions:
        items.append(
            {
                "id": f"session-{s.id}",
                "type": "study_session",
                "description": f"Sessió d'estudi completada ({s.duration_minutes or 0} min)",
                "timestamp": s.started_at,
            }
        )

    def _key(item: Dict[str, Any]) -> str:
        ts = item["timestamp"]
        return ts.replace(tzinfo=None).isoformat() if ts else ""

    items.sort(key=_key, reverse=True)
    for item in items:
        item["timestamp"] = item["timestamp"].isoformat() if item["timestamp"] else None
    return items[: max(0, int(limit))]
