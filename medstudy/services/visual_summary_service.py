from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from medstudy.core.errors import InvalidRequest, NotFound
from medstudy.models.enums import SummaryType
from medstudy.models.subject import Subject
from medstudy.models.visual_summary import VisualSummary
from medstudy.services.ai_service import StudyAssistant
from medstudy.services.topic_review_service import list_user_topics


def generate_summary(
    db: Session,
    *,
    user_id: int,
    subject_id: int,
    summary_type: SummaryType,
    assistant: StudyAssistant,
) -> VisualSummary:
    subject = db.get(Subject, int(subject_id))
    if subject is None:
        raise NotFound("Subject not found", details={"subject_id": int(subject_id)})
    topics = list_user_topics(db, user_id, subject_id=subject.id, included_only=True)
    if not topics:
        raise InvalidRequest("No study topics for this subject yet", details={"subject_id": int(subject.id)})

    result = assistant.generate_visual_summary(subject.name, topics, summary_type)
    row = VisualSummary(
        user_id=int(user_id),
        subject_id=int(subject.id),
        summary_type=summary_type,
        title=result["title"],
        content=result["content"],
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_summaries(db: Session, user_id: int, subject_id: Optional[int] = None) -> List[VisualSummary]:
    q = db.query(VisualSummary).filter(VisualSummary.user_id == int(user_id))
    if subject_id is not None:
        q = q.filter(VisualSummary.subject_id == int(subject_id))
    return q.order_by(VisualSummary.created_at.desc(), VisualSummary.id.desc()).all()


def summary_to_dict(row: VisualSummary) -> Dict[str, Any]:
    return {
        "id": int(row.id),
        "subject_id": row.subject_id,
        "summary_type": SummaryType(row.summary_type).value,
        "title": row.title,
        "content": row.content or {},
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
