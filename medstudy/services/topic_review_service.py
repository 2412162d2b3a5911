from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from medstudy.models.document import Document
from medstudy.models.enums import TopicType
from medstudy.models.topic import Topic
from medstudy.services.ai_service import TITLE_MAX_CHARS, clamp_confidence, coerce_topic_type


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 90
MEDIUM_CONFIDENCE = 70


def confidence_level(confidence: int) -> str:
    """high (>= 90), medium (70-89) or low (< 70)."""
    c = int(confidence or 0)
    if c >= HIGH_CONFIDENCE:
        return "high"
    if c >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def topic_to_review_dict(t: Topic) -> Dict[str, Any]:
    return {
        "id": int(t.id),
        "document_id": int(t.document_id),
        "subject_id": t.subject_id,
        "title": t.title,
        "content": t.content,
        "topic_type": TopicType(t.topic_type).value,
        "confidence": int(t.confidence),
        "confidence_level": confidence_level(t.confidence),
        "included": bool(t.included),
        "deep_focus": bool(t.deep_focus),
        "corrected_by_user": bool(t.corrected_by_user),
    }


def _document_topics(db: Session, document_id: int) -> List[Topic]:
    return db.query(Topic).filter(Topic.document_id == int(document_id)).order_by(Topic.id.asc()).all()


def list_review_topics(db: Session, document_id: int, *, low_confidence_only: bool = False) -> List[Dict[str, Any]]:
    out = [topic_to_review_dict(t) for t in _document_topics(db, document_id)]
    if low_confidence_only:
        out = [t for t in out if t["confidence_level"] == "low"]
    return out


def _apply_edit(topic: Topic, edit: Dict[str, Any]) -> None:
    if edit.get("title") is not None:
        title = " ".join(str(edit["title"]).split())
        if title:
            topic.title = title[:TITLE_MAX_CHARS]
    if edit.get("content") is not None:
        topic.content = str(edit["content"])
    if edit.get("topic_type") is not None:
        topic.topic_type = coerce_topic_type(edit["topic_type"])
    if edit.get("confidence") is not None:
        topic.confidence = clamp_confidence(edit["confidence"], default=int(topic.confidence))
    for flag in ("included", "deep_focus", "corrected_by_user"):
        if edit.get(flag) is not None:
            setattr(topic, flag, bool(edit[flag]))


def confirm_topics(db: Session, document_id: int, edits: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Apply the user's review edits to a document's topics.

    Edits without an id, or whose id belongs to another document, are skipped.
    Only fields present in an edit are written, so replaying the same payload
    leaves the rows unchanged.
    """
    by_id = {int(t.id): t for t in _document_topics(db, document_id)}
    applied = 0
    for edit in edits or []:
        raw_id: Optional[Any] = edit.get("id")
        if raw_id is None:
            continue
        try:
            topic = by_id.get(int(raw_id))
        except (TypeError, ValueError):
            topic = None
        if topic is None:
            logger.info("Skipping edit for topic %r: not part of document %s", raw_id, document_id)
            continue
        _apply_edit(topic, edit)
        applied += 1
    db.commit()
    logger.info("Confirmed %d topic edit(s) for document %s", applied, document_id)
    return list_review_topics(db, document_id)


def mark_all_deep_focus(db: Session, document_id: int) -> int:
    """Flag every topic of the document as high priority; returns how many."""
    topics = _document_topics(db, document_id)
    for t in topics:
        t.deep_focus = True
    db.commit()
    return len(topics)


def user_topics_query(db: Session, user_id: int):
    """Topics of every document owned by ``user_id``."""
    return (
        db.query(Topic)
        .join(Document, Document.id == Topic.document_id)
        .filter(Document.user_id == int(user_id))
    )


def list_user_topics(
    db: Session,
    user_id: int,
    *,
    subject_id: Optional[int] = None,
    included_only: bool = False,
) -> List[Topic]:
    q = user_topics_query(db, user_id)
    if subject_id is not None:
        q = q.filter(Topic.subject_id == int(subject_id))
    if included_only:
        q = q.filter(Topic.included.is_(True))
    return q.order_by(Topic.id.asc()).all()
