from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from medstudy.core.config import settings
from medstudy.models.qa_history import QaHistory
from medstudy.services.ai_service import StudyAssistant
from medstudy.services.context_retrieval import retrieve_context
from medstudy.services.topic_review_service import list_user_topics


logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("ca", "es")


def ask_question(
    db: Session,
    *,
    user_id: int,
    question: str,
    language: str,
    assistant: StudyAssistant,
) -> QaHistory:
    """Answer a question grounded on the user's own topics and record it.

    The history row points at the best-scoring topic (and its subject); both
    stay empty when no topic matched and the model answered from general
    knowledge.
    """
    topics = list_user_topics(db, user_id, included_only=True)
    ctx = retrieve_context(question, topics, limit=int(settings.QA_CONTEXT_TOP_K))
    answer = assistant.answer(question, language, ctx.text)

    best = ctx.best.topic if ctx.best else None
    row = QaHistory(
        user_id=int(user_id),
        question=question,
        answer=answer,
        language=language,
        topic_id=int(best.id) if best is not None else None,
        subject_id=best.subject_id if best is not None else None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Q&A for user %s: %d context topic(s)", user_id, len(ctx.topics))
    return row


def list_history(db: Session, user_id: int, limit: int = 50) -> List[QaHistory]:
    return (
        db.query(QaHistory)
        .filter(QaHistory.user_id == int(user_id))
        .order_by(QaHistory.asked_at.desc(), QaHistory.id.desc())
        .limit(int(max(1, min(500, limit))))
        .all()
    )


def qa_to_dict(row: QaHistory) -> Dict[str, Any]:
    return {
        "id": int(row.id),
        "question": row.question,
        "answer": row.answer,
        "language": row.language,
        "topic_id": row.topic_id,
        "subject_id": row.subject_id,
        "asked_at": row.asked_at.isoformat() if row.asked_at else None,
    }
