from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from medstudy.core.errors import InvalidRequest, NotFound
from medstudy.models.mcq import McqAttempt, McqQuestion
from medstudy.models.subject import Subject
from medstudy.services.ai_service import StudyAssistant
from medstudy.services.topic_review_service import list_user_topics


logger = logging.getLogger(__name__)

MAX_QUESTIONS = 20


def _subject_or_404(db: Session, subject_id: int) -> Subject:
    subject = db.get(Subject, int(subject_id))
    if subject is None:
        raise NotFound("Subject not found", details={"subject_id": int(subject_id)})
    return subject


def generate_questions(
    db: Session,
    *,
    user_id: int,
    subject_id: int,
    count: int,
    assistant: StudyAssistant,
) -> List[McqQuestion]:
    """Generate and store MCQs from the user's included topics of a subject."""
    subject = _subject_or_404(db, subject_id)
    topics = list_user_topics(db, user_id, subject_id=subject.id, included_only=True)
    if not topics:
        raise InvalidRequest("No study topics for this subject yet", details={"subject_id": int(subject.id)})

    count = max(1, min(MAX_QUESTIONS, int(count)))
    items = assistant.generate_mcq(subject.name, topics, count)

    topic_by_title = {t.title.casefold(): t for t in topics}
    rows: List[McqQuestion] = []
    for item in items:
        topic = topic_by_title.get(str(item.get("topic_title") or "").casefold())
        rows.append(
            McqQuestion(
                user_id=int(user_id),
                subject_id=int(subject.id),
                topic_id=int(topic.id) if topic is not None else None,
                stem=item["stem"],
                options=list(item["options"]),
                correct_index=int(item["correct_index"]),
                explanation=item.get("explanation"),
            )
        )
    db.add_all(rows)
    db.commit()
    for r in rows:
        db.refresh(r)
    logger.info("Generated %d MCQ(s) for user %s, subject %r", len(rows), user_id, subject.name)
    return rows


def list_questions(db: Session, user_id: int, subject_id: Optional[int] = None) -> List[McqQuestion]:
    q = db.query(McqQuestion).filter(McqQuestion.user_id == int(user_id))
    if subject_id is not None:
        q = q.filter(McqQuestion.subject_id == int(subject_id))
    return q.order_by(McqQuestion.id.asc()).all()


def record_attempt(db: Session, *, user_id: int, question_id: int, selected_index: int) -> McqAttempt:
    question = (
        db.query(McqQuestion)
        .filter(McqQuestion.id == int(question_id), McqQuestion.user_id == int(user_id))
        .first()
    )
    if question is None:
        raise NotFound("Question not found", details={"question_id": int(question_id)})
    if not 0 <= int(selected_index) < len(question.options or []):
        raise InvalidRequest("Selected option is out of range", details={"selected_index": int(selected_index)})

    row = McqAttempt(
        user_id=int(user_id),
        question_id=int(question.id),
        selected_index=int(selected_index),
        is_correct=int(selected_index) == int(question.correct_index),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def question_to_dict(q: McqQuestion, *, reveal: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": int(q.id),
        "subject_id": int(q.subject_id),
        "topic_id": q.topic_id,
        "stem": q.stem,
        "options": list(q.options or []),
    }
    if reveal:
        out["correct_index"] = int(q.correct_index)
        out["explanation"] = q.explanation
    return out
