from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from medstudy.core.errors import NotFound
from medstudy.models.progress import Progress
from medstudy.models.study_session import StudySession
from medstudy.models.subject import Subject
from medstudy.models.topic import Topic
from medstudy.services.subject_service import subject_to_dict
from medstudy.services.topic_review_service import list_user_topics, topic_to_review_dict, user_topics_query


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def percent(part: int, whole: int) -> int:
    return int(round(part * 100.0 / whole)) if whole > 0 else 0


def set_topic_completion(db: Session, *, user_id: int, topic_id: int, completed: bool) -> Progress:
    """Mark one of the user's topics (not) completed.

    ``review_count`` counts completions: the first record starts at 1 when
    created completed (0 otherwise) and every later completion adds one.
    """
    topic = user_topics_query(db, user_id).filter(Topic.id == int(topic_id)).first()
    if topic is None:
        raise NotFound("Topic not found", details={"topic_id": int(topic_id)})

    now = _utcnow()
    row = (
        db.query(Progress)
        .filter(Progress.user_id == int(user_id), Progress.topic_id == int(topic_id))
        .first()
    )
    if row is None:
        row = Progress(
            user_id=int(user_id),
            topic_id=int(topic.id),
            subject_id=topic.subject_id,
            completed=bool(completed),
            completed_at=now if completed else None,
            review_count=1 if completed else 0,
            last_reviewed_at=now,
        )
        db.add(row)
    else:
        row.completed = bool(completed)
        row.completed_at = now if completed else None
        row.review_count = int(row.review_count or 0) + (1 if completed else 0)
        row.last_reviewed_at = now
        row.subject_id = topic.subject_id
    db.commit()
    db.refresh(row)
    return row


def progress_to_dict(row: Progress) -> Dict[str, Any]:
    return {
        "id": int(row.id),
        "topic_id": int(row.topic_id),
        "subject_id": row.subject_id,
        "completed": bool(row.completed),
        "completed_at": row.completed_at.isoformat() if row.completed_at else None,
        "review_count": int(row.review_count or 0),
        "last_reviewed_at": row.last_reviewed_at.isoformat() if row.last_reviewed_at else None,
    }


def _completed_topic_ids(db: Session, user_id: int) -> set[int]:
    rows = (
        db.query(Progress.topic_id)
        .filter(Progress.user_id == int(user_id), Progress.completed.is_(True))
        .all()
    )
    return {int(r[0]) for r in rows}


def total_study_minutes(db: Session, user_id: int) -> int:
    rows = db.query(StudySession.duration_minutes).filter(StudySession.user_id == int(user_id)).all()
    return int(sum(int(r[0] or 0) for r in rows))


def study_streak(session_starts: Iterable[datetime], today: Optional[date] = None) -> int:
    """Consecutive days with at least one study session, ending today.

    A streak still counts when the latest session was yesterday.
    """
    days = {_as_utc(s).date() for s in session_starts if s is not None}
    if not days:
        return 0
    day = today or _utcnow().date()
    if day not in days:
        day -= timedelta(days=1)
    streak = 0
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def progress_stats(db: Session, user_id: int) -> Dict[str, Any]:
    topic_ids = {int(t.id) for t in list_user_topics(db, user_id)}
    completed = len(_completed_topic_ids(db, user_id) & topic_ids)
    starts = [
        r[0] for r in db.query(StudySession.started_at).filter(StudySession.user_id == int(user_id)).all()
    ]
    return {
        "overall_progress": percent(completed, len(topic_ids)),
        "total_topics": len(topic_ids),
        "completed_topics": completed,
        "study_streak": study_streak(starts),
        "total_study_time": total_study_minutes(db, user_id),
    }


def subject_progress(db: Session, user_id: int) -> List[Dict[str, Any]]:
    """Per-subject topic checklist; subjects without topics are left out."""
    progress_by_topic = {
        int(p.topic_id): p for p in db.query(Progress).filter(Progress.user_id == int(user_id)).all()
    }
    by_subject: Dict[int, List[Topic]] = {}
    for t in list_user_topics(db, user_id):
        if t.subject_id is not None:
            by_subject.setdefault(int(t.subject_id), []).append(t)

    out: List[Dict[str, Any]] = []
    for subject in db.query(Subject).order_by(Subject.name.asc()).all():
        topics = by_subject.get(int(subject.id), [])
        if not topics:
            continue
        items = []
        for t in topics:
            p = progress_by_topic.get(int(t.id))
            items.append(
                {
                    "topic": topic_to_review_dict(t),
                    "completed": bool(p.completed) if p else False,
                    "review_count": int(p.review_count or 0) if p else 0,
                }
            )
        done = sum(1 for i in items if i["completed"])
        out.append(
            {
                "subject": subject_to_dict(subject),
                "total_topics": len(items),
                "completed_topics": done,
                "progress": percent(done, len(items)),
                "topics": items,
            }
        )
    return out
