from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from medstudy.core.errors import NotFound
from medstudy.models.study_session import StudySession


def start_session(
    db: Session,
    *,
    user_id: int,
    topic_id: Optional[int] = None,
    subject_id: Optional[int] = None,
) -> StudySession:
    row = StudySession(
        user_id=int(user_id),
        topic_id=topic_id,
        subject_id=subject_id,
        started_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def end_session(
    db: Session,
    *,
    user_id: int,
    session_id: int,
    duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
) -> StudySession:
    """Close a session. Without an explicit duration it is taken from the clock."""
    row = (
        db.query(StudySession)
        .filter(StudySession.id == int(session_id), StudySession.user_id == int(user_id))
        .first()
    )
    if row is None:
        raise NotFound("Study session not found", details={"session_id": int(session_id)})

    ended = datetime.now(timezone.utc)
    row.ended_at = ended
    if duration_minutes is None:
        started = row.started_at or ended
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        duration_minutes = int(round((ended - started).total_seconds() / 60.0))
    row.duration_minutes = max(0, int(duration_minutes))
    if notes is not None:
        row.notes = notes
    db.commit()
    db.refresh(row)
    return row


def session_to_dict(row: StudySession) -> Dict[str, Any]:
    return {
        "id": int(row.id),
        "topic_id": row.topic_id,
        "subject_id": row.subject_id,
        "started_at": row.started_at.isoformat() if row.started_at else None,
        "ended_at": row.ended_at.isoformat() if row.ended_at else None,
        "duration_minutes": row.duration_minutes,
        "notes": row.notes,
    }
