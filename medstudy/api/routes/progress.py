from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from medstudy.api.deps import require_user
from medstudy.db.session import get_db
from medstudy.models.user import User
from medstudy.schemas.progress import StudySessionEnd, StudySessionStart, TopicProgressUpdate
from medstudy.services.progress_service import (
    progress_stats,
    progress_to_dict,
    set_topic_completion,
    subject_progress,
)
from medstudy.services.study_session_service import end_session, session_to_dict, start_session

router = APIRouter(tags=["progress"])


@router.get("/progress/stats")
def get_progress_stats(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": progress_stats(db, int(user.id)), "error": None}


@router.get("/progress/subjects")
def get_progress_subjects(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": subject_progress(db, int(user.id)), "error": None}


@router.post("/progress/topics/{topic_id}")
def update_topic_progress(
    request: Request,
    topic_id: int,
    payload: TopicProgressUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    row = set_topic_completion(db, user_id=int(user.id), topic_id=int(topic_id), completed=payload.completed)
    return {"request_id": request.state.request_id, "data": progress_to_dict(row), "error": None}


@router.post("/study-sessions")
def begin_study_session(
    request: Request,
    payload: StudySessionStart,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    row = start_session(db, user_id=int(user.id), topic_id=payload.topic_id, subject_id=payload.subject_id)
    return {"request_id": request.state.request_id, "data": session_to_dict(row), "error": None}


@router.post("/study-sessions/{session_id}/end")
def finish_study_session(
    request: Request,
    session_id: int,
    payload: StudySessionEnd,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    row = end_session(
        db,
        user_id=int(user.id),
        session_id=int(session_id),
        duration_minutes=payload.duration_minutes,
        notes=payload.notes,
    )
    return {"request_id": request.state.request_id, "data": session_to_dict(row), "error": None}
