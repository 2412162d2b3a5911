from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from medstudy.api.deps import require_user
from medstudy.db.session import get_db
from medstudy.models.mcq import McqQuestion
from medstudy.models.user import User
from medstudy.schemas.generation import McqAttemptRequest, McqGenerateRequest, VisualSummaryRequest
from medstudy.services.ai_service import StudyAssistant, get_study_assistant
from medstudy.services.mcq_service import generate_questions, list_questions, question_to_dict, record_attempt
from medstudy.services.visual_summary_service import generate_summary, list_summaries, summary_to_dict

router = APIRouter(tags=["generation"])


@router.post("/mcq/generate")
def generate_mcq(
    request: Request,
    payload: McqGenerateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    assistant: StudyAssistant = Depends(get_study_assistant),
):
    rows = generate_questions(
        db,
        user_id=int(user.id),
        subject_id=payload.subject_id,
        count=payload.count,
        assistant=assistant,
    )
    return {"request_id": request.state.request_id, "data": [question_to_dict(q) for q in rows], "error": None}


@router.get("/mcq/questions")
def get_mcq_questions(
    request: Request,
    subject_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    rows = list_questions(db, int(user.id), subject_id=subject_id)
    return {"request_id": request.state.request_id, "data": [question_to_dict(q) for q in rows], "error": None}


@router.post("/mcq/attempt")
def attempt_mcq(
    request: Request,
    payload: McqAttemptRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    row = record_attempt(db, user_id=int(user.id), question_id=payload.question_id, selected_index=payload.selected_index)
    question = db.get(McqQuestion, int(row.question_id))
    return {
        "request_id": request.state.request_id,
        "data": {
            "attempt_id": int(row.id),
            "question_id": int(row.question_id),
            "selected_index": int(row.selected_index),
            "is_correct": bool(row.is_correct),
            "question": question_to_dict(question, reveal=True),
        },
        "error": None,
    }


@router.post("/visual-summaries/generate")
def generate_visual_summary(
    request: Request,
    payload: VisualSummaryRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    assistant: StudyAssistant = Depends(get_study_assistant),
):
    row = generate_summary(
        db,
        user_id=int(user.id),
        subject_id=payload.subject_id,
        summary_type=payload.summary_type,
        assistant=assistant,
    )
    return {"request_id": request.state.request_id, "data": summary_to_dict(row), "error": None}


@router.get("/visual-summaries")
def get_visual_summaries(
    request: Request,
    subject_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    rows = list_summaries(db, int(user.id), subject_id=subject_id)
    return {"request_id": request.state.request_id, "data": [summary_to_dict(r) for r in rows], "error": None}
