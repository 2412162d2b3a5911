from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from medstudy.api.deps import require_user
from medstudy.db.session import get_db
from medstudy.models.user import User
from medstudy.schemas.qa import AskQuestionRequest
from medstudy.services.ai_service import StudyAssistant, get_study_assistant
from medstudy.services.qa_service import ask_question, list_history, qa_to_dict

router = APIRouter(tags=["qa"])


@router.post("/qa/ask")
def ask(
    request: Request,
    payload: AskQuestionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    assistant: StudyAssistant = Depends(get_study_assistant),
):
    row = ask_question(
        db,
        user_id=int(user.id),
        question=payload.question.strip(),
        language=payload.language,
        assistant=assistant,
    )
    return {"request_id": request.state.request_id, "data": qa_to_dict(row), "error": None}


@router.get("/qa/history")
def history(
    request: Request,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    rows = list_history(db, int(user.id), limit=limit)
    return {"request_id": request.state.request_id, "data": [qa_to_dict(r) for r in rows], "error": None}
