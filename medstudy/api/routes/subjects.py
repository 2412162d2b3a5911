from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from medstudy.api.deps import require_user
from medstudy.db.session import get_db
from medstudy.models.user import User
from medstudy.services.stats_service import dashboard_stats, recent_activities, subject_stats
from medstudy.services.subject_service import list_subjects, subject_to_dict

router = APIRouter(tags=["subjects"])


@router.get("/subjects")
def get_subjects(request: Request, db: Session = Depends(get_db)):
    return {
        "request_id": request.state.request_id,
        "data": [subject_to_dict(s) for s in list_subjects(db)],
        "error": None,
    }


@router.get("/subjects/stats")
def get_subject_stats(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": subject_stats(db, int(user.id)), "error": None}


@router.get("/dashboard/stats")
def get_dashboard_stats(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": dashboard_stats(db, int(user.id)), "error": None}


@router.get("/dashboard/subjects")
def get_dashboard_subjects(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": subject_stats(db, int(user.id)), "error": None}


@router.get("/dashboard/activities")
def get_dashboard_activities(request: Request, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"request_id": request.state.request_id, "data": recent_activities(db, int(user.id)), "error": None}
