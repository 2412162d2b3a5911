from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from medstudy.infra.queue import get_job

router = APIRouter(tags=["jobs"])


@router.get("/jobs/{job_id}")
def job_status(request: Request, job_id: str) -> Dict[str, Any]:
    data = get_job(str(job_id))
    if data is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"request_id": request.state.request_id, "data": data, "error": None}
