from fastapi import APIRouter

from medstudy.infra.queue import is_async_enabled
from medstudy.services.llm_service import llm_available


router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "llm": {"available": bool(llm_available())}, "async_queue": {"enabled": bool(is_async_enabled())}}
