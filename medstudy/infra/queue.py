"""Ingestion job queue.

Two backends behind one small API:

- in-process (default): ``submit`` records a Job and returns it; the caller
  hands ``run(job)`` to Starlette ``BackgroundTasks`` so it executes after the
  response has been sent. Job state lives in this process only.
- RQ (``ASYNC_QUEUE_ENABLED=true``): the job is pushed to Redis and executed
  by ``rq worker <INGEST_QUEUE_NAME>``; state is read back from Redis.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import redis
from rq import Queue
from rq.job import Job as RQJob

from medstudy.core.config import settings


logger = logging.getLogger(__name__)

JOB_QUEUED = "queued"
JOB_RUNNING = "running"
JOB_FINISHED = "finished"
JOB_FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    id: str
    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    status: str = JOB_QUEUED
    result: Any = None
    error: Optional[str] = None
    enqueued_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    rq_backed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status,
            "queued": self.rq_backed,
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "error": self.error,
            "result": self.result if self.status == JOB_FINISHED else None,
        }


# Oldest finished/failed jobs are evicted once the registry is full
MAX_TRACKED_JOBS = 1000

_jobs: "OrderedDict[str, Job]" = OrderedDict()
_lock = threading.Lock()


def _evict_locked() -> None:
    if len(_jobs) <= MAX_TRACKED_JOBS:
        return
    for job_id in [j.id for j in _jobs.values() if j.status in (JOB_FINISHED, JOB_FAILED)]:
        if len(_jobs) <= MAX_TRACKED_JOBS:
            break
        del _jobs[job_id]


def is_async_enabled() -> bool:
    return bool(settings.ASYNC_QUEUE_ENABLED)


def get_redis_conn() -> redis.Redis:
    return redis.Redis.from_url(str(settings.REDIS_URL))


def get_queue(name: Optional[str] = None) -> Queue:
    return Queue(
        name or settings.INGEST_QUEUE_NAME,
        connection=get_redis_conn(),
        default_timeout=int(settings.RQ_DEFAULT_TIMEOUT_SEC),
    )


def submit(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Job:
    """Register a job. In RQ mode it is enqueued immediately; otherwise the
    caller must schedule ``run(job)``."""
    if is_async_enabled():
        rq_job = get_queue().enqueue(fn, *args, **kwargs)
        job = Job(id=str(rq_job.id), func=fn, args=args, kwargs=kwargs, rq_backed=True)
        logger.info("Enqueued %s as RQ job %s", getattr(fn, "__name__", fn), job.id)
        return job

    job = Job(id=uuid.uuid4().hex, func=fn, args=args, kwargs=kwargs)
    with _lock:
        _jobs[job.id] = job
        _evict_locked()
    return job


def run(job: Job) -> None:
    """Execute an in-process job, recording its outcome instead of raising."""
    if job.rq_backed:
        return
    job.status = JOB_RUNNING
    job.started_at = _now()
    try:
        job.result = job.func(*job.args, **job.kwargs)
        job.status = JOB_FINISHED
    except Exception as e:
        logger.exception("Job %s failed", job.id)
        job.status = JOB_FAILED
        job.error = f"{type(e).__name__}: {e}"
    finally:
        job.ended_at = _now()
        with _lock:
            _evict_locked()


def _rq_job_dict(job: RQJob) -> Dict[str, Any]:
    status = str(job.get_status())
    return {
        "job_id": str(job.id),
        "status": {"started": JOB_RUNNING}.get(status, status),
        "queued": True,
        "enqueued_at": job.enqueued_at.isoformat() if job.enqueued_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "ended_at": job.ended_at.isoformat() if job.ended_at else None,
        "error": job.exc_info if job.is_failed else None,
        "result": job.result if job.is_finished else None,
    }


def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    with _lock:
        job = _jobs.get(str(job_id))
    if job is not None:
        return job.to_dict()
    if is_async_enabled():
        try:
            return _rq_job_dict(RQJob.fetch(str(job_id), connection=get_redis_conn()))
        except Exception as e:
            logger.debug("RQ job %s not found: %s", job_id, e)
    return None


def clear_jobs() -> None:
    with _lock:
        _jobs.clear()
