from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TopicProgressUpdate(BaseModel):
    completed: bool


class StudySessionStart(BaseModel):
    topic_id: Optional[int] = None
    subject_id: Optional[int] = None


class StudySessionEnd(BaseModel):
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
