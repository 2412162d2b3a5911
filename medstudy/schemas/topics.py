from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from medstudy.models.enums import TopicType


class TopicEdit(BaseModel):
    """One reviewed topic. Omitted fields are left unchanged."""

    id: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None
    topic_type: Optional[TopicType] = None
    confidence: Optional[int] = None
    included: Optional[bool] = None
    deep_focus: Optional[bool] = None
    corrected_by_user: Optional[bool] = None


class ConfirmTopicsRequest(BaseModel):
    topics: List[TopicEdit] = Field(default_factory=list)
