from __future__ import annotations

from pydantic import BaseModel, Field

from medstudy.models.enums import SummaryType


class McqGenerateRequest(BaseModel):
    subject_id: int
    count: int = Field(default=5, ge=1, le=20)


class McqAttemptRequest(BaseModel):
    question_id: int
    selected_index: int = Field(ge=0)


class VisualSummaryRequest(BaseModel):
    subject_id: int
    summary_type: SummaryType = SummaryType.CONCEPT_MAP
