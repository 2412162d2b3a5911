from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class AskQuestionRequest(BaseModel):
    question: str = Field(min_length=1, max_length=4000)
    language: Literal["ca", "es"] = "ca"
