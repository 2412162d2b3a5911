from __future__ import annotations

import enum


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentFileType(str, enum.Enum):
    PDF = "pdf"
    DOCX = "docx"
    CSV = "csv"


class TopicType(str, enum.Enum):
    DEFINITION = "definition"
    CLINICAL_CASE = "clinical_case"
    CONCEPT = "concept"
    PROCEDURE = "procedure"


class SummaryType(str, enum.Enum):
    FLOWCHART = "flowchart"
    CONCEPT_MAP = "concept_map"
    COMPARISON_TABLE = "comparison_table"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum members by value ("clinical_case"), not by name."""
    return [m.value for m in enum_cls]
