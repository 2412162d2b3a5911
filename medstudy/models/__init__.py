from medstudy.models.user import User
from medstudy.models.subject import Subject
from medstudy.models.document import Document
from medstudy.models.topic import Topic
from medstudy.models.progress import Progress
from medstudy.models.qa_history import QaHistory
from medstudy.models.study_session import StudySession
from medstudy.models.mcq import McqAttempt, McqQuestion
from medstudy.models.visual_summary import VisualSummary
from medstudy.models.enums import DocumentFileType, ProcessingStatus, SummaryType, TopicType

__all__ = [
    "User",
    "Subject",
    "Document",
    "Topic",
    "Progress",
    "QaHistory",
    "StudySession",
    "McqQuestion",
    "McqAttempt",
    "VisualSummary",
    "DocumentFileType",
    "ProcessingStatus",
    "SummaryType",
    "TopicType",
]
