from medstudy.db.base_class import Base

# Import all models so Base.metadata knows every table
from medstudy.models.user import User
from medstudy.models.subject import Subject
from medstudy.models.document import Document
from medstudy.models.topic import Topic
from medstudy.models.progress import Progress
from medstudy.models.qa_history import QaHistory
from medstudy.models.study_session import StudySession
from medstudy.models.mcq import McqQuestion, McqAttempt
from medstudy.models.visual_summary import VisualSummary
