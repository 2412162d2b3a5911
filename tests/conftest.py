"""Shared fixtures.

Every test gets a fresh in-memory SQLite database. The API (``get_db``
override) and the background pipeline (``session_scope``) share it through a
single StaticPool connection, so documents created by a request are visible
to the ingestion job and to assertions.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["OPENAI_BASE_URL"] = ""
os.environ["ASYNC_QUEUE_ENABLED"] = "false"
os.environ["SEED_SUBJECTS"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medstudy.core.config import settings
from medstudy.db import session as db_session_module
from medstudy.db.base import Base
from medstudy.db.session import get_db
from medstudy.infra import queue
from medstudy.models.document import Document
from medstudy.models.enums import DocumentFileType, ProcessingStatus
from medstudy.models.user import User
from medstudy.services import ai_service
from medstudy.services.ai_service import StudyAssistant


class FakeAssistant(StudyAssistant):
    """Scripted model: returns canned payloads, or raises ``error`` when set."""

    name = "fake"

    def __init__(self, topics=None, answer_text="Resposta de prova", error=None, mcq=None, summary=None):
        self.topics_payload = topics if topics is not None else {
            "topics": [
                {
                    "title": "Insuficiència cardíaca",
                    "content": "Incapacitat del cor per bombar prou sang.",
                    "topicType": "definition",
                    "confidence": 92,
                },
                {
                    "title": "Cas clínic: dispnea",
                    "content": "Pacient de 70 anys amb dispnea d'esforç.",
                    "topicType": "clinical_case",
                    "confidence": 65,
                },
            ],
            "suggestedSubject": "Cardiologia",
        }
        self.answer_text = answer_text
        self.error = error
        self.mcq_payload = mcq
        self.summary_payload = summary
        self.calls = []

    def _maybe_raise(self):
        if self.error is not None:
            raise self.error

    def _request_topics(self, text, filename):
        self.calls.append(("topics", text, filename))
        self._maybe_raise()
        return self.topics_payload

    def _request_answer(self, question, language, context):
        self.calls.append(("answer", question, language, context))
        self._maybe_raise()
        return self.answer_text

    def _request_mcq(self, subject_name, topics, count):
        self.calls.append(("mcq", subject_name, len(topics), count))
        self._maybe_raise()
        return self.mcq_payload

    def _request_visual_summary(self, subject_name, topics, summary_type):
        self.calls.append(("summary", subject_name, len(topics), summary_type))
        self._maybe_raise()
        return self.summary_payload


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(db_session_module, "engine", engine)
    monkeypatch.setattr(db_session_module, "SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def assistant(monkeypatch):
    fake = FakeAssistant()
    monkeypatch.setattr(ai_service, "_assistant", fake)
    return fake


@pytest.fixture
def user(db):
    u = User(id=1, email="student1@medstudy.local", full_name="Estudiant 1")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_document(db, user, upload_dir):
    """Store ``data`` on disk and create a pending Document for it."""

    def _make(filename="notes.csv", data=b"a,b\n1,2\n", file_type=DocumentFileType.CSV, user_id=None):
        upload_dir.mkdir(parents=True, exist_ok=True)
        path = upload_dir / filename
        path.write_bytes(data)
        doc = Document(
            user_id=int(user_id or user.id),
            filename=filename,
            file_type=file_type,
            file_size_bytes=len(data),
            storage_path=str(path),
            processing_status=ProcessingStatus.PENDING,
        )
        db.add(doc)
        db.commit()
        db.refresh(doc)
        return doc

    return _make


@pytest.fixture
def client(session_factory, assistant):
    from medstudy.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    queue.clear_jobs()
