from datetime import date, datetime, timedelta, timezone

import pytest

from medstudy.core.errors import NotFound
from medstudy.models.study_session import StudySession
from medstudy.models.subject import Subject
from medstudy.models.topic import Topic
from medstudy.models.user import User
from medstudy.services.progress_service import (
    percent,
    progress_stats,
    set_topic_completion,
    study_streak,
    subject_progress,
)
from medstudy.services.study_session_service import end_session, start_session


@pytest.fixture
def topics(db, make_document):
    subject = Subject(name="Cardiologia", name_key="cardiologia", color="#ef4444", icon="Heart")
    db.add(subject)
    db.commit()
    doc = make_document()
    rows = [
        Topic(document_id=doc.id, subject_id=subject.id, title=f"Tema {i}", content="c", confidence=80)
        for i in range(4)
    ]
    db.add_all(rows)
    db.commit()
    return rows


def test_review_count_counts_completions(db, user, topics):
    t = topics[0]

    assert set_topic_completion(db, user_id=user.id, topic_id=t.id, completed=False).review_count == 0
    row = set_topic_completion(db, user_id=user.id, topic_id=t.id, completed=True)
    assert row.review_count == 1
    assert row.completed_at is not None
    row = set_topic_completion(db, user_id=user.id, topic_id=t.id, completed=False)
    assert row.review_count == 1
    assert row.completed_at is None
    assert set_topic_completion(db, user_id=user.id, topic_id=t.id, completed=True).review_count == 2


def test_first_completion_starts_at_one(db, user, topics):
    row = set_topic_completion(db, user_id=user.id, topic_id=topics[1].id, completed=True)

    assert row.review_count == 1
    assert row.subject_id == topics[1].subject_id


def test_cannot_complete_someone_elses_topic(db, user, topics):
    db.add(User(id=2, email="student2@medstudy.local", full_name="Estudiant 2"))
    db.commit()

    with pytest.raises(NotFound):
        set_topic_completion(db, user_id=2, topic_id=topics[0].id, completed=True)


def test_progress_stats(db, user, topics):
    set_topic_completion(db, user_id=user.id, topic_id=topics[0].id, completed=True)
    s = start_session(db, user_id=user.id)
    end_session(db, user_id=user.id, session_id=s.id, duration_minutes=25)

    stats = progress_stats(db, user.id)

    assert stats["total_topics"] == 4
    assert stats["completed_topics"] == 1
    assert stats["overall_progress"] == 25
    assert stats["total_study_time"] == 25
    assert stats["study_streak"] == 1


def test_subject_progress_lists_topic_checklist(db, user, topics):
    set_topic_completion(db, user_id=user.id, topic_id=topics[2].id, completed=True)

    (entry,) = subject_progress(db, user.id)

    assert entry["subject"]["name"] == "Cardiologia"
    assert entry["total_topics"] == 4
    assert entry["completed_topics"] == 1
    assert [i["completed"] for i in entry["topics"]] == [False, False, True, False]


def test_end_session_without_duration_uses_the_clock(db, user):
    s = start_session(db, user_id=user.id)
    s.started_at = datetime.now(timezone.utc) - timedelta(minutes=30)
    db.commit()

    ended = end_session(db, user_id=user.id, session_id=s.id, notes="Repàs")

    assert ended.duration_minutes == 30
    assert ended.notes == "Repàs"


def test_end_unknown_session(db, user):
    with pytest.raises(NotFound):
        end_session(db, user_id=user.id, session_id=999)


def _at(d):
    return datetime(d.year, d.month, d.day, 10, tzinfo=timezone.utc)


def test_study_streak():
    today = date(2026, 3, 10)
    days = [today, today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=5)]

    assert study_streak([_at(d) for d in days], today=today) == 3
    assert study_streak([_at(d) for d in days[1:]], today=today) == 2
    assert study_streak([_at(today - timedelta(days=3))], today=today) == 0
    assert study_streak([], today=today) == 0
    assert study_streak([datetime(2026, 3, 10, 9), datetime(2026, 3, 10, 18)], today=today) == 1


def test_percent():
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(5, 0) == 0
