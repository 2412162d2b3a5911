from types import SimpleNamespace

from medstudy.models.enums import TopicType
from medstudy.services.context_retrieval import (
    CONTEXT_SEPARATOR,
    expand_keywords,
    normalize,
    retrieve_context,
    score_topic,
    stem,
)


def _topic(id, title, content="", topic_type=TopicType.CONCEPT, included=True, deep_focus=False):
    return SimpleNamespace(
        id=id,
        title=title,
        content=content,
        topic_type=topic_type,
        included=included,
        deep_focus=deep_focus,
        subject_id=1,
    )


TOPICS = [
    _topic(1, "Asma bronquial", "Malaltia inflamatòria de les vies respiratòries."),
    _topic(2, "Insuficiència cardíaca", "Síndrome clínica en què el cor no bomba prou.", TopicType.DEFINITION),
    _topic(3, "Diabetis mellitus tipus 2", "Hiperglucèmia crònica per resistència a la insulina."),
]


def test_accent_insensitive_question_selects_the_matching_topic():
    ctx = retrieve_context("Què és la insuficiència cardiaca?", TOPICS)

    assert ctx.best.topic.id == 2
    assert [s.topic.id for s in ctx.topics] == [2]
    assert ctx.text.startswith("[DEFINITION] Insuficiència cardíaca\n")


def test_no_matching_topic_gives_empty_context():
    ctx = retrieve_context("Quina és la capital de França?", TOPICS)

    assert ctx.text == ""
    assert ctx.topics == []
    assert ctx.best is None


def test_synonyms_cross_languages():
    ctx = retrieve_context("heart failure", TOPICS)

    assert ctx.best.topic.id == 2


def test_excluded_topics_never_participate():
    topics = [_topic(1, "Insuficiència cardíaca", included=False)]

    assert retrieve_context("insuficiència cardíaca", topics).topics == []


def test_deep_focus_boosts_the_score():
    plain = _topic(1, "Asma bronquial")
    focused = _topic(2, "Asma bronquial", deep_focus=True)
    keywords = expand_keywords("asma")

    assert score_topic(keywords, focused) == score_topic(keywords, plain) * 1.5

    ctx = retrieve_context("asma", [plain, focused])
    assert [s.topic.id for s in ctx.topics] == [2, 1]


def test_scoring_weights():
    keywords = {"asma"}

    assert score_topic(keywords, _topic(1, "asma")) == 20
    assert score_topic(keywords, _topic(1, "asmatic")) == 10
    assert score_topic(keywords, _topic(1, "x", "asma asma")) == 10
    assert score_topic(keywords, _topic(1, "x", "asmatic")) == 2


def test_top_five_in_score_order_with_stable_ties():
    topics = [_topic(i, "Asma", "asma" if i == 6 else "") for i in range(1, 8)]

    ctx = retrieve_context("asma", topics)

    assert [s.topic.id for s in ctx.topics] == [6, 1, 2, 3, 4]
    assert ctx.text.count(CONTEXT_SEPARATOR) == 4


def test_normalize_and_stem():
    assert normalize("Àcid ÚRIC, (sèric)!").split() == ["acid", "uric", "seric"]
    assert stem("cardiology") == "cardi"
    assert stem("cardiologia") == "cardi"
    assert stem("clinics") == "clin"
    assert stem("malalties") == "malalti"
    assert stem("cor") == "cor"
    assert stem("ossos") == "osso"
