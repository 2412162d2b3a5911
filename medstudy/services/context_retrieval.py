"""Keyword context retrieval for Q&A.

Topics are ranked against a question with a deterministic lexical score
(no embeddings): both sides are accent-folded, tokenised and stemmed with a
small suffix stripper tuned for Catalan/Spanish/English medical vocabulary,
and the question's stems are widened through cross-language synonym buckets
("cor" / "heart" / "cardiac" ...).

Scoring, per expanded keyword:
  +20  exact title-word match      +10  keyword inside a title word
  +5   exact content-word match    +2   keyword inside a content word
The total is multiplied by 1.5 for deep-focus topics. Only ``included``
topics take part; topics scoring 0 never reach the prompt.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence, Set

from medstudy.models.enums import TopicType


logger = logging.getLogger(__name__)

MIN_TOKEN_LEN = 2
MIN_STEM_LEN = 3
# Substring matches on 2-letter keywords hit almost every word
MIN_SUBSTRING_LEN = 3

TITLE_EXACT = 20
TITLE_PARTIAL = 10
CONTENT_EXACT = 5
CONTENT_PARTIAL = 2
DEEP_FOCUS_BOOST = 1.5

CONTEXT_SEPARATOR = "\n\n---\n\n"

# Longest first; the first suffix that leaves a long enough stem wins
SUFFIXES = ("ologies", "ology", "ologia", "iques", "ical", "ics", "ica", "ico", "ia", "es", "s")

_STOPWORDS = {
    # ca
    "el", "la", "els", "les", "un", "una", "uns", "unes", "de", "del", "dels", "al", "als", "que", "qu", "es",
    "son", "amb", "per", "com", "quin", "quina", "quins", "quines", "en", "hi", "ho", "no", "si", "mes", "pero",
    "aquest", "aquesta", "li", "em", "et", "se", "ens", "us", "ser", "fa", "seu", "seva", "entre",
    # es
    "los", "las", "lo", "unos", "unas", "con", "cual", "cuales", "cuando", "donde", "por", "para", "su", "sus",
    "le", "se", "este", "esta", "como",
    # en
    "the", "an", "of", "to", "in", "is", "are", "what", "which", "how", "why", "and", "or", "for", "with", "on",
    "be", "it", "do", "does",
}

_SYNONYM_WORDS = [
    ["cor", "heart", "cardiac", "cardiaca", "cardiaco", "cardio", "cardiologia", "cardiology", "corazon"],
    ["pulmo", "pulmon", "pulmonar", "lung", "lungs", "respiratori", "respiratoria", "respiratorio", "respiratory", "pneumo"],
    ["cervell", "cerebro", "brain", "cerebral", "neuro", "neurologia", "neurology", "nervi", "nervio", "nerve"],
    ["ronyo", "rinon", "kidney", "renal", "nefro", "nefrologia", "nephrology"],
    ["fetge", "higado", "liver", "hepatic", "hepatica", "hepatico"],
    ["estomac", "estomago", "stomach", "gastric", "gastrica", "gastro", "digestiu", "digestivo", "digestive"],
    ["sang", "sangre", "blood", "hemat", "hematologia", "hematology"],
    ["pell", "piel", "skin", "derma", "dermatologia", "dermatology", "cutani", "cutaneo", "cutaneous"],
    ["nen", "nens", "nino", "ninos", "child", "children", "infant", "pediatria", "pediatrics", "pediatric"],
    ["os", "ossos", "hueso", "huesos", "bone", "bones", "ossi", "oseo"],
    ["pressio", "presion", "pressure", "tensio", "tension", "hipertensio", "hipertension", "hypertension"],
    ["diabetis", "diabetes", "glucosa", "glucose", "insulina", "insulin"],
    ["infeccio", "infeccion", "infection", "sepsi", "sepsis"],
    ["febre", "fiebre", "fever"],
    ["dolor", "pain"],
    ["cancer", "tumor", "neoplasia", "oncologia", "oncology"],
    ["tractament", "tratamiento", "treatment", "terapia", "therapy"],
    ["diagnostic", "diagnostico", "diagnosis"],
    ["simptoma", "sintoma", "symptom"],
    ["insuficiencia", "failure", "fallo"],
    ["infart", "infarto", "infarction"],
    ["fractura", "fracture"],
]

_TYPE_LABELS = {
    TopicType.DEFINITION: "DEFINITION",
    TopicType.CLINICAL_CASE: "CLINICAL CASE",
    TopicType.CONCEPT: "CONCEPT",
    TopicType.PROCEDURE: "PROCEDURE",
}

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]+")


def normalize(text: str) -> str:
    """Lowercase, strip diacritics and punctuation."""
    s = unicodedata.normalize("NFKD", str(text or "").lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return _NON_WORD_RE.sub(" ", s)


def stem(token: str) -> str:
    for suffix in SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= MIN_STEM_LEN:
            return token[: -len(suffix)]
    return token


def tokenize(text: str) -> List[str]:
    """Stemmed tokens (length >= 2), duplicates kept."""
    return [stem(t) for t in normalize(text).split() if len(t) >= MIN_TOKEN_LEN]


STOPWORDS = {stem(w) for w in _STOPWORDS}

SYNONYM_BUCKETS: List[Set[str]] = [{stem(normalize(w).strip()) for w in words} for words in _SYNONYM_WORDS]


def expand_keywords(question: str) -> Set[str]:
    keywords = {t for t in tokenize(question) if t not in STOPWORDS}
    expanded = set(keywords)
    for bucket in SYNONYM_BUCKETS:
        if keywords & bucket:
            expanded |= bucket
    return expanded


def _match_score(keyword: str, words: Sequence[str], exact: int, partial: int) -> int:
    score = 0
    allow_partial = len(keyword) >= MIN_SUBSTRING_LEN
    for w in words:
        if w == keyword:
            score += exact
        elif allow_partial and keyword in w:
            score += partial
    return score


def score_topic(keywords: Iterable[str], topic: Any) -> float:
    title_words = tokenize(getattr(topic, "title", "") or "")
    content_words = tokenize(getattr(topic, "content", "") or "")
    total = 0
    for kw in keywords:
        total += _match_score(kw, title_words, TITLE_EXACT, TITLE_PARTIAL)
        total += _match_score(kw, content_words, CONTENT_EXACT, CONTENT_PARTIAL)
    score = float(total)
    if getattr(topic, "deep_focus", False):
        score *= DEEP_FOCUS_BOOST
    return score


def type_label(topic_type: Any) -> str:
    try:
        return _TYPE_LABELS[TopicType(topic_type)]
    except ValueError:
        return str(topic_type or "").upper()


@dataclass
class ScoredTopic:
    topic: Any
    score: float


@dataclass
class RetrievedContext:
    text: str = ""
    topics: List[ScoredTopic] = field(default_factory=list)

    @property
    def best(self) -> ScoredTopic | None:
        return self.topics[0] if self.topics else None


def format_context(scored: Sequence[ScoredTopic]) -> str:
    blocks = [
        f"[{type_label(s.topic.topic_type)}] {s.topic.title}\n{s.topic.content or ''}".rstrip()
        for s in scored
    ]
    return CONTEXT_SEPARATOR.join(blocks)


def retrieve_context(question: str, topics: Iterable[Any], limit: int = 5) -> RetrievedContext:
    keywords = expand_keywords(question)
    if not keywords:
        return RetrievedContext()

    scored = [
        ScoredTopic(topic=t, score=score_topic(keywords, t))
        for t in topics
        if getattr(t, "included", True)
    ]
    # sorted() is stable: equal scores keep the caller's order
    kept = sorted((s for s in scored if s.score > 0), key=lambda s: s.score, reverse=True)[: max(0, int(limit))]
    logger.debug("Context retrieval: %d keyword(s), %d/%d topic(s) kept", len(keywords), len(kept), len(scored))
    return RetrievedContext(text=format_context(kept), topics=kept)
