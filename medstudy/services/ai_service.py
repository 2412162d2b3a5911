"""AI capabilities used by the study pipeline.

``StudyAssistant`` is the single seam between this backend and a language
model. Subclasses only implement the raw ``_request_*`` calls; the public
methods own response normalisation and the failure policy:

- topic extraction never fails: any error yields a deterministic one-topic
  fallback so every document has something to review;
- Q&A answers fall back to a fixed apology in the user's language;
- MCQ / visual summary generation has no sensible fallback and raises
  AIServiceFailure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Sequence

from medstudy.core.config import settings
from medstudy.core.errors import AIServiceFailure
from medstudy.models.enums import SummaryType, TopicType
from medstudy.services.llm_service import chat_json, chat_text, llm_available


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50
MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 100
TITLE_MAX_CHARS = 255

APOLOGY_BY_LANGUAGE = {
    "ca": "Ho sento, hi ha hagut un error en processar la teva pregunta. Torna-ho a provar.",
    "es": "Lo siento, hubo un error al procesar tu pregunta. Inténtalo de nuevo.",
}

SYSTEM_PROMPT_BY_LANGUAGE = {
    "ca": (
        "Ets un assistent d'estudi mèdic expert. Respon sempre en català amb explicacions clares i detallades. "
        "Utilitza un to didàctic i proporciona exemples clínics quan sigui apropiat."
    ),
    "es": (
        "Eres un asistente de estudio médico experto. Responde siempre en español con explicaciones claras y "
        "detalladas. Utiliza un tono didáctico y proporciona ejemplos clínicos cuando sea apropiado."
    ),
}


@dataclass
class ExtractedTopic:
    title: str
    content: str
    topic_type: TopicType = TopicType.CONCEPT
    confidence: int = DEFAULT_CONFIDENCE


@dataclass
class ExtractedTopics:
    topics: List[ExtractedTopic] = field(default_factory=list)
    suggested_subject: str = ""
    fallback_used: bool = False


def clamp_confidence(value: Any, default: int = DEFAULT_CONFIDENCE) -> int:
    """Coerce a model-reported confidence into an int within [0, 100]."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if num != num:  # NaN
        return default
    return int(round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, num))))


def coerce_topic_type(value: Any) -> TopicType:
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return TopicType(key)
    except ValueError:
        return TopicType.CONCEPT


def _fallback_subject() -> str:
    return settings.AI_FALLBACK_SUBJECT


def fallback_extraction(text: str, filename: str) -> ExtractedTopics:
    """The deterministic single-topic result used whenever extraction fails."""
    name = str(filename or "").strip() or "document"
    return ExtractedTopics(
        topics=[
            ExtractedTopic(
                title=f"Content from {name}"[:TITLE_MAX_CHARS],
                content=(text or "")[: int(settings.AI_FALLBACK_CONTENT_CHARS)],
                topic_type=TopicType.CONCEPT,
                confidence=DEFAULT_CONFIDENCE,
            )
        ],
        suggested_subject=_fallback_subject(),
        fallback_used=True,
    )


def normalize_extraction(raw: Any) -> ExtractedTopics:
    """Validate the model's JSON against the ExtractedTopics contract.

    Raises ValueError when there is no usable topic at all.
    """
    if not isinstance(raw, dict):
        raise ValueError("Topic extraction response is not a JSON object")

    topics: List[ExtractedTopic] = []
    for item in raw.get("topics") or []:
        if not isinstance(item, dict):
            continue
        title = " ".join(str(item.get("title") or "").split())
        if not title:
            continue
        topics.append(
            ExtractedTopic(
                title=title[:TITLE_MAX_CHARS],
                content=str(item.get("content") or "").strip(),
                topic_type=coerce_topic_type(item.get("topicType") or item.get("topic_type")),
                confidence=clamp_confidence(item.get("confidence")),
            )
        )
    if not topics:
        raise ValueError("Topic extraction response contains no topics")

    subject = " ".join(str(raw.get("suggestedSubject") or raw.get("suggested_subject") or "").split())
    return ExtractedTopics(topics=topics, suggested_subject=subject or _fallback_subject())


def _topic_digest(topics: Sequence[Any], max_chars: int = 6000) -> str:
    """Compact "title: content" lines for generation prompts."""
    lines: List[str] = []
    total = 0
    for t in topics:
        line = f"- {getattr(t, 'title', '')}: {' '.join(str(getattr(t, 'content', '') or '').split())[:600]}"
        total += len(line)
        if total > max_chars:
            break
        lines.append(line)
    return "\n".join(lines)


def _normalize_mcq(raw: Any, count: int) -> List[Dict[str, Any]]:
    items = raw.get("questions") if isinstance(raw, dict) else None
    out: List[Dict[str, Any]] = []
    for q in items or []:
        if not isinstance(q, dict):
            continue
        stem = str(q.get("question") or q.get("stem") or "").strip()
        options = [str(o).strip() for o in (q.get("options") or []) if str(o).strip()]
        if not stem or len(options) < 2:
            continue
        try:
            correct = int(q.get("correctIndex", q.get("correct_index", 0)))
        except (TypeError, ValueError):
            continue
        if not 0 <= correct < len(options):
            continue
        out.append(
            {
                "stem": stem,
                "options": options,
                "correct_index": correct,
                "explanation": str(q.get("explanation") or "").strip() or None,
                "topic_title": str(q.get("topicTitle") or q.get("topic_title") or "").strip() or None,
            }
        )
        if len(out) >= count:
            break
    return out


class StudyAssistant:
    """Capability interface over the language model."""

    name: str = "base"

    # ----- public API (policy lives here) -----

    def extract_topics(self, text: str, filename: str) -> ExtractedTopics:
        excerpt = (text or "")[: int(settings.AI_TEXT_CHAR_BUDGET)]
        try:
            raw = self._request_topics(excerpt, filename)
            return normalize_extraction(raw)
        except Exception as e:
            logger.warning("Topic extraction failed for %s, using fallback: %s", filename, e)
            return fallback_extraction(text, filename)

    def answer(self, question: str, language: str, context: str = "") -> str:
        apology = APOLOGY_BY_LANGUAGE.get(language, APOLOGY_BY_LANGUAGE["es"])
        try:
            out = self._request_answer(question, language, context or "")
        except Exception as e:
            logger.warning("Q&A answer failed: %s", e)
            return apology
        return (out or "").strip() or apology

    def generate_mcq(self, subject_name: str, topics: Sequence[Any], count: int = 5) -> List[Dict[str, Any]]:
        try:
            raw = self._request_mcq(subject_name, topics, int(count))
        except Exception as e:
            raise AIServiceFailure("MCQ generation failed", details={"reason": str(e)[:200]}) from e
        questions = _normalize_mcq(raw, int(count))
        if not questions:
            raise AIServiceFailure("MCQ generation returned no usable questions")
        return questions

    def generate_visual_summary(self, subject_name: str, topics: Sequence[Any], summary_type: SummaryType) -> Dict[str, Any]:
        try:
            raw = self._request_visual_summary(subject_name, topics, summary_type)
        except Exception as e:
            raise AIServiceFailure("Visual summary generation failed", details={"reason": str(e)[:200]}) from e
        if not isinstance(raw, dict) or not str(raw.get("title") or "").strip():
            raise AIServiceFailure("Visual summary response is missing a title")
        return {"title": str(raw["title"]).strip()[:TITLE_MAX_CHARS], "content": raw.get("content") or {}}

    # ----- provider hooks -----

    def _request_topics(self, text: str, filename: str) -> Dict[str, Any]:  # pragma: no cover
        raise NotImplementedError

    def _request_answer(self, question: str, language: str, context: str) -> str:  # pragma: no cover
        raise NotImplementedError

    def _request_mcq(self, subject_name: str, topics: Sequence[Any], count: int) -> Dict[str, Any]:  # pragma: no cover
        raise NotImplementedError

    def _request_visual_summary(
        self, subject_name: str, topics: Sequence[Any], summary_type: SummaryType
    ) -> Dict[str, Any]:  # pragma: no cover
        raise NotImplementedError


class LLMStudyAssistant(StudyAssistant):
    """OpenAI-compatible chat model (OpenAI Cloud, Ollama, LM Studio)."""

    name = "openai"

    def _require_llm(self) -> None:
        if not llm_available():
            raise AIServiceFailure("LLM is not configured")

    def _request_topics(self, text: str, filename: str) -> Dict[str, Any]:
        self._require_llm()
        prompt = f"""You are an expert medical educator analyzing study materials for 4th-year medical students.

Analyze the following medical document content and extract:
1. Key medical topics, definitions, clinical cases, concepts, and procedures
2. The most appropriate medical subject/specialty (e.g., Cardiologia, Neurologia, Pediatria, Cirurgia, Medicina Interna, Dermatologia)

For each topic give a confidence from 0 to 100 describing how sure you are that the topic was extracted correctly and completely.

Document filename: {PurePath(filename or 'document').name}

Content:
{text}

Respond with JSON in this exact format:
{{
  "topics": [
    {{
      "title": "Topic name",
      "content": "Detailed explanation or description",
      "topicType": "definition" | "clinical_case" | "concept" | "procedure",
      "confidence": 0-100
    }}
  ],
  "suggestedSubject": "Medical specialty name"
}}"""
        return chat_json(
            messages=[
                {
                    "role": "system",
                    "content": "You are an expert medical educator. Extract medical topics and classify content accurately. Always respond with valid JSON.",
                },
                {"role": "user", "content": prompt},
            ],
            max_tokens=8192,
        )

    def _request_answer(self, question: str, language: str, context: str) -> str:
        self._require_llm()
        system_prompt = SYSTEM_PROMPT_BY_LANGUAGE.get(language, SYSTEM_PROMPT_BY_LANGUAGE["es"])
        user_prompt = f"Basant-te en aquest context:\n\n{context}\n\nPregunta: {question}" if context else question
        return chat_text(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=4096,
        )

    def _request_mcq(self, subject_name: str, topics: Sequence[Any], count: int) -> Dict[str, Any]:
        self._require_llm()
        prompt = f"""Create {count} multiple-choice questions for medical students on {subject_name}.
Use only these study topics:
{_topic_digest(topics)}

Respond with JSON:
{{"questions": [{{"question": "...", "options": ["A", "B", "C", "D"], "correctIndex": 0, "explanation": "...", "topicTitle": "..."}}]}}"""
        return chat_json(messages=[{"role": "user", "content": prompt}], max_tokens=4096)

    def _request_visual_summary(self, subject_name: str, topics: Sequence[Any], summary_type: SummaryType) -> Dict[str, Any]:
        self._require_llm()
        shapes = {
            SummaryType.FLOWCHART: '{"nodes": [{"id": "1", "label": "..."}], "edges": [{"from": "1", "to": "2", "label": "..."}]}',
            SummaryType.CONCEPT_MAP: '{"central": "...", "branches": [{"label": "...", "children": ["..."]}]}',
            SummaryType.COMPARISON_TABLE: '{"columns": ["..."], "rows": [["..."]]}',
        }
        prompt = f"""Build a {summary_type.value.replace('_', ' ')} that summarizes these {subject_name} topics:
{_topic_digest(topics)}

Respond with JSON: {{"title": "...", "content": {shapes[summary_type]}}}"""
        return chat_json(messages=[{"role": "user", "content": prompt}], max_tokens=4096)


_assistant: Optional[StudyAssistant] = None


def get_study_assistant() -> StudyAssistant:
    """Process-wide assistant (also used as a FastAPI dependency)."""
    global _assistant
    if _assistant is None:
        _assistant = LLMStudyAssistant()
    return _assistant


def set_study_assistant(assistant: Optional[StudyAssistant]) -> None:
    global _assistant
    _assistant = assistant
