from __future__ import annotations

import ast
import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import OpenAI

from medstudy.core.config import settings


logger = logging.getLogger(__name__)

_client: OpenAI | None = None


PLACEHOLDER_KEY_MARKERS = [
    "your api key",
    "your_api_key",
    "your-api-key",
    "your_openai_api_key",
    "replace_me",
    "replace-me",
    "changeme",
    "change_me",
    "sk-xxxxxxxx",
]


def _looks_like_placeholder_key(k: str | None) -> bool:
    if not k:
        return False
    ks = k.strip().lower()
    if not ks:
        return False
    if any(m in ks for m in PLACEHOLDER_KEY_MARKERS):
        return True
    # common placeholder pattern like 'xxxxxx'
    return "xxxx" in ks


def llm_available() -> bool:
    """Return True if we can call an LLM from this backend.

    Supported providers:
    - OpenAI API: set OPENAI_API_KEY
    - OpenAI-compatible local servers (Ollama/LM Studio): set OPENAI_BASE_URL (key can be blank)
    """
    base_url = (settings.OPENAI_BASE_URL or "").strip()
    api_key = (settings.OPENAI_API_KEY or "").strip()
    if not base_url and not api_key:
        return False
    # OpenAI cloud + placeholder key always fails auth
    if not base_url and _looks_like_placeholder_key(api_key):
        return False
    return True


def _get_client() -> OpenAI:
    global _client
    if _client is not None:
        return _client

    base_url = (settings.OPENAI_BASE_URL or "").strip() or None
    api_key = (settings.OPENAI_API_KEY or "").strip() or None

    if _looks_like_placeholder_key(api_key):
        raise RuntimeError("API key looks like a placeholder. Replace OPENAI_API_KEY in .env with a real key.")

    # A local OpenAI-compatible server accepts any key
    if not api_key and base_url:
        api_key = "ollama"

    if not api_key:
        raise RuntimeError(
            "LLM is not configured. Set OPENAI_API_KEY (OpenAI) or OPENAI_BASE_URL (Ollama/LM Studio) in .env"
        )

    # `timeout` is seconds; it is the only bound on a slow/hung model call.
    _client = OpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=float(settings.OPENAI_HTTP_TIMEOUT_SEC),
        max_retries=int(settings.OPENAI_MAX_RETRIES),
    )
    return _client


_THINK_RE = re.compile(r"<\s*(think|analysis)\s*>.*?<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


def _preprocess_llm_text(s: str) -> str:
    """Strip <think> blocks and markdown fences around a JSON answer."""
    s = (s or "").strip()
    if not s:
        return ""
    s = _THINK_RE.sub("", s).strip()
    if "```" in s:
        s = _FENCE_RE.sub("", s).strip()
    return s


def _extract_last_json_object(s: str) -> Dict[str, Any] | None:
    """Return the last valid JSON object found in text, or None."""
    s = _preprocess_llm_text(s)
    if not s:
        return None

    dec = json.JSONDecoder()
    last_obj: Dict[str, Any] | None = None
    i = 0
    while True:
        i = s.find("{", i)
        if i < 0:
            break
        try:
            obj, end = dec.raw_decode(s[i:])
            if isinstance(obj, dict):
                last_obj = obj
            i = i + max(1, end)
        except ValueError:
            i += 1
    return last_obj


def _safe_json_loads(s: str) -> Dict[str, Any]:
    s2 = _preprocess_llm_text(s)
    if not s2:
        raise ValueError("Empty LLM response (expected JSON).")

    def _try_json(text: str) -> Dict[str, Any] | None:
        try:
            obj = json.loads(text)
            return obj if isinstance(obj, dict) else None
        except ValueError:
            return None

    # 1) Fast path: exact JSON
    obj = _try_json(s2)
    if obj is not None:
        return obj

    # 2) Trailing commas before '}' or ']'
    s3 = re.sub(r",\s*([}\]])", r"\1", s2)
    obj = _try_json(s3)
    if obj is not None:
        return obj

    # 3) Last valid JSON object embedded in prose
    obj = _extract_last_json_object(s3)
    if obj is not None:
        return obj

    # 4) Python-literal quasi-JSON (single quotes, True/False/None); no code execution
    try:
        lit = ast.literal_eval(s3)
        if isinstance(lit, dict):
            return lit
    except (ValueError, SyntaxError):
        pass

    raise ValueError(f"Could not parse JSON from LLM output. Head={s2[:200]!r}")


def _extract_chat_completion_text(res: Any) -> str:
    try:
        choice = res.choices[0]
    except (AttributeError, IndexError, TypeError):
        return ""
    msg = getattr(choice, "message", None)
    content = getattr(msg, "content", None) if msg is not None else None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for p in content:
            text = p.get("text") if isinstance(p, dict) else getattr(p, "text", None)
            if text:
                parts.append(str(text))
        return "\n".join(parts)
    return str(getattr(choice, "text", "") or "")


def chat_json(
    *,
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    temperature: float = 0.2,
    max_tokens: int = 4096,
) -> Dict[str, Any]:
    """Call the chat model in JSON mode and return the parsed object.

    Some OpenAI-compatible providers reject ``response_format``; we retry
    without it (still asking for JSON in the instructions).
    Raises on transport errors and on output that is not a JSON object.
    """
    client = _get_client()
    m = model or settings.OPENAI_CHAT_MODEL

    json_guard = {
        "role": "system",
        "content": (
            "You are a strict JSON generator. "
            "Output exactly ONE valid JSON object and nothing else. "
            "Do NOT include explanations or markdown fences."
        ),
    }
    kwargs: Dict[str, Any] = {
        "model": m,
        "messages": [json_guard] + (messages or []),
        "temperature": float(temperature),
        "max_tokens": int(max_tokens),
    }
    try:
        res = client.chat.completions.create(**kwargs, response_format={"type": "json_object"})
    except Exception as e:
        logger.debug("JSON mode rejected by provider, retrying without response_format: %s", e)
        res = client.chat.completions.create(**kwargs)

    return _safe_json_loads(_extract_chat_completion_text(res))


def chat_text(
    *,
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    temperature: float = 0.3,
    max_tokens: int = 2048,
) -> str:
    """Call the chat model and return plain text (long-form answers)."""
    client = _get_client()
    res = client.chat.completions.create(
        model=model or settings.OPENAI_CHAT_MODEL,
        messages=messages or [],
        temperature=float(temperature),
        max_tokens=int(max_tokens),
    )
    return (_extract_chat_completion_text(res) or "").strip()
