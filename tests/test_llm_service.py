import pytest

from medstudy.services.llm_service import _safe_json_loads, llm_available
from medstudy.core.config import settings


def test_safe_json_loads_variants():
    assert _safe_json_loads('{"a": 1}') == {"a": 1}
    assert _safe_json_loads('```json\n{"a": [1, 2,],}\n```') == {"a": [1, 2]}
    assert _safe_json_loads('<think>hmm {"x": 0}</think>Here you go: {"topics": []}') == {"topics": []}
    assert _safe_json_loads("{'a': True}") == {"a": True}


def test_safe_json_loads_rejects_prose():
    with pytest.raises(ValueError):
        _safe_json_loads("I cannot help with that.")


def test_llm_available(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_BASE_URL", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "your_api_key_here")
    assert llm_available() is False

    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-live-123")
    assert llm_available() is True

    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_BASE_URL", "http://localhost:11434/v1")
    assert llm_available() is True
