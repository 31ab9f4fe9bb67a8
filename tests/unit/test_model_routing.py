import pytest

from fitlog.core.errors import ConfigurationError
from fitlog.services.llm import resolve_llm_settings, select_model_for_task


def test_select_model_for_extraction_task() -> None:
    chosen = select_model_for_task("gpt-4.1", "gpt-4o-mini", "extraction")
    assert chosen == "gpt-4o-mini"


def test_select_model_for_summarization_task() -> None:
    chosen = select_model_for_task("gpt-4.1", "gpt-4o-mini", "Summarization")
    assert chosen == "gpt-4o-mini"


def test_select_model_for_reasoning_task() -> None:
    chosen = select_model_for_task("gpt-4.1", "gpt-4o-mini", "reasoning")
    assert chosen == "gpt-4.1"


def test_resolve_settings_uses_model_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DEFAULT_AI_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-12345678")
    monkeypatch.setenv("DEFAULT_AI_MODEL", "gpt-4.1-mini")
    monkeypatch.setenv("DEFAULT_REASONING_MODEL", "gpt-4.1")
    monkeypatch.delenv("DEFAULT_UTILITY_MODEL", raising=False)

    settings = resolve_llm_settings()
    assert settings.reasoning_model == "gpt-4.1"
    assert settings.utility_model == "gpt-4.1-mini"
    assert settings.api_key == "sk-test-12345678"


def test_resolve_settings_missing_key_raises(monkeypatch) -> None:
    monkeypatch.setenv("DEFAULT_AI_PROVIDER", "gemini")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError) as exc_info:
        resolve_llm_settings()
    assert "GEMINI_API_KEY" in str(exc_info.value)


def test_resolve_settings_unknown_provider_raises(monkeypatch) -> None:
    monkeypatch.setenv("DEFAULT_AI_PROVIDER", "mystery")

    with pytest.raises(ConfigurationError):
        resolve_llm_settings()
