import httpx
import pytest

from fitlog.core.errors import LLMRequestError
from fitlog.services import llm


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch) -> None:
    monkeypatch.setattr(llm, "LLM_RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(llm, "LLM_RETRY_COUNT", 2)


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", llm.OPENAI_CHAT_URL)
    response = httpx.Response(status_code, request=request, text="upstream says no")
    return httpx.HTTPStatusError("error", request=request, response=response)


def test_retries_retryable_status_then_succeeds() -> None:
    attempts = []

    def call() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise _status_error(503)
        return '{"ok": true}'

    assert llm._request_with_retries("openai", "gpt-4o-mini", call) == '{"ok": true}'
    assert len(attempts) == 3


def test_non_retryable_status_fails_immediately() -> None:
    attempts = []

    def call() -> str:
        attempts.append(1)
        raise _status_error(401)

    with pytest.raises(LLMRequestError) as exc_info:
        llm._request_with_retries("openai", "gpt-4o-mini", call)
    assert len(attempts) == 1
    assert exc_info.value.status_code == 401


def test_timeout_exhausts_retries() -> None:
    attempts = []

    def call() -> str:
        attempts.append(1)
        raise httpx.ReadTimeout("slow")

    with pytest.raises(LLMRequestError) as exc_info:
        llm._request_with_retries("gemini", "gemini-2.0-flash", call)
    assert len(attempts) == 3
    assert "timed out" in str(exc_info.value)


def test_real_client_rejects_non_json(monkeypatch) -> None:
    settings = llm.LLMSettings(provider="openai", reasoning_model="gpt-4.1", utility_model="gpt-4o-mini", api_key="sk")
    monkeypatch.setattr(llm, "_openai_request", lambda *args, **kwargs: "not json at all")

    client = llm.RealLLMClient(settings)
    with pytest.raises(LLMRequestError):
        client.generate_json([{"role": "user", "content": "hi"}], task_type="extraction")
