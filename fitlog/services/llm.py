import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import httpx

from fitlog.core.errors import ConfigurationError, LLMRequestError

logger = logging.getLogger("uvicorn.error")

LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_CONNECT_TIMEOUT_SECONDS = float(os.getenv("LLM_CONNECT_TIMEOUT_SECONDS", "10"))
LLM_WRITE_TIMEOUT_SECONDS = float(os.getenv("LLM_WRITE_TIMEOUT_SECONDS", "30"))
LLM_POOL_TIMEOUT_SECONDS = float(os.getenv("LLM_POOL_TIMEOUT_SECONDS", "60"))
LLM_RETRY_COUNT = int(os.getenv("LLM_RETRY_COUNT", "2"))
LLM_RETRY_BACKOFF_SECONDS = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "0.75"))
LLM_MAX_TOKENS_UTILITY = int(os.getenv("LLM_MAX_TOKENS_UTILITY", "900"))
LLM_MAX_TOKENS_REASONING = int(os.getenv("LLM_MAX_TOKENS_REASONING", "1600"))

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}

UTILITY_TASK_TYPES = {
    "utility",
    "summarization",
    "classification",
    "extraction",
}

Message = dict[str, str]


def _http_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=LLM_CONNECT_TIMEOUT_SECONDS,
        read=LLM_TIMEOUT_SECONDS,
        write=LLM_WRITE_TIMEOUT_SECONDS,
        pool=LLM_POOL_TIMEOUT_SECONDS,
    )


def _max_output_tokens(task_type: str) -> int:
    normalized = (task_type or "").strip().lower()
    if normalized in UTILITY_TASK_TYPES:
        return LLM_MAX_TOKENS_UTILITY
    return LLM_MAX_TOKENS_REASONING


def parse_llm_json(raw_text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(raw_text[start : end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
    raise ValueError("Invalid JSON response from LLM")


def select_model_for_task(reasoning_model: str, utility_model: str, task_type: str) -> str:
    normalized_task = (task_type or "").strip().lower()
    if normalized_task in UTILITY_TASK_TYPES:
        return utility_model
    return reasoning_model


@dataclass(frozen=True)
class LLMSettings:
    provider: str
    reasoning_model: str
    utility_model: str
    api_key: str


def resolve_llm_settings() -> LLMSettings:
    provider = (os.getenv("DEFAULT_AI_PROVIDER", "openai") or "openai").strip().lower()
    if provider == "openai":
        key = os.getenv("OPENAI_API_KEY", "").strip()
        fallback_model = "gpt-4o-mini"
    elif provider == "gemini":
        key = os.getenv("GEMINI_API_KEY", "").strip()
        fallback_model = "gemini-2.0-flash"
    else:
        raise ConfigurationError(f"Unsupported AI provider: {provider}")

    if not key:
        raise ConfigurationError(
            f"{provider.capitalize()} API key not configured. "
            f"Please add {provider.upper()}_API_KEY to your environment variables."
        )
    base_model = os.getenv("DEFAULT_AI_MODEL", "").strip() or fallback_model
    reasoning_model = os.getenv("DEFAULT_REASONING_MODEL", "").strip() or base_model
    utility_model = os.getenv("DEFAULT_UTILITY_MODEL", "").strip() or base_model
    return LLMSettings(
        provider=provider,
        reasoning_model=reasoning_model,
        utility_model=utility_model,
        api_key=key,
    )


def _openai_request(
    model: str, api_key: str, messages: list[Message], max_output_tokens: int, json_mode: bool
) -> str:
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_completion_tokens": max_output_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    response = httpx.post(
        OPENAI_CHAT_URL,
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json=payload,
        timeout=_http_timeout(),
    )
    response.raise_for_status()
    data = response.json()
    text = str(data["choices"][0]["message"].get("content") or "").strip()
    if not text:
        raise ValueError("OpenAI chat completion returned empty content")
    return text


def _gemini_request(
    model: str, api_key: str, messages: list[Message], max_output_tokens: int, json_mode: bool
) -> str:
    system_parts = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
    contents = [
        {
            "role": "model" if m.get("role") == "assistant" else "user",
            "parts": [{"text": m["content"]}],
        }
        for m in messages
        if m.get("role") != "system"
    ]
    generation_config: dict[str, Any] = {"temperature": 0.3, "maxOutputTokens": max_output_tokens}
    if json_mode:
        generation_config["responseMimeType"] = "application/json"
    body: dict[str, Any] = {"generationConfig": generation_config, "contents": contents}
    if system_parts:
        body["systemInstruction"] = {"parts": system_parts}
    response = httpx.post(
        GEMINI_URL_TEMPLATE.format(model=model),
        params={"key": api_key},
        headers={"Content-Type": "application/json"},
        json=body,
        timeout=_http_timeout(),
    )
    response.raise_for_status()
    data = response.json()
    text = str(data["candidates"][0]["content"]["parts"][0].get("text") or "").strip()
    if not text:
        raise ValueError("Gemini response returned empty content")
    return text


def _request_with_retries(provider: str, model: str, call: Callable[[], str]) -> str:
    attempts = max(1, LLM_RETRY_COUNT + 1)
    label = provider.capitalize()
    for idx in range(attempts):
        retry = idx < attempts - 1
        try:
            return call()
        except httpx.TimeoutException as exc:
            if retry:
                logger.warning("llm_retry provider=%s model=%s attempt=%s reason=timeout", provider, model, idx + 1)
                time.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                continue
            raise LLMRequestError(
                provider=provider,
                model=model,
                message=f"{label} request timed out while waiting for response.",
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if retry and status in RETRYABLE_STATUS_CODES:
                logger.warning("llm_retry provider=%s model=%s attempt=%s status=%s", provider, model, idx + 1, status)
                time.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                continue
            detail = ""
            if exc.response is not None:
                detail = (exc.response.text or "").strip()[:220]
            raise LLMRequestError(
                provider=provider,
                model=model,
                status_code=status,
                message=f"{label} request failed (status={status}): {detail or 'no response body'}",
            ) from exc
        except httpx.TransportError as exc:
            if retry:
                logger.warning("llm_retry provider=%s model=%s attempt=%s reason=transport", provider, model, idx + 1)
                time.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                continue
            raise LLMRequestError(
                provider=provider, model=model, message=f"{label} request failed: {str(exc)[:220]}"
            ) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise LLMRequestError(
                provider=provider, model=model, message=f"{label} returned an unusable response: {str(exc)[:220]}"
            ) from exc
    raise LLMRequestError(provider=provider, model=model, message=f"{label} request failed")


class LLMClient(Protocol):
    def generate_json(
        self, messages: list[Message], task_type: str = "reasoning", system_instruction: str = ""
    ) -> dict[str, Any]:
        ...

    def generate_text(
        self, messages: list[Message], task_type: str = "summarization", system_instruction: str = ""
    ) -> str:
        ...


class RealLLMClient:
    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings

    def _complete(self, messages: list[Message], task_type: str, system_instruction: str, json_mode: bool) -> str:
        model = select_model_for_task(self.settings.reasoning_model, self.settings.utility_model, task_type)
        max_output_tokens = _max_output_tokens(task_type)
        full_messages = list(messages)
        if system_instruction:
            full_messages.insert(0, {"role": "system", "content": system_instruction})
        provider = self.settings.provider
        api_key = self.settings.api_key
        if provider == "openai":
            return _request_with_retries(
                provider,
                model,
                lambda: _openai_request(model, api_key, full_messages, max_output_tokens, json_mode),
            )
        if provider == "gemini":
            return _request_with_retries(
                provider,
                model,
                lambda: _gemini_request(model, api_key, full_messages, max_output_tokens, json_mode),
            )
        raise ConfigurationError(f"Unsupported AI provider: {provider}")

    def generate_json(
        self, messages: list[Message], task_type: str = "reasoning", system_instruction: str = ""
    ) -> dict[str, Any]:
        raw = self._complete(messages, task_type, system_instruction, json_mode=True)
        try:
            return parse_llm_json(raw)
        except ValueError as exc:
            model = select_model_for_task(self.settings.reasoning_model, self.settings.utility_model, task_type)
            raise LLMRequestError(provider=self.settings.provider, model=model, message=str(exc)) from exc

    def generate_text(
        self, messages: list[Message], task_type: str = "summarization", system_instruction: str = ""
    ) -> str:
        return self._complete(messages, task_type, system_instruction, json_mode=False)


def get_llm_client() -> LLMClient:
    return RealLLMClient(resolve_llm_settings())
