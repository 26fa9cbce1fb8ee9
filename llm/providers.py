"""Chat providers that answer correction prompts."""

from __future__ import annotations

import importlib
import json
import logging
import os
import time
from collections.abc import Mapping, Sequence
from typing import Any

from guard_core.schemas import LLMProviderConfig

from .base import BaseLLMProvider, ChatMessage, LLMResponse, coerce_usage
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# OpenAI-compatible endpoints and the environment variables searched for a key.
COMPATIBLE_KEY_ENV: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "deepseek": ("DEEPSEEK_API_KEY", "OPENAI_API_KEY"),
    "glm": ("ZHIPUAI_API_KEY", "OPENAI_API_KEY"),
}


def _resolve_api_key(provider_type: str, api_key: str | None) -> str | None:
    if api_key:
        return api_key
    for name in COMPATIBLE_KEY_ENV.get(provider_type, ("OPENAI_API_KEY",)):
        value = os.getenv(name)
        if value:
            return value
    return None


def _chat_client(api_key: str | None, base_url: str | None, timeout_seconds: int) -> Any:
    try:
        openai = importlib.import_module("openai")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency at runtime
        raise ImportError("openai is required to use OpenAIProvider (install simguard[llm])") from exc
    client_class = getattr(openai, "OpenAI", None)
    if client_class is None:
        raise ImportError("openai.OpenAI client is unavailable")
    return client_class(api_key=api_key, base_url=base_url, timeout=timeout_seconds)


def _reply_text(completion: Any) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return ""
    content = getattr(getattr(choices[0], "message", None), "content", None)
    return "" if content is None else str(content)


def _reply_usage(completion: Any) -> dict[str, int]:
    usage = getattr(completion, "usage", None)
    if hasattr(usage, "model_dump"):
        usage = usage.model_dump()
    return coerce_usage(usage)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI-compatible chat provider that asks for a JSON object reply."""

    def __init__(
        self,
        provider_id: str,
        model_name: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: int = 30,
        retry_policy: RetryPolicy | None = None,
        provider_type: str = "openai",
    ) -> None:
        super().__init__(provider_id=provider_id, model_name=model_name)
        self.provider_type = provider_type
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy
        self.client = _chat_client(_resolve_api_key(provider_type, api_key), base_url, timeout_seconds)

    def _complete(self, messages: Sequence[ChatMessage], temperature: float, max_tokens: int) -> Any:
        return self.client.chat.completions.create(
            model=self.model_name,
            messages=[dict(message) for message in messages],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )

    def generate(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        started = time.perf_counter()
        try:
            if self.retry_policy is None:
                completion = self._complete(messages, temperature, max_tokens)
            else:
                completion = self.retry_policy.execute(
                    lambda: self._complete(messages, temperature, max_tokens)
                )
        except Exception:
            self.record_error()
            logger.error(f"{self.provider_id}: chat completion failed after retries")
            raise

        result = LLMResponse(
            text=_reply_text(completion),
            usage=_reply_usage(completion),
            latency_ms=(time.perf_counter() - started) * 1000,
            model_id=str(getattr(completion, "model", None) or self.model_name),
        )
        self.record_call(result)
        return result

    def get_provider_info(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "provider_type": self.provider_type,
            "model_name": self.model_name,
            "base_url": self.base_url,
            "timeout_seconds": self.timeout_seconds,
        }


class FakeProvider(BaseLLMProvider):
    """
    Offline provider that replays scripted replies in order.

    Each reply is a string or a mapping (serialized as JSON). Once the
    script runs out, an empty patch is returned. Every transcript received
    is kept in ``transcripts`` for inspection.
    """

    def __init__(
        self,
        provider_id: str = "fake",
        model_name: str = "fake-model",
        replies: Sequence[str | Mapping[str, object]] | None = None,
    ) -> None:
        super().__init__(provider_id=provider_id, model_name=model_name)
        self._replies = list(replies or [])
        self.transcripts: list[list[ChatMessage]] = []

    @property
    def call_count(self) -> int:
        return len(self.transcripts)

    def generate(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        self.transcripts.append(list(messages))
        if self._replies:
            reply = self._replies.pop(0)
        else:
            reply = {"explanation": "", "edits": [], "params": None}
        text = reply if isinstance(reply, str) else json.dumps(reply)

        prompt_tokens = sum(len(message["content"].split()) for message in messages)
        completion_tokens = len(text.split())
        result = LLMResponse(
            text=text,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            latency_ms=0.0,
            model_id=self.model_name,
        )
        self.record_call(result)
        return result

    def get_provider_info(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "provider_type": "fake",
            "model_name": self.model_name,
        }


def create_provider(
    config: LLMProviderConfig,
    retry_policy: RetryPolicy | None = None,
) -> BaseLLMProvider:
    """Build the provider named by ``config.provider_type``."""
    kind = config.provider_type.lower()
    if kind == "fake":
        return FakeProvider(provider_id=config.provider_id, model_name=config.model_name)
    if kind not in COMPATIBLE_KEY_ENV:
        raise ValueError(f"Unsupported provider type: {config.provider_type}")
    return OpenAIProvider(
        provider_id=config.provider_id,
        model_name=config.model_name,
        api_key=config.api_key,
        base_url=config.base_url,
        timeout_seconds=config.timeout_seconds,
        retry_policy=retry_policy or RetryPolicy(max_retries=config.max_retries),
        provider_type=kind,
    )
