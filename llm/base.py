"""Base LLM provider interface and response record."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal, TypedDict


class ChatMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


def coerce_usage(value: object) -> dict[str, int]:
    """Keep the numeric token counts of a provider usage payload."""
    if not isinstance(value, Mapping):
        return {}
    usage: dict[str, int] = {}
    for key, item in value.items():
        try:
            usage[str(key)] = int(float(item))
        except (TypeError, ValueError):
            continue
    return usage


@dataclass(frozen=True)
class LLMResponse:
    text: str
    usage: dict[str, int]
    latency_ms: float
    model_id: str

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "usage": dict(self.usage),
            "latency_ms": self.latency_ms,
            "model_id": self.model_id,
        }


def _empty_metrics() -> dict[str, float]:
    return {
        "calls": 0,
        "errors": 0,
        "total_latency_ms": 0.0,
        "total_input_tokens": 0,
        "total_output_tokens": 0,
    }


class BaseLLMProvider(ABC):
    """Chat-style completion provider used for patch requests."""

    provider_id: str
    model_name: str

    def __init__(self, provider_id: str, model_name: str) -> None:
        self.provider_id = provider_id
        self.model_name = model_name
        self._metrics = _empty_metrics()

    @abstractmethod
    def generate(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Return the completion for a chat transcript."""

    @abstractmethod
    def get_provider_info(self) -> dict[str, object]:
        """Return metadata about the provider/model."""

    def record_call(self, response: LLMResponse) -> None:
        self._metrics["calls"] += 1
        self._metrics["total_latency_ms"] += response.latency_ms
        self._metrics["total_input_tokens"] += response.usage.get("prompt_tokens", 0)
        self._metrics["total_output_tokens"] += response.usage.get("completion_tokens", 0)

    def record_error(self) -> None:
        self._metrics["errors"] += 1

    def get_metrics(self) -> dict[str, object]:
        metrics: dict[str, object] = dict(self._metrics)
        calls = int(self._metrics["calls"])
        metrics["avg_latency_ms"] = self._metrics["total_latency_ms"] / calls if calls else 0.0
        return metrics

    def reset_metrics(self) -> None:
        self._metrics = _empty_metrics()
