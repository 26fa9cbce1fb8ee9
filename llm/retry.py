"""Exponential backoff around provider calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Literal, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

Verdict = Literal["fail_fast", "retry", "raise"]

_FAIL_FAST_NAMES = {
    "AuthenticationError",
    "PermissionDeniedError",
    "BadRequestError",
    "UnprocessableEntityError",
}

_RETRYABLE_NAMES = {
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    "ServiceUnavailableError",
}


def _status_code(exc: BaseException) -> int | None:
    for source in (exc, getattr(exc, "response", None)):
        value = getattr(source, "status_code", None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def classify(exc: BaseException) -> Verdict:
    name = exc.__class__.__name__
    if isinstance(exc, ValueError) or name in _FAIL_FAST_NAMES:
        return "fail_fast"
    if isinstance(exc, (TimeoutError, ConnectionError)) or name in _RETRYABLE_NAMES:
        return "retry"
    if name == "APIStatusError":
        status = _status_code(exc)
        if status is not None and (status >= 500 or status == 429):
            return "retry"
    return "raise"


class RetryPolicy:
    """Retry transient provider errors with capped exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep_fn = sleep_fn or time.sleep

    def backoff_seconds(self, attempt_index: int) -> float:
        return min(self.base_delay * (2 ** attempt_index), self.max_delay)

    def execute(self, operation: Callable[[], T]) -> T:
        retries = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                if classify(exc) != "retry" or retries >= self.max_retries:
                    raise
                delay = self.backoff_seconds(retries)
                retries += 1
                logger.warning(
                    f"Provider call failed with {exc.__class__.__name__}; "
                    f"retry {retries}/{self.max_retries} in {delay:.1f}s"
                )
                self.sleep_fn(delay)
