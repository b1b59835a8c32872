from __future__ import annotations

"""Bounded exponential-backoff retries around external service calls."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docchat.rag.errors import EmbeddingServiceError, GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (EmbeddingServiceError, GenerationError)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "external_call_retry",
        extra={
            "attempt": retry_state.attempt_number,
            "error": type(error).__name__ if error else "unknown",
        },
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for embedding and generation calls."""
    attempts: int = 3
    initial_wait: float = 0.5
    max_wait: float = 8.0
    retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS

    def _options(self) -> dict[str, Any]:
        return {
            "stop": stop_after_attempt(max(1, self.attempts)),
            "wait": wait_exponential(multiplier=self.initial_wait, max=self.max_wait),
            "retry": retry_if_exception_type(self.retry_on),
            "before_sleep": _log_retry,
            "reraise": True,
        }

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke a blocking callable, retrying transient failures."""
        return Retrying(**self._options())(fn, *args, **kwargs)

    async def call_async(
        self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await a coroutine function, retrying transient failures."""
        return await AsyncRetrying(**self._options())(fn, *args, **kwargs)


NO_RETRY = RetryPolicy(attempts=1, initial_wait=0.0, max_wait=0.0)
