"""Retry utilities using tenacity."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Collection
from typing import Any, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from agentloop.errors import RETRYABLE_ERROR_CODES, ErrorCode, NetworkError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def should_retry(exc: BaseException, codes: Collection[ErrorCode] = RETRYABLE_ERROR_CODES) -> bool:
    """Only network errors with a retryable code are retried.

    Payment errors propagate to the caller untouched.
    """
    return isinstance(exc, NetworkError) and exc.code in codes


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning("Retrying after %s (attempt %d)", exc, state.attempt_number)


def with_retry(
    *,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 8.0,
    multiplier: float = 1.0,
    codes: Collection[ErrorCode] = RETRYABLE_ERROR_CODES,
    on_retry: Callable[[RetryCallState], None] | None = None,
) -> Any:
    """Create a tenacity retry decorator for async functions.

    Args:
        max_attempts: Maximum number of attempts, including the first.
        min_wait: Minimum wait time between retries (seconds).
        max_wait: Maximum wait time between retries (seconds).
        multiplier: Exponential backoff multiplier.
        codes: Network error codes that trigger a retry.
        on_retry: Optional callback invoked before each retry sleep.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception(lambda exc: should_retry(exc, codes)),
        reraise=True,
        before_sleep=on_retry or _log_retry,
    )


async def retry_async(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 8.0,
    **kwargs: Any,
) -> T:
    """Retry an async function with exponential backoff."""

    @with_retry(max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait)
    async def _wrapped() -> T:
        return await fn(*args, **kwargs)

    return await _wrapped()
