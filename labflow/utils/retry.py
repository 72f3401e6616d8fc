from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ..constants import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_ATTEMPTS
from ..errors import CircuitOpenError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryAttempt:
    """One failed attempt inside a single ``execute`` call."""

    attempt_number: int
    delay_before_ms: int
    error: BaseException


def compute_backoff(attempt: int, base_delay_ms: int) -> float:
    """Compute the linear backoff in seconds after failed ``attempt``."""
    return base_delay_ms * attempt / 1000


def is_transient(error: BaseException) -> bool:
    """Return ``True`` for network failures, HTTP 429 and 5xx responses."""
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(error, ProviderError):
        return error.status_code is None or error.status_code == 429 or error.status_code >= 500
    if isinstance(error, httpx.HTTPStatusError):
        code = error.response.status_code
        return code == 429 or code >= 500
    return False


class RetryExecutor:
    """Run an async operation with bounded attempts and linear backoff.

    Attempt ``n`` is followed by a ``base_delay_ms * n`` pause. After the last
    attempt the most recent error is re-raised unchanged. Every error is
    retried unless an ``is_retryable`` predicate rejects it; an open circuit
    fails at once.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self._is_retryable = is_retryable
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        on_retry: Optional[Callable[[RetryAttempt], None]] = None,
    ) -> T:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        base = self.base_delay_ms if base_delay_ms is None else base_delay_ms
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                if attempt >= attempts or isinstance(exc, CircuitOpenError):
                    raise
                if self._is_retryable is not None and not self._is_retryable(exc):
                    logger.warning(f"Attempt {attempt} failed with non-retryable error: {exc}")
                    raise

                delay = compute_backoff(attempt, base)
                logger.warning(
                    f"Attempt {attempt}/{attempts} failed, retrying in {base * attempt}ms: {exc}"
                )
                if on_retry is not None:
                    on_retry(RetryAttempt(attempt + 1, base * attempt, exc))
                await self._sleep(delay)
                attempt += 1
