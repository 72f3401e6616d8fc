"""Per-provider circuit breaking."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, TypeVar

from ..constants import DEFAULT_FAILURE_THRESHOLD, DEFAULT_RESET_TIMEOUT_MS
from ..errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class CircuitState(str, Enum):
    CLOSED = "closed"  # calls pass through
    OPEN = "open"  # calls fail fast
    HALF_OPEN = "half_open"  # one trial call decides


class CircuitBreaker:
    """Stop calling a provider after ``failure_threshold`` consecutive failures.

    Once open, calls raise :class:`CircuitOpenError` until ``reset_timeout_ms``
    has passed. The next call is then let through as a trial: success closes
    the circuit, failure opens it again for another timeout.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_ms: int = DEFAULT_RESET_TIMEOUT_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_until = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def allow(self) -> bool:
        """Return whether a call may proceed, moving OPEN to HALF_OPEN when due."""
        with self._lock:
            if self._state is CircuitState.OPEN:
                if self._clock() < self._opened_until:
                    return False
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit for {self.name} half-open, allowing a trial call")
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                logger.info(f"Circuit for {self.name} closed")
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_until = self._clock() + self.reset_timeout_ms
                logger.warning(
                    f"Circuit for {self.name} opened after {self._failure_count} failures"
                )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if not self.allow():
            retry_after = max(0, int(self._opened_until - self._clock()))
            raise CircuitOpenError(self.name, retry_after)
        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


class CircuitBreakerRegistry:
    """One lazily created breaker per provider name."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_ms: int = DEFAULT_RESET_TIMEOUT_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name, self.failure_threshold, self.reset_timeout_ms, clock=self._clock
                )
                self._breakers[name] = breaker
            return breaker

    def status(self) -> Dict[str, Dict[str, object]]:
        """Snapshot of every breaker for monitoring."""
        with self._lock:
            breakers = list(self._breakers.values())
        return {
            b.name: {"state": b.state.value, "failure_count": b.failure_count} for b in breakers
        }
