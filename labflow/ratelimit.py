"""Fixed-window rate limiting keyed by caller identifier."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .config import RateLimitRule
from .constants import DEFAULT_SWEEP_INTERVAL_SECONDS
from .errors import RateLimitExceededError

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateLimitCounter:
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Per-identifier call counter with an owned expiry sweep.

    One instance is built per process and passed to every caller. ``check``
    never suspends, and the counter map is guarded by a lock so the limiter is
    also safe to share between threads.
    """

    def __init__(self, clock: Callable[[], float] = _monotonic_ms) -> None:
        self._clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def check(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one call for ``identifier`` and report whether it is allowed."""
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if limit < 1 or window_ms < 1:
            raise ValueError("limit and window_ms must be positive")

        with self._lock:
            now = self._clock()
            counter = self._counters.get(identifier)
            if counter is None or now >= counter.window_reset_at:
                counter = RateLimitCounter(count=1, window_reset_at=now + window_ms)
                self._counters[identifier] = counter
                return RateLimitResult(True, limit - 1, counter.window_reset_at)

            if counter.count >= limit:
                return RateLimitResult(False, 0, counter.window_reset_at)

            counter.count += 1
            return RateLimitResult(True, limit - counter.count, counter.window_reset_at)

    def enforce(self, identifier: str, rule: RateLimitRule) -> RateLimitResult:
        """Like :meth:`check` but raise :class:`RateLimitExceededError` on denial."""
        key = f"{rule.name}:{identifier}"
        result = self.check(key, rule.limit, rule.window_ms)
        if not result.allowed:
            retry_after = max(0, int(result.reset_at - self._clock()))
            logger.warning(
                f"Rate limit exceeded for {rule.name}: identifier={identifier} "
                f"limit={rule.limit} retry_after_ms={retry_after}"
            )
            raise RateLimitExceededError(identifier, rule.name, rule.limit, retry_after)
        return result

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._counters.pop(identifier, None)

    def counter(self, identifier: str) -> Optional[RateLimitCounter]:
        with self._lock:
            counter = self._counters.get(identifier)
            if counter is None:
                return None
            return RateLimitCounter(counter.count, counter.window_reset_at)

    def __len__(self) -> int:
        return len(self._counters)

    # ------------------------------------------------------------------
    # Expiry sweep
    def sweep(self) -> int:
        """Drop every counter whose window has elapsed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, c in self._counters.items() if now >= c.window_reset_at]
            for key in expired:
                del self._counters[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit counters")
        return len(expired)

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()
