"""Circuit breaker state transitions."""

import pytest

from labflow.errors import CircuitOpenError, ProviderError
from labflow.utils.circuit import CircuitBreaker, CircuitBreakerRegistry, CircuitState


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _fail():
    raise ProviderError("openai", "bad gateway", status_code=502)


async def _ok():
    return "ok"


@pytest.mark.asyncio
async def test_opens_after_threshold_then_recovers_through_half_open():
    clock = FakeClock()
    breaker = CircuitBreaker("openai", failure_threshold=5, reset_timeout_ms=60_000, clock=clock)

    for _ in range(5):
        with pytest.raises(ProviderError):
            await breaker.call(_fail)
    assert breaker.state is CircuitState.OPEN
    assert breaker.failure_count == 5

    calls = []

    async def tracked():
        calls.append(1)
        return "ok"

    clock.now = 30_000
    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.call(tracked)
    assert calls == []
    assert excinfo.value.provider == "openai"
    assert excinfo.value.retry_after_ms == 30_000

    clock.now = 60_000
    assert breaker.allow()
    assert breaker.state is CircuitState.HALF_OPEN

    assert await breaker.call(tracked) == "ok"
    assert breaker.state is CircuitState.CLOSED
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_trial_call_reopens():
    clock = FakeClock()
    breaker = CircuitBreaker("resend", failure_threshold=2, reset_timeout_ms=1000, clock=clock)
    for _ in range(2):
        with pytest.raises(ProviderError):
            await breaker.call(_fail)

    clock.now = 1000
    with pytest.raises(ProviderError):
        await breaker.call(_fail)

    assert breaker.state is CircuitState.OPEN
    clock.now = 1500
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)


@pytest.mark.asyncio
async def test_success_resets_failure_count():
    breaker = CircuitBreaker("openai", failure_threshold=3, clock=FakeClock())
    for _ in range(2):
        with pytest.raises(ProviderError):
            await breaker.call(_fail)
    await breaker.call(_ok)
    for _ in range(2):
        with pytest.raises(ProviderError):
            await breaker.call(_fail)

    assert breaker.state is CircuitState.CLOSED
    assert breaker.failure_count == 2


@pytest.mark.asyncio
async def test_registry_keeps_one_breaker_per_provider():
    registry = CircuitBreakerRegistry(failure_threshold=1, clock=FakeClock())

    assert registry.get("openai") is registry.get("openai")
    with pytest.raises(ProviderError):
        await registry.get("openai").call(_fail)
    await registry.get("resend").call(_ok)

    assert registry.status() == {
        "openai": {"state": "open", "failure_count": 1},
        "resend": {"state": "closed", "failure_count": 0},
    }


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        CircuitBreaker("openai", failure_threshold=0)
