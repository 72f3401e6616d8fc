import asyncio

import pytest

from labflow.dispatch import BulkDispatcher


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_partial_failures_do_not_affect_siblings():
    dispatcher = BulkDispatcher(batch_size=2, sleep=SleepRecorder())

    async def send(artifact, target):
        if target in ("t2", "t4"):
            raise RuntimeError(f"{target} rejected {artifact}")
        return f"{artifact}-{target}"

    report = await dispatcher.dispatch("summary", ["t1", "t2", "t3", "t4", "t5"], send)

    assert report.total == 5
    assert [s.target for s in report.succeeded] == ["t1", "t3", "t5"]
    assert [s.artifact_id for s in report.succeeded] == ["summary-t1", "summary-t3", "summary-t5"]
    assert [f.target for f in report.failed] == ["t2", "t4"]
    assert report.failed[0].error == "t2 rejected summary"
    assert not report.all_failed


@pytest.mark.asyncio
async def test_batches_pause_between_but_not_after():
    sleeper = SleepRecorder()
    dispatcher = BulkDispatcher(batch_size=10, batch_pause_ms=1000, sleep=sleeper)

    async def send(artifact, target):
        return target

    targets = [f"user{i}@lab.edu" for i in range(25)]
    report = await dispatcher.dispatch("summary", targets, send)

    assert len(report.succeeded) == 25
    assert sleeper.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_concurrency_is_bounded_by_batch_size():
    dispatcher = BulkDispatcher(batch_size=3, batch_pause_ms=0)
    in_flight = 0
    peak = 0

    async def send(artifact, target):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return target

    await dispatcher.dispatch("summary", [str(i) for i in range(7)], send)

    assert peak == 3


@pytest.mark.asyncio
async def test_all_failed_and_empty_targets():
    dispatcher = BulkDispatcher(sleep=SleepRecorder())

    async def send(artifact, target):
        raise ConnectionError()

    report = await dispatcher.dispatch("summary", ["a", "b"], send)
    assert report.all_failed
    assert [f.error for f in report.failed] == ["ConnectionError", "ConnectionError"]

    empty = await dispatcher.dispatch("summary", [], send)
    assert empty.total == 0
    assert not empty.all_failed


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BulkDispatcher(batch_size=0)
