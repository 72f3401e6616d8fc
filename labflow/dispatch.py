"""Batched fan-out of one artifact to many delivery targets."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from .constants import DEFAULT_BATCH_PAUSE_MS, DEFAULT_BATCH_SIZE
from .contracts import BulkDispatchReport, DispatchFailure, DispatchSuccess

logger = logging.getLogger(__name__)

A = TypeVar("A")


class BulkDispatcher(Generic[A]):
    """Send ``artifact`` to each target in fixed-size concurrent batches.

    Items inside a batch run concurrently; batch ``k + 1`` starts only after
    batch ``k`` has finished and the pause has elapsed. A failing target is
    recorded in the report and never affects its siblings.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_pause_ms: int = DEFAULT_BATCH_PAUSE_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.batch_pause_ms = batch_pause_ms
        self._sleep = sleep

    async def dispatch(
        self,
        artifact: A,
        targets: Sequence[str],
        per_item_operation: Callable[[A, str], Awaitable[str]],
    ) -> BulkDispatchReport:
        """Return a report with one entry per target, in target order."""
        logger.info(f"Dispatching to {len(targets)} targets in batches of {self.batch_size}")
        succeeded: list[DispatchSuccess] = []
        failed: list[DispatchFailure] = []

        for start in range(0, len(targets), self.batch_size):
            batch = targets[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(per_item_operation(artifact, target) for target in batch),
                return_exceptions=True,
            )
            for offset, (target, outcome) in enumerate(zip(batch, outcomes)):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(f"Dispatch item {start + offset} to {target} failed: {outcome}")
                    failed.append(DispatchFailure(target=target, error=str(outcome) or type(outcome).__name__))
                else:
                    succeeded.append(DispatchSuccess(target=target, artifact_id=str(outcome)))

            if start + self.batch_size < len(targets) and self.batch_pause_ms > 0:
                await self._sleep(self.batch_pause_ms / 1000)

        report = BulkDispatchReport(total=len(targets), succeeded=succeeded, failed=failed)
        logger.info(
            f"Dispatch finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report
