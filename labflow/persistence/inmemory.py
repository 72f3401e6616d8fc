"""In-memory implementation of the step repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from ..contracts import StepStatus
from .models import WorkflowStep
from .repository import StepRepository


class InMemoryStepRepository(StepRepository):
    """Store workflow steps in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Mutations never await, so each one is
    atomic on the event loop.
    """

    def __init__(self) -> None:
        self._steps: Dict[str, WorkflowStep] = {}

    # ------------------------------------------------------------------
    async def create_step(self, step: WorkflowStep) -> None:
        if step.id in self._steps:
            raise ValueError(f"Duplicate step id: {step.id}")
        self._steps[step.id] = step.model_copy(deep=True)

    async def finish_step(
        self,
        step_id: str,
        status: StepStatus,
        completed_at: datetime,
        processing_time_ms: int,
        output_summary: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        step = self._steps.get(step_id)
        if step is None or step.status != StepStatus.PROCESSING:
            return False
        step.status = status
        step.completed_at = completed_at
        step.processing_time_ms = processing_time_ms
        step.output_summary = output_summary
        step.error_message = error_message
        return True

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        steps = [s for s in self._steps.values() if s.workflow_id == workflow_id]
        # sorted() is stable, so insertion order breaks timestamp ties
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.started_at)]

    async def list_processing_steps(self, started_before: datetime) -> list[WorkflowStep]:
        steps = [
            s
            for s in self._steps.values()
            if s.status == StepStatus.PROCESSING and s.started_at < started_before
        ]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.started_at)]

    async def delete_finished_before(self, cutoff: datetime) -> int:
        expired = [
            step_id
            for step_id, s in self._steps.items()
            if s.status.is_terminal and s.completed_at is not None and s.completed_at < cutoff
        ]
        for step_id in expired:
            del self._steps[step_id]
        return len(expired)
