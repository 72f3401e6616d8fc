"""Repository abstraction for workflow step persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..contracts import StepStatus
from .models import WorkflowStep


class StepRepository(Protocol):
    """Protocol for workflow step persistence backends."""

    async def create_step(self, step: WorkflowStep) -> None:
        """Persist a newly started step."""

    async def finish_step(
        self,
        step_id: str,
        status: StepStatus,
        completed_at: datetime,
        processing_time_ms: int,
        output_summary: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a processing step to a terminal status.

        Returns ``False`` without writing when the step is not processing.
        """

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        """Retrieve a step by id."""

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        """Return the steps of a workflow ordered by ``started_at``."""

    async def list_processing_steps(self, started_before: datetime) -> list[WorkflowStep]:
        """Return processing steps started before ``started_before``."""

    async def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete terminal steps completed before ``cutoff``."""
