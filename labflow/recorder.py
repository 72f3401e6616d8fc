"""Durable lifecycle records for pipeline steps."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .constants import DEFAULT_RETENTION_DAYS, DEFAULT_STALE_AFTER_MINUTES
from .contracts import StepResult, StepStatus, StepType
from .errors import OrchestrationError, StepAlreadyCompletedError, StepNotFoundError
from .persistence import StepRepository, WorkflowStep, get_repository

logger = logging.getLogger(__name__)


class StepRecorder:
    """Writes the ``processing -> completed | failed`` transition of each step.

    Every persistence failure is raised as :class:`OrchestrationError`; a run
    must not continue once its audit trail cannot be written.
    """

    def __init__(self, repository: StepRepository | None = None) -> None:
        self._repository = repository or get_repository()

    @property
    def repository(self) -> StepRepository:
        return self._repository

    async def start_step(
        self,
        workflow_id: str,
        step_type: StepType,
        step_name: str,
        input_summary: dict[str, Any],
        initiator_id: str,
        scope_id: Optional[str] = None,
        related_entity_id: Optional[str] = None,
    ) -> str:
        """Create a step in ``processing`` and return its id."""
        step = WorkflowStep(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            step_type=step_type,
            step_name=step_name,
            status=StepStatus.PROCESSING,
            input_summary=input_summary,
            initiator_id=initiator_id,
            scope_id=scope_id,
            related_entity_id=related_entity_id,
        )
        try:
            await self._repository.create_step(step)
        except Exception as exc:
            raise OrchestrationError(
                f"Could not record start of {step_type.value} step: {exc}",
                workflow_id=workflow_id,
                step_type=step_type.value,
            ) from exc

        logger.debug(f"Started {step_type.value} step {step.id} for workflow_id={workflow_id}")
        return step.id

    async def complete_step(self, step_id: str, result: StepResult) -> None:
        """Record the terminal outcome of a step exactly once.

        Raises:
            StepNotFoundError: No step exists with ``step_id``.
            StepAlreadyCompletedError: The step already reached a terminal status.
            OrchestrationError: The store could not be written.
        """
        status = StepStatus.COMPLETED if result.success else StepStatus.FAILED
        output_summary = (
            result.output_data.model_dump(mode="json")
            if result.success and result.output_data is not None
            else None
        )
        try:
            updated = await self._repository.finish_step(
                step_id,
                status=status,
                completed_at=datetime.now(timezone.utc),
                processing_time_ms=result.processing_time_ms,
                output_summary=output_summary,
                error_message=None if result.success else result.error_message,
            )
            existing = None if updated else await self._repository.get_step(step_id)
        except Exception as exc:
            raise OrchestrationError(
                f"Could not record completion of step {step_id}: {exc}", step_id=step_id
            ) from exc

        if not updated:
            if existing is None:
                raise StepNotFoundError(step_id)
            logger.warning(
                f"Rejected second completion of step {step_id} (already {existing.status.value})"
            )
            raise StepAlreadyCompletedError(step_id, existing.status.value)

        logger.info(
            f"Step {step_id} {status.value} in {result.processing_time_ms}ms"
            + (f": {result.error_message}" if not result.success else "")
        )

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        return await self._repository.get_step(step_id)

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        """Return the steps of ``workflow_id`` ordered by ``started_at``."""
        return await self._repository.list_steps(workflow_id)

    async def find_stale_steps(
        self,
        older_than_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
        now: Optional[datetime] = None,
    ) -> list[WorkflowStep]:
        """Return steps still ``processing`` after ``older_than_minutes``.

        Such steps were orphaned by a crashed or abandoned run.
        """
        now = now or datetime.now(timezone.utc)
        stale = await self._repository.list_processing_steps(
            now - timedelta(minutes=older_than_minutes)
        )
        if stale:
            logger.warning(f"Found {len(stale)} workflow steps stuck in processing")
        return stale

    async def cleanup_expired_steps(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete finished steps older than the retention window."""
        now = now or datetime.now(timezone.utc)
        deleted = await self._repository.delete_finished_before(
            now - timedelta(days=retention_days)
        )
        logger.info(f"Removed {deleted} expired workflow steps")
        return deleted
