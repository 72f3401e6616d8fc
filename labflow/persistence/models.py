"""Data models for persisted workflow steps."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..contracts import StepStatus, StepType


class WorkflowStep(BaseModel):
    """Record of one attempt at one pipeline stage."""

    id: str
    workflow_id: str
    step_type: StepType
    step_name: str
    status: StepStatus = StepStatus.PROCESSING
    input_summary: dict[str, Any] = Field(default_factory=dict)
    output_summary: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None
    initiator_id: str
    scope_id: Optional[str] = None
    related_entity_id: Optional[str] = None

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.started_at).total_seconds()
