"""Typed contracts exchanged between pipeline stages."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class StepType(str, Enum):
    TRANSCRIPTION = "transcription"
    EXTRACTION = "extraction"
    RENDERING = "rendering"
    DELIVERY = "delivery"


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class WorkflowRun(BaseModel):
    """Grouping key for the steps of one pipeline execution."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    initiator_id: str
    scope_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AudioPayload(BaseModel):
    """Raw recording handed to the transcription stage.

    The bytes live only for the duration of the step; only ``summary()`` is
    persisted.
    """

    data: bytes
    content_type: str = "audio/webm"
    filename: str = "recording.webm"

    def summary(self) -> Dict[str, Any]:
        return {
            "file_name": self.filename,
            "file_size": len(self.data),
            "mime_type": self.content_type,
        }


class ActionItem(BaseModel):
    """A task extracted from a meeting transcript."""

    description: str
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    priority: Literal["low", "medium", "high"] = "medium"


class ExtractionContext(BaseModel):
    meeting_type: str = "DAILY_STANDUP"
    attendees: List[str] = Field(default_factory=list)
    scope_id: Optional[str] = None
    initiator_id: Optional[str] = None
    meeting_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())


class ExtractionResult(BaseModel):
    meeting_id: str
    action_items: List[ActionItem] = Field(default_factory=list)


class RenderedEmail(BaseModel):
    html: str
    text: str
    action_items_count: int = 0


# ----------------------------------------------------------------------
# Stage outputs


class TranscriptionOutput(BaseModel):
    kind: Literal["transcription"] = "transcription"
    transcript: str


class ExtractionOutput(BaseModel):
    kind: Literal["extraction"] = "extraction"
    meeting_id: str
    action_items: List[ActionItem] = Field(default_factory=list)


class RenderingOutput(BaseModel):
    kind: Literal["rendering"] = "rendering"
    meeting_id: str
    subject: str
    html: str
    text: str
    action_items_count: int = 0


class DeliveryOutput(BaseModel):
    kind: Literal["delivery"] = "delivery"
    meeting_id: str
    recipients: List[str]
    message_ids: List[str]
    failed_recipients: List[str] = Field(default_factory=list)

    @property
    def message_id(self) -> Optional[str]:
        return self.message_ids[0] if self.message_ids else None


StageOutput = Annotated[
    Union[TranscriptionOutput, ExtractionOutput, RenderingOutput, DeliveryOutput],
    Field(discriminator="kind"),
]


class StepResult(BaseModel):
    """Uniform result returned by every stage."""

    step_id: Optional[str] = None
    success: bool
    output_data: Optional[StageOutput] = None
    error_message: Optional[str] = None
    processing_time_ms: int = 0


class WorkflowOutcome(BaseModel):
    """Aggregate of every stage attempted in one run."""

    workflow_id: str
    status: Literal["succeeded", "aborted"]
    transcription: Optional[StepResult] = None
    extraction: Optional[StepResult] = None
    rendering: Optional[StepResult] = None
    delivery: Optional[StepResult] = None
    failed_stage: Optional[StepType] = None

    @property
    def results(self) -> List[StepResult]:
        stages = (self.transcription, self.extraction, self.rendering, self.delivery)
        return [r for r in stages if r is not None]

    @property
    def error_message(self) -> Optional[str]:
        if self.failed_stage is None:
            return None
        failed = self.results[-1]
        return f"{self.failed_stage.value} failed: {failed.error_message}"


# ----------------------------------------------------------------------
# Bulk dispatch


class DispatchSuccess(BaseModel):
    target: str
    artifact_id: str


class DispatchFailure(BaseModel):
    target: str
    error: str


class BulkDispatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    succeeded: List[DispatchSuccess] = Field(default_factory=list)
    failed: List[DispatchFailure] = Field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and not self.succeeded
