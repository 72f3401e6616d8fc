"""Action-item extraction with a structured-output LLM agent."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from ..contracts import ActionItem, ExtractionContext, ExtractionResult
from ..errors import ProviderError
from .meetings import MeetingRecord, MeetingStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You track tasks and timelines for research lab members from meeting transcripts.

For every commitment made in the meeting capture:
- description: what is being done (analysis, dataset, experiment, deliverable)
- assignee: the person responsible, if named
- due_date: the deadline as an ISO date, if one is stated or implied
- priority: high for blockers and imminent deadlines, low for someday items,
  medium otherwise

Convert relative time references ("by Friday", "next Tuesday") to dates.
Summarize the meeting in a few sentences in `notes`. Do not invent tasks that
were not mentioned.
"""


class ExtractedMeeting(BaseModel):
    """Structured output requested from the model."""

    notes: str = ""
    action_items: List[ActionItem] = Field(default_factory=list)


def build_prompt(transcript: str, context: ExtractionContext) -> str:
    attendees = ", ".join(context.attendees) if context.attendees else "not recorded"
    return (
        f"Today is {context.meeting_date.isoformat()}.\n"
        f"Meeting type: {context.meeting_type}\n"
        f"Attendees: {attendees}\n\n"
        f"Process this meeting transcript:\n\n{transcript}"
    )


class AgentExtractionProvider:
    """Extract action items with a pydantic-ai agent and store the meeting.

    ``agent`` is any object with an async ``run(prompt)`` returning a result
    whose ``output`` is an :class:`ExtractedMeeting`; a default agent is built
    lazily from ``model`` when none is supplied.
    """

    name = "extraction"

    def __init__(
        self,
        store: MeetingStore,
        agent: Optional[Any] = None,
        model: str = "openai:gpt-4o-mini",
    ) -> None:
        self._store = store
        self._agent = agent
        self._model = model

    @property
    def agent(self) -> Any:
        if self._agent is None:
            self._agent = Agent(
                self._model,
                output_type=ExtractedMeeting,
                system_prompt=SYSTEM_PROMPT,
                model_settings={"temperature": 0.1},
            )
        return self._agent

    async def extract(self, transcript: str, context: ExtractionContext) -> ExtractionResult:
        if not transcript.strip():
            raise ProviderError(self.name, "transcript is empty", status_code=422)

        result = await self.agent.run(build_prompt(transcript, context))
        extracted = getattr(result, "output", None)
        if isinstance(extracted, dict):
            extracted = ExtractedMeeting.model_validate(extracted)
        if not isinstance(extracted, ExtractedMeeting):
            raise ProviderError(self.name, f"malformed extraction response: {type(extracted).__name__}")

        meeting = MeetingRecord(
            scope_id=context.scope_id,
            created_by=context.initiator_id,
            meeting_type=context.meeting_type,
            meeting_date=context.meeting_date,
            attendees=context.attendees,
            transcript=transcript,
            notes=extracted.notes,
            action_items=extracted.action_items,
        )
        meeting_id = await self._store.save(meeting)
        logger.info(f"Extracted {len(extracted.action_items)} action items into meeting {meeting_id}")
        return ExtractionResult(meeting_id=meeting_id, action_items=extracted.action_items)
