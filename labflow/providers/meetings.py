"""Meeting records produced by extraction and read by rendering."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from ..contracts import ActionItem


class MeetingRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    scope_id: Optional[str] = None
    created_by: Optional[str] = None
    meeting_type: str = "DAILY_STANDUP"
    meeting_date: date
    attendees: List[str] = Field(default_factory=list)
    transcript: str
    notes: str = ""
    action_items: List[ActionItem] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MeetingStore(Protocol):
    async def save(self, meeting: MeetingRecord) -> str:
        """Persist ``meeting`` and return its id."""

    async def get(self, meeting_id: str) -> MeetingRecord | None:
        """Return the meeting or ``None``."""


class InMemoryMeetingStore(MeetingStore):
    """Keep meeting records in local memory."""

    def __init__(self) -> None:
        self._meetings: Dict[str, MeetingRecord] = {}

    async def save(self, meeting: MeetingRecord) -> str:
        self._meetings[meeting.id] = meeting
        return meeting.id

    async def get(self, meeting_id: str) -> MeetingRecord | None:
        return self._meetings.get(meeting_id)
