"""HTML and plain-text rendering of meeting summary emails."""

from __future__ import annotations

import html
import logging
from string import Template

from ..contracts import ActionItem, RenderedEmail
from ..errors import MeetingNotFoundError
from .meetings import MeetingRecord, MeetingStore

logger = logging.getLogger(__name__)

_PAGE = Template(
    """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>$title</title></head>
<body style="font-family: Arial, sans-serif; color: #1f2937; max-width: 640px; margin: 0 auto;">
<h1 style="font-size: 20px;">$title</h1>
<p style="color: #6b7280;">$meeting_type &middot; $meeting_date</p>
$attendees
<h2 style="font-size: 16px;">Summary</h2>
<p>$notes</p>
<h2 style="font-size: 16px;">Action items ($count)</h2>
$items
</body>
</html>
"""
)

_PRIORITY_COLORS = {"high": "#dc2626", "medium": "#d97706", "low": "#059669"}


def _render_item(item: ActionItem) -> str:
    details = []
    if item.assignee:
        details.append(f"Owner: {html.escape(item.assignee)}")
    if item.due_date:
        details.append(f"Due: {item.due_date.isoformat()}")
    color = _PRIORITY_COLORS[item.priority]
    meta = f"<br><small>{' &middot; '.join(details)}</small>" if details else ""
    return (
        f'<li><span style="color: {color}; font-weight: bold;">[{item.priority}]</span> '
        f"{html.escape(item.description)}{meta}</li>"
    )


def render_html(meeting: MeetingRecord, title: str) -> str:
    if meeting.action_items:
        items = "<ul>\n" + "\n".join(_render_item(i) for i in meeting.action_items) + "\n</ul>"
    else:
        items = "<p>No action items were recorded.</p>"
    attendees = (
        f"<p>Attendees: {html.escape(', '.join(meeting.attendees))}</p>" if meeting.attendees else ""
    )
    return _PAGE.substitute(
        title=html.escape(title),
        meeting_type=html.escape(meeting.meeting_type.replace("_", " ").title()),
        meeting_date=meeting.meeting_date.isoformat(),
        attendees=attendees,
        notes=html.escape(meeting.notes or "No summary available."),
        count=len(meeting.action_items),
        items=items,
    )


def render_text(meeting: MeetingRecord, title: str) -> str:
    lines = [title, "=" * len(title), "", f"Date: {meeting.meeting_date.isoformat()}"]
    if meeting.attendees:
        lines.append(f"Attendees: {', '.join(meeting.attendees)}")
    lines += ["", meeting.notes or "No summary available.", "", "Action items:"]
    if not meeting.action_items:
        lines.append("  (none)")
    for item in meeting.action_items:
        suffix = []
        if item.assignee:
            suffix.append(item.assignee)
        if item.due_date:
            suffix.append(f"due {item.due_date.isoformat()}")
        extra = f" ({', '.join(suffix)})" if suffix else ""
        lines.append(f"  - [{item.priority}] {item.description}{extra}")
    return "\n".join(lines) + "\n"


class HtmlSummaryRenderer:
    """Render the summary email for a stored meeting."""

    name = "rendering"

    def __init__(self, store: MeetingStore) -> None:
        self._store = store

    async def render(self, meeting_id: str, lab_name: str) -> RenderedEmail:
        meeting = await self._store.get(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        title = f"{lab_name} Meeting Summary"
        rendered = RenderedEmail(
            html=render_html(meeting, title),
            text=render_text(meeting, title),
            action_items_count=len(meeting.action_items),
        )
        logger.debug(f"Rendered summary for meeting {meeting_id} ({len(rendered.html)} bytes)")
        return rendered
