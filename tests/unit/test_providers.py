"""Provider adapter tests using httpx.MockTransport and a stub agent."""

import json
from datetime import date

import httpx
import pytest

from labflow.config import OpenAIConfig, ResendConfig
from labflow.contracts import ActionItem, ExtractionContext, RenderedEmail
from labflow.errors import MeetingNotFoundError, ProviderError
from labflow.providers import (
    AgentExtractionProvider,
    HtmlSummaryRenderer,
    MeetingRecord,
    OpenAITranscriptionProvider,
    ResendDeliveryProvider,
)

from conftest import REPORT_MEETING, DummyAgent

EMAIL = RenderedEmail(html="<p>hi</p>", text="hi", action_items_count=0)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_whisper_posts_multipart_and_returns_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.content
        return httpx.Response(200, text="  Alice will finish the report.\n")

    async with _client(handler) as client:
        provider = OpenAITranscriptionProvider(OpenAIConfig(api_key="sk-test"), client=client)
        transcript = await provider.transcribe(b"webm-bytes", "audio/webm", "standup.webm")

    assert transcript == "Alice will finish the report."
    assert seen["url"] == "https://api.openai.com/v1/audio/transcriptions"
    assert seen["auth"] == "Bearer sk-test"
    assert b"whisper-1" in seen["body"]
    assert b"standup.webm" in seen["body"]


@pytest.mark.asyncio
async def test_whisper_error_carries_status_code():
    def handler(request):
        return httpx.Response(503, text="overloaded")

    async with _client(handler) as client:
        provider = OpenAITranscriptionProvider(OpenAIConfig(api_key="sk-test"), client=client)
        with pytest.raises(ProviderError) as excinfo:
            await provider.transcribe(b"webm-bytes", "audio/webm")

    assert excinfo.value.status_code == 503
    assert "overloaded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_whisper_requires_key_and_audio():
    provider = OpenAITranscriptionProvider(OpenAIConfig())
    with pytest.raises(ProviderError) as excinfo:
        await provider.transcribe(b"webm-bytes", "audio/webm")
    assert excinfo.value.status_code == 401

    provider = OpenAITranscriptionProvider(OpenAIConfig(api_key="sk-test"))
    with pytest.raises(ProviderError) as excinfo:
        await provider.transcribe(b"", "audio/webm")
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_resend_sends_payload_and_returns_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "re_123"})

    async with _client(handler) as client:
        provider = ResendDeliveryProvider(ResendConfig(api_key="re_test"), client=client)
        message_id = await provider.send(
            EMAIL, ["pi@lab.edu"], "Lab Meeting Summary", tags={"meeting_id": "m-1"}
        )

    assert message_id == "re_123"
    assert seen["url"] == "https://api.resend.com/emails"
    payload = seen["payload"]
    assert payload["to"] == ["pi@lab.edu"]
    assert payload["subject"] == "Lab Meeting Summary"
    assert payload["html"] == "<p>hi</p>"
    assert payload["tags"] == [{"name": "meeting_id", "value": "m-1"}]


@pytest.mark.asyncio
async def test_resend_error_uses_api_message():
    def handler(request):
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    async with _client(handler) as client:
        provider = ResendDeliveryProvider(ResendConfig(api_key="re_test"), client=client)
        with pytest.raises(ProviderError) as excinfo:
            await provider.send(EMAIL, ["not-an-email"], "Summary")

    assert excinfo.value.status_code == 422
    assert str(excinfo.value) == "resend: Invalid `to` field"


@pytest.mark.asyncio
async def test_resend_rejects_missing_key_and_recipients():
    with pytest.raises(ProviderError, match="RESEND_API_KEY"):
        await ResendDeliveryProvider(ResendConfig()).send(EMAIL, ["pi@lab.edu"], "Summary")
    with pytest.raises(ProviderError, match="no recipients"):
        await ResendDeliveryProvider(ResendConfig(api_key="re_test")).send(EMAIL, [], "Summary")


@pytest.mark.asyncio
async def test_extraction_stores_meeting(meeting_store):
    agent = DummyAgent(REPORT_MEETING)
    provider = AgentExtractionProvider(meeting_store, agent=agent)
    context = ExtractionContext(
        meeting_type="DAILY_STANDUP",
        attendees=["Alice"],
        scope_id="lab-1",
        initiator_id="user-1",
        meeting_date=date(2026, 10, 19),
    )

    result = await provider.extract("Alice will finish the report by Friday", context)

    assert [i.description for i in result.action_items] == ["Finish the report"]
    meeting = await meeting_store.get(result.meeting_id)
    assert meeting.scope_id == "lab-1"
    assert meeting.created_by == "user-1"
    assert meeting.notes == REPORT_MEETING.notes
    assert agent.prompts[0].startswith("Today is 2026-10-19.")


@pytest.mark.asyncio
async def test_extraction_accepts_dict_output(meeting_store):
    agent = DummyAgent({"notes": "short", "action_items": [{"description": "Order reagents"}]})
    provider = AgentExtractionProvider(meeting_store, agent=agent)

    result = await provider.extract("We need reagents", ExtractionContext())

    assert result.action_items[0].priority == "medium"


@pytest.mark.asyncio
async def test_extraction_rejects_malformed_and_empty_input(meeting_store):
    provider = AgentExtractionProvider(meeting_store, agent=DummyAgent("not structured"))
    with pytest.raises(ProviderError, match="malformed"):
        await provider.extract("some transcript", ExtractionContext())

    with pytest.raises(ProviderError) as excinfo:
        await provider.extract("   ", ExtractionContext())
    assert excinfo.value.status_code == 422


@pytest.mark.asyncio
async def test_renderer_escapes_meeting_content(meeting_store):
    meeting = MeetingRecord(
        meeting_date=date(2026, 10, 19),
        transcript="...",
        notes="Use <b> tags & friends",
        attendees=["Alice"],
        action_items=[ActionItem(description="Fix <script> bug", assignee="Bob", priority="low")],
    )
    await meeting_store.save(meeting)

    rendered = await HtmlSummaryRenderer(meeting_store).render(meeting.id, "RICCC Lab")

    assert rendered.action_items_count == 1
    assert "RICCC Lab Meeting Summary" in rendered.html
    assert "Fix &lt;script&gt; bug" in rendered.html
    assert "<script>" not in rendered.html
    assert "Use &lt;b&gt; tags &amp; friends" in rendered.html
    assert "- [low] Fix <script> bug (Bob)" in rendered.text


@pytest.mark.asyncio
async def test_renderer_missing_meeting(meeting_store):
    with pytest.raises(MeetingNotFoundError):
        await HtmlSummaryRenderer(meeting_store).render("missing", "Lab")
