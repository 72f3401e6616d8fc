from datetime import date
from types import SimpleNamespace

import pytest

import labflow.persistence as persistence
from labflow.contracts import ActionItem, RenderedEmail
from labflow.coordinator import WorkflowCoordinator
from labflow.errors import ProviderError
from labflow.persistence import InMemoryStepRepository, SQLiteStepRepository
from labflow.providers import (
    AgentExtractionProvider,
    ExtractedMeeting,
    HtmlSummaryRenderer,
    InMemoryMeetingStore,
)
from labflow.recorder import StepRecorder
from labflow.utils.retry import RetryExecutor


async def no_sleep(delay: float) -> None:
    return None


class FakeTranscriber:
    """Returns ``transcript`` after failing ``fail_times`` times (None: always fail)."""

    def __init__(self, transcript: str, fail_times: int | None = 0):
        self.transcript = transcript
        self.fail_times = fail_times
        self.calls = 0

    async def transcribe(self, audio: bytes, content_type: str, filename: str = "recording.webm") -> str:
        self.calls += 1
        if self.fail_times is None or self.calls <= self.fail_times:
            raise ProviderError("openai", "upstream timeout", status_code=504)
        return self.transcript


class DummyAgent:
    def __init__(self, output=None, error: Exception | None = None):
        self.output = output
        self.error = error
        self.prompts: list[str] = []

    async def run(self, prompt: str, deps=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output=self.output)


class FailingRenderer:
    def __init__(self):
        self.calls = 0

    async def render(self, meeting_id: str, lab_name: str) -> RenderedEmail:
        self.calls += 1
        raise ProviderError("rendering", "template error")


class FakeDeliverer:
    def __init__(self, fail_for: set[str] | None = None, always_fail: bool = False):
        self.fail_for = fail_for or set()
        self.always_fail = always_fail
        self.sent: list[tuple[list[str], str]] = []

    async def send(self, content, recipients, subject, tags=None) -> str:
        if self.always_fail or self.fail_for.intersection(recipients):
            raise ProviderError("resend", "invalid recipient address", status_code=422)
        self.sent.append((list(recipients), subject))
        return f"msg-{len(self.sent)}"


COORDINATOR_OPTIONS = ("rate_limiter", "rate_limits", "dispatcher", "circuit_breakers")

REPORT_MEETING = ExtractedMeeting(
    notes="Alice is wrapping up the quarterly report.",
    action_items=[
        ActionItem(
            description="Finish the report",
            assignee="Alice",
            due_date=date(2026, 10, 23),
            priority="high",
        )
    ],
)


@pytest.fixture(autouse=True)
def _reset_repository_singleton(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.delenv("LABFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryStepRepository()
    return SQLiteStepRepository(tmp_path / "steps.db")


@pytest.fixture
def meeting_store():
    return InMemoryMeetingStore()


@pytest.fixture
def pipeline(meeting_store):
    """Coordinator wired to fakes, with handles on every collaborator."""

    repo = InMemoryStepRepository()
    parts = SimpleNamespace(
        repository=repo,
        store=meeting_store,
        transcriber=FakeTranscriber("Alice will finish the report by Friday"),
        agent=DummyAgent(REPORT_MEETING),
        renderer=HtmlSummaryRenderer(meeting_store),
        deliverer=FakeDeliverer(),
    )

    def build(**overrides):
        for key, value in overrides.items():
            setattr(parts, key, value)
        parts.coordinator = WorkflowCoordinator(
            transcriber=parts.transcriber,
            extractor=AgentExtractionProvider(meeting_store, agent=parts.agent),
            renderer=parts.renderer,
            deliverer=parts.deliverer,
            recorder=StepRecorder(repo),
            retry=RetryExecutor(max_attempts=3, base_delay_ms=10, sleep=no_sleep),
            **{k: v for k, v in overrides.items() if k in COORDINATOR_OPTIONS},
        )
        return parts

    return build
