"""Contracts for the external collaborators invoked by each stage."""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from ..contracts import ExtractionContext, ExtractionResult, RenderedEmail


class TranscriptionProvider(Protocol):
    async def transcribe(self, audio: bytes, content_type: str, filename: str = "recording.webm") -> str:
        """Return the plain-text transcript of ``audio``."""


class ExtractionProvider(Protocol):
    async def extract(self, transcript: str, context: ExtractionContext) -> ExtractionResult:
        """Persist a meeting record for ``transcript`` and return its action items."""


class RenderingProvider(Protocol):
    async def render(self, meeting_id: str, lab_name: str) -> RenderedEmail:
        """Render the summary email for a stored meeting."""


class DeliveryProvider(Protocol):
    async def send(
        self,
        content: RenderedEmail,
        recipients: Sequence[str],
        subject: str,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """Send ``content`` and return the provider message id."""
