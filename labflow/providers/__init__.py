"""Provider adapters for the four pipeline stages."""

from .base import DeliveryProvider, ExtractionProvider, RenderingProvider, TranscriptionProvider
from .extraction import AgentExtractionProvider, ExtractedMeeting
from .meetings import InMemoryMeetingStore, MeetingRecord, MeetingStore
from .rendering import HtmlSummaryRenderer
from .resend import ResendDeliveryProvider
from .whisper import OpenAITranscriptionProvider

__all__ = [
    "AgentExtractionProvider",
    "DeliveryProvider",
    "ExtractedMeeting",
    "ExtractionProvider",
    "HtmlSummaryRenderer",
    "InMemoryMeetingStore",
    "MeetingRecord",
    "MeetingStore",
    "OpenAITranscriptionProvider",
    "RenderingProvider",
    "ResendDeliveryProvider",
    "TranscriptionProvider",
]
