"""Speech-to-text through the OpenAI audio transcription endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import OpenAIConfig
from ..errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAITranscriptionProvider:
    """Transcribe recordings with Whisper.

    A shared ``client`` may be supplied; otherwise one is opened per call.
    """

    name = "openai"

    def __init__(self, config: OpenAIConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = client

    async def transcribe(self, audio: bytes, content_type: str, filename: str = "recording.webm") -> str:
        if not self._config.api_key:
            raise ProviderError(self.name, "OPENAI_API_KEY is not configured", status_code=401)
        if not audio:
            raise ProviderError(self.name, "audio payload is empty", status_code=400)

        url = f"{self._config.base_url.rstrip('/')}/audio/transcriptions"
        request = dict(
            headers={"Authorization": f"Bearer {self._config.api_key}"},
            files={"file": (filename, audio, content_type)},
            data={
                "model": self._config.transcription_model,
                "language": self._config.language,
                "response_format": "text",
            },
        )
        if self._client is not None:
            response = await self._client.post(url, **request)
        else:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(url, **request)

        if response.is_error:
            raise ProviderError(
                self.name,
                f"transcription failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        transcript = response.text.strip()
        logger.debug(f"Transcribed {len(audio)} bytes into {len(transcript)} characters")
        return transcript
