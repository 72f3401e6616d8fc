"""Email delivery through the Resend HTTP API."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

import httpx

from ..config import ResendConfig
from ..contracts import RenderedEmail
from ..errors import ProviderError

logger = logging.getLogger(__name__)


class ResendDeliveryProvider:
    name = "resend"

    def __init__(self, config: ResendConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = client

    async def send(
        self,
        content: RenderedEmail,
        recipients: Sequence[str],
        subject: str,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        if not self._config.api_key:
            raise ProviderError(self.name, "RESEND_API_KEY is not configured", status_code=401)
        if not recipients:
            raise ProviderError(self.name, "no recipients given", status_code=422)

        payload = {
            "from": self._config.sender,
            "to": list(recipients),
            "subject": subject,
            "html": content.html,
            "text": content.text,
        }
        if tags:
            payload["tags"] = [{"name": k, "value": v} for k, v in tags.items()]

        url = f"{self._config.base_url.rstrip('/')}/emails"
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)

        if response.is_error:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise ProviderError(self.name, message, status_code=response.status_code)

        message_id = response.json().get("id")
        if not message_id:
            raise ProviderError(self.name, "response did not include a message id")
        logger.info(f"Sent '{subject}' to {len(recipients)} recipients as {message_id}")
        return message_id
