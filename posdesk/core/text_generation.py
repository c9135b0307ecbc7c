"""
Client for an OpenAI-compatible chat-completions endpoint.

An unset API key is a normal deployment (template messaging is used); it
only surfaces as ``TextGenerationError`` if someone calls ``generate``.
"""

from __future__ import annotations

import logging

import httpx

from posdesk.core.config import settings
from posdesk.core.exceptions import TextGenerationError

logger = logging.getLogger(__name__)


class TextGenerationClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "TextGenerationClient":
        return cls(api_key=settings.OPENAI_API_KEY)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate(
        self,
        prompt: str,
        system: str = "You are a helpful assistant.",
        max_tokens: int = 150,
        temperature: float = 0.7,
    ) -> str:
        if not self.is_configured:
            raise TextGenerationError("Text generation is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TextGenerationError(f"Text generation request failed: {exc}") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TextGenerationError("Malformed text generation response") from exc
        if not content or not content.strip():
            raise TextGenerationError("Empty text generation response")
        return content.strip()
