"""
OpenRouter backend.

Uses the OpenAI-compatible chat completions endpoint. OpenRouter has no token
counting endpoint, so `count_tokens` returns a character-based estimate.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import httpx

from glance.config import defaults
from glance.errors import FatalBackendError
from glance.llm.base import ChunkStream
from glance.llm.http import HTTPBackend
from glance.llm.retry import error_for_status
from glance.llm.tokens import estimate_tokens

logger = logging.getLogger(__name__)


def extract_content(content: Any) -> str:
    """Message content is either a string or a list of typed parts."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type", "text") == "text"
        )
    return ""


class OpenRouterClient(HTTPBackend):
    """OpenRouter chat completions client."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = defaults.OPENROUTER_DEFAULT_MODEL,
        *,
        base_url: str = defaults.OPENROUTER_BASE_URL,
        timeout: float = defaults.REQUEST_TIMEOUT_SECONDS,
        temperature: float = defaults.GENERATION_TEMPERATURE,
        top_p: float = defaults.GENERATION_TOP_P,
        max_tokens: int = defaults.GENERATION_MAX_OUTPUT_TOKENS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, prompt: str, stream: bool = False) -> dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _raise_body_error(self, data: dict[str, Any]) -> None:
        # OpenRouter can report errors with a 200 status
        error = data.get("error")
        if not error:
            return
        if isinstance(error, dict):
            message = f"openrouter error: {error.get('message', error)}"
            code = error.get("code")
            if isinstance(code, int):
                raise error_for_status(code, message, provider=self.name)
            raise FatalBackendError(message, provider=self.name)
        raise FatalBackendError(f"openrouter error: {error}", provider=self.name)

    async def generate(self, prompt: str) -> str:
        data = await self.post_json("/chat/completions", self._payload(prompt))
        self._raise_body_error(data)
        choices = data.get("choices") or []
        if not choices:
            raise FatalBackendError("openrouter returned no choices", provider=self.name)
        text = extract_content((choices[0].get("message") or {}).get("content"))
        if not text:
            raise FatalBackendError("empty response from openrouter", provider=self.name)
        return text

    async def _stream_source(self, prompt: str) -> AsyncIterator[str]:
        async for event in self.stream_events("/chat/completions", self._payload(prompt, stream=True)):
            self._raise_body_error(event)
            for choice in event.get("choices") or []:
                text = extract_content((choice.get("delta") or {}).get("content"))
                if text:
                    yield text

    async def generate_stream(self, prompt: str) -> ChunkStream:
        self._ensure_open()
        return ChunkStream(self._stream_source(prompt))

    async def count_tokens(self, prompt: str) -> int:
        return estimate_tokens(prompt)
