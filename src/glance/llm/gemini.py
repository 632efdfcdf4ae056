"""
Google Gemini backend.

Talks to the Generative Language REST API with httpx: `generateContent` for
blocking calls, `streamGenerateContent?alt=sse` for streaming and
`countTokens` for pre-flight token counts.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import httpx

from glance.config import defaults
from glance.errors import FatalBackendError
from glance.llm.base import ChunkStream
from glance.llm.http import HTTPBackend

logger = logging.getLogger(__name__)


def _candidate_text(data: dict[str, Any]) -> Optional[str]:
    """Join the text parts of the first candidate, or None if there are none."""
    candidates = data.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def _blocked_reason(data: dict[str, Any]) -> Optional[str]:
    feedback = data.get("promptFeedback") or {}
    return feedback.get("blockReason")


class GeminiClient(HTTPBackend):
    """Gemini REST client. Safe for concurrent use."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = defaults.GEMINI_DEFAULT_MODEL,
        *,
        base_url: str = defaults.GEMINI_BASE_URL,
        timeout: float = defaults.REQUEST_TIMEOUT_SECONDS,
        temperature: float = defaults.GENERATION_TEMPERATURE,
        top_p: float = defaults.GENERATION_TOP_P,
        max_output_tokens: int = defaults.GENERATION_MAX_OUTPUT_TOKENS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.temperature = temperature
        self.top_p = top_p
        self.max_output_tokens = max_output_tokens
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json", "x-goog-api-key": self.api_key}

    def _contents(self, prompt: str) -> list[dict[str, Any]]:
        return [{"role": "user", "parts": [{"text": prompt}]}]

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": self._contents(prompt),
            "generationConfig": {
                "temperature": self.temperature,
                "topP": self.top_p,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    def _endpoint(self, method: str) -> str:
        return f"/models/{self.model}:{method}"

    async def generate(self, prompt: str) -> str:
        data = await self.post_json(self._endpoint("generateContent"), self._payload(prompt))
        text = _candidate_text(data)
        if not text:
            reason = _blocked_reason(data)
            if reason:
                raise FatalBackendError(f"gemini blocked the prompt: {reason}", provider=self.name)
            raise FatalBackendError("empty response from gemini", provider=self.name)
        return text

    async def _stream_source(self, prompt: str) -> AsyncIterator[str]:
        async for event in self.stream_events(
            self._endpoint("streamGenerateContent"), self._payload(prompt), params={"alt": "sse"}
        ):
            if "error" in event:
                error = event["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                raise FatalBackendError(f"gemini stream error: {message}", provider=self.name)
            reason = _blocked_reason(event)
            if reason:
                raise FatalBackendError(f"gemini blocked the prompt: {reason}", provider=self.name)
            text = _candidate_text(event)
            if text:
                yield text

    async def generate_stream(self, prompt: str) -> ChunkStream:
        self._ensure_open()
        return ChunkStream(self._stream_source(prompt))

    async def count_tokens(self, prompt: str) -> int:
        data = await self.post_json(self._endpoint("countTokens"), {"contents": self._contents(prompt)})
        try:
            return int(data["totalTokens"])
        except (KeyError, TypeError, ValueError) as e:
            raise FatalBackendError(
                f"gemini countTokens returned no totalTokens: {data}", provider=self.name
            ) from e
