"""Shared httpx plumbing for the REST backends."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from glance.config import defaults
from glance.errors import FatalBackendError, TransientBackendError
from glance.llm.retry import error_for_status

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of a provider's error message."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    return response.text[:500]


class HTTPBackend:
    """
    Base for backends that talk JSON over HTTP.

    Owns one `httpx.AsyncClient`, shared by every concurrent call. Transport
    failures become `TransientBackendError`; non-2xx responses are mapped by
    status code.
    """

    name = "http"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = defaults.REQUEST_TIMEOUT_SECONDS,
        connect_timeout: float = defaults.CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError(f"{self.name}: API key is required")
        self.api_key = api_key
        self.model = model
        self._closed = False
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=self._headers(),
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json"}

    def _ensure_open(self) -> None:
        if self._closed:
            raise FatalBackendError(f"{self.name} client is closed", provider=self.name)

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = f"{self.name} API error {response.status_code}: {_error_message(response)}"
        raise error_for_status(response.status_code, message, provider=self.name)

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        self._ensure_open()
        try:
            response = await self._client.post(path, json=payload, params=params)
        except httpx.TransportError as e:
            raise TransientBackendError(
                f"{self.name} request failed: {type(e).__name__}: {e}", provider=self.name
            ) from e
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError as e:
            raise FatalBackendError(
                f"{self.name} returned malformed JSON", provider=self.name
            ) from e

    async def stream_events(
        self,
        path: str,
        payload: dict[str, Any],
        params: Optional[dict[str, str]] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """POST and yield each server-sent `data:` event as parsed JSON."""
        self._ensure_open()
        try:
            async with self._client.stream("POST", path, json=payload, params=params) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        return
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise FatalBackendError(
                            f"{self.name} sent a malformed stream event: {data[:200]!r}",
                            provider=self.name,
                        ) from e
                    yield event
        except httpx.TransportError as e:
            raise TransientBackendError(
                f"{self.name} stream failed: {type(e).__name__}: {e}", provider=self.name
            ) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
        logger.debug("Closed %s client", self.name)
