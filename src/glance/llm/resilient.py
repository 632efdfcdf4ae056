"""Generation client wrapper with error classification.

`ResilientClient` sits between the aggregator and a concrete backend and makes
sure every failure that leaves the client is a `TransientBackendError` or a
`FatalBackendError`. Rate limiting and retrying are left to the caller, so
neither eats into a per-attempt deadline.
"""

from __future__ import annotations

from typing import AsyncIterator

from glance.llm.base import ChunkStream, GenerationClient
from glance.llm.retry import classify_error


class ResilientClient:
    """Error-classifying view of another client."""

    def __init__(self, client: GenerationClient):
        self._client = client
        self._closed = False

    @property
    def name(self) -> str:
        return self._client.name

    @property
    def inner(self) -> GenerationClient:
        return self._client

    async def generate(self, prompt: str) -> str:
        try:
            return await self._client.generate(prompt)
        except Exception as e:
            error = classify_error(e)
            if error is e:
                raise
            raise error from e

    async def _relay(self, prompt: str) -> AsyncIterator[str]:
        try:
            stream = await self._client.generate_stream(prompt)
        except Exception as e:
            error = classify_error(e)
            if error is e:
                raise
            raise error from e
        async with stream:
            async for chunk in stream:
                if chunk.error is not None:
                    error = classify_error(chunk.error)
                    if error is chunk.error:
                        raise error
                    raise error from chunk.error
                if chunk.text:
                    yield chunk.text

    async def generate_stream(self, prompt: str) -> ChunkStream:
        return ChunkStream(self._relay(prompt))

    async def count_tokens(self, prompt: str) -> int:
        try:
            return await self._client.count_tokens(prompt)
        except Exception as e:
            error = classify_error(e)
            if error is e:
                raise
            raise error from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.close()
