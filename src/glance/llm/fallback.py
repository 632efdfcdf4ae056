"""Ordered failover across several generation backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from glance.errors import BackendError
from glance.llm.base import ChunkStream, GenerationClient

logger = logging.getLogger(__name__)


@dataclass
class FallbackTier:
    name: str
    client: GenerationClient


class FallbackClient:
    """
    Try each tier in order until one succeeds.

    Any `BackendError` moves on to the next tier; the last tier's error is
    re-raised unchanged, so its transient or fatal class decides whether the
    caller retries. A stream fails over only if the failing tier has not
    produced any text yet.
    """

    name = "fallback"

    def __init__(self, tiers: Sequence[FallbackTier]):
        if not tiers:
            raise ValueError("FallbackClient needs at least one tier")
        self.tiers = list(tiers)
        self._closed = False

    def __repr__(self) -> str:
        return f"FallbackClient(tiers={[t.name for t in self.tiers]})"

    def _log_failover(self, index: int, error: BaseException) -> None:
        tier = self.tiers[index]
        if index < len(self.tiers) - 1:
            logger.warning(
                "Tier %s (%d/%d) failed, trying %s: %s",
                tier.name,
                index + 1,
                len(self.tiers),
                self.tiers[index + 1].name,
                error,
            )
        else:
            logger.debug("Last tier %s failed: %s", tier.name, error)

    async def generate(self, prompt: str) -> str:
        last_error: Optional[BackendError] = None
        for index, tier in enumerate(self.tiers):
            try:
                result = await tier.client.generate(prompt)
            except BackendError as e:
                last_error = e
                self._log_failover(index, e)
                continue
            if index > 0:
                logger.info("Generation succeeded on fallback tier %s", tier.name)
            return result
        raise last_error

    async def _stream_source(self, prompt: str) -> AsyncIterator[str]:
        last_error: Optional[BaseException] = None
        for index, tier in enumerate(self.tiers):
            try:
                stream = await tier.client.generate_stream(prompt)
            except BackendError as e:
                last_error = e
                self._log_failover(index, e)
                continue

            emitted = False
            async with stream:
                async for chunk in stream:
                    if chunk.error is not None:
                        if emitted or not isinstance(chunk.error, BackendError):
                            raise chunk.error
                        last_error = chunk.error
                        self._log_failover(index, chunk.error)
                        break
                    if chunk.text:
                        emitted = True
                        yield chunk.text
                else:
                    return
        raise last_error

    async def generate_stream(self, prompt: str) -> ChunkStream:
        return ChunkStream(self._stream_source(prompt))

    async def count_tokens(self, prompt: str) -> int:
        last_error: Optional[BackendError] = None
        for index, tier in enumerate(self.tiers):
            try:
                return await tier.client.count_tokens(prompt)
            except BackendError as e:
                last_error = e
                self._log_failover(index, e)
        raise last_error

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for tier in self.tiers:
            await tier.client.close()
