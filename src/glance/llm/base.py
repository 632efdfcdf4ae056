"""Generation client contract.

Every backend exposes the same four coroutines. The scheduler only depends on
this protocol; any implementation may be called concurrently from several
directories at once.

Streaming is modelled as a producer task feeding a bounded queue of
`StreamChunk`s. The consumer drains the stream until a chunk with
`done=True`, or closes it early with `aclose()`, which cancels the producer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Protocol, runtime_checkable

from glance.config import defaults

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamChunk:
    """One unit of a streamed response."""
    text: str = ""
    error: Optional[BaseException] = None
    done: bool = False


@runtime_checkable
class GenerationClient(Protocol):
    """Capability set every generation backend implements."""

    name: str

    async def generate(self, prompt: str) -> str:
        """Return the complete response for `prompt`."""
        ...

    async def generate_stream(self, prompt: str) -> "ChunkStream":
        """Start a streamed response and return immediately."""
        ...

    async def count_tokens(self, prompt: str) -> int:
        ...

    async def close(self) -> None:
        """Release resources. Idempotent."""
        ...


class ChunkStream:
    """
    Finite, non-restartable stream of `StreamChunk`s.

    A producer task iterates `source` and pushes fragments onto a bounded
    queue; an exception from the source becomes a final chunk carrying the
    error. The last chunk always has `done=True`.

    Must be created from inside a running event loop.

    Usage:
        async with await client.generate_stream(prompt) as stream:
            async for chunk in stream:
                ...
    """

    def __init__(self, source: AsyncIterator[str], *, maxsize: int = defaults.STREAM_BUFFER_SIZE):
        self._source = source
        self._queue: asyncio.Queue[StreamChunk] = asyncio.Queue(maxsize=maxsize)
        self._finished = False
        self._task = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for text in self._source:
                if text:
                    await self._queue.put(StreamChunk(text=text))
        except Exception as e:
            await self._queue.put(StreamChunk(error=e, done=True))
        else:
            await self._queue.put(StreamChunk(done=True))
        finally:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self._finished:
            raise StopAsyncIteration
        chunk = await self._queue.get()
        if chunk.done:
            self._finished = True
        return chunk

    async def __aenter__(self) -> "ChunkStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def producer_done(self) -> bool:
        return self._task.done()

    async def aclose(self) -> None:
        """Stop the producer. Safe to call more than once."""
        self._finished = True
        if not self._task.done():
            self._task.cancel()
        # wait() does not re-raise the producer's cancellation into the caller
        await asyncio.wait({self._task})


async def collect_stream(stream: ChunkStream, on_text: Optional[Callable[[str], None]] = None) -> str:
    """
    Drain a stream into a string.

    Raises:
        The error carried by the stream's final chunk, if any.
    """
    parts: list[str] = []
    async with stream:
        async for chunk in stream:
            if chunk.error is not None:
                raise chunk.error
            if chunk.text:
                parts.append(chunk.text)
                if on_text is not None:
                    on_text(chunk.text)
    return "".join(parts)
