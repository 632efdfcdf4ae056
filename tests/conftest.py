"""Pytest configuration for glance tests."""
import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

# Add src to path for the tests - conftest is in tests/, so parent.parent is project root
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

# Insert at the very beginning to override any other paths
sys.path.insert(0, str(src_path))

from glance.config import GlanceConfig  # noqa: E402
from glance.llm.base import ChunkStream  # noqa: E402


class FakeClient:
    """Scriptable in-memory GenerationClient.

    `responder(prompt)` returns the text for a prompt or raises. Every call
    is recorded as ("start"|"end", directory) so tests can check ordering.
    """

    name = "fake"

    def __init__(
        self,
        responder: Optional[Callable[[str], str]] = None,
        *,
        delay: float = 0.0,
        token_count: Optional[int] = None,
    ):
        self.responder = responder or (lambda prompt: "summary")
        self.delay = delay
        self.token_count = token_count
        self.prompts: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @staticmethod
    def directory_of(prompt: str) -> str:
        for line in prompt.splitlines():
            if line.startswith("directory: "):
                return line[len("directory: "):]
        return ""

    async def _respond(self, prompt: str) -> str:
        directory = self.directory_of(prompt)
        self.prompts.append(prompt)
        self.events.append(("start", directory))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.responder(prompt)
        finally:
            self.in_flight -= 1
            self.events.append(("end", directory))

    async def generate(self, prompt: str) -> str:
        return await self._respond(prompt)

    async def generate_stream(self, prompt: str) -> ChunkStream:
        async def source():
            text = await self._respond(prompt)
            for i in range(0, len(text), 4):
                yield text[i:i + 4]

        return ChunkStream(source())

    async def count_tokens(self, prompt: str) -> int:
        if self.token_count is not None:
            return self.token_count
        return len(prompt) // 4

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def make_config():
    """Build a config for a tmp tree with fast retries and no API key checks."""

    def _make(target_dir, **overrides) -> GlanceConfig:
        values = dict(
            target_dir=target_dir,
            summary_filename="SUMMARY",
            retry_base_delay=0.0,
            retry_max_delay=0.0,
            request_timeout=5.0,
        )
        values.update(overrides)
        return GlanceConfig(**values)

    return _make
