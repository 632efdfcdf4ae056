"""Tests for llm/fallback.py and llm/resilient.py."""

import pytest
from conftest import FakeClient

from glance.errors import FatalBackendError, TransientBackendError
from glance.llm.base import ChunkStream, collect_stream
from glance.llm.fallback import FallbackClient, FallbackTier
from glance.llm.resilient import ResilientClient


def failing(error):
    def responder(prompt):
        raise error

    return responder


class BrokenStreamClient(FakeClient):
    """Emits some text, then fails mid-stream."""

    def __init__(self, emitted, error):
        super().__init__()
        self.emitted = emitted
        self.error = error

    async def generate_stream(self, prompt):
        async def source():
            for text in self.emitted:
                yield text
            raise self.error

        return ChunkStream(source())


class TestFallbackClient:
    """Tests for FallbackClient."""

    @pytest.mark.asyncio
    async def test_first_tier_wins(self):
        primary = FakeClient(lambda p: "primary")
        secondary = FakeClient(lambda p: "secondary")
        client = FallbackClient([FallbackTier("a", primary), FallbackTier("b", secondary)])

        assert await client.generate("p") == "primary"
        assert secondary.prompts == []

    @pytest.mark.asyncio
    async def test_fails_over_on_backend_error(self):
        primary = FakeClient(failing(FatalBackendError("bad key", status_code=401)))
        secondary = FakeClient(lambda p: "secondary")
        client = FallbackClient([FallbackTier("a", primary), FallbackTier("b", secondary)])

        assert await client.generate("p") == "secondary"
        assert len(primary.prompts) == 1

    @pytest.mark.asyncio
    async def test_last_error_is_reraised_unchanged(self):
        last = TransientBackendError("down")
        client = FallbackClient(
            [
                FallbackTier("a", FakeClient(failing(FatalBackendError("x")))),
                FallbackTier("b", FakeClient(failing(last))),
            ]
        )

        with pytest.raises(TransientBackendError) as exc_info:
            await client.generate("p")

        assert exc_info.value is last

    @pytest.mark.asyncio
    async def test_non_backend_errors_do_not_fail_over(self):
        secondary = FakeClient(lambda p: "secondary")
        client = FallbackClient(
            [
                FallbackTier("a", FakeClient(failing(KeyError("bug")))),
                FallbackTier("b", secondary),
            ]
        )

        with pytest.raises(KeyError):
            await client.generate("p")
        assert secondary.prompts == []

    @pytest.mark.asyncio
    async def test_stream_fails_over_before_first_fragment(self):
        primary = BrokenStreamClient([], TransientBackendError("down"))
        secondary = FakeClient(lambda p: "from secondary")
        client = FallbackClient([FallbackTier("a", primary), FallbackTier("b", secondary)])

        assert await collect_stream(await client.generate_stream("p")) == "from secondary"

    @pytest.mark.asyncio
    async def test_stream_does_not_fail_over_after_output(self):
        primary = BrokenStreamClient(["half "], TransientBackendError("cut"))
        secondary = FakeClient(lambda p: "from secondary")
        client = FallbackClient([FallbackTier("a", primary), FallbackTier("b", secondary)])

        with pytest.raises(TransientBackendError, match="cut"):
            await collect_stream(await client.generate_stream("p"))
        assert secondary.prompts == []

    @pytest.mark.asyncio
    async def test_close_closes_every_tier(self):
        tiers = [FallbackTier("a", FakeClient()), FallbackTier("b", FakeClient())]
        client = FallbackClient(tiers)

        await client.close()
        await client.close()

        assert all(t.client.closed for t in tiers)

    def test_requires_a_tier(self):
        with pytest.raises(ValueError):
            FallbackClient([])


class TestResilientClient:
    """Tests for ResilientClient."""

    @pytest.mark.asyncio
    async def test_passes_through_results(self, fake_client):
        client = ResilientClient(fake_client)

        assert await client.generate("p") == "summary"
        assert await client.count_tokens("x" * 40) == 10
        assert client.name == "fake"
        assert client.inner is fake_client

    @pytest.mark.asyncio
    async def test_unknown_errors_become_fatal(self):
        client = ResilientClient(FakeClient(failing(RuntimeError("bug"))))

        with pytest.raises(FatalBackendError) as exc_info:
            await client.generate("p")

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_timeouts_become_transient(self):
        client = ResilientClient(FakeClient(failing(TimeoutError())))

        with pytest.raises(TransientBackendError):
            await client.generate("p")

    @pytest.mark.asyncio
    async def test_stream_errors_are_classified(self):
        client = ResilientClient(BrokenStreamClient(["a"], ConnectionResetError("reset")))

        with pytest.raises(TransientBackendError):
            await collect_stream(await client.generate_stream("p"))

    @pytest.mark.asyncio
    async def test_stream_relays_text(self):
        client = ResilientClient(FakeClient(lambda p: "streamed text"))

        assert await collect_stream(await client.generate_stream("p")) == "streamed text"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_client):
        client = ResilientClient(fake_client)

        await client.close()
        await client.close()

        assert fake_client.closed
