"""Tests for llm/retry.py module."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from glance.errors import (
    BackendError,
    FatalBackendError,
    RetryExhaustedError,
    TokenLimitExceededError,
    TransientBackendError,
)
from glance.llm.retry import (
    RetryConfig,
    RetryStats,
    calculate_backoff,
    classify_error,
    error_for_status,
    is_retryable,
    with_retry_async,
)
from glance.progress import ProgressReporter, Status


def fast_config(**kwargs):
    values = dict(max_retries=3, base_delay=0.0, max_delay=0.0, jitter=0.0)
    values.update(kwargs)
    return RetryConfig(**values)


class TestRetryConfig:
    """Tests for RetryConfig class."""

    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 3
        assert config.max_attempts == 4
        assert config.base_delay == 0.5
        assert config.max_delay == 8.0
        assert config.jitter == 0.2
        assert config.attempt_timeout is None


class TestCalculateBackoff:
    """Tests for calculate_backoff function."""

    def test_exponential_growth_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=100.0, jitter=0.0)

        assert [calculate_backoff(i, config) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=0.0)

        assert calculate_backoff(10, config) == 5.0

    def test_jitter_stays_in_range(self):
        config = RetryConfig(base_delay=1.0, max_delay=100.0, jitter=0.2)

        for _ in range(50):
            assert 0.8 <= calculate_backoff(0, config) <= 1.2


class TestClassifyError:
    """Tests for error classification."""

    def test_classified_errors_pass_through(self):
        transient = TransientBackendError("t")
        fatal = TokenLimitExceededError(10, 5)

        assert classify_error(transient) is transient
        assert classify_error(fatal) is fatal

    @pytest.mark.parametrize("status", [408, 429, 500, 503])
    def test_transient_statuses(self, status):
        assert isinstance(error_for_status(status, "x"), TransientBackendError)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_fatal_statuses(self, status):
        assert isinstance(error_for_status(status, "x"), FatalBackendError)

    def test_plain_backend_error_uses_status(self):
        error = classify_error(BackendError("x", provider="p", status_code=502))

        assert isinstance(error, TransientBackendError)
        assert error.provider == "p"

    def test_transport_errors_are_transient(self):
        assert isinstance(classify_error(httpx.ConnectError("refused")), TransientBackendError)
        assert isinstance(classify_error(httpx.ReadTimeout("slow")), TransientBackendError)
        assert isinstance(classify_error(TimeoutError()), TransientBackendError)
        assert isinstance(classify_error(ConnectionResetError()), TransientBackendError)

    def test_http_status_error(self):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("too many", request=request, response=response)

        classified = classify_error(error)

        assert isinstance(classified, TransientBackendError)
        assert classified.status_code == 429

    def test_unknown_errors_are_fatal(self):
        assert isinstance(classify_error(KeyError("x")), FatalBackendError)
        assert not is_retryable(ValueError("bad"))
        assert is_retryable(TimeoutError())


class TestWithRetryAsync:
    """Tests for with_retry_async."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        func = AsyncMock(return_value="ok")
        stats = RetryStats()

        result = await with_retry_async(func, "p", config=fast_config(), stats=stats)

        assert result == "ok"
        func.assert_awaited_once_with("p")
        assert stats.attempts == 1

    @pytest.mark.asyncio
    async def test_n_transient_failures_then_success_takes_n_plus_one_attempts(self):
        func = AsyncMock(side_effect=[TransientBackendError("1"), TransientBackendError("2"), "ok"])
        stats = RetryStats()

        result = await with_retry_async(func, config=fast_config(max_retries=3), stats=stats)

        assert result == "ok"
        assert func.await_count == 3
        assert stats.attempts == 3

    @pytest.mark.asyncio
    async def test_exhaustion_is_a_distinct_error(self):
        last = TransientBackendError("still down")
        func = AsyncMock(side_effect=last)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry_async(func, config=fast_config(max_retries=2))

        assert func.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self):
        func = AsyncMock(side_effect=FatalBackendError("bad key", status_code=401))

        with pytest.raises(FatalBackendError):
            await with_retry_async(func, config=fast_config())

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_error_raised_as_fatal(self):
        func = AsyncMock(side_effect=RuntimeError("bug"))

        with pytest.raises(FatalBackendError) as exc_info:
            await with_retry_async(func, config=fast_config())

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_transient(self):
        calls = 0

        async def slow_then_fast():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return "done"

        result = await with_retry_async(slow_then_fast, config=fast_config(attempt_timeout=0.05))

        assert result == "done"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_before_attempt_runs_outside_the_deadline(self):
        waits = []

        async def slow_gate():
            waits.append(1)
            await asyncio.sleep(0.1)

        func = AsyncMock(side_effect=[TransientBackendError("x"), "ok"])

        result = await with_retry_async(
            func,
            config=fast_config(attempt_timeout=0.05),
            before_attempt=slow_gate,
        )

        assert result == "ok"
        assert len(waits) == 2
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        func = AsyncMock(side_effect=TransientBackendError("x"))

        with pytest.raises(RetryExhaustedError):
            await with_retry_async(func, config=fast_config(max_retries=0))

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_emits_retry_events(self):
        reporter = ProgressReporter()
        func = AsyncMock(side_effect=[TransientBackendError("x"), "ok"])

        await with_retry_async(func, task_id="/proj/sub", config=fast_config(), reporter=reporter)

        events = reporter.events_for("/proj/sub")
        assert [e.status for e in events] == [Status.RETRY]
        assert events[0].details["retry_count"] == 1

    @pytest.mark.asyncio
    async def test_waits_with_backoff(self):
        func = AsyncMock(side_effect=[TransientBackendError("x"), "ok"])
        config = RetryConfig(max_retries=1, base_delay=0.25, jitter=0.0)

        with patch("glance.llm.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await with_retry_async(func, config=config)

        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        started = asyncio.Event()
        calls = 0

        async def hang():
            nonlocal calls
            calls += 1
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(with_retry_async(hang, config=fast_config()))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == 1
