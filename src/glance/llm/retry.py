"""
Retry logic with exponential backoff for generation calls.

Features:
- Transient/fatal classification of backend and transport errors
- Exponential backoff with jitter
- Per-attempt deadline
- Progress reporting integration
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from glance.config import defaults
from glance.errors import (
    BackendError,
    FatalBackendError,
    RetryExhaustedError,
    TransientBackendError,
)
from glance.progress import ProgressEvent, ProgressReporter, Status

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior. Delays are in seconds."""
    max_retries: int = defaults.RETRY_MAX_RETRIES
    base_delay: float = defaults.RETRY_BASE_DELAY
    max_delay: float = defaults.RETRY_MAX_DELAY
    backoff_multiplier: float = defaults.RETRY_BACKOFF_MULTIPLIER
    jitter: float = defaults.RETRY_JITTER_FACTOR
    attempt_timeout: Optional[float] = None

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class RetryStats:
    """Statistics for retry attempts."""
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_delay: float = 0.0
    last_error: Optional[Exception] = None


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay before retry number `attempt` (0-based).

    Formula: min(base * (multiplier ^ attempt), max_delay) +/- jitter
    """
    delay = config.base_delay * (config.backoff_multiplier ** attempt)
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: Optional[str] = None,
    retryable_status_codes: tuple = defaults.RETRYABLE_STATUS_CODES,
) -> BackendError:
    """Map an HTTP status to a transient or fatal backend error."""
    if status_code in retryable_status_codes or status_code >= 500:
        return TransientBackendError(message, provider=provider, status_code=status_code)
    return FatalBackendError(message, provider=provider, status_code=status_code)


def classify_error(error: BaseException) -> BackendError:
    """
    Turn any exception from a generation call into a backend error.

    Already-classified errors are returned unchanged. Timeouts and connection
    failures are transient. Anything unrecognized is fatal so it is never
    retried blindly.
    """
    if isinstance(error, (TransientBackendError, FatalBackendError)):
        return error
    if isinstance(error, BackendError):
        if error.status_code is not None:
            return error_for_status(error.status_code, str(error), provider=error.provider)
        return FatalBackendError(str(error), provider=error.provider)
    if isinstance(error, httpx.HTTPStatusError):
        return error_for_status(error.response.status_code, str(error))
    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return TransientBackendError(f"{type(error).__name__}: {error}")
    return FatalBackendError(f"unexpected {type(error).__name__}: {error}")


def is_retryable(error: BaseException) -> bool:
    """Check if error is retryable."""
    return isinstance(classify_error(error), TransientBackendError)


class RetryContext:
    """Context for retry operations."""

    def __init__(
        self,
        task_id: str,
        config: RetryConfig,
        reporter: Optional[ProgressReporter] = None,
        stats: Optional[RetryStats] = None,
    ):
        self.task_id = task_id
        self.config = config
        self.reporter = reporter
        self.stats = stats if stats is not None else RetryStats()

    @property
    def can_retry(self) -> bool:
        return self.stats.attempts < self.config.max_attempts

    @property
    def attempt(self) -> int:
        return self.stats.attempts

    async def emit(self, status: Status, message: str, **details: Any) -> None:
        if self.reporter:
            await self.reporter.emit_async(
                ProgressEvent(status=status, message=message, task_id=self.task_id, details=details)
            )

    async def wait_before_retry(self) -> float:
        """Wait with backoff and emit a progress event."""
        delay = calculate_backoff(self.stats.attempts - 1, self.config)
        self.stats.total_delay += delay
        logger.debug(
            "%s: attempt %d/%d failed (%s), retrying in %.2fs",
            self.task_id,
            self.stats.attempts,
            self.config.max_attempts,
            self.stats.last_error,
            delay,
        )
        await self.emit(
            Status.RETRY,
            f"Retry attempt {self.stats.attempts + 1}/{self.config.max_attempts}",
            retry_count=self.stats.attempts,
            max_attempts=self.config.max_attempts,
            backoff_seconds=round(delay, 3),
            error_type=type(self.stats.last_error).__name__,
        )
        if delay > 0:
            await asyncio.sleep(delay)
        return delay


async def _call_once(func: Callable, args: tuple, kwargs: dict, timeout: Optional[float]) -> Any:
    if timeout is None:
        return await func(*args, **kwargs)
    async with asyncio.timeout(timeout):
        return await func(*args, **kwargs)


async def with_retry_async(
    func: Callable,
    *args,
    task_id: str = "unknown",
    config: Optional[RetryConfig] = None,
    reporter: Optional[ProgressReporter] = None,
    stats: Optional[RetryStats] = None,
    before_attempt: Optional[Callable[[], Awaitable[Any]]] = None,
    **kwargs,
) -> Any:
    """
    Execute an async function with retry logic.

    Each attempt runs under `config.attempt_timeout`; a timeout counts as a
    transient failure. `before_attempt` is awaited ahead of every attempt,
    outside that deadline. Cancellation is never retried.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        task_id: Identifier for progress reporting and logs
        config: Retry configuration
        reporter: Progress reporter
        stats: Optional stats object to update in place
        before_attempt: Optional coroutine function awaited before each attempt
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        FatalBackendError: On the first non-retryable failure.
        RetryExhaustedError: When every attempt failed transiently.
    """
    config = config or RetryConfig()
    ctx = RetryContext(task_id, config, reporter, stats)

    while True:
        if before_attempt is not None:
            await before_attempt()
        ctx.stats.attempts += 1
        try:
            result = await _call_once(func, args, kwargs, config.attempt_timeout)
        except Exception as e:
            error = classify_error(e)
            ctx.stats.last_error = error

            if isinstance(error, FatalBackendError):
                ctx.stats.failures += 1
                if error is e:
                    raise
                raise error from e

            if not ctx.can_retry:
                ctx.stats.failures += 1
                await ctx.emit(
                    Status.FAILURE,
                    f"Failed after {ctx.stats.attempts} attempts",
                    retry_count=ctx.stats.attempts,
                    error_type=type(error).__name__,
                    total_delay=round(ctx.stats.total_delay, 3),
                )
                raise RetryExhaustedError(ctx.stats.attempts, error) from e

            await ctx.wait_before_retry()
            continue

        ctx.stats.successes += 1
        if ctx.stats.attempts > 1:
            logger.debug("%s: succeeded after %d attempts", task_id, ctx.stats.attempts)
        return result
