"""Sliding window rate limiter for request- and token-based limiting.

Tracks requests and estimated tokens over a rolling window and makes callers
wait until both fit. A limit of zero disables that dimension.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from glance.config import defaults

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limits."""

    requests_per_minute: int = defaults.RATELIMIT_REQUESTS_PER_MINUTE
    tokens_per_minute: int = defaults.RATELIMIT_TOKENS_PER_MINUTE
    window_seconds: float = defaults.RATELIMIT_WINDOW_SECONDS


@dataclass
class TokenUsage:
    """Token usage record."""

    timestamp: float
    tokens: int


class SlidingWindowRateLimiter:
    """Sliding window rate limiter for both RPM and TPM."""

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._request_times: deque[float] = deque()
        self._token_usage: deque[TokenUsage] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        window_start = now - self.config.window_seconds
        while self._request_times and self._request_times[0] <= window_start:
            self._request_times.popleft()
        while self._token_usage and self._token_usage[0].timestamp <= window_start:
            self._token_usage.popleft()

    def _wait_time(self, now: float, tokens: int) -> float:
        window = self.config.window_seconds
        rpm = self.config.requests_per_minute
        if rpm > 0 and len(self._request_times) >= rpm:
            return self._request_times[0] + window - now

        tpm = self.config.tokens_per_minute
        # An oversized request is admitted once the window is empty
        if tpm > 0 and tokens > 0 and self._token_usage:
            current = sum(u.tokens for u in self._token_usage)
            if current + tokens > tpm:
                return self._token_usage[0].timestamp + window - now
        return 0.0

    async def acquire(self, tokens: int = 0) -> float:
        """
        Wait until a request of `tokens` estimated tokens may proceed.

        Returns:
            Seconds spent waiting.
        """
        waited = 0.0
        while True:
            async with self._lock:
                now = self._clock()
                self._evict(now)
                wait_time = self._wait_time(now, tokens)
                if wait_time <= 0:
                    self._request_times.append(now)
                    if tokens > 0:
                        self._token_usage.append(TokenUsage(timestamp=now, tokens=tokens))
                    return waited

            logger.debug("Rate limited, waiting %.2fs", wait_time)
            await self._sleep(wait_time)
            waited += wait_time

    def get_status(self) -> dict:
        """Get current rate limit status."""
        now = self._clock()
        window_start = now - self.config.window_seconds
        current_requests = sum(1 for t in self._request_times if t > window_start)
        current_tokens = sum(u.tokens for u in self._token_usage if u.timestamp > window_start)
        return {
            "requests_this_window": current_requests,
            "requests_limit": self.config.requests_per_minute,
            "tokens_this_window": current_tokens,
            "tokens_limit": self.config.tokens_per_minute,
        }

    def reset(self) -> None:
        self._request_times.clear()
        self._token_usage.clear()
