"""Build the generation client for a run from its config."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from glance.config import GlanceConfig, defaults
from glance.errors import ConfigError
from glance.llm.base import GenerationClient
from glance.llm.fallback import FallbackClient, FallbackTier
from glance.llm.gemini import GeminiClient
from glance.llm.openrouter import OpenRouterClient
from glance.llm.ratelimit import RateLimitConfig, SlidingWindowRateLimiter
from glance.llm.resilient import ResilientClient

logger = logging.getLogger(__name__)


def _tiers(config: GlanceConfig, transport: Optional[httpx.AsyncBaseTransport]) -> list[FallbackTier]:
    tiers: list[FallbackTier] = []
    if config.provider in ("gemini", "auto") and config.gemini_api_key:
        model = config.model or defaults.GEMINI_DEFAULT_MODEL
        tiers.append(
            FallbackTier(
                name=f"gemini:{model}",
                client=GeminiClient(
                    config.gemini_api_key,
                    model,
                    timeout=config.request_timeout,
                    transport=transport,
                ),
            )
        )
    if config.provider in ("openrouter", "auto") and config.openrouter_api_key:
        model = (config.model if config.provider == "openrouter" else None) or config.fallback_model
        tiers.append(
            FallbackTier(
                name=f"openrouter:{model}",
                client=OpenRouterClient(
                    config.openrouter_api_key,
                    model,
                    timeout=config.request_timeout,
                    transport=transport,
                ),
            )
        )
    return tiers


def build_client(
    config: GlanceConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ResilientClient:
    """
    Create the client a run shares across all directories.

    `gemini` and `openrouter` use that backend alone; `auto` chains every
    backend with an API key, Gemini first.

    Raises:
        ConfigError: If no backend can be configured.
    """
    tiers = _tiers(config, transport)
    if not tiers:
        raise ConfigError(f"no API key available for provider {config.provider!r}")

    client: GenerationClient
    if len(tiers) == 1:
        client = tiers[0].client
    else:
        client = FallbackClient(tiers)
    logger.debug("Using backends: %s", ", ".join(t.name for t in tiers))
    return ResilientClient(client)


def build_limiter(config: GlanceConfig) -> SlidingWindowRateLimiter:
    """One limiter per run, shared by every directory."""
    return SlidingWindowRateLimiter(
        RateLimitConfig(
            requests_per_minute=config.requests_per_minute,
            tokens_per_minute=config.tokens_per_minute,
        )
    )
