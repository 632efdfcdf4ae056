"""Run configuration for glance.

`GlanceConfig` collects every knob the collector, aggregator, scheduler and
backend factory read. Values come from CLI flags, `GLANCE_*` environment
variables, or the defaults in `glance.config.defaults`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from glance.config import defaults
from glance.errors import ConfigError
from glance.prompt import DEFAULT_TEMPLATE, validate_template

_PROVIDERS = ("auto", "gemini", "openrouter")
_TRUE_VALUES = {"1", "true", "yes", "on"}


class TokenLimitPolicy(str, Enum):
    """What to do when a prompt is estimated above the token limit."""
    WARN = "warn"
    TRUNCATE = "truncate"
    FAIL = "fail"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_number(name: str, default: Any, cast: type) -> Any:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {raw!r}") from e


@dataclass
class GlanceConfig:
    """Configuration for a single summarization run."""

    target_dir: Path
    force: bool = False
    verbose: bool = False
    stream: bool = False

    # Backend selection
    provider: str = defaults.DEFAULT_PROVIDER
    model: Optional[str] = None  # None: the provider's default model
    fallback_model: str = defaults.OPENROUTER_DEFAULT_MODEL
    gemini_api_key: Optional[str] = field(default=None, repr=False)
    openrouter_api_key: Optional[str] = field(default=None, repr=False)

    # Prompt
    prompt_template: str = DEFAULT_TEMPLATE

    # Retry and timeouts
    max_retries: int = defaults.RETRY_MAX_RETRIES
    retry_base_delay: float = defaults.RETRY_BASE_DELAY
    retry_max_delay: float = defaults.RETRY_MAX_DELAY
    request_timeout: float = defaults.REQUEST_TIMEOUT_SECONDS

    # Scheduling and rate limits
    concurrency: int = defaults.SCHEDULER_CONCURRENCY
    requests_per_minute: int = defaults.RATELIMIT_REQUESTS_PER_MINUTE
    tokens_per_minute: int = defaults.RATELIMIT_TOKENS_PER_MINUTE

    # Tokens
    token_limit: int = defaults.TOKEN_LIMIT
    token_limit_policy: TokenLimitPolicy = TokenLimitPolicy.WARN

    # Filesystem
    max_file_bytes: int = defaults.MAX_FILE_BYTES
    summary_filename: str = defaults.SUMMARY_FILENAME
    ignore_filename: str = defaults.IGNORE_FILENAME
    follow_symlinks: bool = False

    def __post_init__(self):
        self.target_dir = Path(self.target_dir).expanduser().resolve()
        if isinstance(self.token_limit_policy, str):
            try:
                self.token_limit_policy = TokenLimitPolicy(self.token_limit_policy.lower())
            except ValueError as e:
                raise ConfigError(
                    f"unknown token limit policy {self.token_limit_policy!r}"
                ) from e

    @classmethod
    def from_env(cls, target_dir: Path | str, **overrides: Any) -> "GlanceConfig":
        """Create config from environment variables, then apply overrides.

        Overrides whose value is None are ignored so that unset CLI flags
        fall through to the environment.
        """
        config = cls(
            target_dir=Path(target_dir),
            force=_env_bool("GLANCE_FORCE", False),
            stream=_env_bool("GLANCE_STREAM", False),
            provider=os.environ.get("GLANCE_PROVIDER", defaults.DEFAULT_PROVIDER),
            model=os.environ.get("GLANCE_MODEL") or None,
            fallback_model=os.environ.get(
                "GLANCE_FALLBACK_MODEL", defaults.OPENROUTER_DEFAULT_MODEL
            ),
            gemini_api_key=os.environ.get("GEMINI_API_KEY") or None,
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
            max_retries=_env_number("GLANCE_MAX_RETRIES", defaults.RETRY_MAX_RETRIES, int),
            retry_base_delay=_env_number(
                "GLANCE_RETRY_BASE_DELAY", defaults.RETRY_BASE_DELAY, float
            ),
            retry_max_delay=_env_number(
                "GLANCE_RETRY_MAX_DELAY", defaults.RETRY_MAX_DELAY, float
            ),
            request_timeout=_env_number(
                "GLANCE_REQUEST_TIMEOUT", defaults.REQUEST_TIMEOUT_SECONDS, float
            ),
            concurrency=_env_number(
                "GLANCE_CONCURRENCY", defaults.SCHEDULER_CONCURRENCY, int
            ),
            requests_per_minute=_env_number(
                "GLANCE_RPM", defaults.RATELIMIT_REQUESTS_PER_MINUTE, int
            ),
            tokens_per_minute=_env_number(
                "GLANCE_TPM", defaults.RATELIMIT_TOKENS_PER_MINUTE, int
            ),
            token_limit=_env_number("GLANCE_TOKEN_LIMIT", defaults.TOKEN_LIMIT, int),
            token_limit_policy=os.environ.get(
                "GLANCE_TOKEN_LIMIT_POLICY", defaults.TOKEN_LIMIT_POLICY
            ),
            max_file_bytes=_env_number(
                "GLANCE_MAX_FILE_BYTES", defaults.MAX_FILE_BYTES, int
            ),
            summary_filename=os.environ.get(
                "GLANCE_SUMMARY_FILENAME", defaults.SUMMARY_FILENAME
            ),
            ignore_filename=os.environ.get(
                "GLANCE_IGNORE_FILENAME", defaults.IGNORE_FILENAME
            ),
            follow_symlinks=_env_bool("GLANCE_FOLLOW_SYMLINKS", False),
        )
        return config.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "GlanceConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def validate(self, *, require_api_key: bool = True) -> "GlanceConfig":
        """Check the config is usable. Returns self for chaining."""
        if not self.target_dir.exists():
            raise ConfigError(f"cannot access directory {self.target_dir}")
        if not self.target_dir.is_dir():
            raise ConfigError(f"path {self.target_dir} is a file, not a directory")
        if self.provider not in _PROVIDERS:
            raise ConfigError(
                f"unknown provider {self.provider!r}, expected one of {', '.join(_PROVIDERS)}"
            )
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ConfigError("max retries cannot be negative")
        if self.request_timeout <= 0:
            raise ConfigError("request timeout must be greater than zero")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigError("retry delays cannot be negative")
        if self.max_file_bytes < 0:
            raise ConfigError("max file bytes cannot be negative")
        for name in (self.summary_filename, self.ignore_filename):
            if not name or name in (".", ".."):
                raise ConfigError(f"invalid filename {name!r}")
        validate_template(self.prompt_template)

        if require_api_key:
            if self.provider == "gemini" and not self.gemini_api_key:
                raise ConfigError(
                    "GEMINI_API_KEY is missing: set it in the environment or a .env file"
                )
            if self.provider == "openrouter" and not self.openrouter_api_key:
                raise ConfigError(
                    "OPENROUTER_API_KEY is missing: set it in the environment or a .env file"
                )
            if self.provider == "auto" and not (self.gemini_api_key or self.openrouter_api_key):
                raise ConfigError(
                    "no API key found: set GEMINI_API_KEY or OPENROUTER_API_KEY"
                )
        return self
