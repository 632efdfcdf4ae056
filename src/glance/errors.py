"""Error taxonomy for glance.

Errors are contained per directory: the scheduler records them on the failing
node and keeps going. Only configuration errors and an unreadable root abort
a run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class GlanceError(Exception):
    """Base exception for glance operations."""

    kind = "internal"


class ConfigError(GlanceError):
    """Invalid configuration, missing API key, or bad prompt template."""

    kind = "config"


class TraversalError(GlanceError):
    """A directory could not be read during the walk."""

    kind = "traversal"

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        super().__init__(f"{path}: {message}")


class IgnoreParseError(GlanceError):
    """An ignore file is unreadable or contains an invalid pattern."""

    kind = "ignore_parse"

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        super().__init__(f"{path}: {message}")


class ValidationError(GlanceError):
    """A path resolves outside the directory it must stay in."""

    kind = "validation"

    def __init__(self, path: Path, base: Path, message: Optional[str] = None):
        self.path = Path(path)
        self.base = Path(base)
        super().__init__(message or f"path {path} is outside of allowed directory {base}")


class BackendError(GlanceError):
    """Base for errors raised by a generation backend."""

    kind = "backend"

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class TransientBackendError(BackendError):
    """Rate limit, timeout, or network failure. Eligible for retry."""

    kind = "transient"


class FatalBackendError(BackendError):
    """Bad credentials or malformed request. Never retried."""

    kind = "fatal"


class TokenLimitExceededError(FatalBackendError):
    """Prompt is larger than the configured token limit."""

    def __init__(self, tokens: int, limit: int, *, provider: Optional[str] = None):
        self.tokens = tokens
        self.limit = limit
        super().__init__(
            f"prompt has {tokens} tokens, limit is {limit}",
            provider=provider,
        )


class RetryExhaustedError(GlanceError):
    """Every attempt failed with a transient error."""

    kind = "retries_exhausted"

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed after {attempts} attempts: {last_error}")
