"""Default configuration values for glance.

This module centralizes the hard-coded defaults (filenames, limits, retry
and rate-limit settings, model names) into a single location. Modules import
these constants instead of hard-coding values.

Usage:
    from glance.config.defaults import (
        RETRY_MAX_RETRIES,
        SUMMARY_FILENAME,
    )
"""

from __future__ import annotations

# =============================================================================
# Filesystem Defaults
# =============================================================================

# Dot prefix keeps the summary out of build-system source scanners
SUMMARY_FILENAME = ".glance.md"
IGNORE_FILENAME = ".gitignore"

# Directories never walked, in addition to hidden ones
SKIPPED_DIRNAMES = frozenset({"node_modules"})

MAX_FILE_BYTES = 5 * 1024 * 1024
TRUNCATION_MARKER = "...(truncated)"
TEXT_SNIFF_BYTES = 512

# rw------- : summaries may describe private code
SUMMARY_FILE_MODE = 0o600


# =============================================================================
# Scheduler Defaults
# =============================================================================

SCHEDULER_CONCURRENCY = 4
FAILED_CHILD_PLACEHOLDER = "(summary unavailable: {kind})"


# =============================================================================
# Retry Defaults
# =============================================================================

RETRY_MAX_RETRIES = 3  # attempts = retries + 1
RETRY_BASE_DELAY = 0.5  # seconds
RETRY_MAX_DELAY = 8.0  # seconds
RETRY_BACKOFF_MULTIPLIER = 2.0
RETRY_JITTER_FACTOR = 0.2

# HTTP statuses treated as transient
RETRYABLE_STATUS_CODES = (408, 409, 425, 429, 500, 502, 503, 504)


# =============================================================================
# Timeout Defaults
# =============================================================================

REQUEST_TIMEOUT_SECONDS = 60.0
CONNECT_TIMEOUT_SECONDS = 10.0


# =============================================================================
# Rate Limiter Defaults
# =============================================================================

RATELIMIT_REQUESTS_PER_MINUTE = 60
RATELIMIT_TOKENS_PER_MINUTE = 1_000_000
RATELIMIT_WINDOW_SECONDS = 60.0


# =============================================================================
# Token Defaults
# =============================================================================

TOKEN_LIMIT = 1_000_000
TOKEN_LIMIT_POLICY = "warn"
TOKENS_PER_CHAR_ENGLISH = 4  # tokens ~= chars / 4
TOKENS_PER_CHAR_CODE = 3


# =============================================================================
# Streaming Defaults
# =============================================================================

STREAM_BUFFER_SIZE = 16


# =============================================================================
# Provider Defaults
# =============================================================================

DEFAULT_PROVIDER = "auto"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_DEFAULT_MODEL = "gemini-3-flash-preview"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = "google/gemini-2.5-flash"

GENERATION_TEMPERATURE = 0.7
GENERATION_TOP_P = 0.95
GENERATION_MAX_OUTPUT_TOKENS = 2048
