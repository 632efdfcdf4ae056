"""Token estimation utilities.

Used for rate limiting and for backends without a token counting endpoint.
"""

from __future__ import annotations

from glance.config.defaults import TOKENS_PER_CHAR_CODE, TOKENS_PER_CHAR_ENGLISH


def estimate_tokens(text: str, is_code: bool = False) -> int:
    """
    Estimate token count for text.

    Uses character-based approximation.

    Args:
        text: Input text
        is_code: Whether text is code (uses different ratio)

    Returns:
        Estimated token count
    """
    if not text:
        return 0

    ratio = TOKENS_PER_CHAR_CODE if is_code else TOKENS_PER_CHAR_ENGLISH
    return max(1, len(text) // ratio)


def chars_for_tokens(tokens: int, is_code: bool = False) -> int:
    """Inverse of estimate_tokens: roughly how many characters fit in `tokens`."""
    ratio = TOKENS_PER_CHAR_CODE if is_code else TOKENS_PER_CHAR_ENGLISH
    return max(0, tokens * ratio)
