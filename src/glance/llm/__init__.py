"""Generation backends for glance."""

from .base import ChunkStream, GenerationClient, StreamChunk, collect_stream
from .factory import build_client, build_limiter
from .fallback import FallbackClient, FallbackTier
from .gemini import GeminiClient
from .openrouter import OpenRouterClient
from .resilient import ResilientClient

__all__ = [
    "ChunkStream",
    "FallbackClient",
    "FallbackTier",
    "GeminiClient",
    "GenerationClient",
    "OpenRouterClient",
    "ResilientClient",
    "StreamChunk",
    "build_client",
    "build_limiter",
    "collect_stream",
]
