"""Configuration for glance."""

from .settings import GlanceConfig, TokenLimitPolicy

__all__ = ["GlanceConfig", "TokenLimitPolicy"]
