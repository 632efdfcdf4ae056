"""glance: bottom-up directory summaries generated by an LLM."""

from glance.config import GlanceConfig
from glance.errors import GlanceError
from glance.models import RunReport
from glance.scheduler import summarize

__version__ = "0.1.0"

__all__ = ["GlanceConfig", "GlanceError", "RunReport", "summarize", "__version__"]
