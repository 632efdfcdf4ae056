"""Progress events for a summarization run.

The scheduler and the retry loop emit `ProgressEvent`s through a
`ProgressReporter`. The base reporter records events in memory; the CLI
subclass renders them with rich.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Status(Enum):
    """Status enum for progress reporting."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    RETRY = "retry"
    COMPLETE = "complete"


@dataclass
class ProgressEvent:
    """Progress event for reporting."""
    status: Status
    message: str = ""
    task_id: str = ""  # directory path, or "" for run-level events
    details: Optional[dict] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()
        if self.details is None:
            self.details = {}


class ProgressReporter:
    """Collects progress events in memory."""

    def __init__(self):
        self._events: list[ProgressEvent] = []

    async def emit_async(self, event: ProgressEvent) -> None:
        """Emit a progress event."""
        self.emit(event)

    def emit(self, event: ProgressEvent) -> None:
        """Emit a progress event synchronously."""
        self._events.append(event)

    def get_events(self) -> list[ProgressEvent]:
        return list(self._events)

    def events_for(self, task_id: str) -> list[ProgressEvent]:
        return [e for e in self._events if e.task_id == task_id]

    def clear(self) -> None:
        self._events.clear()
