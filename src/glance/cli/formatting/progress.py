#!/usr/bin/env python
"""
Progress indicators for the glance CLI.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.spinner import Spinner as RichSpinner

from glance.progress import ProgressEvent, ProgressReporter, Status


class Spinner:
    """Context manager for showing a spinner while a step runs."""

    def __init__(self, message: str = "Loading...", console: Optional[Console] = None):
        self.message = message
        self.console = console or Console(stderr=True)
        self.live: Optional[Live] = None

    def __enter__(self):
        spinner = RichSpinner("dots", text=self.message, style="cyan")
        self.live = Live(spinner, console=self.console, transient=True)
        self.live.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.live:
            self.live.stop()
        return False


class ProgressBar:
    """Progress bar for long-running operations."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self.progress: Optional[Progress] = None

    def __enter__(self):
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
            transient=True,
        )
        self.progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.progress:
            self.progress.__exit__(exc_type, exc_val, exc_tb)
        return False

    def add_task(self, description: str, total: Optional[float] = None):
        """Add a task to the progress bar."""
        if self.progress:
            return self.progress.add_task(description, total=total)
        return None

    def update(self, task_id, advance: float = 1, **kwargs):
        """Update a task."""
        if self.progress and task_id is not None:
            self.progress.update(task_id, advance=advance, **kwargs)


class RichProgressReporter(ProgressReporter):
    """Drives a `ProgressBar` from scheduler events."""

    def __init__(self, bar: ProgressBar):
        super().__init__()
        self.bar = bar
        self._task = None

    def emit(self, event: ProgressEvent) -> None:
        super().emit(event)
        if event.status is Status.PENDING and "total" in event.details:
            self._task = self.bar.add_task("Summarizing", total=event.details["total"])
        elif event.status is Status.RUNNING and event.task_id:
            self.bar.update(self._task, advance=0, description=f"Summarizing {Path(event.task_id).name}")
        elif event.details.get("resolved"):
            self.bar.update(self._task, advance=1)
