"""Data model for a summarization run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from glance.ignore import IgnoreChain


class NodeState(str, Enum):
    """Lifecycle of a directory node. Transitions only move forward."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"

    @property
    def resolved(self) -> bool:
        return self in (NodeState.DONE, NodeState.FAILED)


class FailureKind(str, Enum):
    FATAL = "fatal"
    RETRIES_EXHAUSTED = "retries_exhausted"
    VALIDATION = "validation"
    IO = "io"
    INTERNAL = "internal"


@dataclass(frozen=True)
class FileEntry:
    """A text file gathered for a directory's prompt."""
    name: str
    content: str
    size: int
    truncated: bool = False


@dataclass(frozen=True)
class NodeFailure:
    """Why a directory could not be summarized."""
    path: Path
    kind: FailureKind
    message: str
    attempts: int = 0

    def __str__(self) -> str:
        return f"{self.path}: [{self.kind.value}] {self.message}"


@dataclass
class DirectoryNode:
    """One directory in the tree being summarized.

    `children` holds child paths; the scheduler keeps nodes in a dict keyed by
    path, so nodes never hold references to one another.
    """

    path: Path
    children: list[Path] = field(default_factory=list)
    ignore_chain: IgnoreChain = field(default_factory=IgnoreChain, repr=False)
    parent: Optional[Path] = None
    depth: int = 0
    state: NodeState = NodeState.PENDING
    summary: Optional[str] = field(default=None, repr=False)
    regenerated: bool = False
    attempts: int = 0
    failure: Optional[NodeFailure] = None

    @property
    def name(self) -> str:
        return self.path.name or str(self.path)


@dataclass
class NodeOutcome:
    """Result of processing a single directory."""
    path: Path
    success: bool
    summary: Optional[str] = None
    regenerated: bool = False
    attempts: int = 0
    failure: Optional[NodeFailure] = None
    summary_path: Optional[Path] = None


@dataclass
class RunReport:
    """Summary of a finished run."""

    root: Path
    processed: int = 0
    regenerated: int = 0
    skipped: int = 0
    failures: list[NodeFailure] = field(default_factory=list)
    traversal_errors: list[str] = field(default_factory=list)
    root_summary_path: Optional[Path] = None
    root_succeeded: bool = False

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.root_succeeded else 1
