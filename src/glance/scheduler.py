"""Bottom-up directory scheduler.

A fixed pool of worker tasks drains a queue of runnable directories. A
directory is runnable once every child has resolved (done or failed). Leaves
are runnable from the start, so a fast branch can unblock its parent while a
slow sibling branch is still working.

Node state lives in one dict keyed by path. Only the coordinator loop in
`Scheduler.run` changes it: workers report "started" and "finished" over a
queue, and the coordinator applies the transition, updates the run report,
emits progress events and enqueues parents that became runnable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from glance.aggregator import DirectoryAggregator
from glance.collector import CollectedTree, collect
from glance.config import GlanceConfig, defaults
from glance.llm.base import GenerationClient
from glance.llm.ratelimit import SlidingWindowRateLimiter
from glance.models import (
    DirectoryNode,
    FailureKind,
    NodeFailure,
    NodeOutcome,
    NodeState,
    RunReport,
)
from glance.progress import ProgressEvent, ProgressReporter, Status

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    NodeState.PENDING: {NodeState.IN_PROGRESS},
    NodeState.IN_PROGRESS: {NodeState.DONE, NodeState.FAILED},
}


@dataclass
class _Transition:
    path: Path
    state: NodeState
    outcome: Optional[NodeOutcome] = None


def transition(node: DirectoryNode, state: NodeState) -> None:
    """Move `node` to `state`, rejecting anything but forward moves."""
    if state not in _ALLOWED_TRANSITIONS.get(node.state, ()):
        raise RuntimeError(f"illegal state change for {node.path}: {node.state.value} -> {state.value}")
    node.state = state


class Scheduler:
    """Runs a `DirectoryAggregator` over a collected tree."""

    def __init__(
        self,
        aggregator: DirectoryAggregator,
        *,
        concurrency: int = defaults.SCHEDULER_CONCURRENCY,
        reporter: Optional[ProgressReporter] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.aggregator = aggregator
        self.concurrency = concurrency
        self.reporter = reporter

    async def _emit(self, status: Status, message: str, task_id: str = "", **details) -> None:
        if self.reporter:
            await self.reporter.emit_async(
                ProgressEvent(status=status, message=message, task_id=task_id, details=details)
            )

    async def _worker(
        self,
        nodes: dict[Path, DirectoryNode],
        runnable: asyncio.Queue,
        transitions: asyncio.Queue,
    ) -> None:
        while True:
            path = await runnable.get()
            node = nodes[path]
            transitions.put_nowait(_Transition(path, NodeState.IN_PROGRESS))
            children = [nodes[child] for child in node.children]
            try:
                outcome = await self.aggregator.process(node, children)
            except Exception as e:
                logger.exception("Worker failed on %s", path)
                outcome = NodeOutcome(
                    path=path,
                    success=False,
                    failure=NodeFailure(path, FailureKind.INTERNAL, f"{type(e).__name__}: {e}"),
                )
            state = NodeState.DONE if outcome.success else NodeState.FAILED
            transitions.put_nowait(_Transition(path, state, outcome))

    def _apply_outcome(self, node: DirectoryNode, outcome: NodeOutcome, report: RunReport) -> None:
        node.attempts = outcome.attempts
        node.regenerated = outcome.regenerated
        report.processed += 1
        if outcome.success:
            node.summary = outcome.summary
            if outcome.regenerated:
                report.regenerated += 1
            else:
                report.skipped += 1
        else:
            node.failure = outcome.failure
            report.failures.append(outcome.failure)

    async def run(self, tree: CollectedTree) -> RunReport:
        """
        Summarize every directory in `tree`, children before parents.

        Returns a report once every node has resolved. Cancelling the caller
        cancels all in-flight work; summaries already written stay on disk.
        """
        nodes = tree.nodes
        report = RunReport(root=tree.root, traversal_errors=[str(e) for e in tree.skipped])
        waiting_on = {path: len(node.children) for path, node in nodes.items()}

        runnable: asyncio.Queue[Path] = asyncio.Queue()
        transitions: asyncio.Queue[_Transition] = asyncio.Queue()
        for path in tree.leaves():
            runnable.put_nowait(path)

        worker_count = min(self.concurrency, len(nodes))
        workers = [
            asyncio.create_task(self._worker(nodes, runnable, transitions), name=f"glance-worker-{i}")
            for i in range(worker_count)
        ]
        logger.debug("Scheduling %d directories on %d workers", len(nodes), worker_count)
        await self._emit(Status.PENDING, f"Summarizing {len(nodes)} directories", total=len(nodes))

        unresolved = len(nodes)
        try:
            while unresolved:
                change = await transitions.get()
                node = nodes[change.path]
                transition(node, change.state)

                if not node.state.resolved:
                    await self._emit(Status.RUNNING, "started", str(node.path))
                    continue

                self._apply_outcome(node, change.outcome, report)
                unresolved -= 1
                if change.state is NodeState.FAILED:
                    await self._emit(Status.FAILURE, str(node.failure), str(node.path), resolved=True)
                elif node.regenerated:
                    await self._emit(Status.SUCCESS, "summarized", str(node.path), resolved=True)
                else:
                    await self._emit(Status.SKIPPED, "up to date", str(node.path), resolved=True)

                parent = node.parent
                if parent is not None and parent in waiting_on:
                    waiting_on[parent] -= 1
                    if waiting_on[parent] == 0:
                        runnable.put_nowait(parent)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        root = nodes[tree.root]
        report.root_succeeded = root.state is NodeState.DONE
        if report.root_succeeded:
            report.root_summary_path = tree.root / self.aggregator.config.summary_filename
        await self._emit(
            Status.COMPLETE,
            f"{report.succeeded} succeeded, {report.failed} failed",
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report


async def summarize(
    config: GlanceConfig,
    client: GenerationClient,
    reporter: Optional[ProgressReporter] = None,
    tree: Optional[CollectedTree] = None,
    limiter: Optional[SlidingWindowRateLimiter] = None,
) -> RunReport:
    """
    Collect (unless `tree` is given) and summarize `config.target_dir`.

    The caller owns `client` and closes it. Without a `limiter` calls are
    not rate limited.

    Raises:
        TraversalError: If the target directory cannot be read.
    """
    if tree is None:
        tree = collect(
            config.target_dir,
            ignore_filename=config.ignore_filename,
            follow_symlinks=config.follow_symlinks,
        )
    aggregator = DirectoryAggregator(client, config, reporter, limiter)
    scheduler = Scheduler(aggregator, concurrency=config.concurrency, reporter=reporter)
    return await scheduler.run(tree)
