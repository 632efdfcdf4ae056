"""Per-directory summarization.

`DirectoryAggregator.process` turns one directory node into a summary:

1. reuse the existing summary when it is fresh and no child was regenerated;
2. gather local text files through the node's ignore chain;
3. build the subtree context from the children's summaries, in name order,
   with a placeholder for children that failed;
4. render the prompt and check it against the token limit;
5. call the backend with retries, each attempt under its own deadline and
   behind the shared rate limiter;
6. write the summary next to the files it describes.

Every failure is caught and returned as a `NodeFailure` so one directory can
never take down the rest of the run. Only cancellation propagates.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import aiofiles

from glance.config import GlanceConfig, TokenLimitPolicy, defaults
from glance.errors import (
    BackendError,
    FatalBackendError,
    RetryExhaustedError,
    TokenLimitExceededError,
    ValidationError,
)
from glance.freshness import needs_regeneration
from glance.llm.base import GenerationClient, collect_stream
from glance.llm.ratelimit import SlidingWindowRateLimiter
from glance.llm.retry import RetryConfig, RetryStats, with_retry_async
from glance.llm.tokens import chars_for_tokens, estimate_tokens
from glance.models import (
    DirectoryNode,
    FailureKind,
    FileEntry,
    NodeFailure,
    NodeOutcome,
    NodeState,
)
from glance.paths import validate_output_path
from glance.progress import ProgressReporter
from glance.prompt import PromptData, format_file_contents, render_prompt
from glance.reader import gather_local_files

logger = logging.getLogger(__name__)

# Each round re-counts after shrinking, since estimates and real counts differ
MAX_TRUNCATION_ROUNDS = 5


def _private_opener(path: str, flags: int) -> int:
    return os.open(path, flags, defaults.SUMMARY_FILE_MODE)


def shrink_file_entries(entries: Sequence[FileEntry], excess_chars: int) -> tuple[list[FileEntry], int]:
    """
    Cut about `excess_chars` characters from the largest files first.

    Returns the new entries, in the original order, and the number of
    characters removed.
    """
    marker = defaults.TRUNCATION_MARKER
    remaining = excess_chars
    replaced: dict[str, FileEntry] = {}
    for entry in sorted(entries, key=lambda e: len(e.content), reverse=True):
        if remaining <= 0:
            break
        if len(entry.content) <= len(marker):
            continue
        keep = max(0, len(entry.content) - remaining - len(marker))
        replaced[entry.name] = FileEntry(
            name=entry.name,
            content=entry.content[:keep] + marker,
            size=entry.size,
            truncated=True,
        )
        remaining -= len(entry.content) - keep - len(marker)
    if not replaced:
        return list(entries), 0
    return [replaced.get(e.name, e) for e in entries], excess_chars - max(remaining, 0)


class DirectoryAggregator:
    """Runs the processing steps for one directory at a time.

    A single instance is shared by all scheduler workers; it holds no
    per-node state.
    """

    def __init__(
        self,
        client: GenerationClient,
        config: GlanceConfig,
        reporter: Optional[ProgressReporter] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.client = client
        self.config = config
        self.reporter = reporter
        self.limiter = limiter
        self.root = config.target_dir
        self.retry_config = RetryConfig(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            attempt_timeout=config.request_timeout,
        )

    def display_name(self, path: Path) -> str:
        """Directory name as shown to the model: relative to the root's parent."""
        try:
            return path.relative_to(self.root.parent).as_posix()
        except ValueError:
            return str(path)

    def reusable_summary(self, node: DirectoryNode, children: Sequence[DirectoryNode]) -> Optional[str]:
        """Return the existing summary if it can stand in for a new one."""
        if self.config.force:
            return None
        if any(child.regenerated for child in children):
            return None
        if needs_regeneration(
            node.path,
            node.ignore_chain,
            summary_filename=self.config.summary_filename,
            ignore_filename=self.config.ignore_filename,
        ):
            return None
        try:
            return (node.path / self.config.summary_filename).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Existing summary for %s is unreadable, regenerating: %s", node.path, e)
            return None

    def subtree_context(self, children: Sequence[DirectoryNode]) -> str:
        """Children's summaries as `### name` sections, sorted by name."""
        blocks = []
        for child in sorted(children, key=lambda c: c.name):
            if child.state is NodeState.DONE and child.summary is not None:
                body = child.summary.strip()
            else:
                kind = child.failure.kind.value if child.failure else "unknown"
                body = defaults.FAILED_CHILD_PLACEHOLDER.format(kind=kind)
            blocks.append(f"### {child.name}\n\n{body}\n")
        return "\n".join(blocks)

    def build_prompt(self, node: DirectoryNode, files: Sequence[FileEntry], context: str) -> str:
        return render_prompt(
            self.config.prompt_template,
            PromptData(
                directory=self.display_name(node.path),
                subdirectory_summaries=context,
                file_contents=format_file_contents(files),
            ),
        )

    async def _count_tokens(self, prompt: str) -> Optional[int]:
        try:
            return await self.client.count_tokens(prompt)
        except Exception as e:
            logger.debug("Token count failed, skipping pre-flight check: %s", e)
            return None

    async def prepare_prompt(
        self,
        node: DirectoryNode,
        files: Sequence[FileEntry],
        context: str,
    ) -> str:
        """Render the prompt and apply the token limit policy."""
        prompt = self.build_prompt(node, files, context)
        limit = self.config.token_limit
        tokens = await self._count_tokens(prompt)
        if tokens is None or limit <= 0 or tokens <= limit:
            if tokens is not None:
                logger.debug("%s: prompt is %d tokens", node.path, tokens)
            return prompt

        policy = self.config.token_limit_policy
        if policy is TokenLimitPolicy.FAIL:
            raise TokenLimitExceededError(tokens, limit, provider=self.client.name)
        if policy is TokenLimitPolicy.WARN:
            logger.warning(
                "%s: prompt is %d tokens, above the limit of %d; sending anyway",
                node.path,
                tokens,
                limit,
            )
            return prompt

        current = list(files)
        for _ in range(MAX_TRUNCATION_ROUNDS):
            current, removed = shrink_file_entries(current, chars_for_tokens(tokens - limit))
            if removed == 0:
                break
            prompt = self.build_prompt(node, current, context)
            counted = await self._count_tokens(prompt)
            tokens = counted if counted is not None else estimate_tokens(prompt)
            if tokens <= limit:
                logger.info("%s: truncated file contents to fit %d tokens", node.path, limit)
                return prompt
        raise TokenLimitExceededError(tokens, limit, provider=self.client.name)

    async def _wait_for_capacity(self, prompt: str) -> None:
        if self.limiter is None:
            return
        waited = await self.limiter.acquire(tokens=estimate_tokens(prompt))
        if waited:
            logger.debug("Rate limiter delayed a call by %.2fs", waited)

    async def _generate_once(self, prompt: str) -> str:
        if self.config.stream:
            stream = await self.client.generate_stream(prompt)
            text = await collect_stream(stream)
        else:
            text = await self.client.generate(prompt)
        if not text or not text.strip():
            raise FatalBackendError("backend returned an empty summary", provider=self.client.name)
        return text

    async def write_summary(self, node: DirectoryNode, text: str) -> Path:
        """Write `text` as `node`'s summary with owner-only permissions."""
        target = validate_output_path(node.path, self.config.summary_filename, self.root)
        async with aiofiles.open(target, "w", encoding="utf-8", opener=_private_opener) as f:
            await f.write(text)
        # the opener's mode does not apply to files that already existed
        os.chmod(target, defaults.SUMMARY_FILE_MODE)
        return target

    def _failed(self, node: DirectoryNode, kind: FailureKind, message: str, attempts: int) -> NodeOutcome:
        failure = NodeFailure(path=node.path, kind=kind, message=message, attempts=attempts)
        logger.error("Failed to summarize %s [%s]: %s", node.path, kind.value, message)
        return NodeOutcome(path=node.path, success=False, attempts=attempts, failure=failure)

    async def process(self, node: DirectoryNode, children: Sequence[DirectoryNode]) -> NodeOutcome:
        """Summarize one directory whose children have all resolved."""
        existing = self.reusable_summary(node, children)
        if existing is not None:
            logger.debug("Summary for %s is up to date", node.path)
            return NodeOutcome(
                path=node.path,
                success=True,
                summary=existing,
                summary_path=node.path / self.config.summary_filename,
            )

        stats = RetryStats()
        try:
            files = gather_local_files(
                node.path,
                node.ignore_chain,
                summary_filename=self.config.summary_filename,
                ignore_filename=self.config.ignore_filename,
                max_file_bytes=self.config.max_file_bytes,
            )
            prompt = await self.prepare_prompt(node, files, self.subtree_context(children))
            text = await with_retry_async(
                self._generate_once,
                prompt,
                task_id=str(node.path),
                config=self.retry_config,
                reporter=self.reporter,
                stats=stats,
                before_attempt=lambda: self._wait_for_capacity(prompt),
            )
            summary_path = await self.write_summary(node, text)
        except RetryExhaustedError as e:
            return self._failed(node, FailureKind.RETRIES_EXHAUSTED, str(e.last_error), e.attempts)
        except ValidationError as e:
            return self._failed(node, FailureKind.VALIDATION, str(e), stats.attempts)
        except BackendError as e:
            return self._failed(node, FailureKind.FATAL, str(e), stats.attempts)
        except OSError as e:
            return self._failed(node, FailureKind.IO, str(e), stats.attempts)
        except Exception as e:
            logger.exception("Unexpected error while summarizing %s", node.path)
            return self._failed(node, FailureKind.INTERNAL, f"{type(e).__name__}: {e}", stats.attempts)

        logger.info("Wrote %s", summary_path)
        return NodeOutcome(
            path=node.path,
            success=True,
            summary=text,
            regenerated=True,
            attempts=stats.attempts,
            summary_path=summary_path,
        )
