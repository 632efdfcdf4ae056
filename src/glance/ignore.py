"""Ignore-file parsing and per-directory ignore chains.

Each directory's chain is its parent's chain followed by the rules from its
own ignore file, so rules are ordered root to leaf and, within a file, top to
bottom. Matching walks the chain backwards: the last rule whose pattern
matches decides, which lets a deeper `!pattern` re-include what a broader
ancestor rule excluded. A path no rule matches is included.

Pattern syntax is the gitignore dialect, compiled with pathspec's
GitWildMatchPattern; each rule matches paths relative to the directory that
holds its ignore file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pathspec.patterns import GitWildMatchPattern

from glance.config import defaults
from glance.errors import IgnoreParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IgnoreRule:
    """A single compiled ignore pattern."""

    pattern: str
    negated: bool
    dir_only: bool
    anchored: bool
    origin_dir: Path
    depth: int
    _compiled: GitWildMatchPattern = field(repr=False, compare=False)

    @classmethod
    def parse(cls, line: str, origin_dir: Path, depth: int = 0) -> Optional["IgnoreRule"]:
        """
        Compile one ignore-file line.

        Returns None for blank lines and comments.

        Raises:
            ValueError: If pathspec rejects the pattern.
        """
        text = line.rstrip("\r\n")
        if not text.strip():
            return None
        compiled = GitWildMatchPattern(text)
        if compiled.include is None:
            return None

        body = text.strip()
        if body.startswith("!"):
            body = body[1:]
        elif body.startswith("\\!") or body.startswith("\\#"):
            body = body[1:]
        return cls(
            pattern=text.strip(),
            negated=not compiled.include,
            dir_only=body.endswith("/"),
            anchored="/" in body.rstrip("/"),
            origin_dir=Path(origin_dir),
            depth=depth,
            _compiled=compiled,
        )

    def matches(self, path: Path, is_dir: bool) -> bool:
        """Check whether this rule's pattern matches `path`.

        Directory-only rules never match files. Paths outside the rule's
        origin directory never match.
        """
        try:
            rel = Path(path).relative_to(self.origin_dir).as_posix()
        except ValueError:
            return False
        if rel in ("", "."):
            return False
        if self.dir_only and not is_dir:
            return False

        regex = self._compiled.regex
        if is_dir:
            # "dir/" patterns only match the slash form
            return bool(regex.match(rel) or regex.match(rel + "/"))
        return bool(regex.match(rel))


@dataclass(frozen=True)
class IgnoreChain:
    """Ordered, immutable rule list; most specific rule last."""

    rules: tuple[IgnoreRule, ...] = ()

    def __iter__(self) -> Iterator[IgnoreRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def extend(self, rules: Iterable[IgnoreRule]) -> "IgnoreChain":
        added = tuple(rules)
        if not added:
            return self
        return IgnoreChain(self.rules + added)

    def match(self, path: Path, is_dir: bool = False) -> Optional[IgnoreRule]:
        """Return the rule that decides `path`, or None if no rule matches."""
        for rule in reversed(self.rules):
            if rule.matches(path, is_dir):
                return rule
        return None

    def is_ignored(self, path: Path, is_dir: bool = False) -> bool:
        rule = self.match(path, is_dir)
        if rule is None:
            return False
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s %s by rule %r from %s",
                path,
                "re-included" if rule.negated else "ignored",
                rule.pattern,
                rule.origin_dir,
            )
        return not rule.negated


def parse_ignore_lines(lines: Iterable[str], origin_dir: Path, depth: int = 0) -> list[IgnoreRule]:
    """Compile the lines of one ignore file, in file order."""
    rules: list[IgnoreRule] = []
    for lineno, line in enumerate(lines, start=1):
        try:
            rule = IgnoreRule.parse(line, origin_dir, depth)
        except ValueError as e:
            raise IgnoreParseError(origin_dir, f"line {lineno}: invalid pattern {line.strip()!r}: {e}") from e
        if rule is not None:
            rules.append(rule)
    return rules


def load_ignore_file(
    directory: Path,
    ignore_filename: str = defaults.IGNORE_FILENAME,
    depth: int = 0,
) -> list[IgnoreRule]:
    """
    Load the rules defined in `directory`'s own ignore file.

    Returns an empty list when the file does not exist.

    Raises:
        IgnoreParseError: If the file cannot be read or decoded, or holds an
            invalid pattern.
    """
    path = Path(directory) / ignore_filename
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as e:
        raise IgnoreParseError(path, f"unreadable ignore file: {e}") from e
    return parse_ignore_lines(text.splitlines(), Path(directory), depth)


def resolve_chain(
    directory: Path,
    parent_chain: Optional[IgnoreChain] = None,
    *,
    ignore_filename: str = defaults.IGNORE_FILENAME,
    depth: int = 0,
) -> IgnoreChain:
    """Build `directory`'s chain from its parent's chain and its own ignore file.

    A malformed or unreadable ignore file contributes no rules; the inherited
    chain is returned unchanged.
    """
    base = parent_chain if parent_chain is not None else IgnoreChain()
    try:
        local = load_ignore_file(directory, ignore_filename, depth)
    except IgnoreParseError as e:
        logger.warning("Ignoring malformed ignore file, no local rules applied: %s", e)
        return base
    return base.extend(local)


def should_ignore_file(
    path: Path,
    chain: IgnoreChain,
    *,
    summary_filename: str = defaults.SUMMARY_FILENAME,
    ignore_filename: str = defaults.IGNORE_FILENAME,
) -> bool:
    """Skip our own output, the ignore file, hidden files, and chain matches."""
    name = Path(path).name
    if name == summary_filename:
        logger.debug("Ignoring summary file %s", path)
        return True
    if name == ignore_filename:
        return True
    if name.startswith("."):
        logger.debug("Ignoring hidden file %s", path)
        return True
    return chain.is_ignored(path, is_dir=False)


def should_ignore_dir(path: Path, chain: IgnoreChain) -> bool:
    """Skip hidden directories, built-in heavy directories, and chain matches."""
    name = Path(path).name
    if name.startswith("."):
        logger.debug("Ignoring hidden directory %s", path)
        return True
    if name in defaults.SKIPPED_DIRNAMES:
        logger.debug("Ignoring %s directory %s", name, path)
        return True
    return chain.is_ignored(path, is_dir=True)
