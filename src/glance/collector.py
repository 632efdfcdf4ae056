"""Single-pass directory walk.

`collect` walks the target tree breadth-first, resolving each directory's
ignore chain from its parent's as it goes, and records the child adjacency the
scheduler needs. Reversing the breadth-first order yields a bottom-up order in
which every parent comes after all of its descendants.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from glance.config import defaults
from glance.errors import TraversalError
from glance.ignore import IgnoreChain, resolve_chain, should_ignore_dir
from glance.models import DirectoryNode

logger = logging.getLogger(__name__)


@dataclass
class CollectedTree:
    """Result of a walk: nodes keyed by path, in breadth-first order."""

    root: Path
    nodes: dict[Path, DirectoryNode] = field(default_factory=dict)
    skipped: list[TraversalError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, path: object) -> bool:
        return path in self.nodes

    @property
    def directories(self) -> list[Path]:
        return list(self.nodes)

    @property
    def chains(self) -> dict[Path, IgnoreChain]:
        return {path: node.ignore_chain for path, node in self.nodes.items()}

    def bottom_up(self) -> list[Path]:
        """Directories ordered so that each parent follows its descendants."""
        return list(reversed(self.nodes))

    def leaves(self) -> list[Path]:
        return [path for path, node in self.nodes.items() if not node.children]


def _scan_subdirs(directory: Path, follow_symlinks: bool) -> list[os.DirEntry]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    subdirs = []
    for entry in entries:
        try:
            if entry.is_symlink() and not follow_symlinks:
                continue
            if entry.is_dir(follow_symlinks=follow_symlinks):
                subdirs.append(entry)
        except OSError as e:
            logger.debug("Could not stat %s, skipping: %s", entry.path, e)
    return subdirs


def collect(
    root: Path | str,
    *,
    ignore_filename: str = defaults.IGNORE_FILENAME,
    follow_symlinks: bool = False,
) -> CollectedTree:
    """
    Walk `root` and return every visible directory with its ignore chain.

    Hidden directories, built-in skipped directories and directories matched
    by the ignore chain are not entered. Symlinked directories are skipped
    unless `follow_symlinks` is set, in which case each real path is visited
    at most once.

    Raises:
        TraversalError: If the root itself cannot be read. A subdirectory
            that cannot be read, or disappears during the walk, is logged,
            recorded in `skipped` and left out of the tree.
    """
    root = Path(root).expanduser().resolve()
    if not root.is_dir():
        raise TraversalError(root, "not a readable directory")

    tree = CollectedTree(root=root)
    tree.nodes[root] = DirectoryNode(
        path=root,
        ignore_chain=resolve_chain(root, None, ignore_filename=ignore_filename, depth=0),
    )
    visited = {os.path.realpath(root)}
    queue = deque([root])

    while queue:
        current = queue.popleft()
        node = tree.nodes[current]
        try:
            subdirs = _scan_subdirs(current, follow_symlinks)
        except OSError as e:
            if current == root:
                raise TraversalError(root, f"cannot read directory: {e}") from e
            err = TraversalError(current, f"cannot read directory: {e}")
            logger.warning("Skipping directory: %s", err)
            tree.skipped.append(err)
            _detach(tree, current)
            continue

        for entry in subdirs:
            child = current / entry.name
            if should_ignore_dir(child, node.ignore_chain):
                continue
            if follow_symlinks:
                real = os.path.realpath(child)
                if real in visited:
                    logger.debug("Already visited %s via another path, skipping %s", real, child)
                    continue
                visited.add(real)

            depth = node.depth + 1
            tree.nodes[child] = DirectoryNode(
                path=child,
                parent=current,
                depth=depth,
                ignore_chain=resolve_chain(
                    child, node.ignore_chain, ignore_filename=ignore_filename, depth=depth
                ),
            )
            node.children.append(child)
            queue.append(child)

    logger.debug("Collected %d directories under %s", len(tree), root)
    return tree


def _detach(tree: CollectedTree, path: Path) -> None:
    # Unreadable directories have not been scanned, so they have no children yet
    node = tree.nodes.pop(path)
    if node.parent is not None and node.parent in tree.nodes:
        tree.nodes[node.parent].children.remove(path)
