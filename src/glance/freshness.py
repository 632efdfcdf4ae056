"""Staleness checks for incremental reruns.

A summary is fresh when nothing visible under its directory, at any depth, has
been modified after it. Directory mtimes count too, so adding, deleting or
renaming a file makes the summary stale. Summary files themselves, hidden
entries and ignored paths do not count.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from glance.config import defaults
from glance.ignore import IgnoreChain, resolve_chain, should_ignore_dir, should_ignore_file

logger = logging.getLogger(__name__)


def latest_mod_time(
    directory: Path,
    chain: IgnoreChain,
    *,
    summary_filename: str = defaults.SUMMARY_FILENAME,
    ignore_filename: str = defaults.IGNORE_FILENAME,
) -> float:
    """
    Newest mtime of `directory` itself and of every visible file and
    subdirectory under it.

    A deleted or renamed entry leaves no file behind, but it does bump the
    mtime of the directory that held it.
    """
    latest = 0.0
    try:
        latest = os.stat(directory).st_mtime
    except OSError as e:
        logger.debug("Cannot stat %s: %s", directory, e)
    stack = [(Path(directory), chain)]
    while stack:
        current, current_chain = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            logger.debug("Cannot scan %s for modification times: %s", current, e)
            continue
        for entry in entries:
            path = current / entry.name
            try:
                if entry.is_dir(follow_symlinks=False):
                    if should_ignore_dir(path, current_chain):
                        continue
                    latest = max(latest, entry.stat(follow_symlinks=False).st_mtime)
                    stack.append(
                        (path, resolve_chain(path, current_chain, ignore_filename=ignore_filename))
                    )
                elif entry.is_file():
                    if should_ignore_file(
                        path,
                        current_chain,
                        summary_filename=summary_filename,
                        ignore_filename=ignore_filename,
                    ):
                        continue
                    latest = max(latest, entry.stat().st_mtime)
            except OSError as e:
                logger.debug("Cannot stat %s: %s", path, e)
    return latest


def summary_mod_time(directory: Path, summary_filename: str = defaults.SUMMARY_FILENAME) -> Optional[float]:
    try:
        return (Path(directory) / summary_filename).stat().st_mtime
    except OSError:
        return None


def needs_regeneration(
    directory: Path,
    chain: IgnoreChain,
    *,
    force: bool = False,
    summary_filename: str = defaults.SUMMARY_FILENAME,
    ignore_filename: str = defaults.IGNORE_FILENAME,
) -> bool:
    """Decide whether `directory`'s summary must be (re)generated."""
    if force:
        return True
    summary_time = summary_mod_time(directory, summary_filename)
    if summary_time is None:
        return True
    newest = latest_mod_time(
        directory, chain, summary_filename=summary_filename, ignore_filename=ignore_filename
    )
    if newest > summary_time:
        logger.debug("%s is stale: content changed after its summary", directory)
        return True
    return False
