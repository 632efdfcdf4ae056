"""Gather the local text files of one directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from glance.config import defaults
from glance.ignore import IgnoreChain, should_ignore_file
from glance.models import FileEntry

logger = logging.getLogger(__name__)


def looks_like_text(head: bytes) -> bool:
    """Heuristic text check on the first bytes of a file.

    NUL bytes mean binary. Otherwise the bytes must decode as UTF-8; a
    multi-byte sequence cut off at the end of the sample is allowed.
    """
    if not head:
        return True
    if b"\x00" in head:
        return False
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        return e.reason == "unexpected end of data" and e.start >= len(head) - 3
    return True


def is_text_file(path: Path, sniff_bytes: int = defaults.TEXT_SNIFF_BYTES) -> bool:
    with open(path, "rb") as f:
        return looks_like_text(f.read(sniff_bytes))


def truncate_content(content: str, max_bytes: int) -> tuple[str, bool]:
    """Cut content above `max_bytes` and mark it. Zero disables the limit."""
    if max_bytes <= 0:
        return content, False
    raw = content.encode("utf-8")
    if len(raw) <= max_bytes:
        return content, False
    cut = raw[:max_bytes].decode("utf-8", errors="ignore")
    return cut + defaults.TRUNCATION_MARKER, True


def read_text_file(path: Path, max_bytes: int = defaults.MAX_FILE_BYTES) -> FileEntry:
    """Read a text file, replacing invalid UTF-8 and truncating if too large."""
    path = Path(path)
    size = path.stat().st_size
    with open(path, "rb") as f:
        raw = f.read(max_bytes + 1) if max_bytes > 0 else f.read()
    content, truncated = truncate_content(raw.decode("utf-8", errors="replace"), max_bytes)
    return FileEntry(name=path.name, content=content, size=size, truncated=truncated)


def gather_local_files(
    directory: Path,
    chain: IgnoreChain,
    *,
    summary_filename: str = defaults.SUMMARY_FILENAME,
    ignore_filename: str = defaults.IGNORE_FILENAME,
    max_file_bytes: int = defaults.MAX_FILE_BYTES,
) -> list[FileEntry]:
    """
    Collect the immediate files of `directory` that should be summarized.

    Skips the directory's own summary file, its ignore file, hidden files,
    files matched by `chain`, and binary files. Files that vanish or cannot
    be read between listing and reading are skipped with a debug log.

    Raises:
        OSError: If the directory itself cannot be listed.
    """
    directory = Path(directory)
    entries: list[FileEntry] = []
    with os.scandir(directory) as it:
        names = sorted(e.name for e in it if e.is_file(follow_symlinks=True))

    for name in names:
        path = directory / name
        if should_ignore_file(
            path, chain, summary_filename=summary_filename, ignore_filename=ignore_filename
        ):
            continue
        try:
            if not is_text_file(path):
                logger.debug("Skipping binary file %s", path)
                continue
            entry = read_text_file(path, max_file_bytes)
        except OSError as e:
            logger.debug("Could not read %s, skipping: %s", path, e)
            continue
        if entry.truncated:
            logger.debug("Truncated %s (%d bytes) to %d bytes", path, entry.size, max_file_bytes)
        entries.append(entry)
    return entries
