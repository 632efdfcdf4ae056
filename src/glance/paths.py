"""Path validation for files glance writes."""

from __future__ import annotations

import os
from pathlib import Path

from glance.errors import ValidationError


def validate_path_within_base(path: Path | str, base: Path | str) -> Path:
    """
    Resolve `path` and check it stays inside `base`.

    Symlinks are resolved on both sides, so a link pointing out of the base
    is rejected.

    Raises:
        ValidationError: If the resolved path is outside `base`.
    """
    base_resolved = Path(base).resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = base_resolved / candidate
    resolved = candidate.resolve()
    if resolved != base_resolved and not resolved.is_relative_to(base_resolved):
        raise ValidationError(resolved, base_resolved)
    return resolved


def validate_output_path(directory: Path | str, filename: str, root: Path | str) -> Path:
    """
    Build and check the summary path for `directory`.

    The filename must be a bare name, and the result must resolve inside both
    `directory` and the run's `root`.

    Raises:
        ValidationError: On a path-like filename or an escaping result.
    """
    if not filename or filename in (".", "..") or os.sep in filename or (
        os.altsep and os.altsep in filename
    ):
        raise ValidationError(
            Path(directory) / filename,
            Path(directory),
            f"invalid output filename {filename!r}",
        )
    target = validate_path_within_base(Path(directory) / filename, directory)
    validate_path_within_base(target, root)
    return target
