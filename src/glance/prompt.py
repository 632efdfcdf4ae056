"""Prompt template loading and rendering.

A template is a `str.format` string with three fields:
{directory}, {subdirectory_summaries} and {file_contents}.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from glance.errors import ConfigError, FatalBackendError

if TYPE_CHECKING:
    from glance.models import FileEntry

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_FILENAME = "prompt.txt"

DEFAULT_TEMPLATE = """you are an expert code reviewer and technical writer.
generate a descriptive technical overview of this directory:
- highlight purpose, architecture, and key file roles
- mention important dependencies or gotchas
- do NOT provide recommendations or next steps

directory: {directory}

subdirectory summaries:
{subdirectory_summaries}

local file contents:
{file_contents}
"""


@dataclass
class PromptData:
    """Values substituted into the prompt template."""
    directory: str
    subdirectory_summaries: str
    file_contents: str

    def as_dict(self) -> dict[str, str]:
        return {
            "directory": self.directory,
            "subdirectory_summaries": self.subdirectory_summaries,
            "file_contents": self.file_contents,
        }


def format_file_contents(entries: Iterable["FileEntry"]) -> str:
    """Render file entries as `=== file: NAME ===` blocks, in name order."""
    parts = [
        f"=== file: {entry.name} ===\n{entry.content}\n\n"
        for entry in sorted(entries, key=lambda e: e.name)
    ]
    return "".join(parts)


def render_prompt(template: str, data: PromptData) -> str:
    """Fill the template. Bad templates are fatal for the directory."""
    try:
        return template.format_map(data.as_dict())
    except (KeyError, IndexError, ValueError) as e:
        raise FatalBackendError(f"failed to render prompt template: {e!r}") from e


def validate_template(template: str) -> None:
    """Render against placeholder data so config errors surface before a run."""
    if not template.strip():
        raise ConfigError("prompt template is empty")
    try:
        template.format_map(PromptData("dir", "subs", "files").as_dict())
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(f"invalid prompt template: {e!r}") from e


def load_template(path: Optional[Path | str] = None, cwd: Optional[Path] = None) -> str:
    """
    Load the prompt template.

    Order: explicit path, then prompt.txt in the working directory, then the
    built-in default. An explicit path that cannot be read is an error; a
    missing prompt.txt is not.
    """
    if path:
        template_path = Path(path).expanduser().resolve()
        if not template_path.exists():
            raise ConfigError(f"prompt template not found: {template_path}")
        if template_path.is_dir():
            raise ConfigError(f"prompt template path {template_path} is a directory, not a file")
        try:
            return template_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"failed to read prompt template {template_path}: {e}") from e

    default_path = (cwd or Path.cwd()) / DEFAULT_PROMPT_FILENAME
    if default_path.is_file():
        try:
            logger.debug("Using prompt template from %s", default_path)
            return default_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s, using default template: %s", default_path, e)

    return DEFAULT_TEMPLATE
