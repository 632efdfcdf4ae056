#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from glance.cli.formatting.progress import ProgressBar, RichProgressReporter, Spinner
from glance.collector import collect
from glance.config import GlanceConfig
from glance.errors import ConfigError, TraversalError
from glance.llm import build_client, build_limiter
from glance.models import RunReport
from glance.prompt import load_template
from glance.scheduler import summarize

logger = logging.getLogger("glance.cli")

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glance",
        description="Generate a summary document for every directory in a tree, bottom-up.",
    )
    parser.add_argument("directory", help="Directory to summarize")
    parser.add_argument(
        "--force", action="store_true", default=None, help="Regenerate summaries even if up to date"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--stream", action="store_true", default=None, help="Use the streaming generation API"
    )
    parser.add_argument("--prompt-file", help="Custom prompt template (default: ./prompt.txt if present)")
    parser.add_argument("--concurrency", type=int, help="Directories summarized in parallel")
    parser.add_argument(
        "--provider",
        choices=["auto", "gemini", "openrouter"],
        help="Generation backend (default: auto)",
    )
    parser.add_argument("--model", help="Model name for the selected provider")
    parser.add_argument("--max-retries", type=int, help="Retries per directory after the first attempt")
    parser.add_argument("--timeout", type=float, help="Per-attempt request timeout in seconds")
    parser.add_argument(
        "--token-policy",
        choices=["warn", "truncate", "fail"],
        help="What to do with prompts above the token limit (default: warn)",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("glance").setLevel(logging.DEBUG if verbose else logging.INFO)


def _config_from_args(args: argparse.Namespace) -> GlanceConfig:
    config = GlanceConfig.from_env(
        args.directory,
        force=args.force,
        verbose=args.verbose,
        stream=args.stream,
        provider=args.provider,
        model=args.model,
        concurrency=args.concurrency,
        max_retries=args.max_retries,
        request_timeout=args.timeout,
        token_limit_policy=args.token_policy,
        prompt_template=load_template(args.prompt_file),
    )
    return config.validate()


async def _run(config: GlanceConfig) -> RunReport:
    client = build_client(config)
    try:
        with Spinner(f"Scanning {config.target_dir}..."):
            tree = collect(
                config.target_dir,
                ignore_filename=config.ignore_filename,
                follow_symlinks=config.follow_symlinks,
            )
        logger.info("Found %d directories under %s", len(tree), config.target_dir)
        with ProgressBar() as bar:
            return await summarize(
                config,
                client,
                RichProgressReporter(bar),
                tree=tree,
                limiter=build_limiter(config),
            )
    finally:
        await client.close()


def _debrief(report: RunReport) -> None:
    logger.info(
        "Processed %d directories: %d regenerated, %d up to date, %d failed",
        report.processed,
        report.regenerated,
        report.skipped,
        report.failed,
    )
    for error in report.traversal_errors:
        logger.warning("Skipped during scan: %s", error)
    for failure in report.failures:
        attempts = f" after {failure.attempts} attempts" if failure.attempts > 1 else ""
        logger.error("Failed: %s%s", failure, attempts)
    if report.root_succeeded:
        logger.info("Summary written to %s", report.root_summary_path)
    else:
        logger.error("No summary for the root directory %s", report.root)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_dotenv(Path.cwd() / ".env")
    _configure_logging(args.verbose)

    try:
        config = _config_from_args(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    try:
        report = asyncio.run(_run(config))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR
    except TraversalError as e:
        logger.error("Cannot scan %s", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; summaries written so far are kept")
        return EXIT_INTERRUPTED

    _debrief(report)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
