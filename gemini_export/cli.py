"""Command-line interface for the Gemini Conversation Exporter.

WHY: Users need a simple way to turn a shared Gemini conversation into
files from the terminal, either from a page they saved in the browser or
straight from its share URL.

HOW: Uses argparse to accept a source (HTML file or http(s) URL), the
formats to produce, an output directory and an optional title override.
URLs are fetched with ShareClient, optionally waiting for the
conversation to render. The async pipeline runs via asyncio.run().
Status messages go to stderr; files are saved next to the source file
(or to --output-dir, or the current directory for URLs).

RULES:
- Positional argument: SOURCE (saved HTML file or share URL)
- --formats: comma-separated formatter keys (default: all registered)
- Output naming: {sanitizedTitle}_{millisecondTimestamp}.{ext}, numeric
  suffix on conflict
- Status output goes to stderr (not stdout)
- Exit codes: 0 success, 1 error, 130 interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from gemini_export.api.client import ShareClient
from gemini_export.config import DEFAULT_OUTPUT_DIR, READY_TIMEOUT_S
from gemini_export.core.errors import ExportError
from gemini_export.core.pipeline import export_conversation, load_conversation
from gemini_export.formatters import FORMATTERS, parse_format_keys


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def setup_logging(verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


async def _read_source(args: argparse.Namespace) -> tuple:
    """Return (html, url, default_output_dir) for the SOURCE argument."""
    if _is_url(args.source):
        _status("Fetching {}...".format(args.source))
        async with ShareClient() as client:
            if args.wait and args.wait > 0:
                html = await client.fetch_until_ready(
                    args.source, timeout_s=args.wait, on_status=_status,
                )
            else:
                html = await client.fetch_page(args.source)
        return html or "", args.source, Path.cwd()

    input_path = Path(args.source).resolve()
    if not input_path.is_file():
        raise ValueError("File not found: {}".format(input_path))
    html = input_path.read_text(encoding="utf-8", errors="replace")
    return html, args.url or "", input_path.parent


async def _run_pipeline(args: argparse.Namespace) -> int:
    """Execute the full export pipeline and return the exit code.

    RULES:
    - Validate formats and the output directory before any fetch
    - Nothing is written unless every requested format succeeded
    """
    try:
        format_keys = parse_format_keys(args.formats)

        html, url, default_dir = await _read_source(args)
        output_dir_arg = args.output_dir or DEFAULT_OUTPUT_DIR
        output_dir = Path(output_dir_arg).resolve() if output_dir_arg else default_dir
        if not output_dir.is_dir():
            raise ValueError("Output directory does not exist: {}".format(output_dir))

        _status("Extracting conversation...")
        conversation = load_conversation(html, url=url, title=args.title)
        _status("  {} messages, title: {}".format(len(conversation.turns), conversation.title))

        _status("Exporting {}...".format(", ".join(format_keys)))
        saved = await export_conversation(conversation, format_keys, output_dir)

        _status("")
        _status("Done! Saved {} file(s) to {}".format(len(saved), output_dir))
        for path in saved:
            _status("  {}".format(path.name))
        return 0

    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        return 130
    except (ExportError, ValueError) as e:
        print("Error: {}".format(e), file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="gemini_export",
        description="Export a shared Gemini conversation (saved HTML page or "
                    "share URL) as JSON and/or PDF.",
    )

    parser.add_argument(
        "source",
        help="Saved share page (.html) or an http(s) share URL.",
    )

    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of output formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: next to the source file, "
             "or the current directory for URLs).",
    )

    parser.add_argument(
        "--title",
        default=None,
        help="Override the conversation title read from the page.",
    )

    parser.add_argument(
        "--url",
        default=None,
        help="Source URL to record when SOURCE is a saved file.",
    )

    parser.add_argument(
        "--wait",
        type=float,
        default=READY_TIMEOUT_S,
        help="For URLs: seconds to keep re-fetching until the conversation "
             "appears; 0 fetches once (default: %(default)s).",
    )

    parser.add_argument("--verbose", action="store_true", help="Log progress details.")
    parser.add_argument("--debug", action="store_true", help="Log debug details.")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Returns the process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.debug)
    return asyncio.run(_run_pipeline(args))


if __name__ == "__main__":
    sys.exit(main())
