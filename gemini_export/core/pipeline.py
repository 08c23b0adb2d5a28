"""Composition root for one export invocation.

WHY: The CLI and the HTTP API run the same sequence (extract the turns,
check the libraries, run the formatters, write the files) and must
agree on what counts as failure. Keeping that sequence here means both
front ends are thin.

HOW: load_conversation() runs the extractor over page HTML.
export_conversation() checks dependencies, refuses an empty
conversation, renders every requested format in memory, and only then
writes files. The rich text normalizer is created lazily, once per
process, by get_normalizer() and shared by every PDF render.

RULES:
- Setup failures raise ExportError subclasses before any file is written
- Files are written only after every requested formatter has succeeded
- Unexpected formatter errors are wrapped in ExportError with the cause
  chained
- Output filenames follow {sanitizedTitle}_{millisecondTimestamp}.{ext}
  with one timestamp shared by all formats of one export
"""

from __future__ import annotations

import importlib.util
import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from gemini_export.core.errors import DependencyUnavailable, ExportError, ExtractionEmpty
from gemini_export.core.extractor import TranscriptExtractor
from gemini_export.core.ir import Conversation
from gemini_export.core.naming import build_filename, resolve_output_path, timestamp_ms
from gemini_export.core.normalizer import RichTextNormalizer
from gemini_export.formatters import FORMATTERS

logger = logging.getLogger(__name__)

# Import names each format needs at render time.
REQUIRED_MODULES: Dict[str, Tuple[str, ...]] = {
    "json": ("bs4", "jsonschema"),
    "pdf": ("bs4", "markdownify", "markdown_it", "fpdf"),
}

_normalizer: Optional[RichTextNormalizer] = None
_normalizer_lock = threading.Lock()


def get_normalizer() -> RichTextNormalizer:
    """Return the process-wide normalizer, building it on first use."""
    global _normalizer
    if _normalizer is None:
        with _normalizer_lock:
            if _normalizer is None:
                _normalizer = RichTextNormalizer()
    return _normalizer


def check_dependencies(format_keys: Iterable[str]) -> None:
    """Raise DependencyUnavailable if a library needed by a format is missing."""
    missing = sorted({
        module
        for key in format_keys
        for module in REQUIRED_MODULES.get(key, ())
        if importlib.util.find_spec(module) is None
    })
    if missing:
        raise DependencyUnavailable(missing)


def load_conversation(html: str, url: str = "", title: Optional[str] = None) -> Conversation:
    """Extract the conversation from share page HTML.

    ``title`` overrides the page title when given. Returns a Conversation
    without turns when the page holds none; export_conversation() turns
    that into ExtractionEmpty.
    """
    conversation = TranscriptExtractor(html, url=url).conversation()
    if title:
        conversation = replace(conversation, title=title)
    return conversation


@dataclass
class RenderedFile:
    """One export rendered in memory, not yet on disk."""

    format_key: str
    filename: str
    content: str | bytes
    media_type: str


async def render_outputs(
    conversation: Conversation,
    format_keys: Sequence[str],
    stamp_ms: Optional[int] = None,
) -> List[RenderedFile]:
    """Run every requested formatter and collect the results in memory.

    Raises:
        ExtractionEmpty: If the conversation has no turns.
        DependencyUnavailable: If a required library is missing.
        ExportError: If a formatter fails.
    """
    if not conversation.turns:
        raise ExtractionEmpty()
    check_dependencies(format_keys)

    stamp = timestamp_ms() if stamp_ms is None else stamp_ms
    rendered: List[RenderedFile] = []
    for key in format_keys:
        if key not in FORMATTERS:
            raise ExportError("Unknown output format '{}'".format(key))
        formatter = FORMATTERS[key]()
        try:
            outputs = await formatter.format(conversation)
        except ExportError:
            raise
        except Exception as exc:
            logger.exception("Formatter %s failed", key)
            raise ExportError("Failed to create {}: {}".format(formatter.name, exc)) from exc

        for output in outputs:
            rendered.append(RenderedFile(
                format_key=key,
                filename=build_filename(conversation.title, output.suffix, stamp),
                content=output.content,
                media_type=output.media_type,
            ))
    return rendered


def write_outputs(rendered: Iterable[RenderedFile], output_dir: Path) -> List[Path]:
    """Write rendered files into ``output_dir`` without overwriting."""
    output_dir.mkdir(parents=True, exist_ok=True)
    paths: List[Path] = []
    for item in rendered:
        path = resolve_output_path(output_dir, item.filename)
        if isinstance(item.content, bytes):
            path.write_bytes(item.content)
        else:
            path.write_text(item.content, encoding="utf-8")
        logger.info("Wrote %s", path)
        paths.append(path)
    return paths


async def export_conversation(
    conversation: Conversation,
    format_keys: Sequence[str],
    output_dir: Path,
    stamp_ms: Optional[int] = None,
) -> List[Path]:
    """Render all requested formats, then write them to ``output_dir``."""
    rendered = await render_outputs(conversation, format_keys, stamp_ms=stamp_ms)
    return write_outputs(rendered, output_dir)
