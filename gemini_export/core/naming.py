"""Title sanitization and output filename construction.

WHY: Conversation titles are free text ("What's 2/3 of 9?") and end up
as filenames on every platform. Both exports share one naming scheme so
a JSON and a PDF from the same click sort next to each other.

HOW: sanitize_title() collapses whitespace and path-unsafe characters
into underscores, strips everything outside a conservative character
set, and truncates. build_filename() appends a millisecond timestamp and
the extension. resolve_output_path() avoids clobbering existing files.

RULES:
- Sanitized titles only contain [A-Za-z0-9_.-], are <= 100 chars, never empty
- Filename format: {sanitizedTitle}_{millisecondTimestamp}.{ext}
- Conflicts get a numeric suffix before the extension, starting at 2
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Optional

from gemini_export.config import DEFAULT_TITLE, MAX_TITLE_LENGTH

# Runs of whitespace and characters that are unsafe in paths.
_UNSAFE_RUN_RE = re.compile(r'[\s\\/:*?"<>|]+')
# Anything left outside the portable filename set.
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_.-]")


def sanitize_title(title: Optional[str]) -> str:
    """Turn a conversation title into a filesystem-safe stem.

    Examples:
        >>> sanitize_title('What is "AI" / ML?')
        'What_is_AI_ML_'
        >>> sanitize_title("   ")
        'gemini_conversation'
    """
    cleaned = (title or "").strip()
    cleaned = _UNSAFE_RUN_RE.sub("_", cleaned)
    cleaned = _DISALLOWED_RE.sub("", cleaned)
    return cleaned[:MAX_TITLE_LENGTH] or DEFAULT_TITLE


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def build_filename(title: Optional[str], extension: str, stamp_ms: Optional[int] = None) -> str:
    """Build ``{sanitizedTitle}_{millisecondTimestamp}.{ext}``."""
    if stamp_ms is None:
        stamp_ms = timestamp_ms()
    return "{}_{}.{}".format(sanitize_title(title), stamp_ms, extension.lstrip("."))


def resolve_output_path(output_dir: Path, filename: str) -> Path:
    """Return a path in output_dir that does not exist yet.

    WHY: Two exports within the same millisecond (or a re-run with a
    pinned timestamp) must not overwrite each other.

    HOW: Try the name as-is, then insert ``-2``, ``-3``, ... before the
    extension until a free name is found.
    """
    candidate = output_dir / filename
    if not candidate.exists():
        return candidate

    stem = candidate.stem
    suffix = candidate.suffix
    counter = 2
    while True:
        candidate = output_dir / "{}-{}{}".format(stem, counter, suffix)
        if not candidate.exists():
            return candidate
        counter += 1
