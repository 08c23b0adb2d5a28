"""Export formatter registry: pluggable format hub.

WHY: The CLI and API layers need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["pdf"]()``.

RULES:
- Keys are short lowercase identifiers (used in CLI flags and API forms)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gemini_export.formatters.json_export import JsonFormatter
from gemini_export.formatters.pdf_document import PdfFormatter

if TYPE_CHECKING:
    from gemini_export.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "json": JsonFormatter,
    "pdf": PdfFormatter,
}


def parse_format_keys(value: str | None) -> list[str]:
    """Split a comma-separated format list; empty means every format.

    Raises:
        ValueError: If a key is not registered in FORMATTERS.
    """
    if not value:
        return list(FORMATTERS.keys())
    keys = [key.strip() for key in value.split(",") if key.strip()]
    for key in keys:
        if key not in FORMATTERS:
            raise ValueError(
                "Unknown output format '{}'. Available: {}".format(
                    key, ", ".join(sorted(FORMATTERS.keys()))
                )
            )
    return keys or list(FORMATTERS.keys())
