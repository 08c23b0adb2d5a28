"""Configuration constants, page selectors, PDF styles, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. The share page markup changes without notice, so
the CSS selectors live here as plain data rather than buried in the
extractor. The PDF style table drives every rendering decision in the
renderer and is kept next to the selectors for the same reason.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, a frozen dataclass, and strings. Environment
variables override the defaults for anything deployment-specific
(output directory, timeouts, API host/port).

RULES:
- SELECTORS are CSS selectors understood by BeautifulSoup.select()
- PdfStyles sizes are points, colors are RGB tuples (0-255)
- All defaults can be overridden via environment variables
- Nothing in this module performs I/O beyond reading .env
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Tuple

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Share page selectors
# ---------------------------------------------------------------------------

SELECTORS: Dict[str, str] = {
    "app_root": "#app-root",
    "title_h1": ".share-title-section h1",
    "turn_viewer": "share-turn-viewer",
    "user_query_text": "user-query .query-text",
    "assistant_markdown": "response-container message-content .markdown",
}
"""CSS selectors for the Gemini share page (gemini.google.com/share/*)."""

READY_ANCHOR_SELECTOR = SELECTORS["turn_viewer"]
"""Selector whose presence means the conversation has been rendered."""

# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

DEFAULT_TITLE = "gemini_conversation"
"""Placeholder used when the page has no title or it sanitizes to nothing."""

MAX_TITLE_LENGTH = 100

# ---------------------------------------------------------------------------
# PDF styles
# ---------------------------------------------------------------------------

RGB = Tuple[int, int, int]

COLORS: Dict[str, RGB] = {
    "black": (0, 0, 0),
    "blue": (0, 0, 255),
    "red": (255, 0, 0),
    "grey": (128, 128, 128),
    "orange": (255, 165, 0),
}


@dataclass(frozen=True)
class PdfStyles:
    """Fonts, sizes, colors and spacing used by the document renderer.

    WHY: Every rendering rule (heading sizes, code indent, list indent,
    turn spacing) is a number somebody will want to tweak. Keeping them
    in one immutable value makes the renderer deterministic and lets
    tests build a renderer with custom styles.

    RULES:
    - Sizes and indents are in points (1/72 inch)
    - Spacing values are in multiples of the current line height
    - line height = font size * line_height_factor
    - heading size = max(size_heading_min,
      size_heading_base + size_heading_step * (depth - 1) + 2)
    """

    font: str = "Helvetica"
    font_bold: str = "Helvetica-Bold"
    font_oblique: str = "Helvetica-Oblique"
    font_mono: str = "Courier"

    size_normal: float = 12
    size_code: float = 10
    size_table: float = 9
    size_heading_base: float = 16
    size_heading_step: float = -1
    size_heading_min: float = 10
    size_title: float = 16
    size_meta: float = 10

    color_user: RGB = COLORS["blue"]
    color_assistant: RGB = COLORS["red"]
    color_default: RGB = COLORS["black"]
    color_meta: RGB = COLORS["grey"]
    color_alert: RGB = COLORS["orange"]

    line_height_factor: float = 1.15
    indent: float = 20
    list_indent_factor: float = 15
    line_spacing: float = 0.25
    para_spacing: float = 1.5
    heading_spacing: float = 0.3
    label_spacing: float = 0.5
    list_item_spacing: float = 0.1
    rule_spacing: float = 0.5
    header_spacing: float = 2

    page_margin: float = 50
    error_break_threshold: float = 100
    rule_line_width: float = 1
    rule_dash: float = 5
    rule_gap: float = 5

    bullet: str = "• "
    table_separator: str = " | "
    checkbox_checked: str = "[X] "
    checkbox_unchecked: str = "[ ] "


DEFAULT_STYLES = PdfStyles()

# ---------------------------------------------------------------------------
# Runtime defaults (environment overridable)
# ---------------------------------------------------------------------------

DEFAULT_OUTPUT_DIR = os.getenv("GEMINI_EXPORT_OUTPUT_DIR", "")
FETCH_TIMEOUT_S = float(os.getenv("GEMINI_EXPORT_FETCH_TIMEOUT", "30"))
READY_TIMEOUT_S = float(os.getenv("GEMINI_EXPORT_READY_TIMEOUT", "15"))
USER_AGENT = os.getenv(
    "GEMINI_EXPORT_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) gemini-export/0.1",
)
API_HOST = os.getenv("GEMINI_EXPORT_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("GEMINI_EXPORT_API_PORT", "8000"))
