"""Drawing surfaces for the document renderer.

WHY: The renderer decides WHAT goes on the page (which font, which
indent, which marker) and a canvas decides HOW it gets there. Keeping
the two apart lets the renderer be tested against a recording canvas
that never touches a PDF library, and keeps every fpdf2 call in one
file.

HOW: Canvas is an ABC modelled on a flowing-text PDF API: a cursor moves
down the page as text is written, and writing past the bottom margin
starts a new page automatically. PdfCanvas implements it with fpdf2 in
point units. RecordingCanvas keeps a list of operations and simulates
the cursor so pagination-dependent code paths can be exercised.

RULES:
- Font names use PDF core-font names ("Helvetica-Bold", "Courier")
- Positions and sizes are points; the cursor (``y``) is measured from
  the top of the current page
- move_down(n) advances by n line heights of the current font size
- Text is written from the left margin plus ``indent``; pagination is
  the canvas's job, never the caller's
- Built-in PDF fonts are latin-1 only: PdfCanvas maps common Unicode
  punctuation to ASCII and replaces anything else with "?"
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from gemini_export.config import DEFAULT_STYLES, RGB, PdfStyles

logger = logging.getLogger(__name__)

A4_WIDTH_PT = 595.28
A4_HEIGHT_PT = 841.89

# Core PDF font name -> (fpdf2 family, style)
_FONT_FACES = {
    "Helvetica": ("helvetica", ""),
    "Helvetica-Bold": ("helvetica", "B"),
    "Helvetica-Oblique": ("helvetica", "I"),
    "Helvetica-BoldOblique": ("helvetica", "BI"),
    "Courier": ("courier", ""),
    "Courier-Bold": ("courier", "B"),
    "Courier-Oblique": ("courier", "I"),
    "Times-Roman": ("times", ""),
    "Times-Bold": ("times", "B"),
    "Times-Italic": ("times", "I"),
}

_ASCII_REPLACEMENTS = {
    "\u00a0": " ",
    "\u2007": " ",
    "\u2009": " ",
    "\u200b": "",
    "\u2010": "-",
    "\u2011": "-",
    "\u2012": "-",
    "\u2013": "-",
    "\u2014": "--",
    "\u2015": "--",
    "\u2212": "-",
    "\u2026": "...",
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": "\"",
    "\u201d": "\"",
    "\u2022": "\u00b7",
    "\u2190": "<-",
    "\u2192": "->",
    "\u21d2": "=>",
    "\u2713": "v",
    "\u2714": "v",
}


def sanitize_pdf_text(text: str) -> str:
    """Make ``text`` encodable with the latin-1 core fonts."""
    out = text or ""
    for key, val in _ASCII_REPLACEMENTS.items():
        out = out.replace(key, val)
    return out.encode("latin-1", "replace").decode("latin-1")


def font_face(name: str) -> Tuple[str, str]:
    """Map a core font name to an fpdf2 (family, style) pair."""
    if name in _FONT_FACES:
        return _FONT_FACES[name]
    family, _, variant = name.partition("-")
    style = ""
    if "Bold" in variant:
        style += "B"
    if "Oblique" in variant or "Italic" in variant:
        style += "I"
    return family.lower(), style


class Canvas(ABC):
    """Flowing-text drawing surface with automatic pagination."""

    @abstractmethod
    def add_page(self) -> None:
        """Start a new page and put the cursor at the top margin."""

    @abstractmethod
    def set_font(self, name: str, size: float) -> None:
        """Select a core font by name and size (points)."""

    @abstractmethod
    def set_text_color(self, color: RGB) -> None:
        """Select the fill color used for subsequent text."""

    def prepare(self, text: str) -> str:
        """Return ``text`` as this canvas will draw it."""
        return text or ""

    @abstractmethod
    def text(self, text: str, *, indent: float = 0.0, align: str = "L") -> None:
        """Write wrapped text at the cursor and advance past it.

        Line breaks in ``text`` are kept. ``align`` is "L", "C", "R" or "J".
        """

    @abstractmethod
    def move_down(self, lines: float = 1.0) -> None:
        """Advance the cursor by ``lines`` line heights."""

    @abstractmethod
    def dashed_rule(
        self,
        x1: float,
        x2: float,
        *,
        dash: float,
        gap: float,
        width: float,
        color: RGB,
    ) -> None:
        """Stroke a horizontal dashed line at the cursor.

        Stroke width, color and dash pattern are restored afterwards.
        """

    @abstractmethod
    def output(self) -> bytes:
        """Serialize the finished document."""

    @property
    @abstractmethod
    def y(self) -> float:
        """Cursor position from the top of the current page."""

    @property
    @abstractmethod
    def page(self) -> int:
        """Number of the current page (0 before the first page)."""

    @property
    @abstractmethod
    def page_width(self) -> float:
        ...

    @property
    @abstractmethod
    def page_height(self) -> float:
        ...


class PdfCanvas(Canvas):
    """Canvas backed by an fpdf2 document in point units.

    HOW: Margins on all four sides equal ``styles.page_margin`` and the
    bottom margin doubles as the auto page break trigger, so text that
    would run past it flows onto a new page.
    """

    def __init__(
        self,
        styles: PdfStyles = DEFAULT_STYLES,
        page_format: str = "A4",
        title: Optional[str] = None,
    ) -> None:
        self._styles = styles
        self._pdf = FPDF(orientation="P", unit="pt", format=page_format)
        margin = styles.page_margin
        self._pdf.set_margins(margin, margin, margin)
        self._pdf.set_auto_page_break(auto=True, margin=margin)
        self._pdf.set_creator("gemini-export")
        if title:
            self._pdf.set_title(sanitize_pdf_text(title))
        self._size = styles.size_normal
        self.set_font(styles.font, styles.size_normal)

    @property
    def line_height(self) -> float:
        return self._size * self._styles.line_height_factor

    def _ensure_page(self) -> None:
        if self._pdf.page == 0:
            self.add_page()

    def add_page(self) -> None:
        self._pdf.add_page()

    def set_font(self, name: str, size: float) -> None:
        family, style = font_face(name)
        self._pdf.set_font(family, style, size)
        self._size = size

    def set_text_color(self, color: RGB) -> None:
        self._pdf.set_text_color(*color)

    def prepare(self, text: str) -> str:
        return sanitize_pdf_text(text)

    def text(self, text: str, *, indent: float = 0.0, align: str = "L") -> None:
        self._ensure_page()
        if not text:
            return
        pdf = self._pdf
        pdf.set_x(pdf.l_margin + indent)
        pdf.multi_cell(
            pdf.epw - indent,
            self.line_height,
            self.prepare(text),
            align=align,
            new_x=XPos.LMARGIN,
            new_y=YPos.NEXT,
        )

    def move_down(self, lines: float = 1.0) -> None:
        self._ensure_page()
        self._pdf.ln(lines * self.line_height)

    def dashed_rule(
        self,
        x1: float,
        x2: float,
        *,
        dash: float,
        gap: float,
        width: float,
        color: RGB,
    ) -> None:
        self._ensure_page()
        pdf = self._pdf
        previous_width = pdf.line_width
        pdf.set_line_width(width)
        pdf.set_draw_color(*color)
        pdf.set_dash_pattern(dash=dash, gap=gap)
        y = pdf.get_y()
        pdf.line(x1, y, x2, y)
        pdf.set_dash_pattern()
        pdf.set_draw_color(0, 0, 0)
        pdf.set_line_width(previous_width)

    def output(self) -> bytes:
        self._ensure_page()
        return bytes(self._pdf.output())

    @property
    def y(self) -> float:
        return self._pdf.get_y()

    @property
    def page(self) -> int:
        return self._pdf.page

    @property
    def page_width(self) -> float:
        return self._pdf.w

    @property
    def page_height(self) -> float:
        return self._pdf.h


class RecordingCanvas(Canvas):
    """In-memory canvas that records every drawing operation.

    WHY: Renderer tests assert on what was drawn (labels, markers, fonts,
    colors) and in which order. Recording operations is far easier to
    inspect than parsing a PDF.

    HOW: ``ops`` is a list of tuples, one per call:
      ("page",) ("font", name, size) ("color", rgb)
      ("text", text, indent, align, font, size, color)
      ("move", lines) ("rule", x1, x2, y)
    The cursor advances by one line height per text line (no word
    wrapping) and a new page starts when text would cross the bottom
    margin. ``fail_on`` makes text() raise for any text containing it.
    """

    def __init__(
        self,
        styles: PdfStyles = DEFAULT_STYLES,
        width: float = A4_WIDTH_PT,
        height: float = A4_HEIGHT_PT,
        fail_on: Optional[str] = None,
    ) -> None:
        self._styles = styles
        self._width = width
        self._height = height
        self._margin = styles.page_margin
        self._y = 0.0
        self._page = 0
        self._font = styles.font
        self._size = styles.size_normal
        self._color: RGB = styles.color_default
        self.fail_on = fail_on
        self.ops: List[Tuple[Any, ...]] = []

    @property
    def line_height(self) -> float:
        return self._size * self._styles.line_height_factor

    def _ensure_page(self) -> None:
        if self._page == 0:
            self.add_page()

    def add_page(self) -> None:
        self._page += 1
        self._y = self._margin
        self.ops.append(("page",))

    def set_font(self, name: str, size: float) -> None:
        self._font = name
        self._size = size
        self.ops.append(("font", name, size))

    def set_text_color(self, color: RGB) -> None:
        self._color = tuple(color)
        self.ops.append(("color", self._color))

    def text(self, text: str, *, indent: float = 0.0, align: str = "L") -> None:
        self._ensure_page()
        if self.fail_on is not None and self.fail_on in (text or ""):
            raise RuntimeError("refusing to draw {!r}".format(text))
        if not text:
            return
        height = self.line_height * (text.count("\n") + 1)
        if self._y + height > self._height - self._margin and self._y > self._margin:
            self.add_page()
        self.ops.append(("text", text, indent, align, self._font, self._size, self._color))
        self._y += height

    def move_down(self, lines: float = 1.0) -> None:
        self._ensure_page()
        self._y += lines * self.line_height
        self.ops.append(("move", lines))

    def dashed_rule(
        self,
        x1: float,
        x2: float,
        *,
        dash: float,
        gap: float,
        width: float,
        color: RGB,
    ) -> None:
        self._ensure_page()
        self.ops.append(("rule", x1, x2, self._y))

    def output(self) -> bytes:
        return "\n".join(op[1] for op in self.ops if op[0] == "text").encode("utf-8")

    @property
    def y(self) -> float:
        return self._y

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_width(self) -> float:
        return self._width

    @property
    def page_height(self) -> float:
        return self._height

    # -- inspection helpers ---------------------------------------------------

    def texts(self) -> List[str]:
        """Every string written, in order."""
        return [op[1] for op in self.ops if op[0] == "text"]

    def text_ops(self) -> List[Tuple[Any, ...]]:
        return [op for op in self.ops if op[0] == "text"]

    def find_text(self, text: str) -> Tuple[Any, ...]:
        """First text op whose string equals ``text``; raises KeyError."""
        for op in self.ops:
            if op[0] == "text" and op[1] == text:
                return op
        raise KeyError(text)
