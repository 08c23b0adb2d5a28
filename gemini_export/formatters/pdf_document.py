"""Paginated PDF document formatter.

WHY: The readable export. Labels, headings, lists, code and tables from
the assistant's reply come out as styled text on A4 pages, with a header
naming the conversation, its URL and the export date.

HOW: Each call builds a fresh PdfCanvas and DocumentRenderer (sharing
only the process-wide normalizer), renders the whole conversation and
hands the canvas to an OutputAssembler, which serializes it in a worker
thread.

RULES:
- One canvas and one renderer per format() call; nothing is reused
- Header title is the sanitized title
- Serialization failures raise StreamFinalizeFailure; no bytes are
  returned in that case
- Output suffix: ".pdf"
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Callable, Optional

from gemini_export.config import DEFAULT_STYLES, PdfStyles
from gemini_export.core.ir import Conversation
from gemini_export.core.naming import sanitize_title
from gemini_export.formatters.base import BaseFormatter, FormatterOutput

if TYPE_CHECKING:
    from gemini_export.core.canvas import Canvas
    from gemini_export.core.normalizer import RichTextNormalizer

logger = logging.getLogger(__name__)

CanvasFactory = Callable[[PdfStyles, str], "Canvas"]


def _pdf_canvas(styles: PdfStyles, title: str) -> Canvas:
    from gemini_export.core.canvas import PdfCanvas
    return PdfCanvas(styles=styles, title=title)


class PdfFormatter(BaseFormatter):
    """Renders the conversation into a PDF document.

    Args:
        normalizer: Shared rich-markup converter. Defaults to the
            process-wide instance from the pipeline module.
        styles: Fonts, sizes and spacing for the document.
        canvas_factory: Builds the drawing surface; tests pass one that
            returns a RecordingCanvas.
        generated_on: Date printed in the header; defaults to today.
    """

    def __init__(
        self,
        normalizer: Optional[RichTextNormalizer] = None,
        styles: PdfStyles = DEFAULT_STYLES,
        canvas_factory: CanvasFactory = _pdf_canvas,
        generated_on: Optional[date] = None,
    ) -> None:
        self._normalizer = normalizer
        self._styles = styles
        self._canvas_factory = canvas_factory
        self._generated_on = generated_on

    @property
    def name(self) -> str:
        return "PDF document"

    @property
    def extension(self) -> str:
        return "pdf"

    def _get_normalizer(self) -> RichTextNormalizer:
        if self._normalizer is None:
            from gemini_export.core.pipeline import get_normalizer
            self._normalizer = get_normalizer()
        return self._normalizer

    async def format(self, conversation: Conversation) -> list[FormatterOutput]:
        from gemini_export.core.assembler import OutputAssembler
        from gemini_export.core.renderer import DocumentRenderer

        title = sanitize_title(conversation.title)
        canvas = self._canvas_factory(self._styles, title)
        renderer = DocumentRenderer(self._get_normalizer(), styles=self._styles)

        logger.info("Rendering %d messages to PDF", len(conversation.turns))
        renderer.render_document(
            canvas,
            replace(conversation, title=title),
            generated_on=self._generated_on,
        )

        result = await OutputAssembler().finalize(canvas)
        content = result.unwrap()
        return [FormatterOutput(suffix=".pdf", content=content, media_type="application/pdf")]
