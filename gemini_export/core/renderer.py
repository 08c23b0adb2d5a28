"""Block token to paginated document rendering.

WHY: This is the heart of the PDF export. A conversation is a sequence
of messages; each message body is markdown that has to come out as
styled, paginated text. Two things matter more than looks: the document
must always be produced (one bad message never sinks the export), and
one block's styling must never bleed into the next.

HOW: For every message the renderer draws a colored bold label, then
tokenizes the body and dispatches each Token through a handler table
keyed by TokenKind. Style state lives in an immutable LayoutState that
each handler receives and returns; after every block the state is reset
to the body default. Pagination is left to the canvas. A message whose
body fails is replaced by an orange "[Msg Render Error]" marker plus
its plain text in monospace; a failure outside the body (the label,
say) is caught one level up and marked "[Msg Format Error]".

RULES:
- Handler table covers every TokenKind; unknown kinds use the default
  (render text as a paragraph, or nothing)
- Tokens are never mutated, reordered or skipped
- Trailing message spacing is emitted whether the body failed or not
- The only explicit page break is the error path's low-space check
- One renderer renders one document at a time; an overlapping call
  raises RenderInProgressError instead of waiting
"""

from __future__ import annotations

import contextlib
import logging
import threading
from dataclasses import dataclass, replace
from datetime import date
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Iterator, Optional

from gemini_export.config import DEFAULT_STYLES, RGB, PdfStyles
from gemini_export.core.errors import MessageRenderFailure, RenderInProgressError
from gemini_export.core.ir import Conversation, Role, Token, TokenKind, Turn
from gemini_export.core.normalizer import RichTextNormalizer
from gemini_export.core.tokenizer import MarkdownTokenizer

if TYPE_CHECKING:
    from gemini_export.core.canvas import Canvas

logger = logging.getLogger(__name__)

RENDER_ERROR_MARKER = "[Msg Render Error]"
FORMAT_ERROR_MARKER = "[Msg Format Error]"
RENDER_ERROR_PLACEHOLDER = "[Content unavailable]"
FORMAT_ERROR_PLACEHOLDER = "[Err Content]"


@dataclass(frozen=True)
class LayoutState:
    """Style and cursor state of one render invocation.

    ``y`` and ``page`` are snapshots of the canvas cursor taken after
    each block; the canvas stays the source of truth for pagination.
    """

    font: str
    size: float
    color: RGB
    y: float = 0.0
    page: int = 0

    @classmethod
    def default(cls, styles: PdfStyles = DEFAULT_STYLES) -> "LayoutState":
        return cls(font=styles.font, size=styles.size_normal, color=styles.color_default)


Handler = Callable[["Canvas", Token, LayoutState], LayoutState]


def heading_size(depth: int, styles: PdfStyles = DEFAULT_STYLES) -> float:
    """Font size for a heading of level ``depth`` (1-6)."""
    return max(
        styles.size_heading_min,
        styles.size_heading_base + styles.size_heading_step * (depth - 1) + 2,
    )


def list_marker(token: Token, index: int, styles: PdfStyles = DEFAULT_STYLES) -> str:
    if token.ordered:
        return "{}. ".format(token.start + index)
    return styles.bullet


class DocumentRenderer:
    """Renders conversations onto a Canvas.

    WHY: Owns the token-to-style mapping so the PDF formatter only has
    to build a canvas and hand over the conversation.

    HOW: The normalizer is injected (one process-wide instance built by
    the pipeline); the tokenizer and styles default to fresh instances.

    Usage:
        renderer = DocumentRenderer(get_normalizer())
        canvas = PdfCanvas()
        renderer.render_document(canvas, conversation)
        pdf_bytes = canvas.output()
    """

    def __init__(
        self,
        normalizer: RichTextNormalizer,
        tokenizer: Optional[MarkdownTokenizer] = None,
        styles: PdfStyles = DEFAULT_STYLES,
    ) -> None:
        self._normalizer = normalizer
        self._tokenizer = tokenizer or MarkdownTokenizer()
        self._styles = styles
        self._lock = threading.Lock()
        self._handlers: Dict[TokenKind, Handler] = {
            TokenKind.HEADING: self._render_heading,
            TokenKind.PARAGRAPH: self._render_paragraph,
            TokenKind.LIST: self._render_list,
            TokenKind.CODE: self._render_code,
            TokenKind.BLOCKQUOTE: self._render_blockquote,
            TokenKind.TABLE: self._render_table,
            TokenKind.RULE: self._render_rule,
            TokenKind.RAW_MARKUP: self._render_raw_markup,
            TokenKind.WHITESPACE: self._render_whitespace,
            TokenKind.OTHER: self._render_other,
        }

    @property
    def styles(self) -> PdfStyles:
        return self._styles

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise RenderInProgressError("Renderer is already rendering a document")
        try:
            yield
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def render_document(
        self,
        canvas: Canvas,
        conversation: Conversation,
        generated_on: Optional[date] = None,
    ) -> LayoutState:
        """Render the header block and every turn of ``conversation``."""
        with self._exclusive():
            state = self._render_header(canvas, conversation.title, conversation.url, generated_on)
            return self._render_turns(canvas, conversation.turns, state)

    def render_header(
        self,
        canvas: Canvas,
        title: str,
        url: str = "",
        generated_on: Optional[date] = None,
    ) -> LayoutState:
        with self._exclusive():
            return self._render_header(canvas, title, url, generated_on)

    def render_message(
        self,
        canvas: Canvas,
        turn: Turn,
        state: Optional[LayoutState] = None,
        index: int = 0,
    ) -> LayoutState:
        """Render one turn: label, body, trailing spacing.

        Body failures are recovered here; failures outside the body
        propagate to the caller.
        """
        with self._exclusive():
            return self._render_message(canvas, turn, state or self._default_state(canvas), index)

    def markdown_for(self, turn: Turn) -> str:
        """Markdown body of a turn.

        User turns are already plain text. Assistant markup goes through
        the normalizer, falling back to the turn's plain text when the
        conversion yields nothing.
        """
        if turn.role == Role.USER or not turn.markup:
            return turn.text or ""
        return self._normalizer.convert(turn.markup) or turn.text or ""

    # ------------------------------------------------------------------
    # Document and message structure
    # ------------------------------------------------------------------

    def _render_header(
        self,
        canvas: Canvas,
        title: str,
        url: str,
        generated_on: Optional[date],
    ) -> LayoutState:
        s = self._styles
        if canvas.page == 0:
            canvas.add_page()
        state = self._default_state(canvas)

        state = self._apply(canvas, replace(state, font=s.font_bold, size=s.size_title))
        canvas.text(title, align="C")
        state = self._apply(canvas, replace(state, font=s.font, size=s.size_meta))
        if url:
            canvas.text(url, align="C")
        day = generated_on or date.today()
        canvas.text("Generated on {}".format(day.isoformat()), align="C")
        canvas.move_down(s.header_spacing)
        return self._reset(canvas, state)

    def _render_turns(self, canvas: Canvas, turns: Iterable[Turn], state: LayoutState) -> LayoutState:
        for index, turn in enumerate(turns):
            try:
                state = self._render_message(canvas, turn, state, index)
            except Exception:
                logger.exception("Format error in message %d", index + 1)
                state = self._render_fallback(
                    canvas, FORMAT_ERROR_MARKER, turn.text or FORMAT_ERROR_PLACEHOLDER, state,
                )
        return state

    def _render_message(self, canvas: Canvas, turn: Turn, state: LayoutState, index: int) -> LayoutState:
        s = self._styles
        color = s.color_user if turn.role == Role.USER else s.color_assistant

        state = self._apply(canvas, replace(state, font=s.font_bold, size=s.size_normal, color=color))
        canvas.text(turn.label)
        state = self._apply(canvas, replace(state, font=s.font, color=s.color_default))
        canvas.move_down(s.label_spacing)

        try:
            state = self._render_body(canvas, turn, state)
        except Exception as exc:
            failure = MessageRenderFailure(index, exc)
            logger.error("%s", failure, exc_info=True)
            state = self._render_fallback(
                canvas, RENDER_ERROR_MARKER, turn.text or RENDER_ERROR_PLACEHOLDER, state,
            )

        canvas.move_down(s.para_spacing)
        return self._sync(canvas, state)

    def _render_body(self, canvas: Canvas, turn: Turn, state: LayoutState) -> LayoutState:
        tokens = self._tokenizer.tokenize(self.markdown_for(turn))
        for token in tokens:
            handler = self._handlers.get(token.kind, self._render_default)
            state = handler(canvas, token, state)
            state = self._reset(canvas, state)
        return state

    def _render_fallback(self, canvas: Canvas, marker: str, text: str, state: LayoutState) -> LayoutState:
        s = self._styles
        if canvas.y > canvas.page_height - s.error_break_threshold:
            canvas.add_page()
        state = self._apply(canvas, replace(state, color=s.color_alert))
        canvas.text(marker)
        state = self._apply(canvas, replace(state, font=s.font_mono, size=s.size_code, color=s.color_default))
        canvas.text(text)
        canvas.move_down(s.para_spacing / 2)
        return self._reset(canvas, state)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _default_state(self, canvas: Canvas) -> LayoutState:
        return self._sync(canvas, LayoutState.default(self._styles))

    @staticmethod
    def _sync(canvas: Canvas, state: LayoutState) -> LayoutState:
        return replace(state, y=canvas.y, page=canvas.page)

    def _apply(self, canvas: Canvas, state: LayoutState) -> LayoutState:
        canvas.set_font(state.font, state.size)
        canvas.set_text_color(state.color)
        return state

    def _reset(self, canvas: Canvas, state: LayoutState) -> LayoutState:
        default = LayoutState.default(self._styles)
        if (state.font, state.size, state.color) != (default.font, default.size, default.color):
            self._apply(canvas, default)
        return self._sync(canvas, default)

    # ------------------------------------------------------------------
    # Token handlers
    # ------------------------------------------------------------------

    def _render_heading(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font_bold, size=heading_size(token.depth, s)))
        canvas.text(token.text)
        canvas.move_down(s.heading_spacing)
        return state

    def _render_paragraph(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font, size=s.size_normal))
        canvas.text(token.text)
        canvas.move_down(s.line_spacing)
        return state

    def _render_list(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font, size=s.size_normal))
        indent = token.depth * s.list_indent_factor
        for index, item in enumerate(token.items):
            text = item.text
            if item.is_task:
                text = (s.checkbox_checked if item.checked else s.checkbox_unchecked) + text
            canvas.text(list_marker(token, index, s) + text, indent=indent)
            canvas.move_down(s.list_item_spacing)
        canvas.move_down(s.line_spacing)
        return state

    def _render_code(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font_mono, size=s.size_code))
        canvas.text(token.text.replace("\r\n", "\n"), indent=s.indent)
        canvas.move_down(s.line_spacing)
        return state

    def _render_blockquote(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font_oblique, size=s.size_normal))
        canvas.text(token.text, indent=s.indent)
        canvas.move_down(s.line_spacing)
        return state

    def _render_table(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font_mono, size=s.size_table))
        head = canvas.prepare(s.table_separator.join(token.header))
        if head:
            canvas.text(head)
            canvas.text("-" * len(head))
        body = "\n".join(s.table_separator.join(row) for row in token.rows)
        if body:
            canvas.text(body)
        state = self._apply(canvas, replace(state, font=s.font, size=s.size_normal))
        canvas.move_down(s.line_spacing)
        return state

    def _render_rule(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        canvas.move_down(s.rule_spacing)
        canvas.dashed_rule(
            s.page_margin,
            canvas.page_width - s.page_margin,
            dash=s.rule_dash,
            gap=s.rule_gap,
            width=s.rule_line_width,
            color=s.color_meta,
        )
        canvas.move_down(s.rule_spacing)
        return state

    def _render_raw_markup(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        s = self._styles
        state = self._apply(canvas, replace(state, font=s.font_mono, size=s.size_code))
        canvas.text(token.text)
        canvas.move_down(s.line_spacing)
        return state

    def _render_whitespace(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        return state

    def _render_other(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        if not token.text:
            return state
        return self._render_paragraph(canvas, token, state)

    def _render_default(self, canvas: Canvas, token: Token, state: LayoutState) -> LayoutState:
        logger.debug("No handler for token kind %r; rendering as text", token.kind)
        return self._render_other(canvas, token, state)
