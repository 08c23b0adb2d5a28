"""Markdown to block token conversion.

WHY: The document renderer styles whole blocks (a heading, a list, a
table), not characters. markdown-it-py yields a flat stream of
open/inline/close tokens; this module folds that stream into one
``Token`` per block so the renderer can dispatch on ``TokenKind`` alone.

HOW: The markdown-it stream is walked at nesting level 0. Each top-level
block is located by balancing its open/close tokens and converted by a
block-specific helper. Lists are flattened: a nested list becomes its
own LIST token with ``depth + 1``, and the enclosing list resumes in a
continuation token whose ``start`` keeps counting. Blank-line gaps
between blocks (taken from the source line maps) become WHITESPACE
tokens.

RULES:
- tokenize() never raises; on parser failure the raw input comes back
  as a single PARAGRAPH token
- Empty or whitespace-only input yields []
- Inline formatting is flattened to plain text (links keep their label)
- Task items start with "[ ]", "[x]" or "[X]"; the marker is stripped
- Raw HTML blocks come back verbatim as RAW_MARKUP, never interpreted
- Blocks the mapping does not know become OTHER (with text when any)
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from markdown_it import MarkdownIt
from markdown_it.token import Token as MdToken

from gemini_export.core.ir import ListItem, Token, TokenKind

logger = logging.getLogger(__name__)

_TASK_RE = re.compile(r"^\[([ xX])\][ \t]+(.*)$", re.DOTALL)

_LIST_OPEN = frozenset({"bullet_list_open", "ordered_list_open"})
_CODE_TYPES = frozenset({"fence", "code_block"})


def _build_parser() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": True})
    md.enable("table")
    return md


def _inline_text(token: Optional[MdToken], *, keep_linebreaks: bool = False) -> str:
    if token is None:
        return ""
    if token.type != "inline" or not token.children:
        return token.content or ""
    parts: List[str] = []
    for child in token.children:
        if child.type in ("text", "code_inline", "html_inline"):
            parts.append(child.content)
        elif child.type == "softbreak":
            parts.append("\n" if keep_linebreaks else " ")
        elif child.type == "hardbreak":
            parts.append("\n")
        elif child.type == "image":
            parts.append(child.content or "")
    return "".join(parts)


def _block_end(tokens: Sequence[MdToken], start: int) -> int:
    """Index of the token closing the block opened at ``start``."""
    if tokens[start].nesting != 1:
        return start
    depth = 0
    for idx in range(start, len(tokens)):
        depth += tokens[idx].nesting
        if depth == 0:
            return idx
    # Unbalanced stream: treat the rest as the block.
    return len(tokens) - 1


def _list_start(token: MdToken) -> int:
    value = token.attrGet("start")
    if value is None:
        return 1
    try:
        return int(value)
    except (TypeError, ValueError):
        return 1


def _make_item(texts: List[str]) -> ListItem:
    text = "\n".join(t for t in texts if t)
    match = _TASK_RE.match(text)
    if match:
        return ListItem(text=match.group(2), checked=match.group(1) in ("x", "X"))
    return ListItem(text=text)


def _collect_inline(tokens: Sequence[MdToken], start: int, end: int) -> List[str]:
    texts: List[str] = []
    for tok in tokens[start:end + 1]:
        if tok.type == "inline":
            texts.append(_inline_text(tok))
        elif tok.type in _CODE_TYPES or tok.type == "html_block":
            texts.append(tok.content.rstrip("\n"))
    return texts


class MarkdownTokenizer:
    """Parses markdown text into an ordered list of block tokens."""

    def __init__(self, parser: Optional[MarkdownIt] = None) -> None:
        self._parser = parser or _build_parser()

    def tokenize(self, markdown: Optional[str]) -> List[Token]:
        if not markdown or not markdown.strip():
            return []
        try:
            return self._tokenize(markdown)
        except Exception:
            logger.warning("Markdown parse failed; falling back to plain paragraph", exc_info=True)
            return [Token(kind=TokenKind.PARAGRAPH, text=markdown)]

    def _tokenize(self, markdown: str) -> List[Token]:
        stream = self._parser.parse(markdown)
        out: List[Token] = []
        prev_end: Optional[int] = None

        i = 0
        while i < len(stream):
            tok = stream[i]
            end = _block_end(stream, i)

            if tok.map:
                if prev_end is not None and tok.map[0] > prev_end:
                    out.append(Token(kind=TokenKind.WHITESPACE, text="\n" * (tok.map[0] - prev_end)))
                prev_end = tok.map[1]

            self._convert_block(stream, i, end, out)
            i = end + 1
        return out

    def _convert_block(self, stream: Sequence[MdToken], i: int, end: int, out: List[Token]) -> None:
        tok = stream[i]
        kind = tok.type

        if kind == "heading_open":
            depth = int(tok.tag[1:]) if tok.tag[1:].isdigit() else 1
            text = _inline_text(stream[i + 1]) if i + 1 <= end else ""
            out.append(Token(kind=TokenKind.HEADING, text=text, depth=depth))
        elif kind == "paragraph_open":
            text = _inline_text(stream[i + 1]) if i + 1 <= end else ""
            out.append(Token(kind=TokenKind.PARAGRAPH, text=text))
        elif kind in _LIST_OPEN:
            self._convert_list(stream, i, end, 0, out)
        elif kind in _CODE_TYPES:
            out.append(Token(kind=TokenKind.CODE, text=tok.content.rstrip("\n")))
        elif kind == "blockquote_open":
            text = "\n".join(_collect_inline(stream, i + 1, end - 1))
            out.append(Token(kind=TokenKind.BLOCKQUOTE, text=text))
        elif kind == "table_open":
            out.append(self._convert_table(stream, i, end))
        elif kind == "hr":
            out.append(Token(kind=TokenKind.RULE))
        elif kind == "html_block":
            out.append(Token(kind=TokenKind.RAW_MARKUP, text=tok.content.rstrip("\n")))
        else:
            texts = _collect_inline(stream, i, end) if tok.nesting == 1 else [tok.content or ""]
            out.append(Token(kind=TokenKind.OTHER, text="\n".join(t for t in texts if t)))

    def _convert_list(
        self,
        stream: Sequence[MdToken],
        start: int,
        end: int,
        depth: int,
        out: List[Token],
    ) -> None:
        list_tok = stream[start]
        ordered = list_tok.type == "ordered_list_open"
        run_start = _list_start(list_tok) if ordered else 1
        items: List[ListItem] = []

        def flush() -> None:
            nonlocal run_start, items
            if items:
                out.append(Token(
                    kind=TokenKind.LIST,
                    depth=depth,
                    items=tuple(items),
                    ordered=ordered,
                    start=run_start,
                ))
                run_start += len(items)
                items = []

        j = start + 1
        while j < end:
            if stream[j].type != "list_item_open":
                j = _block_end(stream, j) + 1
                continue

            item_end = _block_end(stream, j)
            texts: List[str] = []
            emitted = False
            k = j + 1
            while k < item_end:
                inner = stream[k]
                if inner.type in _LIST_OPEN:
                    nested_end = _block_end(stream, k)
                    if not emitted:
                        items.append(_make_item(texts))
                        emitted = True
                        texts = []
                    flush()
                    self._convert_list(stream, k, nested_end, depth + 1, out)
                    k = nested_end + 1
                    continue
                if inner.type == "inline":
                    texts.append(_inline_text(inner))
                elif inner.type in _CODE_TYPES or inner.type == "html_block":
                    texts.append(inner.content.rstrip("\n"))
                k += 1

            if not emitted:
                items.append(_make_item(texts))
            elif any(texts):
                # Text after a nested list: keep it, unnumbered, at this depth.
                flush()
                out.append(Token(kind=TokenKind.PARAGRAPH, text="\n".join(t for t in texts if t)))
            j = item_end + 1

        flush()

    @staticmethod
    def _convert_table(stream: Sequence[MdToken], start: int, end: int) -> Token:
        header: List[str] = []
        rows: List[List[str]] = []
        current: Optional[List[str]] = None
        in_head = False

        for tok in stream[start + 1:end]:
            if tok.type == "thead_open":
                in_head = True
            elif tok.type == "thead_close":
                in_head = False
            elif tok.type == "tr_open":
                current = []
            elif tok.type == "tr_close":
                if current is not None:
                    if in_head and not header:
                        header = current
                    else:
                        rows.append(current)
                current = None
            elif tok.type == "inline" and current is not None:
                current.append(_inline_text(tok))

        return Token(
            kind=TokenKind.TABLE,
            header=tuple(header),
            rows=tuple(tuple(r) for r in rows),
        )


_DEFAULT_TOKENIZER: Optional[MarkdownTokenizer] = None


def tokenize(markdown: Optional[str]) -> List[Token]:
    """Tokenize with a module-level tokenizer built on first use."""
    global _DEFAULT_TOKENIZER
    if _DEFAULT_TOKENIZER is None:
        _DEFAULT_TOKENIZER = MarkdownTokenizer()
    return _DEFAULT_TOKENIZER.tokenize(markdown)
