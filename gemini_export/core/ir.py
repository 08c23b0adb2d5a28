"""Intermediate representation dataclasses for conversations and block tokens.

WHY: The share page yields an untyped tree of HTML elements and the
markdown parser yields a flat stream of open/close tokens. Neither is a
good contract for the exporters. The IR gives every stage one typed,
immutable shape to consume: turns for the data export, block tokens for
the document renderer.

HOW: Two groups of frozen dataclasses:
  Turn / Conversation: one extracted message, and the extraction result
  Token / ListItem: one classified markdown block, tagged by TokenKind

RULES:
- All IR values are frozen; collections inside them are tuples
- Turn order and token order are significant and never changed
- Token is a tagged variant: ``kind`` decides which fields are meaningful
- Only the ``text`` of a Turn is exported to JSON, never the markup
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


class Role(str, enum.Enum):
    """Who wrote a turn. Inherits from str so values serialize cleanly."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One user or assistant message, in conversation order.

    RULES:
    - text: visible plain text of the message (innerText equivalent)
    - markup: raw rich markup (HTML) when the page has one, else None;
      only assistant turns carry markup on Gemini share pages
    """

    role: Role
    text: str
    markup: Optional[str] = None

    @property
    def label(self) -> str:
        return "User:" if self.role == Role.USER else "Assistant:"


@dataclass(frozen=True)
class Conversation:
    """The extraction result: page metadata plus the ordered turns."""

    title: str
    url: str
    turns: Tuple[Turn, ...] = ()


class TokenKind(str, enum.Enum):
    """Block token kinds produced by the tokenizer.

    RULES:
    - Every member must have a handler in DocumentRenderer
    - OTHER is the catch-all for blocks the tokenizer cannot classify
    """

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    CODE = "code"
    BLOCKQUOTE = "blockquote"
    TABLE = "table"
    RULE = "rule"
    RAW_MARKUP = "rawMarkup"
    WHITESPACE = "whitespace"
    OTHER = "other"


@dataclass(frozen=True)
class ListItem:
    """One list entry. ``checked`` is None for ordinary (non-task) items."""

    text: str
    checked: Optional[bool] = None

    @property
    def is_task(self) -> bool:
        return self.checked is not None


@dataclass(frozen=True)
class Token:
    """A classified markdown block.

    WHY: The renderer maps each kind of block to a style rule. A single
    tagged dataclass keeps the token stream homogeneous (one list of one
    type) while the ``kind`` tag drives dispatch.

    RULES:
    - text: plain content for heading/paragraph/code/blockquote/rawMarkup/other
    - depth: heading level (1-6) or list nesting level (0 = top level)
    - items / ordered / start: list tokens only
    - header / rows: table tokens only, cells as plain text
    """

    kind: TokenKind
    text: str = ""
    depth: int = 0
    items: Tuple[ListItem, ...] = ()
    ordered: bool = False
    start: int = 1
    header: Tuple[str, ...] = ()
    rows: Tuple[Tuple[str, ...], ...] = field(default_factory=tuple)
