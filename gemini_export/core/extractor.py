"""Turn extraction from a rendered Gemini share page.

WHY: The share page is the only place a shared conversation exists. Each
exchange is a ``share-turn-viewer`` element holding the user's query as
plain text and the assistant's reply as rendered HTML. Both exports need
those turns as typed records in conversation order.

HOW: BeautifulSoup parses the page once. For every turn viewer, the user
query text and the assistant markdown container are located with the
CSS selectors from config.SELECTORS. Plain text is computed with an
innerText-style walk (block elements become line breaks, inline elements
flow together) so "<p>Hi <b>there</b></p>" reads "Hi there".

RULES:
- extract() is idempotent and never raises; parse failures yield []
- A turn is emitted only when its text (or markup) is non-empty
- User turns carry no markup; assistant turns carry their inner HTML
- Title falls back to config.DEFAULT_TITLE when the page has none
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from gemini_export.config import DEFAULT_TITLE, READY_ANCHOR_SELECTOR, SELECTORS
from gemini_export.core.ir import Conversation, Role, Turn

logger = logging.getLogger(__name__)

# Elements that start a new line when computing visible text.
_BLOCK_TAGS = frozenset({
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6",
    "header", "hr", "li", "main", "nav", "ol", "pre", "section", "table",
    "tr", "ul",
})
# Elements separated from their neighbours by a blank line.
_PARAGRAPH_TAGS = frozenset({"p"})
_SKIP_TAGS = frozenset({"script", "style", "template", "noscript"})

_INLINE_SPACE_RE = re.compile(r"\s+")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def _append_text(parts: List[str], text: str, preformatted: bool) -> None:
    if not preformatted:
        text = _INLINE_SPACE_RE.sub(" ", text)
        if not parts or parts[-1].endswith(("\n", "\t", " ")):
            text = text.lstrip(" ")
    if text:
        parts.append(text)


def _append_break(parts: List[str], breaks: str) -> None:
    if parts:
        parts[-1] = parts[-1].rstrip(" ")
    parts.append(breaks)


def _walk_visible_text(node: Tag, parts: List[str], preformatted: bool) -> None:
    for child in node.children:
        if isinstance(child, NavigableString):
            if type(child) is not NavigableString:
                # Comments, CDATA, doctype and friends are not visible.
                continue
            _append_text(parts, str(child), preformatted)
            continue
        if not isinstance(child, Tag) or child.name in _SKIP_TAGS:
            continue
        name = child.name
        if name == "br":
            _append_break(parts, "\n")
            continue
        if name in ("td", "th") and parts and not parts[-1].endswith("\n"):
            parts.append("\t")
        if name in _PARAGRAPH_TAGS:
            _append_break(parts, "\n\n")
        elif name in _BLOCK_TAGS:
            _append_break(parts, "\n")
        _walk_visible_text(child, parts, preformatted or name == "pre")
        if name in _PARAGRAPH_TAGS:
            _append_break(parts, "\n\n")
        elif name in _BLOCK_TAGS:
            _append_break(parts, "\n")


def visible_text(node: Optional[Tag]) -> str:
    """Return the innerText-like plain text of an element.

    Whitespace outside ``<pre>`` collapses to single spaces, block
    elements start new lines, and runs of blank lines collapse to one.
    """
    if node is None:
        return ""
    parts: List[str] = []
    _walk_visible_text(node, parts, preformatted=node.name == "pre")
    text = "".join(parts)
    return _EXCESS_NEWLINES_RE.sub("\n\n", text).strip()


def markup_text(markup: str) -> str:
    """Visible text of an HTML fragment."""
    soup = BeautifulSoup(markup or "", "html.parser")
    return visible_text(soup)


def turn_from_markup(role: Role, markup: str) -> Turn:
    """Build a Turn whose plain text is derived from its markup."""
    return Turn(role=Role(role), text=markup_text(markup), markup=markup)


def is_ready(html: str, selector: str = READY_ANCHOR_SELECTOR) -> bool:
    """True when the page already contains the conversation anchor."""
    try:
        soup = BeautifulSoup(html or "", "html.parser")
        return soup.select_one(selector) is not None
    except Exception:
        logger.debug("Readiness probe could not parse page", exc_info=True)
        return False


class TranscriptExtractor:
    """Extracts ordered turns and page metadata from share page HTML.

    WHY: Both exports start from the same list of turns. Keeping the
    DOM walking in one class means selector drift is fixed in one place.

    HOW: The HTML is parsed lazily on first use and the soup is kept for
    subsequent calls, so extract() and title() agree and repeat calls
    return equal results.

    RULES:
    - extract() never raises and returns [] when no turns are present
    - Selectors default to config.SELECTORS and can be overridden per instance
    """

    def __init__(
        self,
        html: str,
        url: str = "",
        selectors: Optional[Dict[str, str]] = None,
    ) -> None:
        self._html = html or ""
        self.url = url
        self._selectors = dict(SELECTORS)
        if selectors:
            self._selectors.update(selectors)
        self._soup: Optional[BeautifulSoup] = None

    def _get_soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self._html, "html.parser")
        return self._soup

    def title(self) -> str:
        """Raw (unsanitized) conversation title."""
        try:
            heading = self._get_soup().select_one(self._selectors["title_h1"])
        except Exception:
            logger.warning("Could not parse title from page", exc_info=True)
            return DEFAULT_TITLE
        text = visible_text(heading).strip() if heading is not None else ""
        return text or DEFAULT_TITLE

    def extract(self) -> List[Turn]:
        """Return the conversation turns in page order."""
        try:
            return self._extract()
        except Exception:
            logger.exception("Turn extraction failed; treating page as empty")
            return []

    def _extract(self) -> List[Turn]:
        soup = self._get_soup()
        viewers = soup.select(self._selectors["turn_viewer"])
        logger.info(
            "Found %d turn viewers using selector %r",
            len(viewers), self._selectors["turn_viewer"],
        )

        turns: List[Turn] = []
        for viewer in viewers:
            query = viewer.select_one(self._selectors["user_query_text"])
            query_text = visible_text(query)
            if query_text:
                turns.append(Turn(role=Role.USER, text=query_text))

            answer = viewer.select_one(self._selectors["assistant_markdown"])
            if answer is not None:
                answer_html = answer.decode_contents().strip()
                answer_text = visible_text(answer)
                if answer_html or answer_text:
                    turns.append(Turn(
                        role=Role.ASSISTANT,
                        text=answer_text,
                        markup=answer_html,
                    ))

        logger.info("Extracted %d messages", len(turns))
        if not turns and viewers:
            logger.warning(
                "Found turn viewers but no messages; selectors may be outdated: "
                "user=%r assistant=%r",
                self._selectors["user_query_text"],
                self._selectors["assistant_markdown"],
            )
        return turns

    def conversation(self) -> Conversation:
        return Conversation(title=self.title(), url=self.url, turns=tuple(self.extract()))
