"""Rich markup (assistant HTML) to markdown conversion.

WHY: Assistant replies arrive as rendered HTML. The document renderer
works on markdown block tokens, so the HTML has to be turned back into
markdown first. Tables deserve special care: the renderer prints them as
header/separator/rows, which only works if they survive conversion as
real pipe tables.

HOW: markdownify does the bulk conversion with ATX headings and fenced
code. Before that, every <table> is cut out of the tree and replaced by
a placeholder paragraph; after conversion the placeholders are swapped
for GitHub-style pipe tables built directly from the table cells.

RULES:
- convert() never raises; on internal failure it logs and returns ""
- The caller falls back to the turn's plain text when the result is empty
- One converter instance is built once and reused (it is never
  reconfigured after construction)
- Table cells are flattened to single-line text with "|" escaped
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List

from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

logger = logging.getLogger(__name__)

TABLE_PLACEHOLDER_PREFIX = "GEMINIEXPORTTABLEPLACEHOLDER"


@dataclass
class _PipeTable:
    placeholder: str
    markdown: str


def _sanitize_table_cell(text: str) -> str:
    cleaned = re.sub(r"\s+", " ", text.replace("\n", " ")).strip()
    return cleaned.replace("|", "\\|")


def html_table_to_markdown(table) -> str:
    """Render a BeautifulSoup <table> as a pipe table.

    The first row is the header. Short rows are padded so every row has
    the same number of cells. Returns "" for a table without cells.
    """
    rows: List[List[str]] = []
    for row in table.find_all("tr"):
        cells = row.find_all(["th", "td"])
        if not cells:
            continue
        rows.append([cell.get_text(" ", strip=True) for cell in cells])

    if not rows:
        return ""

    max_cols = max(len(r) for r in rows)
    padded = [r + [""] * (max_cols - len(r)) for r in rows]
    header, body = padded[0], padded[1:]

    lines = [
        "| " + " | ".join(_sanitize_table_cell(c) for c in header) + " |",
        "| " + " | ".join(["---"] * max_cols) + " |",
    ]
    for row in body:
        lines.append("| " + " | ".join(_sanitize_table_cell(c) for c in row) + " |")
    return "\n".join(lines)


class RichTextNormalizer:
    """Converts assistant HTML into markdown suitable for the tokenizer.

    WHY: One long-lived instance is shared by every render in the
    process. Construction fixes the markdownify options once.
    """

    def __init__(self) -> None:
        self._converter = MarkdownConverter(
            heading_style=ATX,
            bullets="-",
            escape_underscores=False,
            escape_asterisks=False,
        )
        logger.debug("Rich text normalizer initialized")

    def convert(self, markup: str) -> str:
        """Return markdown for ``markup``, or "" when conversion fails."""
        if not markup or not markup.strip():
            return ""
        try:
            return self._convert(markup)
        except Exception:
            logger.exception("HTML to markdown conversion failed")
            return ""

    def _convert(self, markup: str) -> str:
        soup = BeautifulSoup(markup, "html.parser")
        for tag in soup.find_all(["script", "style"]):
            tag.decompose()

        tables: List[_PipeTable] = []
        for idx, table in enumerate(soup.find_all("table"), start=1):
            placeholder = "{}{:03d}".format(TABLE_PLACEHOLDER_PREFIX, idx)
            tables.append(_PipeTable(placeholder=placeholder, markdown=html_table_to_markdown(table)))
            placeholder_tag = soup.new_tag("p")
            placeholder_tag.string = placeholder
            table.replace_with(placeholder_tag)

        md_text = self._converter.convert(str(soup))
        md_text = _replace_table_placeholders(md_text, tables)
        return md_text.strip()


def _replace_table_placeholders(md_text: str, tables: List[_PipeTable]) -> str:
    if not tables:
        return md_text

    by_placeholder = {table.placeholder: table for table in tables}
    output: List[str] = []
    for line in md_text.splitlines():
        table = by_placeholder.get(line.strip())
        if table is None:
            output.append(line)
            continue
        output.append("")
        output.append(table.markdown)
        output.append("")

    return re.sub(r"\n{3,}", "\n\n", "\n".join(output))
