"""Abstract base formatter and output container.

WHY: Every export format consumes the same Conversation IR but produces
different file content. This base class enforces a consistent interface
so the CLI and API layers can work with any formatter generically.

HOW: BaseFormatter is an ABC with three requirements: a ``name``
property, an ``extension`` property and an async ``format()`` method.
FormatterOutput is a plain dataclass that bundles the file extension
with its content (string or bytes) and MIME type.

RULES:
- Subclasses MUST implement ``name``, ``extension`` and ``format()``
- ``format()`` is a coroutine: PDF output is finalized off the event loop
- ``format()`` raises on failure and never returns partial content
- The caller builds the filename: {sanitizedTitle}_{timestamp}{suffix}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from gemini_export.core.ir import Conversation


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File extension including the dot, e.g. ``".json"``.
        content: The file content as a string (JSON) or bytes (PDF).
        media_type: MIME type for the content, e.g. ``"application/json"``.
    """

    suffix: str
    content: str | bytes
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all export formatters.

    To add a new export format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement name, extension and format()
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Conversation JSON'."""

    @property
    @abstractmethod
    def extension(self) -> str:
        """File extension without the dot, e.g. 'json'."""

    @abstractmethod
    async def format(self, conversation: Conversation) -> list[FormatterOutput]:
        """Convert the Conversation IR into one or more output files.

        Args:
            conversation: Extracted page title, URL and ordered turns.

        Returns:
            List of FormatterOutput objects, each containing a file
            suffix, content string/bytes, and MIME type.
        """
