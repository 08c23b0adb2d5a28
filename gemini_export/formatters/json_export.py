"""Conversation JSON formatter.

WHY: The data export is meant for other tools (search indexes, fine-tune
datasets, archives), so it has to be plain and predictable: the title,
the source URL and the messages as role/content pairs.

HOW: The Conversation IR is mapped to a dict, validated with jsonschema
against conversation_export.schema.json and serialized with two-space
indentation.

RULES:
- Shape: {"title", "url", "messages": [{"role", "content"}]}
- Key order inside a message is role, then content
- ``content`` is the turn's plain text, never the markup
- ``title`` is the sanitized title (same stem as the filename)
- Validate output against the schema before returning; raise on failure
- Output suffix: ".json"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema

from gemini_export.core.ir import Conversation
from gemini_export.core.naming import sanitize_title
from gemini_export.formatters.base import BaseFormatter, FormatterOutput

SCHEMA_PATH = Path(__file__).resolve().parent / "conversation_export.schema.json"

_CACHED_SCHEMA: dict[str, Any] | None = None


def get_schema() -> dict[str, Any]:
    """Load the export schema, cached at module level after first call."""
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def build_export(conversation: Conversation) -> dict[str, Any]:
    return {
        "title": sanitize_title(conversation.title),
        "url": conversation.url,
        "messages": [
            {"role": turn.role.value, "content": turn.text}
            for turn in conversation.turns
        ],
    }


class JsonFormatter(BaseFormatter):
    """Serializes the extracted turns as a JSON document."""

    @property
    def name(self) -> str:
        return "Conversation JSON"

    @property
    def extension(self) -> str:
        return "json"

    async def format(self, conversation: Conversation) -> list[FormatterOutput]:
        """Build, validate and serialize the export.

        Raises:
            jsonschema.ValidationError: If the export does not match the
                schema (for example a conversation without turns).
        """
        data = build_export(conversation)
        jsonschema.validate(instance=data, schema=get_schema())
        content = json.dumps(data, indent=2, ensure_ascii=False)
        return [FormatterOutput(suffix=".json", content=content, media_type="application/json")]
