"""Tests for the export pipeline composition root.

WHY: The CLI and the API both delegate to the pipeline, so its failure
rules (nothing written on failure, typed errors, one shared timestamp)
hold for every front end at once.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from gemini_export.core import pipeline
from gemini_export.core.errors import DependencyUnavailable, ExportError, ExtractionEmpty
from gemini_export.core.ir import Conversation
from gemini_export.core.pipeline import (
    RenderedFile,
    check_dependencies,
    export_conversation,
    get_normalizer,
    load_conversation,
    render_outputs,
    write_outputs,
)
from gemini_export.formatters.json_export import JsonFormatter

STAMP = 1700000000123


class TestLoadConversation:

    def test_extracts_turns_and_title(self, share_page_html, share_url):
        conversation = load_conversation(share_page_html, url=share_url)
        assert conversation.title == "Trip planning: Portugal?"
        assert conversation.url == share_url
        assert len(conversation.turns) == 4

    def test_title_override(self, share_page_html):
        assert load_conversation(share_page_html, title="Custom").title == "Custom"

    def test_empty_page_does_not_raise(self, empty_page_html):
        assert load_conversation(empty_page_html).turns == ()


class TestCheckDependencies:

    def test_installed_libraries_pass(self):
        check_dependencies(["json", "pdf"])

    def test_missing_library_is_reported(self):
        with patch.dict(pipeline.REQUIRED_MODULES, {"pdf": ("fpdf", "no_such_module_xyz")}):
            with pytest.raises(DependencyUnavailable) as excinfo:
                check_dependencies(["pdf"])
        assert excinfo.value.missing == ["no_such_module_xyz"]
        assert "no_such_module_xyz" in str(excinfo.value)


class TestRenderOutputs:

    def test_empty_conversation_raises(self):
        with pytest.raises(ExtractionEmpty, match="No conversation data found"):
            asyncio.run(render_outputs(Conversation(title="t", url=""), ["json"]))

    def test_shared_timestamp_across_formats(self, sample_conversation):
        rendered = asyncio.run(render_outputs(sample_conversation, ["json", "pdf"], stamp_ms=STAMP))
        assert [r.filename for r in rendered] == [
            "Greeting_test_{}.json".format(STAMP),
            "Greeting_test_{}.pdf".format(STAMP),
        ]
        assert isinstance(rendered[1].content, bytes)

    def test_unexpected_formatter_error_is_wrapped(self, sample_conversation):
        async def broken(self, conversation):
            raise KeyError("boom")

        with patch.object(JsonFormatter, "format", broken):
            with pytest.raises(ExportError, match="Failed to create Conversation JSON") as excinfo:
                asyncio.run(render_outputs(sample_conversation, ["json"]))
        assert isinstance(excinfo.value.__cause__, KeyError)

    def test_unknown_format_raises(self, sample_conversation):
        with pytest.raises(ExportError, match="Unknown output format"):
            asyncio.run(render_outputs(sample_conversation, ["docx"]))


class TestExportConversation:

    def test_writes_all_files(self, sample_conversation, tmp_path):
        paths = asyncio.run(export_conversation(sample_conversation, ["json", "pdf"], tmp_path, STAMP))
        assert sorted(p.name for p in paths) == [
            "Greeting_test_{}.json".format(STAMP),
            "Greeting_test_{}.pdf".format(STAMP),
        ]
        data = json.loads(paths[0].read_text(encoding="utf-8"))
        assert data["messages"][0] == {"role": "user", "content": "Hello"}
        assert paths[1].read_bytes().startswith(b"%PDF")

    def test_nothing_written_when_a_format_fails(self, sample_conversation, tmp_path):
        async def broken(self, conversation):
            raise RuntimeError("renderer exploded")

        from gemini_export.formatters.pdf_document import PdfFormatter
        with patch.object(PdfFormatter, "format", broken):
            with pytest.raises(ExportError):
                asyncio.run(export_conversation(sample_conversation, ["json", "pdf"], tmp_path))
        assert list(tmp_path.iterdir()) == []

    def test_nothing_written_for_empty_page(self, empty_page_html, tmp_path):
        conversation = load_conversation(empty_page_html)
        with pytest.raises(ExtractionEmpty):
            asyncio.run(export_conversation(conversation, ["json", "pdf"], tmp_path))
        assert list(tmp_path.iterdir()) == []

    def test_end_to_end_from_share_page(self, share_page_html, tmp_path):
        conversation = load_conversation(share_page_html)
        paths = asyncio.run(export_conversation(conversation, ["json"], tmp_path, STAMP))
        assert paths[0].name == "Trip_planning_Portugal__{}.json".format(STAMP)
        data = json.loads(paths[0].read_text(encoding="utf-8"))
        assert data["title"] == "Trip_planning_Portugal_"
        assert [m["content"] for m in data["messages"][:2]] == ["Hello", "Hi there"]


class TestWriteOutputs:

    def test_existing_files_are_not_overwritten(self, tmp_path):
        (tmp_path / "a_1.json").write_text("old", encoding="utf-8")
        paths = write_outputs([RenderedFile("json", "a_1.json", "new", "application/json")], tmp_path)
        assert paths[0].name == "a_1-2.json"
        assert (tmp_path / "a_1.json").read_text(encoding="utf-8") == "old"

    def test_creates_output_dir(self, tmp_path):
        target = tmp_path / "nested" / "out"
        write_outputs([RenderedFile("pdf", "a_1.pdf", b"%PDF-1.4", "application/pdf")], target)
        assert (target / "a_1.pdf").read_bytes() == b"%PDF-1.4"


def test_normalizer_is_shared():
    assert get_normalizer() is get_normalizer()
