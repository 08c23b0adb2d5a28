"""Tests for the fpdf2-backed canvas and the recording canvas."""

from __future__ import annotations

import pytest

from gemini_export.config import COLORS, DEFAULT_STYLES
from gemini_export.core.canvas import PdfCanvas, RecordingCanvas, font_face, sanitize_pdf_text


class TestSanitizePdfText:

    def test_typographic_punctuation_becomes_ascii(self):
        assert sanitize_pdf_text("“quoted” – it’s…") == "\"quoted\" - it's..."

    def test_latin1_is_kept(self):
        assert sanitize_pdf_text("café") == "café"

    def test_unencodable_becomes_question_mark(self):
        assert sanitize_pdf_text("你好") == "??"

    def test_bullet_maps_to_middle_dot(self):
        assert sanitize_pdf_text("• item") == "· item"


class TestFontFace:

    def test_known_names(self):
        assert font_face("Helvetica-Bold") == ("helvetica", "B")
        assert font_face("Courier") == ("courier", "")

    def test_unknown_names_are_parsed(self):
        assert font_face("Arial-BoldItalic") == ("arial", "BI")


class TestPdfCanvas:

    def test_output_is_a_pdf(self):
        canvas = PdfCanvas(title="Test")
        canvas.text("Hello — world")
        data = canvas.output()
        assert data.startswith(b"%PDF")

    def test_text_advances_cursor(self):
        canvas = PdfCanvas()
        canvas.add_page()
        start = canvas.y
        canvas.text("one line")
        assert canvas.y > start

    def test_long_text_paginates(self):
        canvas = PdfCanvas()
        canvas.text("\n".join("line {}".format(i) for i in range(200)))
        assert canvas.page > 1

    def test_prepare_matches_drawn_text(self):
        assert PdfCanvas().prepare("Step \u2014 note\u2026") == "Step -- note..."

    def test_dashed_rule_keeps_cursor(self):
        canvas = PdfCanvas()
        canvas.add_page()
        y = canvas.y
        canvas.dashed_rule(
            50, canvas.page_width - 50, dash=5, gap=5, width=1, color=COLORS["grey"],
        )
        assert canvas.y == y


class TestRecordingCanvas:

    def test_prepare_keeps_text(self):
        assert RecordingCanvas().prepare("Step \u2014 note") == "Step \u2014 note"

    def test_first_text_opens_a_page(self):
        canvas = RecordingCanvas()
        canvas.text("x")
        assert canvas.ops[0] == ("page",)
        assert canvas.page == 1

    def test_empty_text_is_not_recorded(self):
        canvas = RecordingCanvas()
        canvas.text("")
        assert canvas.texts() == []

    def test_move_down_uses_line_height(self):
        canvas = RecordingCanvas()
        canvas.add_page()
        canvas.move_down(2)
        expected = DEFAULT_STYLES.page_margin + 2 * DEFAULT_STYLES.size_normal * DEFAULT_STYLES.line_height_factor
        assert canvas.y == pytest.approx(expected)
