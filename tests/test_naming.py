"""Tests for title sanitization and output file naming."""

from __future__ import annotations

from gemini_export.config import DEFAULT_TITLE, MAX_TITLE_LENGTH
from gemini_export.core.naming import build_filename, resolve_output_path, sanitize_title


class TestSanitizeTitle:

    def test_spaces_become_underscores(self):
        assert sanitize_title("Trip planning") == "Trip_planning"

    def test_unsafe_runs_collapse(self):
        assert sanitize_title('What is "AI" / ML?') == "What_is_AI_ML_"

    def test_disallowed_characters_are_dropped(self):
        assert sanitize_title("Café (draft) #2") == "Caf_draft_2"

    def test_result_uses_portable_characters_only(self):
        result = sanitize_title("a\tb\nc:d*e<f>g|h.i-j")
        assert result == "a_b_c_d_e_f_g_h.i-j"

    def test_truncated_to_max_length(self):
        assert len(sanitize_title("x" * 500)) == MAX_TITLE_LENGTH

    def test_empty_falls_back_to_default(self):
        assert sanitize_title("") == DEFAULT_TITLE
        assert sanitize_title(None) == DEFAULT_TITLE
        assert sanitize_title("   ") == DEFAULT_TITLE
        assert sanitize_title("???") != ""


class TestBuildFilename:

    def test_title_stamp_and_extension(self):
        assert build_filename("Trip planning", "json", 1700000000123) == "Trip_planning_1700000000123.json"

    def test_leading_dot_in_extension(self):
        assert build_filename("x", ".pdf", 5) == "x_5.pdf"

    def test_default_stamp_is_milliseconds(self):
        name = build_filename("x", "pdf")
        stamp = name[len("x_"):-len(".pdf")]
        assert stamp.isdigit()
        assert len(stamp) >= 13


class TestResolveOutputPath:

    def test_free_name_is_used_as_is(self, tmp_path):
        assert resolve_output_path(tmp_path, "a_1.json") == tmp_path / "a_1.json"

    def test_conflicts_get_numeric_suffix(self, tmp_path):
        (tmp_path / "a_1.json").write_text("{}")
        assert resolve_output_path(tmp_path, "a_1.json") == tmp_path / "a_1-2.json"
        (tmp_path / "a_1-2.json").write_text("{}")
        assert resolve_output_path(tmp_path, "a_1.json") == tmp_path / "a_1-3.json"
