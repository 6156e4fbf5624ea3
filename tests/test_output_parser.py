"""
Tests for model output parsing

Unit tests for JSON recovery from free-form model text and the coercion
helpers used by the content schemas.
"""

import pytest

from podinsight.exceptions import ModelOutputError
from podinsight.summary.output_parser import (
    coerce_choice,
    coerce_float,
    coerce_int,
    coerce_str,
    coerce_str_list,
    extract_json_object,
)


class TestExtractJsonObject:
    """Tests for extract_json_object()."""

    def test_pure_json(self):
        """A bare object should parse directly."""
        assert extract_json_object('{"tldr": "ok"}') == {"tldr": "ok"}

    def test_code_fence(self):
        """Markdown-fenced JSON should be recovered."""
        text = 'Here you go:\n```json\n{"tldr": "fenced"}\n```\nEnjoy!'

        assert extract_json_object(text) == {"tldr": "fenced"}

    def test_prose_wrapped(self):
        """JSON embedded in prose should be found."""
        text = 'Sure! {"topics": ["a", "b"]} Let me know if you need more.'

        assert extract_json_object(text) == {"topics": ["a", "b"]}

    def test_braces_inside_strings(self):
        """Braces inside string values should not end the object early."""
        text = 'Result: {"quote": "use {curly} braces", "n": 1} done'

        assert extract_json_object(text) == {"quote": "use {curly} braces", "n": 1}

    def test_skips_unbalanced_prefix(self):
        """An unmatched opening brace before the object should be skipped."""
        text = 'note { unfinished ... {"ok": true}'

        assert extract_json_object(text) == {"ok": True}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "{not: valid}"])
    def test_unrecoverable_raises(self, text):
        """Text without a JSON object should raise ModelOutputError."""
        with pytest.raises(ModelOutputError):
            extract_json_object(text)

    def test_array_is_rejected(self):
        """A top-level array is not an object."""
        with pytest.raises(ModelOutputError):
            extract_json_object('[{"a": 1}]')


class TestCoercion:
    """Tests for the coercion helpers."""

    def test_coerce_str(self):
        """Strings are stripped; containers and None fall back."""
        assert coerce_str("  hi ") == "hi"
        assert coerce_str(None, "x") == "x"
        assert coerce_str({"a": 1}, "x") == "x"
        assert coerce_str(3) == "3"

    def test_coerce_int(self):
        """Numbers and numeric strings parse; junk and out-of-range fall back."""
        assert coerce_int("7") == 7
        assert coerce_int(4.9) == 4
        assert coerce_int("many", default=1) == 1
        assert coerce_int(0, default=1, minimum=1) == 1

    def test_coerce_float(self):
        """Booleans and non-finite values are rejected."""
        assert coerce_float("2.5") == 2.5
        assert coerce_float(True) is None
        assert coerce_float("nan") is None
        assert coerce_float("inf") is None
        assert coerce_float(None) is None

    def test_coerce_str_list(self):
        """Empty entries are filtered before the cap is applied."""
        assert coerce_str_list([" a ", "", None, 3, "b"], limit=2) == ["a", "3"]
        assert coerce_str_list("not a list") == []

    def test_coerce_choice(self):
        """Matching is case-insensitive with a default fallback."""
        levels = ("high", "medium", "low")

        assert coerce_choice("HIGH", levels, "medium") == "high"
        assert coerce_choice("urgent", levels, "medium") == "medium"
        assert coerce_choice(None, levels, "medium") == "medium"
