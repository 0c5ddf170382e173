"""
Tests for scoring.json_parser module.

Tests cover:
- Strict JSON parsing
- Markdown code fence stripping (with and without a language tag)
- Braced-substring extraction from surrounding prose
- Failure modes (never raises, returns None)
"""

from llm_serp_tracker.scoring.json_parser import (
    extract_braced_span,
    parse_json_permissive,
    strip_code_fence,
)


class TestParseJsonPermissive:
    """Test suite for parse_json_permissive()."""

    def test_strict_json_object(self):
        assert parse_json_permissive('{"a": 1}') == {"a": 1}

    def test_strict_json_non_object(self):
        """Any JSON value is returned; callers decide what to do with it."""
        assert parse_json_permissive("[1, 2]") == [1, 2]

    def test_json_fenced_block(self):
        text = 'Here you go:\n```json\n{"answer_summary": "ok"}\n```\nThanks!'
        assert parse_json_permissive(text) == {"answer_summary": "ok"}

    def test_plain_fenced_block(self):
        text = '```\n{"a": [1, 2, 3]}\n```'
        assert parse_json_permissive(text) == {"a": [1, 2, 3]}

    def test_object_surrounded_by_prose(self):
        text = 'Sure! The result is {"a": {"b": 1}} and that is all.'
        assert parse_json_permissive(text) == {"a": {"b": 1}}

    def test_fence_with_invalid_body_falls_back_to_braces(self):
        text = '```python\nprint("x")\n```\nactual: {"a": 2}'
        assert parse_json_permissive(text) == {"a": 2}

    def test_unparseable_text_returns_none(self):
        assert parse_json_permissive("I can't help with that.") is None

    def test_broken_json_returns_none(self):
        assert parse_json_permissive('{"a": 1,,}') is None

    def test_empty_and_whitespace_return_none(self):
        assert parse_json_permissive("") is None
        assert parse_json_permissive("   \n ") is None


class TestHelpers:
    """Test suite for strip_code_fence() and extract_braced_span()."""

    def test_strip_code_fence_without_fence(self):
        assert strip_code_fence('{"a": 1}') is None

    def test_strip_code_fence_returns_body(self):
        assert strip_code_fence("```json\n{}\n```") == "{}"

    def test_extract_braced_span_nested(self):
        assert extract_braced_span('x {"a": {"b": 1}} y') == '{"a": {"b": 1}}'

    def test_extract_braced_span_without_braces(self):
        assert extract_braced_span("no braces here") is None

    def test_extract_braced_span_reversed_braces(self):
        assert extract_braced_span("} then {") is None
