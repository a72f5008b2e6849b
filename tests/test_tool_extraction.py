"""Tests for recovering tool calls from model text."""

import json
import time

import pytest

from zproxy.tools.extraction import (
    extract_from_fenced_blocks,
    extract_from_inline_json,
    extract_from_natural_language,
    extract_tool_invocations,
    find_brace_spans,
    normalize_tool_call,
    serialize_arguments,
    strip_tool_json,
)


FENCED = (
    '```json\n{"tool_calls":[{"id":"call_1","type":"function",'
    '"function":{"name":"f","arguments":{"a":1}}}]}\n```'
)

INLINE_CALL = {
    "tool_calls": [
        {
            "id": "call_weather",
            "type": "function",
            "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
        }
    ]
}

ESCAPED_QUOTE = r'{"tool_calls":[{"function":{"arguments":"{\"x\":\"a}b\"}"}}]}'


@pytest.mark.unit
class TestFencedBlocks:
    def test_arguments_object_becomes_string(self):
        calls = extract_tool_invocations(FENCED)

        assert calls is not None
        assert len(calls) == 1
        assert calls[0]["id"] == "call_1"
        assert calls[0]["type"] == "function"
        assert calls[0]["function"]["name"] == "f"
        assert calls[0]["function"]["arguments"] == '{"a":1}'

    def test_first_block_with_tool_calls_wins(self):
        text = (
            '```json\n{"note": "not a call"}\n```\n'
            '```json\n{"tool_calls":[{"function":{"name":"second"}}]}\n```'
        )
        calls = extract_from_fenced_blocks(text)
        assert calls is not None
        assert calls[0]["function"]["name"] == "second"

    def test_invalid_json_in_fence_is_skipped(self):
        assert extract_from_fenced_blocks("```json\n{tool_calls: nope}\n```") is None


@pytest.mark.unit
class TestInlineJson:
    def test_object_inside_prose(self):
        text = f"Sure, calling it now: {json.dumps(INLINE_CALL)} done."
        calls = extract_from_inline_json(text)

        assert calls is not None
        assert calls[0]["id"] == "call_weather"
        assert calls[0]["function"]["arguments"] == '{"city": "Paris"}'

    def test_escaped_quote_and_brace_inside_string(self):
        assert find_brace_spans(ESCAPED_QUOTE)[0] == len(ESCAPED_QUOTE)

        calls = extract_tool_invocations(ESCAPED_QUOTE)

        assert calls is not None
        assert calls[0]["function"]["arguments"] == '{"x":"a}b"}'
        assert calls[0]["id"].startswith("call_")

    def test_nested_candidate_found_after_outer_miss(self):
        text = '{"wrapper": true, "inner": ' + json.dumps(INLINE_CALL) + "}"
        calls = extract_from_inline_json(text)
        assert calls is not None
        assert calls[0]["function"]["name"] == "get_weather"

    def test_unbalanced_object_is_ignored(self):
        assert extract_from_inline_json('{"tool_calls": [') is None

    def test_empty_tool_calls_is_no_match(self):
        assert extract_from_inline_json('{"tool_calls": []}') is None

    def test_non_object_entries_are_dropped(self):
        calls = extract_from_inline_json(
            '{"tool_calls": ["junk", {"function": {"name": "ok"}}]}'
        )
        assert calls is not None
        assert [call["function"]["name"] for call in calls] == ["ok"]

    def test_prose_quote_before_object_does_not_hide_it(self):
        text = 'He said "look: ' + json.dumps(INLINE_CALL)
        calls = extract_from_inline_json(text)
        assert calls is not None
        assert calls[0]["id"] == "call_weather"

    def test_brace_spans_nested_and_unclosed(self):
        assert find_brace_spans('{ {"a": "}"} {') == {2: 12}

    @pytest.mark.parametrize(
        "text", ["{" * 20000, '{ "' + "{" * 20000, "{" * 20000 + "}" * 20000]
    )
    def test_large_unbalanced_input_is_scanned_quickly(self, text):
        started = time.perf_counter()

        assert extract_tool_invocations(text) is None
        assert strip_tool_json(text) == text

        assert time.perf_counter() - started < 2.0


@pytest.mark.unit
class TestNaturalLanguage:
    def test_chinese_phrase(self):
        text = '好的。调用函数: search 参数: {"query": "天气", "limit": 3}'
        calls = extract_from_natural_language(text)

        assert calls is not None
        assert len(calls) == 1
        assert calls[0]["function"]["name"] == "search"
        assert json.loads(calls[0]["function"]["arguments"]) == {
            "query": "天气",
            "limit": 3,
        }
        assert calls[0]["id"].startswith("call_")

    def test_full_width_colon_and_english_keyword(self):
        calls = extract_from_natural_language('调用函数：lookup arguments：{"id": 1}')
        assert calls is not None
        assert calls[0]["function"]["name"] == "lookup"

    def test_invalid_arguments_do_not_match(self):
        assert extract_from_natural_language("调用函数: f 参数: {not json}") is None

    def test_used_only_after_structural_strategies(self):
        text = '调用函数: a 参数: {} ' + json.dumps(INLINE_CALL)
        calls = extract_tool_invocations(text)
        assert calls is not None
        assert calls[0]["function"]["name"] == "get_weather"


@pytest.mark.unit
class TestNormalization:
    @pytest.mark.parametrize(
        ("arguments", "expected"),
        [
            (None, "{}"),
            ('{"a": 1}', '{"a": 1}'),
            ({"a": 1}, '{"a":1}'),
            ([1, 2], "[1,2]"),
            (3, "3"),
            (True, "true"),
            ({"名": "值"}, '{"名":"值"}'),
        ],
    )
    def test_serialize_arguments(self, arguments, expected):
        assert serialize_arguments(arguments) == expected

    def test_missing_fields_are_filled(self):
        call = normalize_tool_call({"function": {"name": "f"}})
        assert call is not None
        assert call["id"].startswith("call_")
        assert len(call["id"]) == len("call_") + 24
        assert call["type"] == "function"
        assert call["function"]["arguments"] == "{}"

    def test_non_object_rejected(self):
        assert normalize_tool_call("call") is None


@pytest.mark.unit
class TestExtractToolInvocations:
    @pytest.mark.parametrize("text", ["", "just words", "{not json}", '{"a": 1}'])
    def test_no_match_returns_none(self, text):
        assert extract_tool_invocations(text) is None

    def test_scan_limit_bounds_search(self):
        text = "x" * 50 + json.dumps(INLINE_CALL)
        assert extract_tool_invocations(text, scan_limit=40) is None
        assert extract_tool_invocations(text, scan_limit=len(text)) is not None


@pytest.mark.unit
class TestStripToolJson:
    def test_removes_fenced_block(self):
        assert strip_tool_json(f"Calling now.\n{FENCED}\n") == "Calling now."

    def test_removes_inline_object(self):
        text = f"before {json.dumps(INLINE_CALL)} after"
        assert strip_tool_json(text) == "before  after"

    def test_keeps_unrelated_json(self):
        text = 'Config: {"a": 1}\n```json\n{"b": 2}\n```'
        assert strip_tool_json(text) == text

    @pytest.mark.parametrize(
        "text",
        [
            "plain answer  ",
            '  {"tool_calls": "not a list"}',
            '{"tool_calls": [',
        ],
    )
    def test_unchanged_when_extraction_finds_nothing(self, text):
        assert extract_tool_invocations(text) is None
        assert strip_tool_json(text) == text.strip()

    def test_natural_language_call_is_not_stripped(self):
        text = '调用函数: f 参数: {"a": 1}'
        assert strip_tool_json(text) == text

    def test_removes_exactly_the_extracted_span(self):
        payload = json.dumps(INLINE_CALL)
        text = f"Let me check. {payload}"

        calls = extract_tool_invocations(text)

        assert calls is not None
        assert strip_tool_json(text) == text.replace(payload, "").strip()

    def test_escaped_quote_object_removed_whole(self):
        assert strip_tool_json(f"x {ESCAPED_QUOTE} y") == "x  y"

    def test_text_beyond_scan_limit_is_kept(self):
        payload = json.dumps(INLINE_CALL)
        text = "a" * 10 + payload
        assert strip_tool_json(text, scan_limit=5) == text
