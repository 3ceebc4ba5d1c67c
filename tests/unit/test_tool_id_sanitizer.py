# -*- coding: utf-8 -*-

"""
Unit tests for the tool call ID sanitizer middleware.
"""

import re

from chatrelay.converters_core import ToolCall
from chatrelay.middleware.tool_id_sanitizer import (
    generate_fallback_tool_id,
    sanitize_tool_call_id,
    sanitize_tool_ids,
)

from conftest import make_assistant, make_tool, make_user

VALID_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestSanitizeToolCallId:
    """Tests for sanitize_tool_call_id()."""

    def test_valid_id_unchanged(self):
        """
        What it does: Sanitizes an already valid ID.
        Purpose: Valid IDs are left alone.
        """
        assert sanitize_tool_call_id("call_abc-123") == "call_abc-123"

    def test_strips_invalid_characters(self):
        """
        What it does: Sanitizes IDs with punctuation.
        Purpose: Only [A-Za-z0-9_-] survive.
        """
        print("Action: Sanitizing 'call:abc/1' and 'toolu_01!x'...")
        assert sanitize_tool_call_id("call:abc/1") == "callabc1"
        assert sanitize_tool_call_id("toolu_01!x") == "toolu_01x"

    def test_empty_result_uses_factory(self, deterministic_id_factory):
        """
        What it does: Sanitizes IDs that become empty.
        Purpose: The result is never empty.
        """
        assert sanitize_tool_call_id("!!!", deterministic_id_factory) == "tool_test_1"
        assert sanitize_tool_call_id(None, deterministic_id_factory) == "tool_test_2"
        assert sanitize_tool_call_id("", deterministic_id_factory) == "tool_test_3"

    def test_fallback_id_format(self):
        """
        What it does: Generates a fallback ID.
        Purpose: Synthesized IDs satisfy the same character rule.
        """
        tool_id = generate_fallback_tool_id()
        print(f"Generated: {tool_id}")
        assert tool_id.startswith("tool_")
        assert VALID_ID_RE.match(tool_id)
        assert generate_fallback_tool_id() != tool_id


class TestSanitizeToolIds:
    """Tests for sanitize_tool_ids()."""

    def test_call_and_response_resolve_to_same_id(self):
        """
        What it does: Sanitizes "x!1" in a call, with its response already using "x1".
        Purpose: Both references end up as "x1".
        """
        messages = [
            make_assistant(None, [ToolCall(id="x!1", name="run")]),
            make_tool("x1", "ok"),
        ]
        print("Action: Sanitizing conversation...")
        result = sanitize_tool_ids(messages)

        assert result[0].tool_calls[0].id == "x1"
        assert result[1].tool_call_id == "x1"

    def test_equal_originals_map_to_equal_results(self, deterministic_id_factory):
        """
        What it does: Sanitizes an ID that becomes empty, referenced twice.
        Purpose: Call and response keep referencing each other.
        """
        messages = [
            make_assistant(None, [ToolCall(id="!!", name="run")]),
            make_tool("!!", "ok"),
        ]
        result = sanitize_tool_ids(messages, deterministic_id_factory)

        assert result[0].tool_calls[0].id == "tool_test_1"
        assert result[1].tool_call_id == "tool_test_1"

    def test_distinct_empty_ids_get_distinct_replacements(self, deterministic_id_factory):
        """
        What it does: Sanitizes two calls without IDs.
        Purpose: Two different calls must not collapse into one.
        """
        messages = [make_assistant(None, [ToolCall(id="", name="a"), ToolCall(id="", name="b")])]
        result = sanitize_tool_ids(messages, deterministic_id_factory)

        ids = [call.id for call in result[0].tool_calls]
        print(f"Result IDs: {ids}")
        assert ids == ["tool_test_1", "tool_test_2"]

    def test_all_ids_valid_after_sanitizing(self):
        """
        What it does: Sanitizes a conversation with assorted bad IDs.
        Purpose: Every ID in the output matches the allowed character set.
        """
        messages = [
            make_user("go"),
            make_assistant(None, [ToolCall(id="a.b", name="x"), ToolCall(id="c d", name="y")]),
            make_tool("a.b"),
            make_tool("c d"),
            make_tool(""),
        ]
        result = sanitize_tool_ids(messages)

        ids = [call.id for msg in result if msg.tool_calls for call in msg.tool_calls]
        ids += [msg.tool_call_id for msg in result if msg.tool_call_id is not None]
        assert all(VALID_ID_RE.match(tool_id) for tool_id in ids)

    def test_input_not_modified_and_clean_messages_reused(self):
        """
        What it does: Sanitizes a conversation and checks the input list.
        Purpose: Input stays untouched; unchanged messages are shared.
        """
        user = make_user("hi")
        assistant = make_assistant(None, [ToolCall(id="bad!", name="x")])
        messages = [user, assistant]

        result = sanitize_tool_ids(messages)

        assert messages[1].tool_calls[0].id == "bad!"
        assert result[0] is user
        assert result[1] is not assistant
