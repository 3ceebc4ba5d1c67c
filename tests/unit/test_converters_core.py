# -*- coding: utf-8 -*-

"""
Unit tests for converters_core module.

Tests for:
- Role.parse() and message categories
- extract_text_content() / classify_content_part()
- OpenAI <-> UnifiedMessage conversion
"""

import pytest
from dataclasses import FrozenInstanceError

from chatrelay.converters_core import (
    ContentPartKind,
    MessageCategory,
    Role,
    ToolCall,
    UnifiedMessage,
    classify_content_part,
    extract_text_content,
    message_from_openai,
    message_to_openai,
    messages_from_openai,
)


class TestRoleParse:
    """Tests for Role.parse()."""

    def test_known_roles(self):
        """
        What it does: Parses the four wire roles.
        Purpose: Ensure standard roles map to their enum members.
        """
        print("Action: Parsing system/user/assistant/tool...")
        assert Role.parse("system") is Role.SYSTEM
        assert Role.parse("user") is Role.USER
        assert Role.parse("assistant") is Role.ASSISTANT
        assert Role.parse("tool") is Role.TOOL

    def test_developer_is_system(self):
        """
        What it does: Parses the OpenAI "developer" role.
        Purpose: Developer instructions must be kept like system messages.
        """
        print("Action: Parsing 'developer'...")
        assert Role.parse("developer") is Role.SYSTEM

    def test_unknown_role_is_user(self):
        """
        What it does: Parses an unknown role.
        Purpose: Unknown roles are treated as regular user turns.
        """
        print("Action: Parsing 'narrator'...")
        assert Role.parse("narrator") is Role.USER
        assert Role.parse(None) is Role.USER


class TestMessageCategory:
    """Tests for UnifiedMessage.category."""

    def test_categories(self):
        """
        What it does: Checks category for each role.
        Purpose: The budget fitter relies on these categories.
        """
        call = ToolCall(id="c1", name="read")
        print("Verify: category per role...")
        assert UnifiedMessage(role=Role.SYSTEM).category is MessageCategory.SYSTEM
        assert UnifiedMessage(role=Role.USER).category is MessageCategory.REGULAR
        assert UnifiedMessage(role=Role.ASSISTANT).category is MessageCategory.REGULAR
        assert (
            UnifiedMessage(role=Role.ASSISTANT, tool_calls=(call,)).category
            is MessageCategory.TOOL_CONTEXT
        )
        assert UnifiedMessage(role=Role.TOOL).category is MessageCategory.TOOL_CONTEXT

    def test_message_is_frozen(self):
        """
        What it does: Tries to assign to a message field.
        Purpose: Stages must build new messages instead of mutating.
        """
        msg = UnifiedMessage(role=Role.USER, content="hi")
        with pytest.raises(FrozenInstanceError):
            msg.content = "changed"


class TestExtractTextContent:
    """Tests for extract_text_content() and classify_content_part()."""

    def test_string_and_none(self):
        """
        What it does: Extracts text from a string and from None.
        Purpose: Basic formats.
        """
        assert extract_text_content("Hello") == "Hello"
        assert extract_text_content(None) == ""

    def test_list_skips_images(self):
        """
        What it does: Extracts text from mixed content parts.
        Purpose: Images contribute no text.
        """
        content = [
            {"type": "text", "text": "Hello "},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}},
            {"type": "text", "text": "World"},
        ]
        print("Action: Extracting text from mixed parts...")
        assert extract_text_content(content) == "Hello World"

    def test_classify_parts(self):
        """
        What it does: Classifies text, OpenAI image, Anthropic image and unknown parts.
        Purpose: Each kind has its own cost rule.
        """
        assert classify_content_part({"type": "text", "text": "x"}) is ContentPartKind.TEXT
        assert classify_content_part("plain") is ContentPartKind.TEXT
        assert classify_content_part({"type": "image_url", "image_url": {}}) is ContentPartKind.IMAGE
        assert classify_content_part({"type": "image", "source": {}}) is ContentPartKind.IMAGE
        assert classify_content_part({"type": "input_audio"}) is ContentPartKind.OTHER


class TestOpenAIConversion:
    """Tests for message_from_openai() / message_to_openai()."""

    def test_assistant_with_tool_calls(self):
        """
        What it does: Converts an assistant message with tool calls.
        Purpose: Tool call id, name and arguments are extracted.
        """
        raw = {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "read_file", "arguments": '{"path": "a.py"}'},
                }
            ],
        }
        print("Action: Converting assistant message...")
        msg = message_from_openai(raw)

        assert msg.role is Role.ASSISTANT
        assert msg.tool_calls == (
            ToolCall(
                id="call_1",
                name="read_file",
                arguments='{"path": "a.py"}',
                extra={"type": "function"},
            ),
        )

    def test_round_trip_preserves_unknown_fields(self):
        """
        What it does: Converts a message with extra fields and back.
        Purpose: Fields the gateway does not interpret are forwarded unchanged.
        """
        raw = {"role": "user", "content": "hi", "name": "alice", "x_custom": {"a": 1}}
        print("Action: Converting user message with extra fields...")
        result = message_to_openai(message_from_openai(raw))

        print(f"Result: {result}")
        assert result == raw

    def test_round_trip_keeps_developer_role(self):
        """
        What it does: Converts a developer message and back.
        Purpose: The wire role is preserved even though it dispatches as system.
        """
        raw = {"role": "developer", "content": "Be brief."}
        msg = message_from_openai(raw)
        assert msg.role is Role.SYSTEM
        assert message_to_openai(msg)["role"] == "developer"

    def test_tool_message(self):
        """
        What it does: Converts a tool message.
        Purpose: tool_call_id is read and written back.
        """
        raw = {"role": "tool", "tool_call_id": "call_1", "content": "done"}
        result = message_to_openai(message_from_openai(raw))
        assert result == raw

    def test_input_not_modified(self):
        """
        What it does: Converts a message and checks the source dict.
        Purpose: Conversion must not mutate client data.
        """
        raw = {"role": "assistant", "content": "x", "tool_calls": [{"id": "a", "function": {"name": "f"}}]}
        snapshot = {"role": "assistant", "content": "x", "tool_calls": [{"id": "a", "function": {"name": "f"}}]}
        message_from_openai(raw)
        assert raw == snapshot

    def test_skips_non_dict_entries(self):
        """
        What it does: Converts a list containing a non-dict entry.
        Purpose: Malformed entries are ignored rather than crashing.
        """
        result = messages_from_openai([{"role": "user", "content": "a"}, "garbage"])
        assert len(result) == 1
