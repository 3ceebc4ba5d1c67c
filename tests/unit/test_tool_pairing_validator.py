# -*- coding: utf-8 -*-

"""
Unit tests for the tool pairing validator middleware.
"""

import json

from chatrelay.converters_core import Role, ToolCall
from chatrelay.middleware.tool_pairing_validator import repair_tool_call_sequence

from conftest import make_assistant, make_system, make_tool, make_user


def _shape(messages):
    """Compact (role, id) view for assertions."""
    return [
        (msg.role.value, msg.tool_call_id if msg.role is Role.TOOL else None)
        for msg in messages
    ]


class TestRepairToolCallSequence:
    """Tests for repair_tool_call_sequence()."""

    def test_no_tools_passthrough(self):
        """
        What it does: Repairs a conversation without tools.
        Purpose: Nothing changes and nothing is counted.
        """
        messages = [make_system(), make_user("hi"), make_assistant("hello")]
        result = repair_tool_call_sequence(messages)

        assert result.messages == messages
        assert result.placeholder_count == 0
        assert result.orphaned_count == 0

    def test_missing_response_gets_placeholder(self):
        """
        What it does: Repairs calls a, b where only a has a response.
        Purpose: b receives a synthesized "skipped" response after a's.
        """
        assistant = make_assistant(None, [ToolCall(id="a", name="read"), ToolCall(id="b", name="write")])
        response_a = make_tool("a", "file contents")
        print("Action: Repairing conversation with missing response...")
        result = repair_tool_call_sequence([make_user("go"), assistant, response_a])

        assert _shape(result.messages) == [
            ("user", None),
            ("assistant", None),
            ("tool", "a"),
            ("tool", "b"),
        ]
        assert result.messages[2] is response_a
        placeholder = json.loads(result.messages[3].content)
        print(f"Placeholder: {placeholder}")
        assert placeholder["status"] == "skipped"
        assert placeholder["tool_name"] == "write"
        assert result.placeholder_count == 1

    def test_late_response_moved_after_its_call(self):
        """
        What it does: Repairs a response that arrives after an unrelated user turn.
        Purpose: The response is moved directly after the assistant message.
        """
        messages = [
            make_assistant(None, [ToolCall(id="a", name="run")]),
            make_user("still there?"),
            make_tool("a", "done"),
        ]
        result = repair_tool_call_sequence(messages)

        assert _shape(result.messages) == [("assistant", None), ("tool", "a"), ("user", None)]
        assert result.placeholder_count == 0
        assert result.orphaned_count == 0

    def test_responses_follow_call_order(self):
        """
        What it does: Repairs responses given in reverse order.
        Purpose: Responses appear in the order of the calls.
        """
        messages = [
            make_assistant(None, [ToolCall(id="a"), ToolCall(id="b"), ToolCall(id="c")]),
            make_tool("c"),
            make_tool("a"),
            make_tool("b"),
        ]
        result = repair_tool_call_sequence(messages)

        assert [msg.tool_call_id for msg in result.messages[1:]] == ["a", "b", "c"]

    def test_orphan_dropped(self):
        """
        What it does: Repairs a tool message answering no call.
        Purpose: Orphans are removed and counted.
        """
        messages = [make_user("hi"), make_tool("ghost", "???"), make_assistant("hello")]
        result = repair_tool_call_sequence(messages)

        assert _shape(result.messages) == [("user", None), ("assistant", None)]
        assert result.orphaned_count == 1

    def test_duplicate_response_last_wins(self):
        """
        What it does: Repairs a call answered twice.
        Purpose: The later response is kept, the earlier one counts as orphan.
        """
        first = make_tool("a", "first")
        second = make_tool("a", "second")
        messages = [make_assistant(None, [ToolCall(id="a")]), first, second]
        result = repair_tool_call_sequence(messages)

        assert len(result.messages) == 2
        assert result.messages[1] is second
        assert result.orphaned_count == 1

    def test_every_call_answered_exactly_once(self):
        """
        What it does: Repairs a mixed conversation with two tool turns.
        Purpose: Each assistant with N calls is followed by exactly N responses.
        """
        messages = [
            make_system(),
            make_user("start"),
            make_assistant(None, [ToolCall(id="a"), ToolCall(id="b")]),
            make_tool("b"),
            make_assistant("thinking"),
            make_assistant(None, [ToolCall(id="c")]),
            make_tool("a"),
            make_tool("zzz"),
        ]
        result = repair_tool_call_sequence(messages).messages

        for pos, msg in enumerate(result):
            if msg.has_tool_calls:
                expected = [call.id for call in msg.tool_calls]
                following = result[pos + 1: pos + 1 + len(expected)]
                assert [m.tool_call_id for m in following] == expected
                assert all(m.role is Role.TOOL for m in following)

    def test_idempotent(self):
        """
        What it does: Repairs an already repaired conversation.
        Purpose: A second pass changes nothing.
        """
        messages = [
            make_assistant(None, [ToolCall(id="a"), ToolCall(id="b")]),
            make_user("interrupt"),
            make_tool("a"),
            make_tool("orphan"),
        ]
        once = repair_tool_call_sequence(messages)
        twice = repair_tool_call_sequence(once.messages)

        assert twice.messages == once.messages
        assert twice.placeholder_count == 0
        assert twice.orphaned_count == 0

    def test_input_not_modified(self):
        """
        What it does: Repairs a conversation and checks the input.
        Purpose: The caller's list is not reordered.
        """
        messages = [make_tool("a"), make_assistant(None, [ToolCall(id="a")])]
        snapshot = list(messages)
        repair_tool_call_sequence(messages)
        assert messages == snapshot
