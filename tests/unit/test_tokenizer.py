# -*- coding: utf-8 -*-

"""
Unit tests for tiktoken-based token counting.

The encoding is patched with a whitespace splitter so no encoding files are loaded.
"""

from unittest.mock import MagicMock, patch

from chatrelay.tokenizer import count_message_tokens, log_token_count


def _fake_encoding():
    encoding = MagicMock()
    encoding.encode.side_effect = lambda text: text.split()
    return encoding


class TestCountMessageTokens:
    """Tests for count_message_tokens()."""

    def test_counts_content_and_framing(self):
        """
        What it does: Counts two short messages.
        Purpose: 3 primer + 3 per message + content tokens.
        """
        messages = [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello there world"},
        ]
        with patch("chatrelay.tokenizer._encoding_for_model", return_value=_fake_encoding()):
            result = count_message_tokens("gpt-4o", messages)

        print(f"Comparing: Expected 3 + 3 + 2 + 3 + 3 = 14, Got {result}")
        assert result == 14

    def test_counts_tool_calls_and_ids(self):
        """
        What it does: Counts an assistant tool call and its response.
        Purpose: Function names, arguments and ids are part of the prompt.
        """
        messages = [
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{"id": "c1", "function": {"name": "read", "arguments": {"p": "a b"}}}],
            },
            {"role": "tool", "tool_call_id": "c1", "content": "ok"},
        ]
        with patch("chatrelay.tokenizer._encoding_for_model", return_value=_fake_encoding()):
            result = count_message_tokens("gpt-4o", messages)

        # primer 3; assistant 3 + name 1 + '{"p": "a b"}' 3; tool 3 + content 1 + id 1
        assert result == 15


class TestLogTokenCount:
    """Tests for log_token_count()."""

    def test_returns_count(self):
        """
        What it does: Logs the count of a payload.
        Purpose: The count is returned for callers that need it.
        """
        payload = {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]}
        with patch("chatrelay.tokenizer._encoding_for_model", return_value=_fake_encoding()):
            assert log_token_count(payload) == 7

    def test_failure_swallowed(self):
        """
        What it does: Counts with a broken encoder.
        Purpose: Counting failures never break a request.
        """
        with patch("chatrelay.tokenizer._encoding_for_model", side_effect=RuntimeError("no encoding")):
            assert log_token_count({"model": "gpt-4o", "messages": []}) is None
