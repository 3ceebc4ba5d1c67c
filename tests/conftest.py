# -*- coding: utf-8 -*-

"""
Shared fixtures for ChatRelay Gateway tests.
"""

import itertools
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from chatrelay.config import PROXY_API_KEY
from chatrelay.converters_core import Role, ToolCall, UnifiedMessage
from chatrelay.model_capabilities import ModelCapabilityTable


# =============================================================================
# Message builders
# =============================================================================


def make_user(content: Any = "hello") -> UnifiedMessage:
    return UnifiedMessage(role=Role.USER, content=content, wire_role="user")


def make_system(content: Any = "You are helpful.") -> UnifiedMessage:
    return UnifiedMessage(role=Role.SYSTEM, content=content, wire_role="system")


def make_assistant(content: Any = "ok", calls: List[ToolCall] = None) -> UnifiedMessage:
    return UnifiedMessage(
        role=Role.ASSISTANT,
        content=content,
        tool_calls=tuple(calls) if calls else None,
        wire_role="assistant",
    )


def make_tool(tool_call_id: str, content: Any = "result") -> UnifiedMessage:
    return UnifiedMessage(
        role=Role.TOOL, content=content, tool_call_id=tool_call_id, wire_role="tool"
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def deterministic_id_factory():
    """ID factory producing tool_test_1, tool_test_2, ..."""
    counter = itertools.count(1)
    return lambda: f"tool_test_{next(counter)}"


@pytest.fixture
def capability_table():
    """Small capability table for pipeline tests."""
    print("Setup: Creating ModelCapabilityTable with test models...")
    return ModelCapabilityTable(
        context_limits={
            "claude-sonnet-4": 200000,
            "claude-opus-4": 200000,
            "gpt-4o": 128000,
            "gpt-5.2": 128000,
            "tiny-model": 8192,
        },
        output_limits={
            "claude-sonnet-4": 64000,
            "gpt-4o": 16384,
        },
    )


@pytest.fixture
def valid_proxy_api_key():
    return PROXY_API_KEY


@pytest.fixture
def invalid_proxy_api_key():
    return "wrong-key-12345"


@pytest.fixture
def auth_headers(valid_proxy_api_key):
    return {"Authorization": f"Bearer {valid_proxy_api_key}"}


@pytest.fixture
def mock_upstream():
    """Mock for UpstreamHttpClient."""
    upstream = MagicMock()
    upstream.create_chat_completion = AsyncMock(
        return_value={
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": "Hi!"},
                    "finish_reason": "stop",
                }
            ],
        }
    )
    upstream.close = AsyncMock()
    return upstream


@pytest.fixture
def test_client(mock_upstream):
    """
    TestClient with the application lifespan running and the upstream mocked.

    Token counting is patched out so tests never load tiktoken encodings.
    """
    from main import app

    with patch("chatrelay.routes_openai.log_token_count", return_value=None):
        with TestClient(app) as client:
            app.state.http_client = mock_upstream
            yield client


def sent_payload(mock_upstream) -> Dict[str, Any]:
    """Payload passed to the mocked upstream in the last call."""
    return mock_upstream.create_chat_completion.call_args[0][0]
