# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
ChatRelay Gateway Configuration.

Centralized storage for all settings, constants, and mappings.
Loads environment variables and provides typed access to them.
"""

import os
from typing import Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ==================================================================================================
# Server Settings
# ==================================================================================================

# Default values for server (used when no CLI args or env vars are set)
DEFAULT_SERVER_HOST: str = "0.0.0.0"
SERVER_HOST: str = os.getenv("SERVER_HOST", DEFAULT_SERVER_HOST)

DEFAULT_SERVER_PORT: int = 8000
SERVER_PORT: int = int(os.getenv("SERVER_PORT", str(DEFAULT_SERVER_PORT)))

# API key for clients of this gateway (Authorization: Bearer <key>)
DEFAULT_PROXY_API_KEY: str = "my-super-secret-password-123"
PROXY_API_KEY: str = os.getenv("PROXY_API_KEY", DEFAULT_PROXY_API_KEY)


# ==================================================================================================
# Upstream Provider
# ==================================================================================================

# Base URL of the upstream chat-completions provider (without /chat/completions)
UPSTREAM_BASE_URL: str = os.getenv(
    "UPSTREAM_BASE_URL", "https://api.githubcopilot.com"
).rstrip("/")

# Bearer token sent to the upstream provider
UPSTREAM_API_KEY: str = os.getenv("UPSTREAM_API_KEY", "")

# Timeout for connecting and receiving the initial upstream response (seconds)
UPSTREAM_TIMEOUT: float = float(os.getenv("UPSTREAM_TIMEOUT", "60"))

# Read timeout between streamed fragments (seconds)
STREAMING_READ_TIMEOUT: float = float(os.getenv("STREAMING_READ_TIMEOUT", "300"))


# ==================================================================================================
# Request Gating
# ==================================================================================================

# Minimum number of seconds between two accepted requests. 0 disables the limiter.
RATE_LIMIT_SECONDS: float = float(os.getenv("RATE_LIMIT_SECONDS", "0"))

# When the limiter trips: wait for the window to pass (true) or reject with 429 (false)
_RATE_LIMIT_WAIT_RAW: str = os.getenv("RATE_LIMIT_WAIT", "false").lower()
RATE_LIMIT_WAIT: bool = _RATE_LIMIT_WAIT_RAW in ("true", "1", "yes")

# Ask for console confirmation before each request is forwarded upstream
_MANUAL_APPROVE_RAW: str = os.getenv("MANUAL_APPROVE", "false").lower()
MANUAL_APPROVE: bool = _MANUAL_APPROVE_RAW in ("true", "1", "yes")


# ==================================================================================================
# Model Capabilities
# ==================================================================================================

# Context window sizes (prompt + completion tokens).
# Lookup order: exact match -> longest prefix -> family heuristics -> DEFAULT_CONTEXT_WINDOW.
MODEL_CONTEXT_LIMITS: Dict[str, int] = {
    # GPT-4 family
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4-turbo": 128000,
    "gpt-4-turbo-preview": 128000,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
    "gpt-4.1": 1000000,
    "gpt-4.1-mini": 1000000,
    "gpt-4.5-preview": 128000,
    # GPT-5 family
    "gpt-5": 128000,
    "gpt-5.2": 128000,
    # o-series reasoning models
    "o1": 200000,
    "o1-mini": 128000,
    "o1-preview": 128000,
    "o1-pro": 200000,
    "o3": 200000,
    "o3-mini": 128000,
    "o3-pro": 200000,
    "o4-mini": 200000,
    # Claude family
    "claude-3-opus": 200000,
    "claude-3-sonnet": 200000,
    "claude-3-haiku": 200000,
    "claude-3.5-sonnet": 200000,
    "claude-3.5-haiku": 200000,
    "claude-sonnet-4": 200000,
    "claude-opus-4": 200000,
    "claude-haiku-4": 200000,
    # Gemini family
    "gemini-2.0-flash": 1000000,
    "gemini-2.5-pro": 1000000,
}

# Maximum completion tokens, used to fill a missing max_tokens in outbound payloads.
# Models missing here leave max_tokens unset.
MODEL_OUTPUT_LIMITS: Dict[str, int] = {
    "gpt-4o": 16384,
    "gpt-4o-mini": 16384,
    "gpt-4.1": 32768,
    "gpt-5": 128000,
    "o3": 100000,
    "o4-mini": 100000,
    "claude-sonnet-4": 64000,
    "claude-opus-4": 32000,
    "claude-haiku-4": 64000,
    "gemini-2.5-pro": 65536,
}

# Context window for models that match nothing else
DEFAULT_CONTEXT_WINDOW: int = int(os.getenv("DEFAULT_CONTEXT_WINDOW", "128000"))


# ==================================================================================================
# Context Budget
# ==================================================================================================

# Share of the context window reserved for the model's output
OUTPUT_RESERVE_RATIO: float = float(os.getenv("OUTPUT_RESERVE_RATIO", "0.15"))

# Lower bound for the reserved output share (tokens)
MIN_OUTPUT_RESERVE_TOKENS: int = int(os.getenv("MIN_OUTPUT_RESERVE_TOKENS", "4096"))

# Tool results estimated above this many tokens are compressed to head + tail
# before any message is dropped.
TOOL_RESULT_COMPRESSION_CEILING: int = int(
    os.getenv("TOOL_RESULT_COMPRESSION_CEILING", "8000")
)

# Safety factor applied to the retained length of a compressed tool result
TOOL_RESULT_COMPRESSION_SAFETY: float = 0.9

# Share of the retained length kept from the start / end of a compressed tool result
TOOL_RESULT_HEAD_RATIO: float = 0.6
TOOL_RESULT_TAIL_RATIO: float = 0.3


# ==================================================================================================
# Token Estimation
# ==================================================================================================

# Average characters per token for plain text
CHARS_PER_TOKEN: int = 4

# Fixed cost of one image (or any other non-text part), regardless of its size
IMAGE_TOKEN_COST: int = int(os.getenv("IMAGE_TOKEN_COST", "128"))

# Fixed per-message formatting overhead
MESSAGE_TOKEN_OVERHEAD: int = int(os.getenv("MESSAGE_TOKEN_OVERHEAD", "4"))


# ==================================================================================================
# Request Normalization Pipeline
# ==================================================================================================

# Each stage can be disabled for troubleshooting. All are enabled by default.
_TOOL_ID_SANITIZER_RAW: str = os.getenv("TOOL_ID_SANITIZER_ENABLED", "true").lower()
TOOL_ID_SANITIZER_ENABLED: bool = _TOOL_ID_SANITIZER_RAW in ("true", "1", "yes")

_TOOL_SEQUENCE_REPAIR_RAW: str = os.getenv(
    "TOOL_SEQUENCE_REPAIR_ENABLED", "true"
).lower()
TOOL_SEQUENCE_REPAIR_ENABLED: bool = _TOOL_SEQUENCE_REPAIR_RAW in (
    "true",
    "1",
    "yes",
)

_MODEL_TRANSLATION_RAW: str = os.getenv("MODEL_TRANSLATION_ENABLED", "true").lower()
MODEL_TRANSLATION_ENABLED: bool = _MODEL_TRANSLATION_RAW in ("true", "1", "yes")

_CONTEXT_TRUNCATION_RAW: str = os.getenv("CONTEXT_TRUNCATION_ENABLED", "true").lower()
CONTEXT_TRUNCATION_ENABLED: bool = _CONTEXT_TRUNCATION_RAW in ("true", "1", "yes")


# ==================================================================================================
# Logging Settings
# ==================================================================================================

# Log level for the application
# Available levels: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
# Default: INFO (recommended for production)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


# ==================================================================================================
# Application Version
# ==================================================================================================

APP_VERSION: str = "1.0"
APP_TITLE: str = "ChatRelay Gateway"
APP_DESCRIPTION: str = (
    "OpenAI-compatible gateway that repairs tool-call sequences, translates model "
    "names and fits conversations into the upstream context window."
)


def get_chat_completions_url(base_url: str) -> str:
    """Return the upstream chat completions endpoint for a base URL."""
    return f"{base_url}/chat/completions"
