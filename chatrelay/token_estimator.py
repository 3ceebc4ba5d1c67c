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
Approximate token cost of conversation messages.

Used for budgeting only:
- text costs ceil(characters / 4)
- every image costs a fixed IMAGE_TOKEN_COST, whatever its resolution
- tool call names, arguments and referenced IDs count as text
- every message adds MESSAGE_TOKEN_OVERHEAD

For authoritative counts see chatrelay.tokenizer.
"""

import json
import math
from typing import Any, List, Tuple

from loguru import logger

from chatrelay.config import CHARS_PER_TOKEN, IMAGE_TOKEN_COST, MESSAGE_TOKEN_OVERHEAD
from chatrelay.converters_core import (
    ContentPartKind,
    Role,
    UnifiedMessage,
    classify_content_part,
)


def _serialize_arguments(arguments: Any) -> str:
    if arguments is None:
        return ""
    if isinstance(arguments, str):
        return arguments
    try:
        return json.dumps(arguments, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(arguments)


def _content_cost(content: Any) -> Tuple[int, int]:
    """Return (text_chars, image_count) for message content."""
    if content is None:
        return 0, 0
    if isinstance(content, str):
        return len(content), 0
    if isinstance(content, list):
        chars = 0
        images = 0
        for part in content:
            kind = classify_content_part(part)
            if kind is ContentPartKind.TEXT:
                text = part if isinstance(part, str) else part.get("text", "")
                chars += len(text) if isinstance(text, str) else 0
            elif kind is ContentPartKind.IMAGE:
                images += 1
        return chars, images
    return len(str(content)), 0


def estimate_message_tokens(message: UnifiedMessage) -> int:
    """
    Estimate the token cost of one message.

    Args:
        message: Message to estimate

    Returns:
        Non-negative integer estimate, never less than MESSAGE_TOKEN_OVERHEAD

    Example:
        >>> estimate_message_tokens(UnifiedMessage(role=Role.USER, content="abcd"))
        5
    """
    chars = 0
    images = 0

    try:
        chars, images = _content_cost(message.content)

        if message.role is Role.ASSISTANT and message.tool_calls:
            for call in message.tool_calls:
                chars += len(call.name or "")
                chars += len(_serialize_arguments(call.arguments))

        if message.role is Role.TOOL and message.tool_call_id:
            chars += len(message.tool_call_id)
    except (AttributeError, TypeError) as e:
        # Unexpected content shape: keep whatever was counted so far
        logger.warning(f"[TokenEstimator] Failed to estimate message cost: {e}")

    return math.ceil(chars / CHARS_PER_TOKEN) + images * IMAGE_TOKEN_COST + MESSAGE_TOKEN_OVERHEAD


def estimate_total_tokens(messages: List[UnifiedMessage]) -> int:
    """Sum of estimate_message_tokens over a conversation."""
    return sum(estimate_message_tokens(msg) for msg in messages)


def needs_truncation(messages: List[UnifiedMessage], budget: int) -> bool:
    """
    Check whether a conversation exceeds a token budget.

    Stops summing as soon as the running total passes the budget.
    """
    total = 0
    for msg in messages:
        total += estimate_message_tokens(msg)
        if total > budget:
            return True
    return False
