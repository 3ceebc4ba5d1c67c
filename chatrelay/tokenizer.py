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
Authoritative token counting with tiktoken.

Observability only: the count is logged and never influences the request.
Budget decisions use chatrelay.token_estimator.
"""

import json
from functools import lru_cache
from typing import Any, Dict, List, Optional

import tiktoken
from loguru import logger

from chatrelay.converters_core import extract_text_content

# Per-message framing tokens used by OpenAI chat formats
_TOKENS_PER_MESSAGE = 3
_TOKENS_REPLY_PRIMER = 3

_FALLBACK_ENCODING = "o200k_base"


@lru_cache(maxsize=32)
def _encoding_for_model(model: str) -> tiktoken.Encoding:
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding(_FALLBACK_ENCODING)


def count_message_tokens(model: str, messages: List[Dict[str, Any]]) -> int:
    """
    Count prompt tokens for OpenAI-format messages.

    Args:
        model: Model name used to pick the encoding
        messages: OpenAI message dicts

    Returns:
        Token count including per-message framing
    """
    encoding = _encoding_for_model(model)
    total = _TOKENS_REPLY_PRIMER
    for msg in messages:
        total += _TOKENS_PER_MESSAGE
        total += len(encoding.encode(extract_text_content(msg.get("content"))))
        for call in msg.get("tool_calls") or []:
            function = call.get("function") or {}
            arguments = function.get("arguments") or ""
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments, ensure_ascii=False)
            total += len(encoding.encode(function.get("name") or ""))
            total += len(encoding.encode(arguments))
        if msg.get("tool_call_id"):
            total += len(encoding.encode(str(msg["tool_call_id"])))
    return total


def log_token_count(payload: Dict[str, Any]) -> Optional[int]:
    """
    Count and log the prompt tokens of an outbound payload.

    Failures are logged and swallowed; the request proceeds regardless.

    Returns:
        Token count, or None if counting failed
    """
    try:
        count = count_message_tokens(payload.get("model") or "", payload.get("messages") or [])
    except Exception as e:
        logger.warning(f"Failed to calculate token count: {type(e).__name__}: {e}")
        return None

    logger.info(f"Current token count: {count} (model: {payload.get('model')})")
    return count
