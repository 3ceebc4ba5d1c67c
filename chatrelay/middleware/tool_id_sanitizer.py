# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Tool call ID sanitizer middleware.

The upstream only accepts tool call IDs made of [A-Za-z0-9_-]. Clients (and
other proxies in front of us) produce IDs such as "call:abc/1" or "toolu_01!x",
and occasionally no ID at all.

Every assistant tool_calls[].id and every tool message tool_call_id is
rewritten in the same pass with the same mapping, so a call and its response
still reference each other afterwards.
"""

import re
import time
import uuid
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from loguru import logger

from chatrelay.converters_core import Role, UnifiedMessage

_INVALID_TOOL_ID_CHARS_RE = re.compile(r"[^A-Za-z0-9_-]")

IdFactory = Callable[[], str]


def generate_fallback_tool_id() -> str:
    """Synthesize a tool call ID: tool_<unix-millis>_<random hex>."""
    return f"tool_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def sanitize_tool_call_id(
    tool_id: Optional[str],
    id_factory: IdFactory = generate_fallback_tool_id,
) -> str:
    """
    Strip characters outside [A-Za-z0-9_-] from a tool call ID.

    Args:
        tool_id: Original ID (may be None or empty)
        id_factory: Source of replacement IDs when nothing is left

    Returns:
        Sanitized ID, never empty

    Example:
        >>> sanitize_tool_call_id("x!1")
        'x1'
    """
    cleaned = _INVALID_TOOL_ID_CHARS_RE.sub("", tool_id or "")
    if cleaned:
        return cleaned
    return id_factory()


class _IdMapper:
    """Per-invocation memo so equal original IDs map to the same result."""

    def __init__(self, id_factory: IdFactory):
        self._id_factory = id_factory
        self._mapping: Dict[str, str] = {}
        self.changed = 0
        self.synthesized = 0

    def __call__(self, tool_id: Optional[str]) -> str:
        if not tool_id:
            # Distinct empty IDs are distinct calls; do not share a replacement
            self.synthesized += 1
            self.changed += 1
            return self._id_factory()

        if tool_id in self._mapping:
            sanitized = self._mapping[tool_id]
        else:
            sanitized = _INVALID_TOOL_ID_CHARS_RE.sub("", tool_id)
            if not sanitized:
                sanitized = self._id_factory()
                self.synthesized += 1
            self._mapping[tool_id] = sanitized

        if sanitized != tool_id:
            self.changed += 1
        return sanitized


def sanitize_tool_ids(
    messages: List[UnifiedMessage],
    id_factory: IdFactory = generate_fallback_tool_id,
) -> List[UnifiedMessage]:
    """
    Sanitize all tool call IDs in a conversation.

    Args:
        messages: Conversation (not modified)
        id_factory: Source of replacement IDs for empty results

    Returns:
        New list; messages without tool IDs are reused as-is, the others are copies
    """
    mapper = _IdMapper(id_factory)
    result: List[UnifiedMessage] = []

    for msg in messages:
        if msg.role is Role.ASSISTANT and msg.tool_calls:
            new_calls = tuple(replace(call, id=mapper(call.id)) for call in msg.tool_calls)
            if new_calls != msg.tool_calls:
                msg = replace(msg, tool_calls=new_calls)
        elif msg.role is Role.TOOL:
            new_id = mapper(msg.tool_call_id)
            if new_id != msg.tool_call_id:
                msg = replace(msg, tool_call_id=new_id)
        result.append(msg)

    if mapper.changed > 0:
        logger.info(
            "[ToolIdSanitizer] Rewrote {} tool ID reference(s), synthesized {}",
            mapper.changed,
            mapper.synthesized,
        )

    return result
