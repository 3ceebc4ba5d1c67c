# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Tool pairing validator middleware.

Ensures every assistant message carrying tool_calls is IMMEDIATELY followed by
the tool messages answering those calls, in call order, and that tool messages
appear nowhere else.

Coding agents (Codex CLI in particular) send conversations where:
  - tool responses arrive after an unrelated user/assistant turn
  - a parallel call never got a response (interrupted execution)
  - a response references a call that was compacted away

The upstream rejects all three. This middleware rebuilds the sequence:
  1. Map tool_call_id -> tool message
  2. Walk the conversation, emitting non-tool messages in order
  3. After each assistant message with tool_calls, emit its responses
     (or a "skipped" placeholder when a response is missing)
  4. Drop tool messages that answer no call (orphans)
"""

import json
from dataclasses import dataclass
from typing import Dict, List, Set

from loguru import logger

from chatrelay.converters_core import Role, ToolCall, UnifiedMessage


@dataclass(frozen=True)
class SequenceRepairResult:
    """
    Result of tool call sequence repair.

    Attributes:
        messages: Repaired conversation
        placeholder_count: Number of synthesized "skipped" responses
        orphaned_count: Number of dropped tool messages
    """

    messages: List[UnifiedMessage]
    placeholder_count: int = 0
    orphaned_count: int = 0


def _make_placeholder_tool_response(call: ToolCall) -> UnifiedMessage:
    """
    Create a synthetic tool response for a call that has none.

    The content tells the model the call did not run, so it can decide
    whether to issue it again.
    """
    return UnifiedMessage(
        role=Role.TOOL,
        tool_call_id=call.id,
        content=json.dumps(
            {
                "status": "skipped",
                "reason": "Tool execution was interrupted or skipped",
                "tool_name": call.name or "unknown",
            }
        ),
        wire_role=Role.TOOL.value,
    )


def _build_response_map(messages: List[UnifiedMessage]) -> Dict[str, UnifiedMessage]:
    """Map tool_call_id -> tool message. A later duplicate replaces an earlier one."""
    response_map: Dict[str, UnifiedMessage] = {}
    duplicates = 0
    for msg in messages:
        if msg.role is Role.TOOL and msg.tool_call_id:
            if msg.tool_call_id in response_map:
                duplicates += 1
            response_map[msg.tool_call_id] = msg
    if duplicates:
        logger.warning(
            "[ToolPairingValidator] {} duplicate tool response ID(s); keeping the last occurrence",
            duplicates,
        )
    return response_map


def repair_tool_call_sequence(messages: List[UnifiedMessage]) -> SequenceRepairResult:
    """
    Reorder and complete tool call / tool response sequences.

    Args:
        messages: Conversation with sanitized tool IDs (not modified)

    Returns:
        SequenceRepairResult with the repaired conversation and repair counters
    """
    assistant_with_calls = sum(1 for msg in messages if msg.has_tool_calls)
    tool_messages = sum(1 for msg in messages if msg.role is Role.TOOL)

    if assistant_with_calls == 0 and tool_messages == 0:
        return SequenceRepairResult(messages=list(messages))

    logger.debug(
        "[ToolPairingValidator] Analyzing: {} messages, {} assistant msgs with tool_calls, "
        "{} tool responses",
        len(messages),
        assistant_with_calls,
        tool_messages,
    )

    response_map = _build_response_map(messages)

    repaired: List[UnifiedMessage] = []
    used_ids: Set[str] = set()
    placeholder_count = 0

    for msg in messages:
        # Tool messages are only emitted right after their assistant message
        if msg.role is Role.TOOL:
            continue

        repaired.append(msg)

        if not msg.has_tool_calls:
            continue

        for call in msg.tool_calls:
            response = response_map.get(call.id)
            if response is not None:
                repaired.append(response)
                used_ids.add(call.id)
            else:
                repaired.append(_make_placeholder_tool_response(call))
                placeholder_count += 1
                logger.info(
                    "[ToolPairingValidator] Added placeholder for missing tool_call_id: {} (tool: {})",
                    call.id,
                    call.name or "unknown",
                )

    # Orphans: tool messages answering no call, plus earlier duplicates replaced in the map
    orphaned_count = sum(
        1
        for msg in messages
        if msg.role is Role.TOOL
        and (msg.tool_call_id not in used_ids or response_map.get(msg.tool_call_id) is not msg)
    )
    if orphaned_count > 0:
        logger.warning(
            "[ToolPairingValidator] Removed {} orphaned tool response(s)",
            orphaned_count,
        )

    if placeholder_count or orphaned_count or len(repaired) != len(messages):
        logger.info(
            "[ToolPairingValidator] Result: {} -> {} messages "
            "(placeholders={}, orphaned={})",
            len(messages),
            len(repaired),
            placeholder_count,
            orphaned_count,
        )

    return SequenceRepairResult(
        messages=repaired,
        placeholder_count=placeholder_count,
        orphaned_count=orphaned_count,
    )
