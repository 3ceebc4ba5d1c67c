# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Context truncation middleware.

Fits a conversation into a token budget when the estimated cost exceeds it.

Strategy:
  1. Nothing to do if the conversation already fits
  2. Compress oversized tool results to head + elision marker + tail
  3. Otherwise keep, in priority order:
     - every system message
     - the most recent tool call chain (assistant tool_calls + responses)
     - the most recent user message
     - as many other regular messages as fit, newest first
  4. Kept messages stay in their original order

The budget is advisory: if the must-keep set alone exceeds it, the result is
still returned and the upstream decides.
"""

import math
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Set

from loguru import logger

from chatrelay.config import (
    TOOL_RESULT_COMPRESSION_CEILING,
    TOOL_RESULT_COMPRESSION_SAFETY,
    TOOL_RESULT_HEAD_RATIO,
    TOOL_RESULT_TAIL_RATIO,
)
from chatrelay.converters_core import (
    MessageCategory,
    Role,
    UnifiedMessage,
    extract_text_content,
)
from chatrelay.token_estimator import estimate_message_tokens

Estimator = Callable[[UnifiedMessage], int]


@dataclass(frozen=True)
class TruncationResult:
    """
    Result of fitting a conversation into a token budget.

    Attributes:
        messages: Fitted conversation, a subsequence of the input in original order
        original_token_estimate: Estimated cost before fitting
        final_token_estimate: Estimated cost after fitting
        removed_count: Number of dropped messages
        compressed_count: Number of compressed tool results
    """

    messages: List[UnifiedMessage]
    original_token_estimate: int
    final_token_estimate: int
    removed_count: int = 0
    compressed_count: int = 0


@dataclass
class _Entry:
    index: int
    message: UnifiedMessage
    tokens: int

    @property
    def category(self) -> MessageCategory:
        return self.message.category


def _elision_marker(elided_chars: int) -> str:
    return f"\n\n... [content truncated, {elided_chars} characters omitted] ...\n\n"


def compress_tool_result(
    message: UnifiedMessage,
    max_tokens: int = TOOL_RESULT_COMPRESSION_CEILING,
    estimator: Estimator = estimate_message_tokens,
) -> UnifiedMessage:
    """
    Shrink a tool result to roughly `max_tokens` by keeping its head and tail.

    Retained length is floor(len * (max_tokens / current_tokens) * 0.9);
    60% of it is taken from the start, 30% from the end, and an elision
    marker naming the omitted character count goes in between.

    Args:
        message: Tool message to compress
        max_tokens: Compression ceiling
        estimator: Cost function

    Returns:
        Compressed copy, or the same message if it is within the ceiling
    """
    current_tokens = estimator(message)
    if current_tokens <= max_tokens:
        return message

    content = extract_text_content(message.content)
    ratio = max_tokens / current_tokens
    target_length = math.floor(len(content) * ratio * TOOL_RESULT_COMPRESSION_SAFETY)
    head_length = math.floor(target_length * TOOL_RESULT_HEAD_RATIO)
    tail_length = math.floor(target_length * TOOL_RESULT_TAIL_RATIO)

    head = content[:head_length]
    tail = content[-tail_length:] if tail_length > 0 else ""
    elided = len(content) - head_length - tail_length

    logger.debug(
        f"[ContextTruncation] Compressing tool result: {current_tokens} tokens -> {max_tokens} tokens"
    )

    return replace(message, content=head + _elision_marker(elided) + tail)


def _compress_entries(
    entries: List[_Entry],
    ceiling: int,
    estimator: Estimator,
) -> int:
    """Compress oversized tool results in place; returns how many shrank."""
    compressed_count = 0
    for entry in entries:
        if entry.message.role is not Role.TOOL or entry.tokens <= ceiling:
            continue
        compressed = compress_tool_result(entry.message, ceiling, estimator)
        new_tokens = estimator(compressed)
        if new_tokens < entry.tokens:
            entry.message = compressed
            entry.tokens = new_tokens
            compressed_count += 1
    return compressed_count


def _collect_must_keep(entries: List[_Entry]) -> Set[int]:
    """Indices that survive regardless of budget."""
    must_keep: Set[int] = set()

    for entry in entries:
        if entry.category is MessageCategory.SYSTEM:
            must_keep.add(entry.index)

    # Most recent tool chain: walk back from the last tool-context message
    # until a regular message interrupts the chain
    last_tool_pos = -1
    for pos in range(len(entries) - 1, -1, -1):
        if entries[pos].category is MessageCategory.TOOL_CONTEXT:
            last_tool_pos = pos
            break

    for pos in range(last_tool_pos, -1, -1):
        category = entries[pos].category
        if category is MessageCategory.TOOL_CONTEXT:
            must_keep.add(entries[pos].index)
        elif category is MessageCategory.REGULAR:
            break

    for pos in range(len(entries) - 1, -1, -1):
        if entries[pos].message.role is Role.USER:
            must_keep.add(entries[pos].index)
            break

    return must_keep


def fit_to_budget(
    messages: List[UnifiedMessage],
    target_tokens: int,
    compression_ceiling: int = TOOL_RESULT_COMPRESSION_CEILING,
    estimator: Estimator = estimate_message_tokens,
    model: Optional[str] = None,
) -> TruncationResult:
    """
    Fit a repaired conversation into `target_tokens`.

    Args:
        messages: Conversation after tool sequence repair (not modified)
        target_tokens: Token budget
        compression_ceiling: Tool results above this cost are compressed first
        estimator: Cost function
        model: Model name, for logs only

    Returns:
        TruncationResult (best effort; may still exceed the budget)
    """
    entries = [
        _Entry(index=i, message=msg, tokens=estimator(msg)) for i, msg in enumerate(messages)
    ]
    original_tokens = sum(entry.tokens for entry in entries)

    if original_tokens <= target_tokens:
        logger.debug(
            f"[ContextTruncation] No truncation needed: {original_tokens} tokens <= {target_tokens} limit"
        )
        return TruncationResult(
            messages=list(messages),
            original_token_estimate=original_tokens,
            final_token_estimate=original_tokens,
        )

    logger.info(
        f"[ContextTruncation] Truncating: {original_tokens} tokens -> {target_tokens} limit "
        f"(model: {model or 'unknown'})"
    )

    # Step 1: compress oversized tool results
    compressed_count = _compress_entries(entries, compression_ceiling, estimator)
    current_tokens = sum(entry.tokens for entry in entries)

    if current_tokens <= target_tokens:
        logger.info(
            f"[ContextTruncation] After compression: {current_tokens} tokens "
            f"(compressed {compressed_count} tool results)"
        )
        return TruncationResult(
            messages=[entry.message for entry in entries],
            original_token_estimate=original_tokens,
            final_token_estimate=current_tokens,
            compressed_count=compressed_count,
        )

    # Step 2: must-keep set
    must_keep = _collect_must_keep(entries)
    must_keep_tokens = sum(entry.tokens for entry in entries if entry.index in must_keep)
    available_tokens = max(0, target_tokens - must_keep_tokens)

    # Step 3: newest regular messages first, skip what does not fit
    keep_regular: Set[int] = set()
    used_tokens = 0
    for entry in reversed(entries):
        if entry.index in must_keep or entry.category is not MessageCategory.REGULAR:
            continue
        if used_tokens + entry.tokens <= available_tokens:
            used_tokens += entry.tokens
            keep_regular.add(entry.index)

    kept = [
        entry for entry in entries if entry.index in must_keep or entry.index in keep_regular
    ]
    final_tokens = sum(entry.tokens for entry in kept)
    removed_count = len(entries) - len(kept)

    if final_tokens > target_tokens:
        logger.warning(
            f"[ContextTruncation] Still over budget after truncation: {final_tokens} > "
            f"{target_tokens} (must-keep messages alone cost {must_keep_tokens})"
        )

    logger.info(
        f"[ContextTruncation] Truncation complete: {original_tokens} -> {final_tokens} tokens "
        f"(removed {removed_count} messages, compressed {compressed_count} tool results)"
    )

    return TruncationResult(
        messages=[entry.message for entry in kept],
        original_token_estimate=original_tokens,
        final_token_estimate=final_tokens,
        removed_count=removed_count,
        compressed_count=compressed_count,
    )
