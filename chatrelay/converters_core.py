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
Core message model and OpenAI wire-format conversion.

Every stage of the normalization pipeline works on UnifiedMessage objects:
- Roles and categories are closed enums, so dispatch is exhaustive
- Messages are frozen; stages build new messages instead of mutating
- Fields the gateway does not interpret are kept in `extra` and written back
  unchanged when the payload is rebuilt
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ==================================================================================================
# Enums
# ==================================================================================================


class Role(str, Enum):
    """Conversation roles understood by the pipeline."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """
        Map a wire role to a Role.

        "developer" is the newer OpenAI name for system instructions.
        Anything unrecognized is treated as a user turn.
        """
        if value == "developer":
            return cls.SYSTEM
        try:
            return cls(value)
        except ValueError:
            return cls.USER


class MessageCategory(str, Enum):
    """Categories used by the context budget fitter."""

    SYSTEM = "system"
    TOOL_CONTEXT = "tool_context"
    REGULAR = "regular"


class ContentPartKind(str, Enum):
    """Kinds of parts inside a multi-part content list."""

    TEXT = "text"
    IMAGE = "image"
    OTHER = "other"


# ==================================================================================================
# Data Classes for Unified Message Format
# ==================================================================================================


@dataclass(frozen=True)
class ToolCall:
    """
    One function invocation embedded in an assistant message.

    Attributes:
        id: Tool call ID referenced by the matching tool response
        name: Function name
        arguments: Serialized JSON arguments (some clients send a dict instead)
        extra: Call-level fields other than id/function (e.g. "type", "index")
    """

    id: str
    name: str = ""
    arguments: Any = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnifiedMessage:
    """
    Unified message format used internally by the pipeline.

    Attributes:
        role: Role used for dispatch
        content: Text content, list of content parts, or None
        tool_calls: Tool calls (assistant messages only)
        tool_call_id: Referenced tool call ID (tool messages only)
        wire_role: Role string to send upstream; differs from role.value
                   for aliases such as "developer"
        extra: Message fields the pipeline does not interpret (e.g. "name")
    """

    role: Role
    content: Any = None
    tool_calls: Optional[Tuple[ToolCall, ...]] = None
    tool_call_id: Optional[str] = None
    wire_role: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return self.role is Role.ASSISTANT and bool(self.tool_calls)

    @property
    def category(self) -> MessageCategory:
        """Category of this message for context budget decisions."""
        if self.role is Role.SYSTEM:
            return MessageCategory.SYSTEM
        if self.role is Role.TOOL:
            return MessageCategory.TOOL_CONTEXT
        if self.role is Role.ASSISTANT:
            return (
                MessageCategory.TOOL_CONTEXT
                if self.has_tool_calls
                else MessageCategory.REGULAR
            )
        if self.role is Role.USER:
            return MessageCategory.REGULAR
        raise ValueError(f"Unhandled role: {self.role!r}")


# ==================================================================================================
# Text Content Extraction
# ==================================================================================================


def classify_content_part(part: Any) -> ContentPartKind:
    """
    Classify one element of a multi-part content list.

    Supports OpenAI ({"type": "image_url"}) and Anthropic ({"type": "image"})
    image blocks, and both typed and untyped text blocks.
    """
    if isinstance(part, str):
        return ContentPartKind.TEXT
    if not isinstance(part, dict):
        return ContentPartKind.OTHER
    part_type = part.get("type")
    if part_type in ("image_url", "image") or "image_url" in part:
        return ContentPartKind.IMAGE
    if part_type == "text" or isinstance(part.get("text"), str):
        return ContentPartKind.TEXT
    return ContentPartKind.OTHER


def extract_text_content(content: Any) -> str:
    """
    Extracts text content from various formats.

    Args:
        content: String, list of content parts, or None

    Returns:
        Concatenated text, images and unknown parts skipped

    Example:
        >>> extract_text_content([{"type": "text", "text": "World"}])
        'World'
        >>> extract_text_content(None)
        ''
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        text_parts = []
        for part in content:
            if classify_content_part(part) is not ContentPartKind.TEXT:
                continue
            text_parts.append(part if isinstance(part, str) else part.get("text", ""))
        return "".join(text_parts)
    return str(content)


# ==================================================================================================
# OpenAI <-> Unified Conversion
# ==================================================================================================

_MESSAGE_KEYS = ("role", "content", "tool_calls", "tool_call_id")


def _tool_call_from_openai(raw: Dict[str, Any]) -> ToolCall:
    function = raw.get("function") or {}
    extra = {k: v for k, v in raw.items() if k not in ("id", "function")}
    return ToolCall(
        id=str(raw.get("id") or ""),
        name=function.get("name") or "",
        arguments=function.get("arguments", ""),
        extra=extra,
    )


def _tool_call_to_openai(call: ToolCall) -> Dict[str, Any]:
    result: Dict[str, Any] = {"id": call.id, "type": "function"}
    result.update(call.extra)
    result["function"] = {"name": call.name, "arguments": call.arguments}
    return result


def message_from_openai(raw: Dict[str, Any]) -> UnifiedMessage:
    """
    Build a UnifiedMessage from an OpenAI chat message dict.

    Args:
        raw: Message as received from the client

    Returns:
        Frozen UnifiedMessage (the input dict is not modified)
    """
    wire_role = raw.get("role")
    role = Role.parse(wire_role)

    tool_calls = None
    raw_calls = raw.get("tool_calls")
    if role is Role.ASSISTANT and isinstance(raw_calls, list) and raw_calls:
        tool_calls = tuple(
            _tool_call_from_openai(call) for call in raw_calls if isinstance(call, dict)
        )

    tool_call_id = raw.get("tool_call_id")
    if tool_call_id is not None:
        tool_call_id = str(tool_call_id)

    return UnifiedMessage(
        role=role,
        content=raw.get("content"),
        tool_calls=tool_calls,
        tool_call_id=tool_call_id,
        wire_role=wire_role if isinstance(wire_role, str) else role.value,
        extra={k: v for k, v in raw.items() if k not in _MESSAGE_KEYS},
    )


def message_to_openai(message: UnifiedMessage) -> Dict[str, Any]:
    """Serialize a UnifiedMessage back to an OpenAI chat message dict."""
    result: Dict[str, Any] = {"role": message.wire_role or message.role.value}
    result["content"] = message.content
    if message.tool_calls:
        result["tool_calls"] = [_tool_call_to_openai(call) for call in message.tool_calls]
    if message.tool_call_id is not None:
        result["tool_call_id"] = message.tool_call_id
    result.update(message.extra)
    return result


def messages_from_openai(raw_messages: List[Dict[str, Any]]) -> List[UnifiedMessage]:
    """Convert a list of OpenAI message dicts, skipping non-dict entries."""
    return [message_from_openai(raw) for raw in raw_messages if isinstance(raw, dict)]


def messages_to_openai(messages: List[UnifiedMessage]) -> List[Dict[str, Any]]:
    """Convert a list of UnifiedMessage objects to OpenAI message dicts."""
    return [message_to_openai(msg) for msg in messages]
