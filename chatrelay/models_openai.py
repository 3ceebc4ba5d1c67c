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
Pydantic models for the OpenAI chat completions surface.

Only the fields the gateway reads are declared; everything else is allowed
and forwarded upstream untouched.
"""

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """
    One chat message in OpenAI format.

    Attributes:
        role: system, developer, user, assistant or tool
        content: Text or list of content parts (may be null for tool-calling turns)
        tool_calls: Tool calls made by the assistant
        tool_call_id: Call answered by a tool message
    """

    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Any] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    """
    Request body for /v1/chat/completions.

    Attributes:
        model: Client model name (translated before forwarding)
        messages: Conversation
        max_tokens: Response length cap; filled from the model profile when absent
        stream: Request a streamed response
    """

    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[ChatMessage] = Field(min_length=1)
    max_tokens: Optional[int] = None
    stream: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Payload dict containing only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class OpenAIModel(BaseModel):
    """Model entry for /v1/models."""

    id: str
    object: str = "model"
    created: int = Field(default_factory=lambda: int(time.time()))
    owned_by: str = "chatrelay"


class ModelList(BaseModel):
    """Response body for /v1/models."""

    object: str = "list"
    data: List[OpenAIModel]
