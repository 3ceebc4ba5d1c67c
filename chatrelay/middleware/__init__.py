# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Request normalization middleware for ChatRelay Gateway.

The upstream rejects requests that OpenAI accepts: tool responses separated
from their calls, tool IDs with punctuation, dated model names, and
conversations longer than the model's window.

Architecture:
    Each middleware module is a pure function over a list of UnifiedMessage
    objects that returns a new list. The pipeline orchestrator runs them in a
    deterministic order before the outbound payload is built.

Middleware execution order:
    1. ToolIdSanitizer      - Restrict tool call IDs to [A-Za-z0-9_-]
    2. ToolPairingValidator - Place every tool response right after its call
    3. (model translation and capability lookup)
    4. ContextTruncation    - Compress / drop messages to fit the budget
"""

from chatrelay.middleware.pipeline import NormalizedRequest, normalize_chat_request

__all__ = ["NormalizedRequest", "normalize_chat_request"]
