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
Upstream error enhancement and user-friendly message formatting.

Architecture:
- UpstreamErrorInfo: Structured information about an enhanced error
- enhance_upstream_error(): Analyzes error JSON and returns enhanced message
- UpstreamError: Raised by the HTTP client for non-2xx or unrelayable upstream responses

Example:
    >>> error_json = {"error": {"message": "This model's maximum context length is 128000 tokens.", "code": "context_length_exceeded"}}
    >>> enhance_upstream_error(error_json).user_message
    'Model context limit reached. Conversation size exceeds model capacity.'
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from loguru import logger


@dataclass
class UpstreamErrorInfo:
    """
    Structured information about an upstream API error.

    Attributes:
        code: Error code from the upstream (e.g. "context_length_exceeded"), "UNKNOWN" if absent
        user_message: Enhanced, user-friendly message for end users
        original_message: Original message from the upstream (for logging)
    """

    code: str
    user_message: str
    original_message: str


_KNOWN_ERROR_MESSAGES: Dict[str, str] = {
    "context_length_exceeded": (
        "Model context limit reached. Conversation size exceeds model capacity."
    ),
    "model_max_prompt_tokens_exceeded": (
        "Model context limit reached. Conversation size exceeds model capacity."
    ),
    "rate_limit_exceeded": (
        "Upstream rate limit exceeded. Too many requests in a short time."
    ),
    "model_not_supported": (
        "The requested model is not available from the upstream provider."
    ),
    "invalid_upstream_response": (
        "Upstream returned a response the gateway could not relay."
    ),
}


def enhance_upstream_error(error_json: Dict[str, Any]) -> UpstreamErrorInfo:
    """
    Enhances an upstream API error with a user-friendly message.

    Accepts both the OpenAI envelope {"error": {"message", "code"}} and a flat
    {"message", "code"} object.

    Args:
        error_json: Parsed JSON from the upstream error response

    Returns:
        UpstreamErrorInfo with enhanced message and original details

    Example (unknown error):
        >>> enhance_upstream_error({"message": "Something went wrong.", "code": "weird"}).user_message
        'Something went wrong. (code: weird)'
    """
    body = error_json.get("error") if isinstance(error_json.get("error"), dict) else error_json

    # Handle None values explicitly (preserve empty strings)
    original_message = body.get("message")
    if original_message is None:
        original_message = "Unknown error"

    code = body.get("code")
    if code is None:
        code = body.get("type")
    if code is None:
        code = "UNKNOWN"
    code = str(code)

    if code in _KNOWN_ERROR_MESSAGES:
        user_message = _KNOWN_ERROR_MESSAGES[code]
    elif code != "UNKNOWN":
        user_message = f"{original_message} (code: {code})"
    else:
        user_message = original_message

    return UpstreamErrorInfo(
        code=code, user_message=user_message, original_message=original_message
    )


class UpstreamError(Exception):
    """
    Failed or unrelayable response from the upstream provider.

    Attributes:
        status_code: HTTP status code returned by the upstream
        info: Enhanced error information
    """

    def __init__(self, status_code: int, info: UpstreamErrorInfo):
        super().__init__(f"Upstream returned HTTP {status_code}: {info.original_message}")
        self.status_code = status_code
        self.info = info

    @classmethod
    def from_response_text(cls, status_code: int, text: str) -> "UpstreamError":
        """Build from a raw response body, which may or may not be JSON."""
        try:
            error_json = json.loads(text)
        except ValueError:
            error_json = None

        if not isinstance(error_json, dict):
            error_json = {"message": text or f"HTTP {status_code}"}

        info = enhance_upstream_error(error_json)
        logger.error(
            f"Upstream error (HTTP {status_code}, code={info.code}): {info.original_message}"
        )
        return cls(status_code, info)

    @classmethod
    def invalid_response(cls, reason: str, text: str) -> "UpstreamError":
        """Build a 502 for a successful upstream response the gateway cannot relay."""
        info = UpstreamErrorInfo(
            code="invalid_upstream_response",
            user_message=_KNOWN_ERROR_MESSAGES["invalid_upstream_response"],
            original_message=f"{reason}: {text[:200]}",
        )
        logger.error(f"Invalid upstream response: {info.original_message}")
        return cls(502, info)

    def to_openai_error(self) -> Dict[str, Any]:
        """Error body in OpenAI format for the client."""
        return {
            "error": {
                "message": self.info.user_message,
                "type": "upstream_error",
                "code": self.status_code,
            }
        }
