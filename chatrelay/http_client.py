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
HTTP client for the upstream chat completions API.

Returns either a composed response (dict with "choices") or an
SseFragmentStream. Anything else is reported as an UpstreamError. Timeouts
live here, not in the pipeline.
"""

from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx
from loguru import logger

from chatrelay.config import (
    STREAMING_READ_TIMEOUT,
    UPSTREAM_API_KEY,
    UPSTREAM_BASE_URL,
    UPSTREAM_TIMEOUT,
    get_chat_completions_url,
)
from chatrelay.streaming_openai import is_composed_response
from chatrelay.upstream_errors import UpstreamError

SseFragment = Dict[str, str]
UpstreamResult = Union[Dict[str, Any], "SseFragmentStream"]


async def iter_sse_fragments(response: httpx.Response) -> AsyncIterator[SseFragment]:
    """
    Parse an SSE response into fragments, one per event.

    Each fragment has a "data" key and, when present, "event" and "id".
    The response is closed when iteration ends, fails, or is abandoned.

    Args:
        response: Streaming httpx response

    Yields:
        {"data": "...", "event": "...", "id": "..."} dicts in arrival order
    """
    fragment: Dict[str, str] = {}
    data_lines = []
    try:
        async for line in response.aiter_lines():
            if not line:
                if data_lines:
                    fragment["data"] = "\n".join(data_lines)
                    yield fragment
                fragment = {}
                data_lines = []
                continue

            if line.startswith(":"):
                continue

            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]

            if field == "data":
                data_lines.append(value)
            elif field in ("event", "id"):
                fragment[field] = value

        # Stream ended without a trailing blank line
        if data_lines:
            fragment["data"] = "\n".join(data_lines)
            yield fragment
    finally:
        await response.aclose()


class SseFragmentStream:
    """
    Fragment iterator over a streaming upstream response.

    aclose() releases the upstream response even if iteration never
    started, so the route can always hand it to a cleanup task.
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self._fragments = iter_sse_fragments(response)

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> "SseFragmentStream":
        return self

    async def __anext__(self) -> SseFragment:
        return await self._fragments.__anext__()

    async def aclose(self) -> None:
        await self._fragments.aclose()
        await self._response.aclose()


class UpstreamHttpClient:
    """
    Upstream chat completions client.

    One instance is shared by all requests; it holds only the connection pool.

    Example:
        >>> client = UpstreamHttpClient(base_url="https://api.example.com", api_key="sk-...")
        >>> result = await client.create_chat_completion({"model": "gpt-4o", "messages": [...]})
    """

    def __init__(
        self,
        base_url: str = UPSTREAM_BASE_URL,
        api_key: str = UPSTREAM_API_KEY,
        timeout: float = UPSTREAM_TIMEOUT,
        streaming_read_timeout: float = STREAMING_READ_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Upstream base URL (without /chat/completions)
            api_key: Bearer token for the upstream
            timeout: Connect / initial response timeout in seconds
            streaming_read_timeout: Timeout between streamed fragments in seconds
            client: Pre-built httpx client (tests inject a mock transport here)
        """
        self._url = get_chat_completions_url(base_url.rstrip("/"))
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout, read=streaming_read_timeout)
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    def _headers(self, stream: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def create_chat_completion(self, payload: Dict[str, Any]) -> UpstreamResult:
        """
        Send a chat completions request upstream.

        Args:
            payload: Normalized outbound payload

        Returns:
            Composed response dict (with "choices"), or an SseFragmentStream

        Raises:
            UpstreamError: Non-2xx status, or a 2xx body that is neither SSE nor a composed response
            httpx.HTTPError: Transport failure
        """
        stream = bool(payload.get("stream"))
        request = self._client.build_request(
            "POST",
            self._url,
            json=payload,
            headers=self._headers(stream),
        )

        logger.debug(f"Sending request to upstream: model={payload.get('model')}, stream={stream}")
        response = await self._client.send(request, stream=True)

        if response.status_code >= 400:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            raise UpstreamError.from_response_text(
                response.status_code, body.decode("utf-8", errors="replace")
            )

        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            return SseFragmentStream(response)

        try:
            body = await response.aread()
        finally:
            await response.aclose()

        text = body.decode("utf-8", errors="replace")
        try:
            result = response.json()
        except ValueError:
            raise UpstreamError.invalid_response("Body is not valid JSON", text)

        if not is_composed_response(result):
            raise UpstreamError.invalid_response("Response has no choices", text)
        return result

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
