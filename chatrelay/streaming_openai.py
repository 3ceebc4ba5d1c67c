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
Relay of upstream responses to the client.

Two modes, picked solely by the presence of "choices":
- Composed response: returned verbatim as one JSON body
- Fragment sequence: each fragment is written as an SSE event as soon as it
  arrives, strictly in order, one fragment in flight at a time

Upstream failures mid-stream are re-raised so the client sees a broken
stream instead of a silently shortened answer.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Mapping

from loguru import logger


def is_composed_response(result: Any) -> bool:
    """True if the upstream returned a single composed response."""
    return isinstance(result, Mapping) and "choices" in result


def format_sse_fragment(fragment: Any) -> str:
    """
    Render one fragment as an SSE event.

    Args:
        fragment: SSE dict ({"data", "event"?, "id"?}), a JSON-able chunk, or a string

    Returns:
        Event text terminated by a blank line

    Example:
        >>> format_sse_fragment({"data": "[DONE]"})
        'data: [DONE]\\n\\n'
    """
    if isinstance(fragment, Mapping) and "data" in fragment:
        lines = []
        if fragment.get("event"):
            lines.append(f"event: {fragment['event']}")
        if fragment.get("id"):
            lines.append(f"id: {fragment['id']}")
        data = fragment["data"]
        if not isinstance(data, str):
            data = json.dumps(data, ensure_ascii=False)
        lines.extend(f"data: {line}" for line in data.split("\n"))
        return "\n".join(lines) + "\n\n"

    if isinstance(fragment, str):
        return f"data: {fragment}\n\n"

    return f"data: {json.dumps(fragment, ensure_ascii=False)}\n\n"


async def relay_fragments(fragments: AsyncIterator[Any]) -> AsyncIterator[str]:
    """
    Forward upstream fragments as SSE text, in arrival order.

    The next fragment is requested only after the previous one was handed
    to the caller. If the caller stops consuming (client disconnect), the
    upstream iterator is closed and no further fragments are requested.

    Args:
        fragments: Async iterator returned by the upstream client

    Yields:
        SSE-formatted strings
    """
    forwarded = 0
    completed = False
    try:
        async for fragment in fragments:
            yield format_sse_fragment(fragment)
            forwarded += 1
        completed = True
        logger.debug(f"[StreamingRelay] Stream finished: {forwarded} fragments forwarded")
    except (GeneratorExit, asyncio.CancelledError):
        logger.info(f"[StreamingRelay] Client disconnected after {forwarded} fragments")
        raise
    except Exception as e:
        logger.error(
            f"[StreamingRelay] Upstream stream failed after {forwarded} fragments: "
            f"{type(e).__name__}: {e}"
        )
        raise
    finally:
        if not completed:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()
