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
Manual approval gate (MANUAL_APPROVE=true).

The operator confirms each request on the gateway's console before it is
forwarded upstream.
"""

import asyncio
from typing import Callable, Optional

from fastapi import HTTPException
from loguru import logger

Prompt = Callable[[str], str]

_PROMPT_TEXT = "Accept incoming request? [y/N] "


async def await_approval(prompt: Optional[Prompt] = None) -> None:
    """
    Suspend the request until the operator answers.

    The blocking console read runs in a worker thread so other requests
    keep being served.

    Args:
        prompt: Console reader, `input` by default

    Raises:
        HTTPException: 403 if the operator declines
    """
    reader = prompt or input
    answer = await asyncio.to_thread(reader, _PROMPT_TEXT)

    if answer.strip().lower() not in ("y", "yes"):
        logger.warning("Request rejected by operator")
        raise HTTPException(status_code=403, detail="Request rejected")

    logger.info("Request approved by operator")
