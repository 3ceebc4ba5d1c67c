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
Minimum-interval rate limiter, consulted once at the start of each request.
"""

import asyncio
import time
from typing import Callable, Optional

from fastapi import HTTPException
from loguru import logger

from chatrelay.config import RATE_LIMIT_SECONDS, RATE_LIMIT_WAIT


class RateLimiter:
    """
    Allows one request per `interval_seconds`.

    When a request arrives too early it either waits for the window to pass
    (`wait=True`) or is rejected with HTTP 429.

    Example:
        >>> limiter = RateLimiter(interval_seconds=2, wait=True)
        >>> await limiter.check()
    """

    def __init__(
        self,
        interval_seconds: float = RATE_LIMIT_SECONDS,
        wait: bool = RATE_LIMIT_WAIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._interval = interval_seconds
        self._wait = wait
        self._clock = clock
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    async def check(self) -> None:
        """
        Admit the current request or delay/reject it.

        Raises:
            HTTPException: 429 when the limit is hit and waiting is disabled
        """
        if not self.enabled:
            return

        async with self._lock:
            now = self._clock()
            if self._last_request is None or now - self._last_request >= self._interval:
                self._last_request = now
                return

            remaining = self._interval - (now - self._last_request)
            if not self._wait:
                logger.warning(
                    f"Rate limit exceeded: next request allowed in {remaining:.1f}s"
                )
                raise HTTPException(status_code=429, detail="Rate limit exceeded")

            logger.warning(f"Rate limit reached. Waiting {remaining:.1f}s before proceeding...")
            await asyncio.sleep(remaining)
            self._last_request = self._clock()
            logger.info("Rate limit wait completed, proceeding with request")
