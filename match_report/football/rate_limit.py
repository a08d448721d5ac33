"""Request spacing for the API-Football rate limit."""

from __future__ import annotations

import asyncio
import math
import time
from typing import Awaitable, Callable

from ..logging import logger

DEFAULT_REQUESTS_PER_MINUTE = 8


def min_delay_ms(requests_per_minute: float) -> int:
    """Minimum spacing between requests, in milliseconds."""
    return math.ceil(60000 / requests_per_minute)


class RequestThrottle:
    """Serializes outbound calls so consecutive requests are spaced apart.

    One instance is shared by every caller of a remote system. Acquisitions
    queue on a lock, so concurrent callers cannot race past the spacing: each
    waits relative to whichever acquisition completed most recently.
    """

    def __init__(
        self,
        requests_per_minute: float = DEFAULT_REQUESTS_PER_MINUTE,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not isinstance(requests_per_minute, (int, float)) or not math.isfinite(requests_per_minute) or requests_per_minute <= 0:
            logger.warning(
                "throttle_rate_invalid",
                configured=str(requests_per_minute),
                fallback=DEFAULT_REQUESTS_PER_MINUTE,
            )
            requests_per_minute = DEFAULT_REQUESTS_PER_MINUTE
        self.requests_per_minute = requests_per_minute
        self.min_delay = min_delay_ms(requests_per_minute) / 1000
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Suspend until the spacing has elapsed, then mark now as the last request."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_delay:
                    wait = self.min_delay - elapsed
                    logger.debug("throttle_wait", wait_seconds=round(wait, 3))
                    await self._sleep(wait)
            self._last_request = self._clock()
