"""
Outbound request pacing.

`RequestPacer` keeps at least `min_interval` seconds between the starts of
successive upstream calls made by this process. The slot is owned by an
`asyncio.Lock`, so two concurrent callers can never both observe the same
"last request" timestamp; callers queue up and are released one interval
apart.
"""

import asyncio
import time

from core.logging_config import get_logger

logger = get_logger(__name__)


class RequestPacer:
    """Single-slot throttle for upstream calls"""

    def __init__(self, min_interval: float, clock=None, sleep=None):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._last_request: float = float("-inf")
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.min_interval > 0

    async def wait(self) -> float:
        """Block until the next slot is free; returns the time waited"""
        if not self.enabled:
            return 0.0

        async with self._lock:
            delay = self._last_request + self.min_interval - self._clock()
            if delay > 0:
                logger.debug(f"Pacing upstream call for {delay:.3f}s")
                await self._sleep(delay)
            else:
                delay = 0.0
            self._last_request = self._clock()
            return delay
