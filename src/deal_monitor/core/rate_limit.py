"""Fixed-interval pacing for outbound notification calls."""

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Spaces successive acquisitions at least ``interval`` seconds apart.

    Shared by every dispatch phase so sequential sends, concurrent edits and
    alerts all respect the same budget. Concurrent callers are queued on a
    lock, so the spacing holds across a fan-out as well.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("Interval cannot be negative")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            if self._last is not None:
                wait = self.interval - (self._clock() - self._last)
                if wait > 0:
                    await self._sleep(wait)
            self._last = self._clock()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None
