"""
FIFO request scheduler enforcing a minimum interval between calls.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class RateLimitedScheduler:
    """
    Runs async calls one at a time, at most once per ``min_interval`` seconds.

    Callers are served in arrival order (asyncio.Lock wakes waiters FIFO).
    ``clock`` and ``sleep`` are injectable so tests can run on virtual time.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._last_started: Optional[float] = None

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Wait for this caller's turn, then await ``func(*args, **kwargs)``"""
        async with self._lock:
            if self._last_started is not None:
                wait_seconds = self.min_interval - (self._clock() - self._last_started)
                if wait_seconds > 0:
                    await self._sleep(wait_seconds)
            self._last_started = self._clock()
            return await func(*args, **kwargs)
