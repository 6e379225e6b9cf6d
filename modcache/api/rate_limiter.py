"""
Provides an adaptive rate limiter to avoid 429 "Too Many Requests" errors from the API.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """
    Spaces out API calls and backs off when the server answers with HTTP 429.
    """

    RECOVERY_QUIET_SECONDS = 300

    def __init__(
        self, initial_calls_per_second: float = 5.0, max_calls_per_second: float = 10.0
    ):
        """
        Args:
            initial_calls_per_second: The starting rate of calls per second.
            max_calls_per_second: The ceiling the rate recovers towards.
        """
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_interval = 1.0 / self._rate
        self._last_call_time = 0.0
        self._last_429_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self) -> None:
        """Halves the request rate, never going below one call per second."""
        async with self._lock:
            self._rate = max(1.0, self._rate * 0.5)
            self._min_interval = 1.0 / self._rate
            self._last_429_time = time.monotonic()
            log.warning(
                f"[yellow]Rate limited by the API. New rate: {self._rate:.1f} "
                "calls/s[/yellow]"
            )

    async def acquire(self) -> None:
        """Waits until the next call is allowed under the current rate."""
        async with self._lock:
            if time.monotonic() - self._last_429_time > self.RECOVERY_QUIET_SECONDS:
                self._rate = min(self._max_rate, self._rate * 1.005)
                self._min_interval = 1.0 / self._rate

            loop = asyncio.get_running_loop()
            wait = self._min_interval - (loop.time() - self._last_call_time)
            if wait > 0:
                await asyncio.sleep(wait)

            self._last_call_time = loop.time()
