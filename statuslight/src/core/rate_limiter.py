"""
Sliding-window rate limiter for outgoing device commands.

Govee cloud API budget: 10 requests per 60 seconds per account.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque

import structlog

logger = structlog.get_logger(__name__)

GOVEE_MAX_REQUESTS = 10
GOVEE_WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """
    Admission control bounding requests to N per sliding window.

    When the window is full the caller is given the next free *slot*
    (``window[-max_requests] + window_seconds``) and the slot is recorded
    immediately, before sleeping. A burst of simultaneous waiters therefore
    lands on successive slots instead of all waking at the same instant.

    All mutations of the window happen under a single ``asyncio.Lock``;
    sleeping happens outside it.
    """

    def __init__(
        self,
        max_requests: int = GOVEE_MAX_REQUESTS,
        window_seconds: float = GOVEE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Max admissions in window
            window_seconds: Window duration in seconds
            clock: Monotonic time source (injectable for tests)
            sleep: Coroutine used to suspend callers (injectable for tests)
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._sleep = sleep
        self._window: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def recorded(self) -> list:
        """Snapshot of recorded admission timestamps (oldest first)."""
        return list(self._window)

    def _prune(self, now: float) -> None:
        while self._window and now - self._window[0] >= self.window_seconds:
            self._window.popleft()

    async def admit(self) -> float:
        """Wait until a request may proceed and consume one slot.

        Returns:
            Seconds the caller was suspended (0.0 when admitted immediately)
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self._window) < self.max_requests:
                self._window.append(now)
                return 0.0

            slot = self._window[-self.max_requests] + self.window_seconds
            wait_time = max(0.0, slot - now)
            self._window.append(now + wait_time)
            queued = len(self._window) - self.max_requests

        logger.info(
            "rate_limit_waiting",
            wait_time_seconds=round(wait_time, 3),
            queued=queued,
        )
        await self._sleep(wait_time)
        return wait_time
