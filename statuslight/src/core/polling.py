"""Periodic polling worker with graceful cancellation."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

MIN_INTERVAL_SECONDS = 1.0
MAX_INTERVAL_SECONDS = 3600.0


def clamp_interval(seconds: float) -> float:
    return max(MIN_INTERVAL_SECONDS, min(MAX_INTERVAL_SECONDS, float(seconds)))


class PollingWorker:
    """Runs ``task`` every ``interval`` seconds until stopped.

    Stopping sets a shutdown event, so the wait between ticks is
    interrupted immediately and no further call to ``task`` is made.
    Exceptions from ``task`` are logged and reported to ``on_error``;
    they never stop the loop.

    Attributes:
        name: Worker name used in logs
        interval: Seconds between ticks, clamped to [1, 3600]
    """

    def __init__(
        self,
        name: str,
        task: Callable[[], Awaitable[None]],
        interval: float,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.name = name
        self._task_fn = task
        self.interval = clamp_interval(interval)
        self._on_error = on_error
        self.shutdown_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if self.is_running and not self.shutdown_event.is_set():
            return
        self.shutdown_event = asyncio.Event()
        self._runner = asyncio.create_task(self.run(), name="poller-%s" % self.name)

    def request_stop(self) -> None:
        """Ask the loop to exit after the current tick, without waiting."""
        self.shutdown_event.set()
        self._wake_event.set()

    async def stop(self) -> None:
        """Stop the loop; an in-flight tick is allowed to finish."""
        self.request_stop()
        runner, self._runner = self._runner, None
        if runner is not None:
            try:
                await runner
            except asyncio.CancelledError:
                pass
        logger.info("poller_stopped", poller=self.name)

    def update_interval(self, seconds: float) -> float:
        """Change the interval; the pending wait restarts with the new value."""
        self.interval = clamp_interval(seconds)
        self._wake_event.set()
        logger.info("poller_interval_updated", poller=self.name, interval_s=self.interval)
        return self.interval

    async def run_once(self) -> bool:
        """Run a single tick, returns True on success."""
        try:
            await self._task_fn()
            return True
        except Exception as e:
            logger.error("poll_failed", poller=self.name, error=str(e))
            if self._on_error is not None:
                self._on_error(e)
            return False

    async def run(self) -> None:
        # Bound once: a later start() installs a fresh event for the new loop
        shutdown = self.shutdown_event
        logger.info("poller_started", poller=self.name, interval_s=self.interval)

        while not shutdown.is_set():
            await self.run_once()

            # Wait for next tick, shutdown or interval change
            while not shutdown.is_set():
                self._wake_event.clear()
                interval = self.interval
                try:
                    await asyncio.wait_for(self._wake_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    break
                if shutdown.is_set():
                    return
                # Interval changed: restart the wait with the new value
