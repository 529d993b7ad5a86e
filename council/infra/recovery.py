"""
Cancellable periodic task for background circuit recovery.

Runs an async callback on a fixed interval until stopped. The loop is an
explicit object with start/stop lifecycle so that owners can shut it down
cleanly and tests can drive it deterministically with manual ticks.

Design:
- Each period is an ``asyncio.wait_for`` on a stop event, so ``stop()``
  wakes the loop immediately instead of waiting out the interval
- Callback failures are logged and the loop keeps ticking
- ``tick()`` runs the callback once in the caller's task, bypassing the timer
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

log = structlog.get_logger(__name__)


class RecoveryLoop:
    """
    Periodic runner for an async callback.

    Example usage:
        loop = RecoveryLoop(manager.maybe_recover, interval=300.0)
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        *,
        interval: float,
        name: str = "recovery",
    ) -> None:
        """
        Initialize the loop.

        Args:
            callback: Coroutine function invoked once per interval
            interval: Seconds between invocations
            name: Label used in log events
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        self._callback = callback
        self._interval = interval
        self._name = name
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Number of completed callback invocations."""
        return self._ticks

    def start(self) -> None:
        """Start the loop on the running event loop."""
        if self.running:
            log.warning("recovery_loop.already_running", name=self._name)
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"{self._name}-loop")
        log.info("recovery_loop.started", name=self._name, interval=self._interval)

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        if self._task is None:
            return

        self._stop_event.set()
        task, self._task = self._task, None
        try:
            await asyncio.wait_for(task, timeout=self._interval)
        except TimeoutError:
            # Callback still in flight; cancel it rather than wait it out.
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        log.info("recovery_loop.stopped", name=self._name, ticks=self._ticks)

    async def tick(self) -> None:
        """Run the callback once, logging and absorbing any failure."""
        try:
            await self._callback()
        except Exception as exc:
            log.error(
                "recovery_loop.tick_failed",
                name=self._name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        finally:
            self._ticks += 1

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                await self.tick()
