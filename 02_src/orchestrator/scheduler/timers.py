"""Cancellable asyncio timers."""

import asyncio
from typing import Awaitable, Callable

from ..logging_config import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class CancellableTimer:
    """Base timer backed by an asyncio task.

    ``cancel()`` is idempotent and safe to call after the timer has fired.
    """

    def __init__(self, callback: TimerCallback, name: str | None = None):
        self._callback = callback
        self._name = name
        self._task: asyncio.Task | None = None
        self._cancelled = False

    def start(self) -> "CancellableTimer":
        """Arm the timer on the running loop."""
        if self._task is None and not self._cancelled:
            self._task = asyncio.create_task(self._run(), name=self._name)
        return self

    def cancel(self) -> None:
        """Disarm the timer. No-op if already cancelled or fired."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            # Don't cancel ourselves mid-callback
            if self._task is not asyncio.current_task():
                self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def _run(self) -> None:
        raise NotImplementedError

    async def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Timer %s callback failed: %s", self._name, e, exc_info=True)


class OneShotTimer(CancellableTimer):
    """Fires once after ``delay`` seconds."""

    def __init__(self, delay: float, callback: TimerCallback, name: str | None = None):
        super().__init__(callback, name)
        self._delay = max(0.0, delay)

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self._delay)
            await self._fire()
        except asyncio.CancelledError:
            pass


class IntervalTimer(CancellableTimer):
    """Fires every ``interval`` seconds at a fixed rate until cancelled."""

    def __init__(
        self, interval: float, callback: TimerCallback, name: str | None = None
    ):
        super().__init__(callback, name)
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self.fire_count = 0

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + self._interval
        try:
            while not self._cancelled:
                await asyncio.sleep(max(0.0, next_fire - loop.time()))
                self.fire_count += 1
                await self._fire()
                next_fire += self._interval
                # Missed slots are dropped, not replayed
                if next_fire < loop.time():
                    next_fire = loop.time() + self._interval
        except asyncio.CancelledError:
            pass
