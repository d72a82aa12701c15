"""
Cancelable per-room timers.

Every deadline an engine owns (answer, drawing, turn clock, auto-advance)
lives in its own RoomTimer slot. Re-arming a slot always cancels whatever
was scheduled before, so a slot never holds more than one pending callback.
"""

import asyncio
import logging
from typing import Callable, Protocol


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class RoomTimer:
    """A single named timer slot with cancel-and-arm semantics."""

    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._handle: TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        """Cancel any pending callback and schedule ``callback`` after ``delay``."""
        self.cancel()
        handle = None

        def fire() -> None:
            # A newer arm() or cancel() owns the slot now
            if self._handle is not handle:
                return
            self._handle = None
            try:
                callback()
            except Exception:
                logger.exception(f"Timer {self.name} callback failed")

        handle = self._scheduler.call_later(delay, fire)
        self._handle = handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
