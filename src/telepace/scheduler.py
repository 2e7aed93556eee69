"""
Cooperative timers and frame callbacks.

Every wait in the engine is a scheduled continuation. Production code runs on
an asyncio loop; tests and transcript replay use ManualScheduler, which only
advances when told to.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Roughly one display refresh at 60Hz
DEFAULT_FRAME_INTERVAL_MS: float = 16.0


class Handle:
    """A cancellable reference to one scheduled callback."""

    def __init__(self) -> None:
        self.cancelled: bool = False
        self._loop_handle: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""
        self.cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()
            self._loop_handle = None


class Scheduler(ABC):
    """Source of time, timers and frame callbacks for the engines."""

    frame_interval_ms: float

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in milliseconds."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> Handle:
        """Run callback once after delay_ms."""

    def request_frame(self, callback: Callable[[float], Any]) -> Handle:
        """Run callback on the next frame, passing the frame timestamp."""
        return self.call_later(self.frame_interval_ms, lambda: callback(self.now()))

    @staticmethod
    def _invoke(handle: Handle, callback: Callable[[], Any]) -> None:
        """Run a due callback, logging instead of propagating failures."""
        if handle.cancelled:
            return
        handle.cancelled = True
        try:
            callback()
        except Exception as e:
            logger.error("Scheduled callback failed: %s", e, exc_info=True)


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS
    ) -> None:
        self.loop: asyncio.AbstractEventLoop = loop or asyncio.get_event_loop()
        self.frame_interval_ms = frame_interval_ms

    def now(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> Handle:
        handle = Handle()
        handle._loop_handle = self.loop.call_later(
            max(0.0, delay_ms) / 1000.0, self._invoke, handle, callback)
        return handle


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler driven by explicit calls to advance().

    Callbacks run in due-time order; ties run in scheduling order. Callbacks
    scheduled while advancing run in the same advance() call if they fall due
    before its end.
    """

    def __init__(self, start_ms: float = 0.0,
                 frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS) -> None:
        self._now: float = start_ms
        self.frame_interval_ms = frame_interval_ms
        self._queue: list[tuple[float, int, Handle, Callable[[], Any]]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> Handle:
        handle = Handle()
        due: float = self._now + max(0.0, delay_ms)
        heapq.heappush(self._queue, (due, next(self._sequence), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, ms: float) -> None:
        """Move time forward by ms, running everything that falls due."""
        end: float = self._now + ms
        while self._queue and self._queue[0][0] <= end:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            self._invoke(handle, callback)
        self._now = end

    def run_until_idle(self, limit_ms: float = 600_000.0) -> None:
        """Advance until nothing is pending, or limit_ms has elapsed."""
        deadline: float = self._now + limit_ms
        while self.pending and self._now < deadline:
            next_due: float = min(due for due, _, handle, _ in self._queue
                                  if not handle.cancelled)
            self.advance(max(0.0, min(next_due, deadline) - self._now))


class TimerSlot:
    """
    Owns at most one pending callback of a given kind.

    Scheduling always cancels whatever the slot held before, so two
    instances of the same timer class can never coexist.
    """

    def __init__(self, scheduler: Scheduler, name: str = "timer") -> None:
        self.scheduler: Scheduler = scheduler
        self.name: str = name
        self._handle: Handle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def schedule(self, delay_ms: float, callback: Callable[[], Any]) -> None:
        self.cancel()

        def fire() -> None:
            self._handle = None
            callback()

        self._handle = self.scheduler.call_later(delay_ms, fire)

    def request_frame(self, callback: Callable[[float], Any]) -> None:
        self.cancel()

        def fire(timestamp: float) -> None:
            self._handle = None
            callback(timestamp)

        self._handle = self.scheduler.request_frame(fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
