"""Countdown clock and the timer scheduler it runs on."""

from __future__ import annotations

import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Single-threaded timer source.

    Session logic depends on this interface rather than on real timers.
    """

    def now(self) -> float:
        """Return monotonic seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once, ``delay`` seconds from now."""


@dataclass(eq=False)
class ScheduledCall:
    due: float
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class PolledScheduler:
    """Timer queue that fires due callbacks when pumped with ``run_due()``.

    While a callback runs, ``now()`` reports that callback's due time, so a
    chain of one-second timers catches up exactly after a long gap between
    pumps.
    """

    def __init__(self, time_source: Callable[[], float] = time.monotonic) -> None:
        self._time = time_source
        self._queue: List[Tuple[float, int, ScheduledCall]] = []
        self._seq = itertools.count()
        self._dispatch_time: Optional[float] = None

    def now(self) -> float:
        if self._dispatch_time is not None:
            return self._dispatch_time
        return self._time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(due=self.now() + max(0.0, float(delay)), callback=callback)
        heapq.heappush(self._queue, (call.due, next(self._seq), call))
        return call

    def pending_delays(self) -> List[float]:
        """Seconds until each live timer fires, soonest first."""
        now = self.now()
        return [
            due - now
            for due, _, call in sorted(self._queue, key=lambda item: item[:2])
            if not call.cancelled
        ]

    def run_due(self) -> int:
        """Fire every timer due by the current time; returns how many fired."""
        limit = self._time()
        fired = 0
        while self._queue and self._queue[0][0] <= limit:
            due, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self._dispatch_time = due
            try:
                call.callback()
            finally:
                self._dispatch_time = None
            fired += 1
        return fired


class Clock:
    """Whole-second countdown with a single subscriber.

    ``on_tick(remaining)`` runs after every decrement; ``on_expired()`` runs
    exactly once when the countdown reaches zero.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[int], None],
        on_expired: Callable[[], None],
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_expired = on_expired
        self._remaining = 0
        self._handle: Optional[TimerHandle] = None
        self._running = False
        self._expired = False

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self, duration_seconds: int) -> None:
        self.stop()
        self._remaining = max(0, int(duration_seconds))
        self._running = True
        self._expired = False
        delay = 1.0 if self._remaining > 0 else 0.0
        self._handle = self._scheduler.call_later(delay, self._tick)

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        if self._remaining > 0:
            self._remaining -= 1
            self._on_tick(self._remaining)
        if self._remaining <= 0:
            self._expire()
            return
        if self._running:
            self._handle = self._scheduler.call_later(1.0, self._tick)

    def _expire(self) -> None:
        self._running = False
        if self._expired:
            return
        self._expired = True
        self._on_expired()
