"""Clock and timer abstraction for the sync scheduler.

Everything time-dependent (throttle windows, post-seek debounce) goes through
a Clock so tests can advance time deterministically instead of sleeping.

Usage:
    clock = LoopClock()                     # real asyncio loop time
    handle = clock.call_later(0.015, fn)    # seconds
    handle.cancel()

    clock = ManualClock()                   # tests
    clock.call_later(1.0, fn)
    clock.advance(1.0)                      # fires fn
"""

import asyncio
import heapq
import itertools
import time


class Clock:
    """Monotonic time source with cancellable one-shot timers."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback):
        """Run *callback()* after *delay* seconds. Returns a handle with cancel()."""
        raise NotImplementedError


class LoopClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        # Same source as the default loop.time()
        return time.monotonic()

    def call_later(self, delay: float, callback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


class ManualTimer:
    """Handle returned by ManualClock.call_later."""

    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock(Clock):
    """Deterministic clock; time only moves when advance() is called."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._timers: list[tuple[float, int, ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._timers, (timer.when, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for _, _, t in self._timers if not t.cancelled)

    def advance(self, seconds: float):
        """Move time forward, firing due timers in order."""
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            when, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback()
        self._now = target
