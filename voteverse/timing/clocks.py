"""
Clock implementations.

SystemClock schedules with threading.Timer daemon threads. ManualClock is a
deterministic clock for tests and simulations: time only moves on advance(),
which fires due callbacks in order on the calling thread.
"""

import heapq
import itertools
import threading
import time
from collections.abc import Callable

from typing_extensions import override

from ..interfaces import Clock, TimerHandle
from ..logging_config import get_logger

# Module-level logger
logger = get_logger("clocks")


def _run_safely(callback: Callable[[], None]) -> None:
    """Run a scheduled callback; failures are logged, never propagated to the scheduler."""
    try:
        callback()
    except Exception as e:
        logger.exception(f"Scheduled callback {callback!r} failed: {e}")


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    @override
    def cancel(self) -> None:
        self._timer.cancel()


class SystemClock(Clock):
    """Real time clock backed by time.time/time.monotonic."""

    @override
    def now(self) -> float:
        return time.time()

    @override
    def monotonic(self) -> float:
        return time.monotonic()

    @override
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), _run_safely, args=(callback,))
        timer.daemon = True
        timer.start()
        return _ThreadTimerHandle(timer)


class _ManualTimerHandle(TimerHandle):
    def __init__(self) -> None:
        self.cancelled: bool = False

    @override
    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """
    Clock that only moves when told to.

    Wall time and monotonic time advance together from the given start.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._start = start
        self._elapsed: float = 0.0
        self._lock = threading.Lock()
        self._counter = itertools.count()
        self._queue: list[tuple[float, int, Callable[[], None], _ManualTimerHandle]] = []

    @override
    def now(self) -> float:
        with self._lock:
            return self._start + self._elapsed

    @override
    def monotonic(self) -> float:
        with self._lock:
            return self._elapsed

    @override
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualTimerHandle()
        with self._lock:
            due = self._elapsed + max(0.0, delay)
            heapq.heappush(self._queue, (due, next(self._counter), callback, handle))
        return handle

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that falls due on the way."""
        if seconds < 0:
            raise ValueError(f"Cannot move a clock backwards: {seconds}")
        with self._lock:
            target = self._elapsed + seconds
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    self._elapsed = target
                    return
                due, _, callback, handle = heapq.heappop(self._queue)
                self._elapsed = max(self._elapsed, due)
            if not handle.cancelled:
                _run_safely(callback)

    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        with self._lock:
            return sum(1 for *_, handle in self._queue if not handle.cancelled)
