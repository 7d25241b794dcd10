"""
Round timer.

Tracks a round's duration and remaining time against a Clock and schedules a
single expiry callback. The timer never decides what expiry means; its owner
re-checks remaining() under its own lock when the callback fires.
"""

from collections.abc import Callable

from ..interfaces import Clock, TimerHandle

# Remaining time below this counts as expired, so float drift never re-arms a zero-length timer
EXPIRY_TOLERANCE = 1e-9


class RoundTimer:
    """Pausable countdown driven by scheduled events, not polling."""

    def __init__(
        self,
        clock: Clock,
        duration_seconds: float,
        on_expire: Callable[["RoundTimer"], None],
    ):
        """
        Initialize round timer.

        Args:
            clock: Time source and scheduler
            duration_seconds: Full length of the countdown
            on_expire: Called with this timer when the scheduled expiry fires
        """
        if duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be positive, got {duration_seconds}")
        self.clock = clock
        self.duration_seconds: float = duration_seconds
        self._on_expire = on_expire
        self._elapsed_before: float = 0.0
        self._resumed_at: float | None = None
        self._handle: TimerHandle | None = None
        self._stopped: bool = False
        self._paused: bool = False

    @property
    def running(self) -> bool:
        return self._resumed_at is not None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def expired(self) -> bool:
        return self.remaining() <= EXPIRY_TOLERANCE

    def elapsed(self) -> float:
        elapsed = self._elapsed_before
        if self._resumed_at is not None:
            elapsed += self.clock.monotonic() - self._resumed_at
        return elapsed

    def remaining(self) -> float:
        return max(0.0, self.duration_seconds - self.elapsed())

    def start(self) -> None:
        """Start (or restart) the countdown from the full duration."""
        self._cancel()
        self._elapsed_before = 0.0
        self._stopped = False
        self._paused = False
        self._resumed_at = self.clock.monotonic()
        self._schedule(self.duration_seconds)

    def pause(self) -> None:
        if self._resumed_at is None:
            return
        self._elapsed_before += self.clock.monotonic() - self._resumed_at
        self._resumed_at = None
        self._cancel()
        self._paused = True

    def resume(self) -> None:
        if self._resumed_at is not None or self._stopped:
            return
        self._paused = False
        self._resumed_at = self.clock.monotonic()
        self._schedule(self.remaining())

    def reset(self, duration_seconds: float | None = None) -> None:
        """Restore the full duration (optionally a new one) and restart."""
        if duration_seconds is not None:
            if duration_seconds <= 0:
                raise ValueError(f"duration_seconds must be positive, got {duration_seconds}")
            self.duration_seconds = duration_seconds
        self.start()

    def stop(self) -> None:
        """Freeze the countdown for good; remaining() keeps its last value."""
        self.pause()
        self._stopped = True
        self._paused = False

    def reschedule(self) -> None:
        """Re-arm expiry for the time still remaining (used after an early callback)."""
        if self._resumed_at is None:
            return
        self._cancel()
        self._schedule(self.remaining())

    def _schedule(self, delay: float) -> None:
        self._handle = self.clock.call_later(delay, self._fire)

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._on_expire(self)
