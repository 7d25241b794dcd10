"""
Periodic leaderboard broadcaster.

Publishes on the clock's scheduler at a fixed cadence so observers get
fresh snapshots without ever sitting on the vote ingestion path.
"""

import threading

from ..interfaces import Clock, TimerHandle
from ..logging_config import get_logger
from .publisher import LeaderboardPublisher

# Module-level logger
logger = get_logger("leaderboard_broadcaster")


class LeaderboardBroadcaster:
    """Re-arms itself after every publish until stopped."""

    def __init__(
        self,
        publisher: LeaderboardPublisher,
        clock: Clock,
        interval_seconds: float,
        include_live: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.publisher = publisher
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.include_live = include_live
        self.broadcasts: int = 0

        self._lock = threading.Lock()
        self._running: bool = False
        self._handle: TimerHandle | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._handle = self.clock.call_later(self.interval_seconds, self._tick)
        logger.info(f"Leaderboard broadcast started every {self.interval_seconds:g}s")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
        logger.info(f"Leaderboard broadcast stopped after {self.broadcasts} broadcasts")

    def _tick(self) -> None:
        with self._lock:
            if not self._running:
                return
        try:
            self.publisher.publish(include_live=self.include_live)
            self.broadcasts += 1
        except Exception as e:
            logger.exception(f"Leaderboard broadcast failed: {e}")
        with self._lock:
            if self._running:
                self._handle = self.clock.call_later(self.interval_seconds, self._tick)
