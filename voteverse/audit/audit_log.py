"""
System audit log.

Bounded in-memory record of logins, votes, clashes, audience triggers and
admin actions, mirrored to loguru at the matching level.
"""

import itertools
import threading
from collections import deque

from ..interfaces import Clock
from ..logging_config import get_logger
from ..models import AuditEvent, AuditKind, Severity

# Module-level logger
logger = get_logger("audit")

_LOG_LEVELS = {
    Severity.INFO: "INFO",
    Severity.WARNING: "WARNING",
    Severity.ERROR: "ERROR",
}


class AuditLog:
    """Keeps the most recent capacity events; oldest are dropped first."""

    def __init__(self, clock: Clock, capacity: int = 1000):
        self.clock = clock
        self._lock = threading.Lock()
        self._events: deque[AuditEvent] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def record(
        self,
        kind: AuditKind,
        performed_by: str,
        details: str,
        severity: Severity = Severity.INFO,
    ) -> AuditEvent:
        with self._lock:
            event = AuditEvent(
                event_id=next(self._ids),
                kind=kind,
                performed_by=performed_by,
                details=details,
                severity=severity,
                timestamp=self.clock.now(),
            )
            self._events.append(event)
        logger.log(_LOG_LEVELS[severity], f"[{kind.value}] {performed_by}: {details}")
        return event

    def entries(self, kind: AuditKind | None = None) -> list[AuditEvent]:
        """Events oldest first, optionally filtered by kind."""
        with self._lock:
            events = list(self._events)
        if kind is not None:
            events = [e for e in events if e.kind is kind]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
