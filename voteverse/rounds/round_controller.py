"""
Round controller.

Owns the round lifecycle (open -> locked -> closed), the round clocks, and
the serialization lock that vote appends, admin transitions and timer
expiry all go through.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from ..config import ContestConfig
from ..exceptions import InvalidTransition, RoundNotOpen
from ..interfaces import Clock
from ..logging_config import get_logger
from ..models import Round, RoundKind, RoundState
from ..timing.round_timer import RoundTimer

RoundListener = Callable[[Round], None]


class RoundController:
    """
    State machine for the contest's rounds.

    Exactly one scoring round is open or locked at a time until the final
    round closes. An audience window may run alongside it at the same
    index. Closed rounds are appended to history and never reopen.

    Thread Safety: every transition, every timer expiry and every vote
    append (via voting_gate) runs under one reentrant lock, so a vote either
    lands before a lock/advance or sees RoundNotOpen.
    """

    def __init__(self, clock: Clock, config: ContestConfig):
        """
        Initialize controller and open round 1 with a running clock.

        Args:
            clock: Authoritative time source and scheduler
            config: Contest configuration (durations, number of rounds)
        """
        self.clock: Clock = clock
        self.config: ContestConfig = config
        self.logger: Logger = get_logger("round_controller")

        self._lock = threading.RLock()
        self._history = list[Round]()
        self._audience: Round | None = None
        self._audience_timer: RoundTimer | None = None
        self._finished: bool = False
        self._close_listeners = list[RoundListener]()
        self._transition_listeners = list[RoundListener]()

        with self._lock:
            self._current, self._timer = self._new_round(1, config.round_duration_seconds, RoundKind.SCORING)
            self._timer.start()
        self.logger.info(f"Round 1 opened for {config.round_duration_seconds:.0f}s")

    # Listeners

    def add_close_listener(self, listener: RoundListener) -> None:
        """Called (under the controller lock) with each scoring round as it closes."""
        self._close_listeners.append(listener)

    def add_transition_listener(self, listener: RoundListener) -> None:
        """Called (under the controller lock) with every round whose state changed."""
        self._transition_listeners.append(listener)

    # Queries

    def current_round(self) -> Round:
        with self._lock:
            return self._current

    def audience_window(self) -> Round | None:
        with self._lock:
            return self._audience

    def time_remaining(self) -> float:
        with self._lock:
            if self._current.is_closed:
                return 0.0
            return self._timer.remaining()

    def audience_time_remaining(self) -> float:
        with self._lock:
            if self._audience is None or self._audience_timer is None:
                return 0.0
            return self._audience_timer.remaining()

    def timer_paused(self) -> bool:
        with self._lock:
            return self._timer.paused

    def history(self) -> tuple[Round, ...]:
        """Closed rounds of both kinds, in closing order."""
        with self._lock:
            return tuple(self._history)

    def rounds(self) -> list[Round]:
        """History followed by the live scoring round and audience window."""
        with self._lock:
            live = [self._current] if not self._current.is_closed else []
            if self._audience is not None:
                live.append(self._audience)
            return list(self._history) + live

    def closed_round_indices(self) -> list[int]:
        with self._lock:
            return [r.index for r in self._history if r.kind is RoundKind.SCORING]

    def progress(self) -> tuple[Round, list[int], bool]:
        """Current round, closed scoring round indices and finished flag, read together."""
        with self._lock:
            closed = [r.index for r in self._history if r.kind is RoundKind.SCORING]
            return self._current, closed, self._finished

    @property
    def finished(self) -> bool:
        """True once the final round has closed."""
        with self._lock:
            return self._finished

    # Scoring round transitions

    def lock_voting(self) -> Round:
        """Open -> locked. Locking a locked round is a no-op."""
        with self._lock:
            self._require_running("lock voting")
            if self._current.state is RoundState.LOCKED:
                self.logger.debug(f"Round {self._current.index} already locked")
                return self._current
            self._timer.pause()
            self._set_current(RoundState.LOCKED)
            self.logger.info(f"Round {self._current.index} locked ({self._timer.remaining():.0f}s left on clock)")
            return self._current

    def unlock_voting(self, extra_seconds: float | None = None) -> Round:
        """
        Locked -> open.

        Resumes the paused clock, or restarts it with extra_seconds. A round
        whose clock has run out can only be reopened with extra time.
        """
        with self._lock:
            self._require_running("unlock voting")
            if self._current.is_open:
                return self._current
            if extra_seconds is not None:
                if extra_seconds <= 0:
                    raise InvalidTransition(f"extra_seconds must be positive, got {extra_seconds}")
                self._timer.reset(extra_seconds)
                self._current = replace(
                    self._current, started_at=self.clock.now(), duration_seconds=extra_seconds
                )
            elif self._timer.expired:
                raise InvalidTransition(
                    f"Round {self._current.index} clock has run out; unlock with extra time"
                )
            else:
                self._timer.resume()
            self._set_current(RoundState.OPEN)
            self.logger.info(f"Round {self._current.index} unlocked ({self._timer.remaining():.0f}s left)")
            return self._current

    def force_advance(self, override: bool = False) -> Round:
        """
        Close the current round and open the next one.

        Without override an open round must have run out of time first. The
        round is locked before it is closed, so no vote can slip in between.

        Returns:
            The newly opened round, or the closed final round
        """
        with self._lock:
            self._require_running("advance the round")
            current = self._current
            if current.is_open:
                if not self._timer.expired and not override:
                    raise InvalidTransition(
                        f"Round {current.index} is open with {self._timer.remaining():.0f}s remaining"
                    )
                self._set_current(RoundState.LOCKED)
            self._timer.stop()

            # History and the finished flag must be settled before listeners see the close
            closed = replace(self._current, state=RoundState.CLOSED)
            self._current = closed
            self._history.append(closed)
            closed_audience = self._close_audience_window()
            final = closed.index >= self.config.total_rounds
            if final:
                self._finished = True
            self.logger.info(f"Round {closed.index} closed")

            for listener in self._close_listeners:
                try:
                    listener(closed)
                except Exception as e:
                    self.logger.exception(f"Close listener failed for round {closed.index}: {e}")
            if closed_audience is not None:
                self._notify(closed_audience)
            self._notify(closed)

            if final:
                self.logger.info(f"Final round {closed.index} closed, contest finished")
                return closed

            self._current, self._timer = self._new_round(
                closed.index + 1, self.config.round_duration_seconds, RoundKind.SCORING
            )
            self._timer.start()
            self._notify(self._current)
            self.logger.info(f"Round {self._current.index} opened for {self._current.duration_seconds:.0f}s")
            return self._current

    # Clock control

    def start_timer(self, duration_seconds: float) -> Round:
        """Restart the open round's clock with a new duration."""
        with self._lock:
            self._require_open("start the timer")
            try:
                self._timer.reset(duration_seconds)
            except ValueError as e:
                raise InvalidTransition(str(e)) from None
            self._current = replace(
                self._current, started_at=self.clock.now(), duration_seconds=duration_seconds
            )
            self._notify(self._current)
            self.logger.info(f"Round {self._current.index} timer started for {duration_seconds:.0f}s")
            return self._current

    def pause_timer(self) -> float:
        with self._lock:
            self._require_open("pause the timer")
            self._timer.pause()
            self.logger.info(f"Round {self._current.index} timer paused at {self._timer.remaining():.0f}s")
            return self._timer.remaining()

    def resume_timer(self) -> float:
        with self._lock:
            self._require_open("resume the timer")
            self._timer.resume()
            self.logger.info(f"Round {self._current.index} timer resumed at {self._timer.remaining():.0f}s")
            return self._timer.remaining()

    def reset_timer(self) -> Round:
        """Restart the open round's clock at its configured duration."""
        with self._lock:
            self._require_open("reset the timer")
            self._timer.reset()
            self._current = replace(self._current, started_at=self.clock.now())
            self._notify(self._current)
            self.logger.info(f"Round {self._current.index} timer reset to {self._timer.duration_seconds:.0f}s")
            return self._current

    # Audience window

    def trigger_audience_window(self, duration_seconds: float | None = None) -> Round:
        """Open an audience voting window at the current round index."""
        with self._lock:
            self._require_running("trigger audience voting")
            if self._audience is not None:
                raise InvalidTransition(
                    f"Audience voting already triggered for round {self._current.index}"
                )
            duration = duration_seconds if duration_seconds is not None else self.config.audience_window_seconds
            if duration <= 0:
                raise InvalidTransition(f"duration_seconds must be positive, got {duration}")
            self._audience, self._audience_timer = self._new_round(
                self._current.index, duration, RoundKind.AUDIENCE
            )
            self._audience_timer.start()
            self._notify(self._audience)
            self.logger.info(f"Audience voting opened for round {self._audience.index} ({duration:.0f}s)")
            return self._audience

    def lock_audience_window(self) -> Round:
        """Open -> locked for the audience window. Idempotent."""
        with self._lock:
            if self._audience is None or self._audience_timer is None:
                raise InvalidTransition("No audience voting window is running")
            if self._audience.is_open:
                self._audience_timer.pause()
                self._audience = replace(self._audience, state=RoundState.LOCKED)
                self._notify(self._audience)
                self.logger.info(f"Audience voting locked for round {self._audience.index}")
            return self._audience

    # Vote gate

    @contextmanager
    def voting_gate(self, round_index: int, kind: RoundKind = RoundKind.SCORING) -> Iterator[Round]:
        """
        Hold the serialization lock while a vote is checked and appended.

        Raises RoundNotOpen unless the round of the given kind at round_index
        is open. An expired clock is applied (auto-lock) before rejecting.
        """
        with self._lock:
            target = self._current if kind is RoundKind.SCORING else self._audience
            if target is None or target.index != round_index:
                raise RoundNotOpen(round_index, self._state_of(round_index, kind))
            if target.is_open:
                timer = self._timer if kind is RoundKind.SCORING else self._audience_timer
                if timer is not None and timer.expired:
                    self._expire(kind)
                    target = self._current if kind is RoundKind.SCORING else self._audience
            if target is None or not target.is_open:
                raise RoundNotOpen(round_index, target.state.value if target else None)
            yield target

    @contextmanager
    def held(self) -> Iterator[None]:
        """Hold the serialization lock across several reads so they see one state."""
        with self._lock:
            yield

    # Persistence

    def restore(self, rounds: list[Round], finished: bool) -> None:
        """
        Rebuild state from persisted rounds.

        Live rounds come back locked with a fresh, unstarted clock; the admin
        unlocks them once the room is ready again.
        """
        if not rounds:
            return
        with self._lock:
            self._timer.stop()
            if self._audience_timer is not None:
                self._audience_timer.stop()
            self._history = [r for r in rounds if r.is_closed]
            self._finished = finished
            self._audience, self._audience_timer = None, None

            live_scoring = [r for r in rounds if r.kind is RoundKind.SCORING and not r.is_closed]
            closed_scoring = [r for r in self._history if r.kind is RoundKind.SCORING]
            if live_scoring and not finished:
                live = live_scoring[-1]
            elif closed_scoring and finished:
                live = closed_scoring[-1]
            else:
                next_index = closed_scoring[-1].index + 1 if closed_scoring else 1
                live = Round(next_index, RoundState.LOCKED, self.clock.now(), self.config.round_duration_seconds)
            state = RoundState.CLOSED if live.is_closed else RoundState.LOCKED
            self._current = replace(live, state=state)
            self._timer = RoundTimer(self.clock, live.duration_seconds, self._on_timer_expired)

            live_audience = [r for r in rounds if r.kind is RoundKind.AUDIENCE and not r.is_closed]
            if live_audience and not finished:
                self._audience = replace(live_audience[-1], state=RoundState.LOCKED)
                self._audience_timer = RoundTimer(
                    self.clock, self._audience.duration_seconds, self._on_timer_expired
                )
        self.logger.info(
            f"Restored {len(self._history)} closed rounds, current round {self._current.index} ({self._current.state.value})"
        )

    # Internals

    def _new_round(self, index: int, duration: float, kind: RoundKind) -> tuple[Round, RoundTimer]:
        round_ = Round(
            index=index,
            state=RoundState.OPEN,
            started_at=self.clock.now(),
            duration_seconds=duration,
            kind=kind,
        )
        return round_, RoundTimer(self.clock, duration, self._on_timer_expired)

    def _set_current(self, state: RoundState) -> Round:
        self._current = replace(self._current, state=state)
        self._notify(self._current)
        return self._current

    def _notify(self, round_: Round) -> None:
        for listener in self._transition_listeners:
            try:
                listener(round_)
            except Exception as e:
                self.logger.exception(f"Transition listener failed for round {round_.index}: {e}")

    def _require_running(self, action: str) -> None:
        if self._finished:
            raise InvalidTransition(f"Cannot {action}: the contest has finished")

    def _require_open(self, action: str) -> None:
        self._require_running(action)
        if not self._current.is_open:
            raise InvalidTransition(
                f"Cannot {action}: round {self._current.index} is {self._current.state.value}"
            )

    def _state_of(self, round_index: int, kind: RoundKind) -> str | None:
        for r in self._history:
            if r.index == round_index and r.kind is kind:
                return r.state.value
        return None

    def _close_audience_window(self) -> Round | None:
        if self._audience is None:
            return None
        if self._audience_timer is not None:
            self._audience_timer.stop()
        closed = replace(self._audience, state=RoundState.CLOSED)
        self._history.append(closed)
        self._audience, self._audience_timer = None, None
        return closed

    def _on_timer_expired(self, timer: RoundTimer) -> None:
        with self._lock:
            if timer is self._timer and self._current.is_open:
                kind = RoundKind.SCORING
            elif timer is self._audience_timer and self._audience is not None and self._audience.is_open:
                kind = RoundKind.AUDIENCE
            else:
                # Stale timer from a round that already moved on
                return
            if not timer.expired:
                self.logger.debug(f"Timer fired early with {timer.remaining():.3f}s left, rescheduling")
                timer.reschedule()
                return
            self._expire(kind)

    def _expire(self, kind: RoundKind) -> None:
        if kind is RoundKind.SCORING:
            self._timer.stop()
            self._set_current(RoundState.LOCKED)
            self.logger.info(f"Round {self._current.index} auto-locked: time is up")
        elif self._audience is not None and self._audience_timer is not None:
            self._audience_timer.stop()
            self._audience = replace(self._audience, state=RoundState.LOCKED)
            self._notify(self._audience)
            self.logger.info(f"Audience voting for round {self._audience.index} auto-locked: time is up")
