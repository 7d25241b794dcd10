"""
Abstract base classes defining the interfaces for the voteverse engine.

All interfaces are synchronous; concurrency is handled with threads and
locks inside the components that need it.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing_extensions import TypedDict

from .models import AudienceVote, JudgeVote


class VoterRecord(TypedDict):
    """Persisted form of a Voter."""
    voter_id: str
    email: str
    role: str
    name: str
    verified: bool
    active: bool
    last_login: float | None


class ParticipantRecord(TypedDict):
    """Persisted form of a Participant."""
    participant_id: str
    name: str
    current_round: int
    description: str


class RoundRecord(TypedDict):
    """Persisted form of a Round."""
    index: int
    kind: str
    state: str
    started_at: float
    duration_seconds: float


class JudgeVoteRecord(TypedDict):
    """Persisted form of a JudgeVote (one JSONL line)."""
    round_index: int
    participant_id: str
    voter_id: str
    voter_role: str
    score: float
    submitted_at: float


class AudienceVoteRecord(TypedDict):
    """Persisted form of an AudienceVote (one JSONL line)."""
    round_index: int
    participant_id: str
    voter_id: str
    submitted_at: float


class EngineState(TypedDict):
    """TypedDict for engine snapshot state."""
    voters: list[VoterRecord]
    participants: list[ParticipantRecord]
    rounds: list[RoundRecord]  # history followed by the live scoring/audience rounds
    finished: bool
    saved_at: float


class TimerHandle(ABC):
    """Handle to a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the callback if it has not fired yet."""
        pass


class Clock(ABC):
    """Authoritative time source and scheduler for rounds and broadcasts."""

    @abstractmethod
    def now(self) -> float:
        """Wall-clock timestamp in seconds, used for records."""
        pass

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, used for measuring elapsed round time."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """
        Schedule callback to run after delay seconds.

        Callbacks run off the caller's thread (or on advance() for manual
        clocks) and must do their own locking.
        """
        pass


class VoteStore(ABC):
    """Interface for durable vote and engine state persistence."""

    @abstractmethod
    def append_judge_vote(self, vote: JudgeVote) -> None:
        """Durably append an accepted judge vote."""
        pass

    @abstractmethod
    def append_audience_vote(self, vote: AudienceVote) -> None:
        """Durably append an accepted audience ballot."""
        pass

    @abstractmethod
    def load_judge_votes(self) -> Iterable[JudgeVote]:
        """Load all persisted judge votes in append order."""
        pass

    @abstractmethod
    def load_audience_votes(self) -> Iterable[AudienceVote]:
        """Load all persisted audience ballots in append order."""
        pass

    @abstractmethod
    def save_state(self, state: EngineState) -> None:
        """Save roster and round state."""
        pass

    @abstractmethod
    def load_state(self) -> EngineState | None:
        """Load the latest saved state, or None if there is none."""
        pass
