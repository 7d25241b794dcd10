"""
Core dataclasses for the voteverse engine.

Defines roles, voters, participants, rounds, votes and the derived
leaderboard/clash records. Records that are facts are frozen.
"""

import time
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import ValidationError


class Capability(str, Enum):
    """What a role is allowed to do at a mutating entry point."""

    SCORE = "score"
    BALLOT = "ballot"
    ADMINISTER = "administer"


class Role(str, Enum):
    """Closed set of contest roles."""

    ADMIN = "admin"
    JUDGE = "judge"
    LEADER = "leader"
    AUDIENCE = "audience"

    @property
    def capabilities(self) -> frozenset[Capability]:
        return _ROLE_CAPABILITIES[self]

    def can(self, capability: Capability) -> bool:
        return capability in _ROLE_CAPABILITIES[self]


_ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset({Capability.ADMINISTER}),
    Role.JUDGE: frozenset({Capability.SCORE}),
    Role.LEADER: frozenset({Capability.SCORE}),
    Role.AUDIENCE: frozenset({Capability.BALLOT}),
}


class RoundState(str, Enum):
    OPEN = "open"
    LOCKED = "locked"
    CLOSED = "closed"


class RoundKind(str, Enum):
    SCORING = "scoring"
    AUDIENCE = "audience"


class AuditKind(str, Enum):
    VOTE = "vote"
    LOGIN = "login"
    CLASH_DETECTED = "clash_detected"
    AUDIENCE_VOTE_TRIGGERED = "audience_vote_triggered"
    ADMIN_ACTION = "admin_action"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Voter:
    """A person allowed to interact with the contest."""

    voter_id: str
    email: str
    role: Role
    name: str = ""
    verified: bool = False
    active: bool = True
    last_login: float | None = None

    def __post_init__(self) -> None:
        """Validate voter data."""
        if not self.voter_id:
            raise ValidationError("voter_id cannot be empty")
        if not self.email:
            raise ValidationError("email cannot be empty")
        try:
            object.__setattr__(self, "role", Role(self.role))
        except ValueError:
            raise ValidationError(f"Unknown role: {self.role!r}") from None


@dataclass(frozen=True)
class Participant:
    """A contestant receiving scores and ballots."""

    participant_id: str
    name: str
    current_round: int = 1
    description: str = ""

    def __post_init__(self) -> None:
        """Validate participant data."""
        if not self.participant_id:
            raise ValidationError("participant_id cannot be empty")
        if not self.name:
            raise ValidationError("name cannot be empty")


@dataclass(frozen=True)
class Round:
    """Read-only projection of a round owned by the RoundController."""

    index: int
    state: RoundState
    started_at: float
    duration_seconds: float
    kind: RoundKind = RoundKind.SCORING

    def __post_init__(self) -> None:
        """Validate round data."""
        if self.index < 1:
            raise ValidationError(f"round index must be >= 1, got {self.index}")
        if self.duration_seconds <= 0:
            raise ValidationError(f"duration_seconds must be positive, got {self.duration_seconds}")

    @property
    def is_open(self) -> bool:
        return self.state is RoundState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state is RoundState.CLOSED


@dataclass(frozen=True)
class JudgeVote:
    """A judge or leader score for one participant in one round."""

    round_index: int
    participant_id: str
    voter_id: str
    voter_role: Role
    score: float
    submitted_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        """Validate judge vote data."""
        if self.round_index < 1:
            raise ValidationError(f"round_index must be >= 1, got {self.round_index}")
        if not self.participant_id or not self.voter_id:
            raise ValidationError("participant_id and voter_id cannot be empty")
        try:
            role = Role(self.voter_role)
        except ValueError:
            raise ValidationError(f"Unknown role: {self.voter_role!r}") from None
        if not role.can(Capability.SCORE):
            raise ValidationError(f"role {role.value} cannot cast judge votes")
        object.__setattr__(self, "voter_role", role)

    @property
    def key(self) -> tuple[int, str, str]:
        return (self.round_index, self.participant_id, self.voter_id)


@dataclass(frozen=True)
class AudienceVote:
    """A single audience ballot."""

    round_index: int
    participant_id: str
    voter_id: str
    submitted_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        """Validate audience vote data."""
        if self.round_index < 1:
            raise ValidationError(f"round_index must be >= 1, got {self.round_index}")
        if not self.participant_id or not self.voter_id:
            raise ValidationError("participant_id and voter_id cannot be empty")

    @property
    def key(self) -> tuple[int, str]:
        return (self.round_index, self.voter_id)


@dataclass(frozen=True)
class ClashRecord:
    """Judge and leader means for a participant disagree beyond the threshold."""

    round_index: int
    participant_id: str
    judge_score: float
    leader_score: float
    delta: float
    detected_at: float


@dataclass(frozen=True)
class LeaderboardEntry:
    """One ranked row of the leaderboard."""

    participant_id: str
    name: str
    total_score: float
    average_score: float
    per_round_scores: tuple[float | None, ...]
    rank: int
    is_winner: bool
    clash_detected: bool
    audience_votes: int = 0
    live_score: float | None = None


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """Point-in-time ranked view broadcast to observers."""

    entries: tuple[LeaderboardEntry, ...]
    current_round: int
    total_rounds: int
    final: bool
    generated_at: float = field(default_factory=time.time)

    def entry(self, participant_id: str) -> LeaderboardEntry:
        for entry in self.entries:
            if entry.participant_id == participant_id:
                return entry
        raise KeyError(f"Participant not on leaderboard: {participant_id}")

    @property
    def winners(self) -> list[LeaderboardEntry]:
        return [entry for entry in self.entries if entry.is_winner]


@dataclass(frozen=True)
class AuditEvent:
    """Entry in the admin system log."""

    event_id: int
    kind: AuditKind
    performed_by: str
    details: str
    severity: Severity = Severity.INFO
    timestamp: float = field(default_factory=time.time)
