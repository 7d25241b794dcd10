"""
VoteVerse - Live Contest Voting and Tabulation Engine

Accepts judge/leader scores and audience ballots under concurrent access,
gates them on an authoritative round clock, detects judge/leader clashes
and publishes a competition-ranked leaderboard.
"""

from .config import ContestConfig
from .engine import VotingEngine
from .exceptions import (
    ConfigurationError,
    DuplicateVote,
    Forbidden,
    HasVotes,
    InvalidScore,
    InvalidTransition,
    RoundNotOpen,
    UnauthorizedRole,
    UnknownParticipant,
    UnknownVoter,
    ValidationError,
    VotingError,
)
from .interfaces import Clock, VoteStore
from .models import (
    AudienceVote,
    ClashRecord,
    JudgeVote,
    LeaderboardEntry,
    LeaderboardSnapshot,
    Participant,
    Role,
    Round,
    RoundState,
    Voter,
)

__version__ = "0.1.0"
__all__ = [
    "AudienceVote",
    "ClashRecord",
    "Clock",
    "ConfigurationError",
    "ContestConfig",
    "DuplicateVote",
    "Forbidden",
    "HasVotes",
    "InvalidScore",
    "InvalidTransition",
    "JudgeVote",
    "LeaderboardEntry",
    "LeaderboardSnapshot",
    "Participant",
    "Role",
    "Round",
    "RoundNotOpen",
    "RoundState",
    "UnauthorizedRole",
    "UnknownParticipant",
    "UnknownVoter",
    "ValidationError",
    "VoteStore",
    "Voter",
    "VotingEngine",
    "VotingError",
]
