"""
Exception classes for the voteverse engine.

Centralized location for all custom exceptions to avoid circular imports.
Every VotingError is a caller-recoverable validation failure whose message
is safe to show to the submitting user.
"""


class ValidationError(Exception):
    """Base exception for validation-related errors."""
    pass


class ConfigurationError(Exception):
    """Base exception for configuration-related errors."""
    pass


class VotingError(Exception):
    """Base exception for rejected voting and administration requests."""
    pass


class RoundNotOpen(VotingError):
    """The target round is not accepting votes."""

    def __init__(self, round_index: int, state: str | None = None):
        self.round_index = round_index
        self.state = state
        detail = f" (state: {state})" if state else ""
        super().__init__(f"Round {round_index} is not open for voting{detail}")


class DuplicateVote(VotingError):
    """The voter already voted for this key."""

    def __init__(self, round_index: int, voter_id: str, participant_id: str | None = None):
        self.round_index = round_index
        self.voter_id = voter_id
        self.participant_id = participant_id
        if participant_id is None:
            msg = f"Voter {voter_id} already cast a ballot in round {round_index}"
        else:
            msg = f"Voter {voter_id} already scored {participant_id} in round {round_index}"
        super().__init__(msg)


class InvalidScore(VotingError):
    """Score is out of range or off the configured granularity."""

    def __init__(self, score: object, reason: str):
        self.score = score
        self.reason = reason
        super().__init__(f"Invalid score {score!r}: {reason}")


class UnauthorizedRole(VotingError):
    """The voter's role (or status) does not permit this kind of vote."""

    def __init__(self, voter_id: str, reason: str):
        self.voter_id = voter_id
        self.reason = reason
        super().__init__(f"Voter {voter_id} may not vote: {reason}")


class InvalidTransition(VotingError):
    """Requested round transition is not allowed from the current state."""
    pass


class Forbidden(VotingError):
    """Caller is not an active administrator."""

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"{actor_id} is not allowed to {action}")


class HasVotes(VotingError):
    """Voter record cannot be removed or re-roled because votes reference it."""

    def __init__(self, voter_id: str, vote_count: int):
        self.voter_id = voter_id
        self.vote_count = vote_count
        super().__init__(
            f"Voter {voter_id} has {vote_count} recorded votes; archive the voter instead"
        )


class UnknownParticipant(VotingError):
    """Participant is not registered in this contest."""

    def __init__(self, participant_id: str):
        self.participant_id = participant_id
        super().__init__(f"Participant not found: {participant_id}")


class UnknownVoter(VotingError):
    """Voter is not registered in this contest."""

    def __init__(self, voter_id: str):
        self.voter_id = voter_id
        super().__init__(f"Voter not found: {voter_id}")
