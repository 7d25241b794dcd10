"""
Append-only vote ledger.

Judge/leader scores and audience ballots are facts: they are appended once
and never changed. Uniqueness checks and the append happen as one unit
inside the RoundController's voting gate.
"""

import math
import threading
from collections.abc import Callable
from dataclasses import dataclass

from ..config import ContestConfig
from ..exceptions import DuplicateVote, InvalidScore, UnauthorizedRole, UnknownParticipant, UnknownVoter
from ..interfaces import VoteStore
from ..logging_config import get_logger
from ..models import AudienceVote, Capability, JudgeVote, RoundKind, Voter
from ..registry.roster import Roster
from ..rounds.round_controller import RoundController

# Module-level logger
logger = get_logger("vote_ledger")

Vote = JudgeVote | AudienceVote
VoteListener = Callable[[Vote], None]


@dataclass(frozen=True)
class LedgerSnapshot:
    """Immutable point-in-time view of every vote in the ledger."""

    judge_votes: tuple[JudgeVote, ...] = ()
    audience_votes: tuple[AudienceVote, ...] = ()

    def judge_votes_for(self, participant_id: str, round_index: int) -> list[JudgeVote]:
        return [
            v for v in self.judge_votes
            if v.participant_id == participant_id and v.round_index == round_index
        ]

    def for_round(self, round_index: int) -> "LedgerSnapshot":
        return LedgerSnapshot(
            judge_votes=tuple(v for v in self.judge_votes if v.round_index == round_index),
            audience_votes=tuple(v for v in self.audience_votes if v.round_index == round_index),
        )

    def for_participant(self, participant_id: str) -> "LedgerSnapshot":
        return LedgerSnapshot(
            judge_votes=tuple(v for v in self.judge_votes if v.participant_id == participant_id),
            audience_votes=tuple(v for v in self.audience_votes if v.participant_id == participant_id),
        )

    def for_voter(self, voter_id: str) -> "LedgerSnapshot":
        return LedgerSnapshot(
            judge_votes=tuple(v for v in self.judge_votes if v.voter_id == voter_id),
            audience_votes=tuple(v for v in self.audience_votes if v.voter_id == voter_id),
        )

    def __len__(self) -> int:
        return len(self.judge_votes) + len(self.audience_votes)


class VoteLedger:
    """
    Single shared ledger for a contest.

    Writes: authorization and input checks run first, then the round gate is
    taken (serializing against lock/advance/expiry) and the duplicate check
    plus append run under the ledger lock.

    Reads: votes live in tuples that are replaced, never mutated, so a
    snapshot is two tuple references taken under the lock.
    """

    def __init__(
        self,
        roster: Roster,
        controller: RoundController,
        config: ContestConfig,
        store: VoteStore | None = None,
    ):
        """
        Initialize vote ledger.

        Args:
            roster: Voter/participant registry used for authorization
            controller: Round controller gating the write path
            config: Contest configuration (score range and granularity)
            store: Optional durable store written through before each append
        """
        self.roster = roster
        self.controller = controller
        self.config = config
        self.store = store

        self._lock = threading.Lock()
        self._judge_votes: tuple[JudgeVote, ...] = ()
        self._audience_votes: tuple[AudienceVote, ...] = ()
        self._judge_keys = set[tuple[int, str, str]]()
        self._audience_keys = set[tuple[int, str]]()
        self._listeners = list[VoteListener]()

    def add_listener(self, listener: VoteListener) -> None:
        """Called after each accepted vote, outside the ledger lock."""
        self._listeners.append(listener)

    # Writes

    def submit_judge_vote(
        self, round_index: int, participant_id: str, voter_id: str, score: float
    ) -> JudgeVote:
        """
        Record a judge or leader score.

        Raises:
            UnauthorizedRole: voter unknown, inactive, unverified or not a judge/leader
            UnknownParticipant: participant not registered
            InvalidScore: score not a number, out of range or off-granularity
            RoundNotOpen: scoring round round_index is not open
            DuplicateVote: voter already scored this participant this round
        """
        self._authorize(voter_id, Capability.SCORE, "only judges and leaders can score")
        self._require_participant(participant_id)
        score = self._validate_score(score)

        with self.controller.voting_gate(round_index, RoundKind.SCORING):
            # The roster may have changed while waiting for the gate
            voter = self._authorize(voter_id, Capability.SCORE, "only judges and leaders can score")
            key = (round_index, participant_id, voter_id)
            with self._lock:
                if key in self._judge_keys:
                    logger.debug(f"Duplicate judge vote rejected: {key}")
                    raise DuplicateVote(round_index, voter_id, participant_id)
                vote = JudgeVote(
                    round_index=round_index,
                    participant_id=participant_id,
                    voter_id=voter_id,
                    voter_role=voter.role,
                    score=score,
                    submitted_at=self.controller.clock.now(),
                )
                if self.store is not None:
                    self.store.append_judge_vote(vote)
                self._judge_keys.add(key)
                self._judge_votes = self._judge_votes + (vote,)

        logger.debug(f"Judge vote accepted: round {round_index}, {voter_id} -> {participant_id} = {score}")
        self._notify(vote)
        return vote

    def submit_audience_vote(self, round_index: int, participant_id: str, voter_id: str) -> AudienceVote:
        """
        Record an audience ballot. One ballot per voter per round, whatever the participant.

        Raises:
            UnauthorizedRole: voter unknown, inactive, unverified or not audience
            UnknownParticipant: participant not registered
            RoundNotOpen: no open audience window at round_index
            DuplicateVote: voter already cast this round's ballot
        """
        self._authorize(voter_id, Capability.BALLOT, "only audience members cast ballots")
        self._require_participant(participant_id)

        with self.controller.voting_gate(round_index, RoundKind.AUDIENCE):
            self._authorize(voter_id, Capability.BALLOT, "only audience members cast ballots")
            key = (round_index, voter_id)
            with self._lock:
                if key in self._audience_keys:
                    logger.debug(f"Duplicate ballot rejected: {key}")
                    raise DuplicateVote(round_index, voter_id)
                vote = AudienceVote(
                    round_index=round_index,
                    participant_id=participant_id,
                    voter_id=voter_id,
                    submitted_at=self.controller.clock.now(),
                )
                if self.store is not None:
                    self.store.append_audience_vote(vote)
                self._audience_keys.add(key)
                self._audience_votes = self._audience_votes + (vote,)

        logger.debug(f"Ballot accepted: round {round_index}, {voter_id} -> {participant_id}")
        self._notify(vote)
        return vote

    def replay(self, store: VoteStore) -> int:
        """
        Load persisted votes without gating (they were accepted before).

        Duplicate keys in the store are skipped with a warning.

        Returns:
            Number of votes loaded
        """
        loaded = 0
        with self._lock:
            judge_votes = list(self._judge_votes)
            for vote in store.load_judge_votes():
                if vote.key in self._judge_keys:
                    logger.warning(f"Skipping duplicate stored judge vote {vote.key}")
                    continue
                self._judge_keys.add(vote.key)
                judge_votes.append(vote)
                loaded += 1
            audience_votes = list(self._audience_votes)
            for vote in store.load_audience_votes():
                if vote.key in self._audience_keys:
                    logger.warning(f"Skipping duplicate stored ballot {vote.key}")
                    continue
                self._audience_keys.add(vote.key)
                audience_votes.append(vote)
                loaded += 1
            self._judge_votes = tuple(judge_votes)
            self._audience_votes = tuple(audience_votes)
        logger.info(f"Replayed {loaded} votes from store")
        return loaded

    # Reads

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(self._judge_votes, self._audience_votes)

    def votes_for_round(self, round_index: int) -> LedgerSnapshot:
        return self.snapshot().for_round(round_index)

    def votes_by_participant(self, participant_id: str) -> LedgerSnapshot:
        return self.snapshot().for_participant(participant_id)

    def vote_count(self, voter_id: str) -> int:
        return len(self.snapshot().for_voter(voter_id))

    def has_votes(self, voter_id: str) -> bool:
        return self.vote_count(voter_id) > 0

    # Internals

    def _authorize(self, voter_id: str, capability: Capability, reason: str) -> Voter:
        try:
            voter = self.roster.get_voter(voter_id)
        except UnknownVoter:
            raise UnauthorizedRole(voter_id, "unknown voter") from None
        if not voter.active:
            raise UnauthorizedRole(voter_id, "voter has been deactivated")
        if not voter.verified:
            raise UnauthorizedRole(voter_id, "voter has not been verified")
        if not voter.role.can(capability):
            raise UnauthorizedRole(voter_id, f"{reason} (role: {voter.role.value})")
        return voter

    def _require_participant(self, participant_id: str) -> None:
        if not self.roster.has_participant(participant_id):
            raise UnknownParticipant(participant_id)

    def _validate_score(self, score: object) -> float:
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise InvalidScore(score, "score must be a number")
        value = float(score)
        if math.isnan(value) or math.isinf(value):
            raise InvalidScore(score, "score must be finite")
        if not (self.config.score_min <= value <= self.config.score_max):
            raise InvalidScore(score, f"score must be within [{self.config.score_min:g}, {self.config.score_max:g}]")
        steps = value / self.config.score_granularity
        if not math.isclose(steps, round(steps), abs_tol=1e-9):
            raise InvalidScore(score, f"score must be a multiple of {self.config.score_granularity:g}")
        return value

    def _notify(self, vote: Vote) -> None:
        for listener in self._listeners:
            try:
                listener(vote)
            except Exception as e:
                logger.exception(f"Vote listener failed: {e}")
