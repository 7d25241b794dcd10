"""
Voting engine.

Wires roster, clock, round controller, ledger, aggregators, leaderboard and
admin surface for one contest. The presentation layer talks to this object
and never touches the ledger or aggregators directly.
"""

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from .admin.control_surface import AdminControlSurface
from .audit.audit_log import AuditLog
from .config import ContestConfig
from .exceptions import UnauthorizedRole, ValidationError
from .interfaces import Clock, EngineState, VoteStore
from .leaderboard.broadcaster import LeaderboardBroadcaster
from .leaderboard.publisher import LeaderboardPublisher
from .ledger.vote_ledger import Vote, VoteLedger
from .logging_config import get_logger
from .models import (
    AudienceVote,
    AuditKind,
    JudgeVote,
    LeaderboardSnapshot,
    Participant,
    Role,
    Round,
    RoundKind,
    Severity,
    Voter,
)
from .registry.roster import Roster
from .rounds.round_controller import RoundController
from .scoring.audience_tally import AudienceTally
from .scoring.score_aggregator import ScoreAggregator
from .storage.jsonl_storage import (
    participant_from_record,
    participant_to_record,
    round_from_record,
    round_to_record,
    voter_from_record,
    voter_to_record,
)
from .timing.clocks import SystemClock


class VotingEngine:
    """One contest's engine. Instances share nothing, so several can run in one process."""

    def __init__(
        self,
        config: ContestConfig | None = None,
        clock: Clock | None = None,
        store: VoteStore | None = None,
    ):
        """
        Initialize engine with all components.

        Args:
            config: Contest configuration (defaults to ContestConfig())
            clock: Time source and scheduler (defaults to SystemClock)
            store: Optional durable store; state is saved after every change
        """
        self.config: ContestConfig = config or ContestConfig()
        self.clock: Clock = clock or SystemClock()
        self.store: VoteStore | None = store
        self.logger: Logger = get_logger("engine")

        self.roster = Roster()
        self.audit = AuditLog(self.clock, self.config.audit_capacity)
        self.controller = RoundController(self.clock, self.config)
        self.ledger = VoteLedger(self.roster, self.controller, self.config, store)
        self.aggregator = ScoreAggregator(self.ledger, self.controller, self.config.clash_threshold)
        self.tally = AudienceTally(self.ledger, self.roster)
        self.publisher = LeaderboardPublisher(
            self.roster, self.controller, self.ledger, self.aggregator, self.tally
        )
        self.admin = AdminControlSurface(
            self.roster, self.controller, self.ledger, self.aggregator, self.audit, on_change=self.save_state
        )
        self.broadcaster: LeaderboardBroadcaster | None = None

        # Pairs currently in clash; the audit log only records changes
        self._clashing = set[tuple[int, str]]()
        self._clash_lock = threading.Lock()

        self.controller.add_close_listener(self.publisher.freeze_round)
        self.controller.add_close_listener(self._on_round_closed)
        self.controller.add_transition_listener(self._on_transition)
        self.ledger.add_listener(self._on_vote)

        self.logger.info(
            f"Engine ready: {self.config.total_rounds} rounds of {self.config.round_duration_seconds:g}s, clash threshold {self.config.clash_threshold:g}"
        )

    # Identity

    def sign_in(self, email: str, role: Role | str, name: str = "") -> Voter:
        """
        Accept a verified {email, role} from the identity collaborator.

        First sign-in registers the voter. The pair is trusted as-is; a known
        email presenting a different role is refused.
        """
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role!r}") from None
        voter = self.roster.find_by_email(email)
        if voter is None:
            voter = self.roster.register_voter(email, role, name=name)
        elif voter.role is not role:
            raise UnauthorizedRole(voter.voter_id, f"registered as {voter.role.value}, not {role.value}")
        if not voter.active:
            raise UnauthorizedRole(voter.voter_id, "voter has been deactivated")
        voter = self.roster.mark_verified(voter.voter_id, self.clock.now())
        self.audit.record(AuditKind.LOGIN, voter.voter_id, f"{voter.email} signed in as {voter.role.value}")
        self.save_state()
        return voter

    def register_voter(self, email: str, role: Role | str, name: str = "") -> Voter:
        """Pre-register a voter during contest setup; they become verified on sign-in."""
        voter = self.roster.register_voter(email, role, name=name)
        self.save_state()
        return voter

    def register_participant(
        self, name: str, participant_id: str | None = None, description: str = ""
    ) -> Participant:
        participant = self.roster.add_participant(
            name,
            participant_id=participant_id,
            description=description,
            current_round=self.controller.current_round().index,
        )
        self.save_state()
        return participant

    # Voting

    def submit_judge_vote(self, round_index: int, participant_id: str, voter_id: str, score: float) -> JudgeVote:
        return self.ledger.submit_judge_vote(round_index, participant_id, voter_id, score)

    def submit_audience_vote(self, round_index: int, participant_id: str, voter_id: str) -> AudienceVote:
        return self.ledger.submit_audience_vote(round_index, participant_id, voter_id)

    # Projections

    def leaderboard(self, include_live: bool = False) -> LeaderboardSnapshot:
        return self.publisher.snapshot(include_live=include_live)

    def current_round(self) -> Round:
        return self.controller.current_round()

    def audience_window(self) -> Round | None:
        return self.controller.audience_window()

    def time_remaining(self) -> float:
        return self.controller.time_remaining()

    def participants(self) -> list[Participant]:
        return self.roster.participants()

    # Broadcast

    def start_broadcast(
        self, interval_seconds: float | None = None, include_live: bool = False
    ) -> LeaderboardBroadcaster:
        if self.broadcaster is None:
            self.broadcaster = LeaderboardBroadcaster(
                self.publisher,
                self.clock,
                interval_seconds or self.config.broadcast_interval_seconds,
                include_live=include_live,
            )
        self.broadcaster.start()
        return self.broadcaster

    def shutdown(self) -> None:
        if self.broadcaster is not None:
            self.broadcaster.stop()
        self.save_state()
        self.logger.info("Engine shut down")

    # Persistence

    def state(self) -> EngineState:
        return EngineState(
            voters=[voter_to_record(v) for v in self.roster.voters()],
            participants=[participant_to_record(p) for p in self.roster.participants()],
            rounds=[round_to_record(r) for r in self.controller.rounds()],
            finished=self.controller.finished,
            saved_at=self.clock.now(),
        )

    def save_state(self) -> None:
        if self.store is None:
            return
        with self.controller.held():
            self.store.save_state(self.state())

    def restore(self) -> bool:
        """
        Reload roster, rounds and votes from the store.

        Returns:
            True if saved state was found
        """
        if self.store is None:
            return False
        state = self.store.load_state()
        if state is None:
            self.logger.info("No saved state, starting a fresh contest")
            return False

        self.roster.load(
            [voter_from_record(v) for v in state["voters"]],
            [participant_from_record(p) for p in state["participants"]],
        )
        rounds = [round_from_record(r) for r in state["rounds"]]
        self.controller.restore(rounds, state["finished"])
        self.ledger.replay(self.store)

        for round_ in self.controller.history():
            if round_.kind is RoundKind.SCORING:
                self.publisher.freeze_round(round_)
        with self._clash_lock:
            self._clashing = {(c.round_index, c.participant_id) for c in self.aggregator.clashes()}

        self.logger.info(
            f"Restored contest at round {self.controller.current_round().index} with {len(self.ledger.snapshot())} votes"
        )
        return True

    # Listeners

    def _on_vote(self, vote: Vote) -> None:
        if isinstance(vote, AudienceVote):
            self.audit.record(
                AuditKind.VOTE, vote.voter_id, f"Audience vote for {vote.participant_id} in round {vote.round_index}"
            )
            return

        self.audit.record(
            AuditKind.VOTE,
            vote.voter_id,
            f"Scored {vote.participant_id} {vote.score:g} in round {vote.round_index}",
        )
        key = (vote.round_index, vote.participant_id)
        with self._clash_lock:
            # Verdicts must be applied in snapshot order
            clash = self.aggregator.clash(vote.participant_id, vote.round_index)
            was_clashing = key in self._clashing
            if clash is not None:
                self._clashing.add(key)
            else:
                self._clashing.discard(key)
        if clash is not None and not was_clashing:
            self.audit.record(
                AuditKind.CLASH_DETECTED,
                "system",
                f"Judge/leader clash for {vote.participant_id} in round {vote.round_index}: judges {clash.judge_score:.2f}, leaders {clash.leader_score:.2f} (delta {clash.delta:.2f})",
                severity=Severity.WARNING,
            )
        elif clash is None and was_clashing:
            self.logger.info(f"Clash resolved for {vote.participant_id} in round {vote.round_index}")

    def _on_round_closed(self, round_: Round) -> None:
        next_index = min(round_.index + 1, self.config.total_rounds)
        self.roster.advance_participants(next_index)

    def _on_transition(self, round_: Round) -> None:
        self.logger.debug(f"Round {round_.index} ({round_.kind.value}) is now {round_.state.value}")
        self.save_state()
