"""
Admin control surface.

Thin authorization wrapper over the round controller, roster and ledger.
Every call names the acting voter first and is refused with Forbidden
unless that voter is an active admin.
"""

from collections.abc import Callable

from ..audit.audit_log import AuditLog
from ..exceptions import Forbidden, HasVotes, UnknownVoter, ValidationError
from ..ledger.vote_ledger import VoteLedger
from ..logging_config import get_logger
from ..models import AuditEvent, AuditKind, Capability, Participant, Role, Round, Voter
from ..registry.roster import Roster
from ..rounds.round_controller import RoundController
from ..scoring.analytics import AnalyticsSummary, summarize
from ..scoring.score_aggregator import ScoreAggregator

# Module-level logger
logger = get_logger("admin")


class AdminControlSurface:
    """Privileged operations for contest administrators."""

    def __init__(
        self,
        roster: Roster,
        controller: RoundController,
        ledger: VoteLedger,
        aggregator: ScoreAggregator,
        audit: AuditLog,
        on_change: Callable[[], None] | None = None,
    ):
        """
        Initialize admin surface.

        Args:
            roster: Voter and participant registry
            controller: Round lifecycle owner
            ledger: Vote ledger (read to decide whether voters can be removed)
            aggregator: Used for analytics
            audit: System log receiving an entry per successful action
            on_change: Called after roster changes so the engine can persist them
        """
        self.roster = roster
        self.controller = controller
        self.ledger = ledger
        self.aggregator = aggregator
        self.audit = audit
        self.on_change = on_change

    # Voting control

    def lock_voting(self, actor_id: str) -> Round:
        self._require_admin(actor_id, "lock voting")
        round_ = self.controller.lock_voting()
        self._record(actor_id, f"Locked voting for round {round_.index}")
        return round_

    def unlock_voting(self, actor_id: str, extra_seconds: float | None = None) -> Round:
        self._require_admin(actor_id, "unlock voting")
        round_ = self.controller.unlock_voting(extra_seconds)
        self._record(actor_id, f"Unlocked voting for round {round_.index}")
        return round_

    def force_advance(self, actor_id: str) -> Round:
        """Close the current round and open the next, whatever time is left."""
        self._require_admin(actor_id, "advance the round")
        closing = self.controller.current_round().index
        round_ = self.controller.force_advance(override=True)
        self._record(actor_id, f"Forced round {closing} closed; current round is {round_.index}")
        return round_

    def start_timer(self, actor_id: str, duration_seconds: float) -> Round:
        self._require_admin(actor_id, "start the timer")
        round_ = self.controller.start_timer(duration_seconds)
        self._record(actor_id, f"Started {duration_seconds:g}s timer for round {round_.index}")
        return round_

    def pause_timer(self, actor_id: str) -> float:
        self._require_admin(actor_id, "pause the timer")
        remaining = self.controller.pause_timer()
        self._record(actor_id, f"Paused timer with {remaining:.0f}s remaining")
        return remaining

    def resume_timer(self, actor_id: str) -> float:
        self._require_admin(actor_id, "resume the timer")
        remaining = self.controller.resume_timer()
        self._record(actor_id, f"Resumed timer with {remaining:.0f}s remaining")
        return remaining

    def reset_timer(self, actor_id: str) -> Round:
        self._require_admin(actor_id, "reset the timer")
        round_ = self.controller.reset_timer()
        self._record(actor_id, f"Reset timer for round {round_.index}")
        return round_

    def trigger_audience_voting(self, actor_id: str, duration_seconds: float | None = None) -> Round:
        self._require_admin(actor_id, "trigger audience voting")
        window = self.controller.trigger_audience_window(duration_seconds)
        self._record(
            actor_id,
            f"Audience voting triggered for round {window.index}",
            kind=AuditKind.AUDIENCE_VOTE_TRIGGERED,
        )
        return window

    def lock_audience_voting(self, actor_id: str) -> Round:
        self._require_admin(actor_id, "lock audience voting")
        window = self.controller.lock_audience_window()
        self._record(actor_id, f"Locked audience voting for round {window.index}")
        return window

    # User management

    def list_voters(self, actor_id: str) -> list[tuple[Voter, int]]:
        """Every voter with the number of votes they have cast."""
        self._require_admin(actor_id, "list voters")
        snapshot = self.ledger.snapshot()
        return [(voter, len(snapshot.for_voter(voter.voter_id))) for voter in self.roster.voters()]

    def add_voter(self, actor_id: str, email: str, role: Role | str, name: str = "") -> Voter:
        self._require_admin(actor_id, "add voters")
        voter = self.roster.register_voter(email, role, name=name)
        self._record(actor_id, f"Added {voter.role.value} {voter.email}", changed=True)
        return voter

    def edit_voter(
        self, actor_id: str, voter_id: str, name: str | None = None, role: Role | str | None = None
    ) -> Voter:
        """
        Change a voter's display name or role.

        A role change is refused with HasVotes once the voter has voted,
        since their votes were cast under the old role.
        """
        self._require_admin(actor_id, "edit voters")
        voter = self.roster.get_voter(voter_id)
        changes = dict[str, object]()
        if name is not None:
            changes["name"] = name
        new_role = self._coerce_role(role) if role is not None else voter.role
        # Votes are appended under the controller lock, so the count stays true until the edit lands
        with self.controller.held():
            if new_role is not voter.role:
                count = self.ledger.vote_count(voter_id)
                if count:
                    raise HasVotes(voter_id, count)
                changes["role"] = new_role
            if not changes:
                return voter
            updated = self.roster.update_voter(voter_id, **changes)
        self._record(actor_id, f"Edited voter {voter_id}: {', '.join(sorted(changes))}", changed=True)
        return updated

    def remove_voter(self, actor_id: str, voter_id: str) -> Voter:
        """Delete a voter who never voted. Voters with votes must be deactivated instead."""
        self._require_admin(actor_id, "remove voters")
        with self.controller.held():
            count = self.ledger.vote_count(voter_id)
            if count:
                raise HasVotes(voter_id, count)
            voter = self.roster.remove_voter(voter_id)
        self._record(actor_id, f"Removed voter {voter.email}", changed=True)
        return voter

    def deactivate_voter(self, actor_id: str, voter_id: str) -> Voter:
        """Archive a voter: the record and its votes stay, further votes are refused."""
        self._require_admin(actor_id, "deactivate voters")
        voter = self.roster.update_voter(voter_id, active=False)
        self._record(actor_id, f"Deactivated voter {voter.email}", changed=True)
        return voter

    def add_participant(
        self, actor_id: str, name: str, participant_id: str | None = None, description: str = ""
    ) -> Participant:
        self._require_admin(actor_id, "add participants")
        current = self.controller.current_round().index
        participant = self.roster.add_participant(
            name, participant_id=participant_id, description=description, current_round=current
        )
        self._record(actor_id, f"Added participant {participant.name}", changed=True)
        return participant

    # Reporting

    def system_logs(self, actor_id: str, kind: AuditKind | None = None) -> list[AuditEvent]:
        self._require_admin(actor_id, "read system logs")
        return self.audit.entries(kind)

    def analytics(self, actor_id: str) -> AnalyticsSummary:
        self._require_admin(actor_id, "read analytics")
        return summarize(self.roster, self.ledger.snapshot(), self.aggregator)

    # Internals

    def _require_admin(self, actor_id: str, action: str) -> Voter:
        try:
            actor = self.roster.get_voter(actor_id)
        except UnknownVoter:
            logger.warning(f"Unknown actor {actor_id} tried to {action}")
            raise Forbidden(actor_id, action) from None
        if not actor.active or not actor.role.can(Capability.ADMINISTER):
            logger.warning(f"{actor_id} ({actor.role.value}) tried to {action}")
            raise Forbidden(actor_id, action)
        return actor

    @staticmethod
    def _coerce_role(role: Role | str) -> Role:
        try:
            return Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role!r}") from None

    def _record(
        self, actor_id: str, details: str, kind: AuditKind = AuditKind.ADMIN_ACTION, changed: bool = False
    ) -> None:
        self.audit.record(kind, actor_id, details)
        if changed and self.on_change is not None:
            self.on_change()
