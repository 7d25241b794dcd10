"""
Score aggregation and clash detection.

Everything here is derived from a LedgerSnapshot on demand; nothing is
cached between votes, so a clash flag always matches the latest ledger.
"""

from collections.abc import Sequence

from ..ledger.vote_ledger import LedgerSnapshot, VoteLedger
from ..logging_config import get_logger
from ..models import ClashRecord, JudgeVote, Role
from ..rounds.round_controller import RoundController

# Module-level logger
logger = get_logger("score_aggregator")


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


class ScoreAggregator:
    """Per-round means, running totals and judge/leader clash detection."""

    def __init__(self, ledger: VoteLedger, controller: RoundController, clash_threshold: float = 2.0):
        """
        Initialize aggregator.

        Args:
            ledger: Source of judge votes
            controller: Source of the closed-round set
            clash_threshold: Judge/leader mean gap above which a clash is flagged
        """
        self.ledger = ledger
        self.controller = controller
        self.clash_threshold = clash_threshold

    def view(
        self, snapshot: LedgerSnapshot | None = None, closed: Sequence[int] | None = None
    ) -> tuple[list[int], LedgerSnapshot]:
        """
        Closed round indices and a ledger snapshot that agree with each other.

        The closed set is read before the snapshot: once a round is closed no
        vote can be added to it, so the snapshot already holds all its votes.
        """
        closed_list = list(closed) if closed is not None else self.controller.closed_round_indices()
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        return closed_list, snap

    def round_score(
        self, participant_id: str, round_index: int, snapshot: LedgerSnapshot | None = None
    ) -> float | None:
        """Mean of all judge and leader scores for the pair; None if nobody has scored yet."""
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        return _mean([v.score for v in snap.judge_votes_for(participant_id, round_index)])

    def round_scores(
        self,
        participant_id: str,
        snapshot: LedgerSnapshot | None = None,
        closed: Sequence[int] | None = None,
    ) -> dict[int, float]:
        """Closed round index -> round score, for closed rounds that have a score."""
        closed_list, snap = self.view(snapshot, closed)
        scores = dict[int, float]()
        for round_index in closed_list:
            score = self.round_score(participant_id, round_index, snap)
            if score is not None:
                scores[round_index] = score
        return scores

    def total_score(
        self,
        participant_id: str,
        snapshot: LedgerSnapshot | None = None,
        closed: Sequence[int] | None = None,
    ) -> float:
        """Sum of round scores over closed rounds only."""
        return sum(self.round_scores(participant_id, snapshot, closed).values())

    def average_score(
        self,
        participant_id: str,
        snapshot: LedgerSnapshot | None = None,
        closed: Sequence[int] | None = None,
    ) -> float:
        """Mean of the participant's closed round scores; 0.0 when it has none."""
        return _mean(list(self.round_scores(participant_id, snapshot, closed).values())) or 0.0

    def live_score(self, participant_id: str, snapshot: LedgerSnapshot | None = None) -> float | None:
        """Score in the current open/locked round, for observers who opt in to in-progress numbers."""
        current = self.controller.current_round()
        if current.is_closed:
            return None
        return self.round_score(participant_id, current.index, snapshot)

    def first_vote_at(
        self,
        participant_id: str,
        snapshot: LedgerSnapshot | None = None,
        closed: Sequence[int] | None = None,
    ) -> float | None:
        """Timestamp of the participant's earliest judge vote in a closed round."""
        closed_list, snap = self.view(snapshot, closed)
        closed_set = set(closed_list)
        times = [
            v.submitted_at for v in snap.judge_votes
            if v.participant_id == participant_id and v.round_index in closed_set
        ]
        return min(times) if times else None

    def clash(
        self, participant_id: str, round_index: int, snapshot: LedgerSnapshot | None = None
    ) -> ClashRecord | None:
        """
        Clash record for the pair, or None.

        Needs at least one judge and one leader vote; flagged when the gap
        between their means is strictly greater than the threshold.
        """
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        votes = snap.judge_votes_for(participant_id, round_index)
        return self._clash_from_votes(participant_id, round_index, votes)

    def clashes(
        self, round_index: int | None = None, snapshot: LedgerSnapshot | None = None
    ) -> list[ClashRecord]:
        """Every flagged (round, participant) pair, ordered by round then participant."""
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        grouped = dict[tuple[int, str], list[JudgeVote]]()
        for vote in snap.judge_votes:
            if round_index is not None and vote.round_index != round_index:
                continue
            grouped.setdefault((vote.round_index, vote.participant_id), []).append(vote)

        records = list[ClashRecord]()
        for (r, participant_id), votes in sorted(grouped.items()):
            record = self._clash_from_votes(participant_id, r, votes)
            if record is not None:
                records.append(record)
        return records

    def has_clash(self, participant_id: str, snapshot: LedgerSnapshot | None = None) -> bool:
        """True if the participant clashes in any round, live rounds included."""
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        rounds = {v.round_index for v in snap.judge_votes if v.participant_id == participant_id}
        return any(self.clash(participant_id, r, snap) is not None for r in rounds)

    def _clash_from_votes(
        self, participant_id: str, round_index: int, votes: Sequence[JudgeVote]
    ) -> ClashRecord | None:
        judge_mean = _mean([v.score for v in votes if v.voter_role is Role.JUDGE])
        leader_mean = _mean([v.score for v in votes if v.voter_role is Role.LEADER])
        if judge_mean is None or leader_mean is None:
            return None
        delta = abs(judge_mean - leader_mean)
        if delta <= self.clash_threshold:
            return None
        return ClashRecord(
            round_index=round_index,
            participant_id=participant_id,
            judge_score=judge_mean,
            leader_score=leader_mean,
            delta=delta,
            detected_at=max(v.submitted_at for v in votes),
        )
