"""
Audience ballot tally.

Counts ballots per participant per round and picks the round's audience
favourite.
"""

from collections import Counter

from ..ledger.vote_ledger import LedgerSnapshot, VoteLedger
from ..registry.roster import Roster


class AudienceTally:
    """Ballot counts, shares and leader per round."""

    def __init__(self, ledger: VoteLedger, roster: Roster):
        self.ledger = ledger
        self.roster = roster

    def _counts(self, round_index: int, snapshot: LedgerSnapshot | None) -> Counter[str]:
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        return Counter(v.participant_id for v in snap.audience_votes if v.round_index == round_index)

    def vote_count(self, participant_id: str, round_index: int, snapshot: LedgerSnapshot | None = None) -> int:
        return self._counts(round_index, snapshot)[participant_id]

    def total_votes(self, round_index: int, snapshot: LedgerSnapshot | None = None) -> int:
        return sum(self._counts(round_index, snapshot).values())

    def percentage(self, participant_id: str, round_index: int, snapshot: LedgerSnapshot | None = None) -> float:
        """Share of the round's ballots, 0-100. 0.0 when nobody has voted."""
        counts = self._counts(round_index, snapshot)
        total = sum(counts.values())
        if total == 0:
            return 0.0
        return counts[participant_id] / total * 100.0

    def leader(self, round_index: int, snapshot: LedgerSnapshot | None = None) -> str | None:
        """Participant with the most ballots; ties go to the lowest id. None with no ballots."""
        counts = self._counts(round_index, snapshot)
        if not counts:
            return None
        return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]

    def standings(
        self, round_index: int, snapshot: LedgerSnapshot | None = None
    ) -> list[tuple[str, int, float]]:
        """(participant_id, count, percentage) for every participant, most ballots first."""
        counts = self._counts(round_index, snapshot)
        total = sum(counts.values())
        ids = {p.participant_id for p in self.roster.participants()} | set(counts)
        rows = [
            (pid, counts[pid], counts[pid] / total * 100.0 if total else 0.0)
            for pid in ids
        ]
        rows.sort(key=lambda row: (-row[1], row[0]))
        return rows

    def total_for_participant(self, participant_id: str, snapshot: LedgerSnapshot | None = None) -> int:
        """Ballots received across every round."""
        snap = snapshot if snapshot is not None else self.ledger.snapshot()
        return sum(1 for v in snap.audience_votes if v.participant_id == participant_id)
