"""
Leaderboard publisher.

Derives ranked, tie-broken leaderboard snapshots from the ledger and pushes
them to subscribers. Closed rounds are frozen into history as they close.
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..ledger.vote_ledger import VoteLedger
from ..logging_config import get_logger
from ..models import LeaderboardEntry, LeaderboardSnapshot, Round
from ..registry.roster import Roster
from ..rounds.round_controller import RoundController
from ..scoring.audience_tally import AudienceTally
from ..scoring.score_aggregator import ScoreAggregator

# Module-level logger
logger = get_logger("leaderboard_publisher")

Subscriber = Callable[[LeaderboardSnapshot], None]

# Totals are sums of means; compare them at this precision so float noise never splits a tie
SCORE_PRECISION = 9


@dataclass(frozen=True)
class FrozenRound:
    """Scores of a round at the moment it closed."""

    round_index: int
    scores: dict[str, float | None]
    audience_leader: str | None
    frozen_at: float = field(default_factory=time.time)


def competition_ranks(totals: list[float]) -> list[int]:
    """
    Standard competition ranking ("1224") for totals already sorted descending.

    Equal totals share a rank; the next distinct total skips by the size of
    the tie group.
    """
    ranks = list[int]()
    for position, total in enumerate(totals, 1):
        if ranks and total == totals[position - 2]:
            ranks.append(ranks[-1])
        else:
            ranks.append(position)
    return ranks


class LeaderboardPublisher:
    """Builds leaderboard snapshots and fans them out to observers."""

    def __init__(
        self,
        roster: Roster,
        controller: RoundController,
        ledger: VoteLedger,
        aggregator: ScoreAggregator,
        tally: AudienceTally,
    ):
        self.roster = roster
        self.controller = controller
        self.ledger = ledger
        self.aggregator = aggregator
        self.tally = tally

        self._lock = threading.Lock()
        self._history = list[FrozenRound]()
        self._subscribers = list[Subscriber]()
        self.last_published: LeaderboardSnapshot | None = None

    def snapshot(self, include_live: bool = False) -> LeaderboardSnapshot:
        """
        Ranked leaderboard.

        Sorted by total desc, average desc, earliest first vote, participant
        id. Totals only count closed rounds; include_live adds the current
        round's score to each entry as live_score without touching totals.
        """
        current, closed, finished = self.controller.progress()
        snap = self.ledger.snapshot()

        rows = list[tuple[tuple[float, float, float, str], dict[str, object]]]()
        for participant in self.roster.participants():
            pid = participant.participant_id
            round_scores = self.aggregator.round_scores(pid, snap, closed)
            total = sum(round_scores.values())
            average = sum(round_scores.values()) / len(round_scores) if round_scores else 0.0
            first_vote = self.aggregator.first_vote_at(pid, snap, closed)
            live = None
            if include_live and not current.is_closed:
                live = self.aggregator.round_score(pid, current.index, snap)
            sort_key = (
                -round(total, SCORE_PRECISION),
                -round(average, SCORE_PRECISION),
                first_vote if first_vote is not None else math.inf,
                pid,
            )
            rows.append((sort_key, {
                "participant_id": pid,
                "name": participant.name,
                "total_score": total,
                "average_score": average,
                "per_round_scores": tuple(round_scores.get(r) for r in closed),
                "clash_detected": self.aggregator.has_clash(pid, snap),
                "audience_votes": self.tally.total_for_participant(pid, snap),
                "live_score": live,
            }))

        rows.sort(key=lambda row: row[0])
        ranks = competition_ranks([row[0][0] for row in rows])
        entries = tuple(
            LeaderboardEntry(rank=rank, is_winner=finished and rank == 1, **fields)  # type: ignore[arg-type]
            for rank, (_, fields) in zip(ranks, rows)
        )
        return LeaderboardSnapshot(
            entries=entries,
            current_round=current.index,
            total_rounds=self.controller.config.total_rounds,
            final=finished,
            generated_at=self.controller.clock.now(),
        )

    def freeze_round(self, round_: Round) -> FrozenRound:
        """Close listener: record the round's final per-participant scores."""
        snap = self.ledger.snapshot()
        frozen = FrozenRound(
            round_index=round_.index,
            scores={
                p.participant_id: self.aggregator.round_score(p.participant_id, round_.index, snap)
                for p in self.roster.participants()
            },
            audience_leader=self.tally.leader(round_.index, snap),
            frozen_at=self.controller.clock.now(),
        )
        with self._lock:
            self._history.append(frozen)
        logger.info(f"Froze round {round_.index} scores for {len(frozen.scores)} participants")
        return frozen

    def history(self) -> tuple[FrozenRound, ...]:
        with self._lock:
            return tuple(self._history)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, include_live: bool = False) -> LeaderboardSnapshot:
        """Build a snapshot and hand it to every subscriber; failing subscribers are skipped."""
        board = self.snapshot(include_live=include_live)
        with self._lock:
            subscribers = list(self._subscribers)
            self.last_published = board
        for subscriber in subscribers:
            try:
                subscriber(board)
            except Exception as e:
                logger.error(f"Leaderboard subscriber {subscriber!r} failed: {e}")
        logger.debug(f"Published leaderboard for round {board.current_round} to {len(subscribers)} subscribers")
        return board
