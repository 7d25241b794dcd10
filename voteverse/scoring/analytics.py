"""
Contest analytics for the admin dashboard.

Summarizes participation and scoring across the whole ledger.
"""

from dataclasses import dataclass

import numpy as np

from ..ledger.vote_ledger import LedgerSnapshot
from ..models import Capability
from ..registry.roster import Roster
from .score_aggregator import ScoreAggregator


@dataclass(frozen=True)
class AnalyticsSummary:
    """Numbers shown on the admin analytics tab."""

    total_voters: int
    verified_voters: int
    judge_votes: int
    audience_votes: int
    average_score: float
    score_stddev: float
    participation_rate: float
    clashes_detected: int


def summarize(roster: Roster, snapshot: LedgerSnapshot, aggregator: ScoreAggregator) -> AnalyticsSummary:
    """
    Build an analytics summary from one ledger snapshot.

    participation_rate is the percentage of verified, active voters able to
    vote (judges, leaders, audience) who have cast at least one vote.
    """
    voters = roster.voters()
    verified = [v for v in voters if v.verified]
    eligible = {
        v.voter_id for v in verified
        if v.active and (v.role.can(Capability.SCORE) or v.role.can(Capability.BALLOT))
    }
    voted = {v.voter_id for v in snapshot.judge_votes} | {v.voter_id for v in snapshot.audience_votes}

    scores = np.array([v.score for v in snapshot.judge_votes], dtype=float)
    average = float(np.mean(scores)) if scores.size else 0.0
    stddev = float(np.std(scores)) if scores.size else 0.0
    participation = len(eligible & voted) / len(eligible) * 100.0 if eligible else 0.0

    return AnalyticsSummary(
        total_voters=len(voters),
        verified_voters=len(verified),
        judge_votes=len(snapshot.judge_votes),
        audience_votes=len(snapshot.audience_votes),
        average_score=average,
        score_stddev=stddev,
        participation_rate=participation,
        clashes_detected=len(aggregator.clashes(snapshot=snapshot)),
    )
