"""
Leaderboard derivation and broadcast.
"""

from .broadcaster import LeaderboardBroadcaster
from .publisher import FrozenRound, LeaderboardPublisher, competition_ranks

__all__ = ["FrozenRound", "LeaderboardBroadcaster", "LeaderboardPublisher", "competition_ranks"]
