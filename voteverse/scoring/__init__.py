"""
Score aggregation, audience tally and analytics.
"""

from .analytics import AnalyticsSummary, summarize
from .audience_tally import AudienceTally
from .score_aggregator import ScoreAggregator

__all__ = ["AnalyticsSummary", "AudienceTally", "ScoreAggregator", "summarize"]
