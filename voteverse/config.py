"""
Contest configuration.

Defaults follow the VoteVerse admin panel: five minute rounds, a 0-10 score
slider in half-point steps, and a two point judge/leader clash threshold.
"""

from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass
class ContestConfig:
    """Configuration for a single contest."""

    total_rounds: int = 3
    round_duration_seconds: float = 300.0
    audience_window_seconds: float = 300.0
    clash_threshold: float = 2.0
    score_granularity: float = 0.5
    score_min: float = 0.0
    score_max: float = 10.0
    broadcast_interval_seconds: float = 5.0
    audit_capacity: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.total_rounds < 1:
            raise ConfigurationError(f"total_rounds must be at least 1, got {self.total_rounds}")
        if self.round_duration_seconds <= 0:
            raise ConfigurationError(
                f"round_duration_seconds must be positive, got {self.round_duration_seconds}"
            )
        if self.audience_window_seconds <= 0:
            raise ConfigurationError(
                f"audience_window_seconds must be positive, got {self.audience_window_seconds}"
            )
        if self.clash_threshold < 0:
            raise ConfigurationError(f"clash_threshold cannot be negative, got {self.clash_threshold}")
        if self.score_granularity <= 0:
            raise ConfigurationError(
                f"score_granularity must be positive, got {self.score_granularity}"
            )
        if self.score_min >= self.score_max:
            raise ConfigurationError(
                f"score_min must be below score_max, got {self.score_min} >= {self.score_max}"
            )
        if self.broadcast_interval_seconds <= 0:
            raise ConfigurationError(
                f"broadcast_interval_seconds must be positive, got {self.broadcast_interval_seconds}"
            )
        if self.audit_capacity <= 0:
            raise ConfigurationError(f"audit_capacity must be positive, got {self.audit_capacity}")
