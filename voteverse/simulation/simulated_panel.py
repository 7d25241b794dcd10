"""
Simulated judging panel.

Draws judge/leader scores and audience ballots from latent participant
quality with Gaussian noise, then submits them concurrently through the
engine like a room full of real devices would.
"""

from collections import Counter
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ..engine import VotingEngine
from ..exceptions import VotingError
from ..logging_config import get_logger

# Module-level logger
logger = get_logger("simulated_panel")


@dataclass
class SubmissionReport:
    """Outcome of one batch of simulated submissions."""

    accepted: int = 0
    rejected: Counter[str] = field(default_factory=Counter)

    @property
    def total(self) -> int:
        return self.accepted + sum(self.rejected.values())


class SimulatedPanel:
    """
    Simulated voters for demos and tests.

    Scores are quality + noise (+ an optional per-voter bias), snapped to the
    contest's granularity and clipped to its range. All randomness is drawn
    on the calling thread before work is handed to the pool.
    """

    def __init__(self, quality: dict[str, float], noise: float = 1.0, seed: int | None = None):
        """
        Initialize simulated panel.

        Args:
            quality: participant_id -> latent quality on the score scale
            noise: Standard deviation of per-score Gaussian noise
            seed: Seed for the numpy generator, None for a random one
        """
        if noise < 0:
            raise ValueError(f"noise cannot be negative, got {noise}")
        self.quality = dict(quality)
        self.noise = noise
        self.rng = np.random.default_rng(seed)

    def draw_score(
        self, participant_id: str, granularity: float, low: float, high: float, bias: float = 0.0
    ) -> float:
        raw = self.quality.get(participant_id, (low + high) / 2) + bias
        if self.noise > 0:
            raw += float(self.rng.normal(0.0, self.noise))
        snapped = float(np.round(raw / granularity) * granularity)
        return float(np.clip(snapped, low, high))

    def draw_favourite(self, participant_ids: list[str]) -> str:
        """Pick a participant with probability proportional to softmax(quality)."""
        if not participant_ids:
            raise ValueError("Cannot pick a favourite from no participants")
        qualities = np.array([self.quality.get(pid, 0.0) for pid in participant_ids], dtype=float)
        weights = np.exp(qualities - qualities.max())
        weights /= weights.sum()
        return str(self.rng.choice(participant_ids, p=weights))

    def run_scoring_round(
        self,
        engine: VotingEngine,
        voter_ids: list[str],
        max_workers: int = 4,
        biases: dict[str, float] | None = None,
    ) -> SubmissionReport:
        """
        Every voter scores every participant in the current round.

        Args:
            engine: Engine to submit through
            voter_ids: Judge and leader ids
            max_workers: Worker threads submitting in parallel
            biases: Optional voter_id -> offset added to that voter's scores
        """
        config = engine.config
        round_index = engine.current_round().index
        participant_ids = [p.participant_id for p in engine.participants()]
        biases = biases or {}

        jobs = [
            (
                pid,
                voter_id,
                self.draw_score(pid, config.score_granularity, config.score_min, config.score_max, biases.get(voter_id, 0.0)),
            )
            for voter_id in voter_ids
            for pid in participant_ids
        ]
        logger.info(f"Submitting {len(jobs)} simulated scores for round {round_index}")

        def submit(pid: str, voter_id: str, score: float) -> None:
            _ = engine.submit_judge_vote(round_index, pid, voter_id, score)

        return self._run(jobs, submit, max_workers)

    def run_audience_round(
        self, engine: VotingEngine, voter_ids: list[str], max_workers: int = 4
    ) -> SubmissionReport:
        """Every audience voter casts one ballot in the open audience window."""
        window = engine.audience_window()
        if window is None:
            raise VotingError("No audience voting window has been triggered")
        participant_ids = [p.participant_id for p in engine.participants()]
        jobs = [(self.draw_favourite(participant_ids), voter_id) for voter_id in voter_ids]
        logger.info(f"Submitting {len(jobs)} simulated ballots for round {window.index}")

        def submit(pid: str, voter_id: str) -> None:
            _ = engine.submit_audience_vote(window.index, pid, voter_id)

        return self._run(jobs, submit, max_workers)

    def _run(
        self, jobs: list[tuple[Any, ...]], submit: Callable[..., None], max_workers: int
    ) -> SubmissionReport:
        report = SubmissionReport()
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(submit, *job) for job in jobs]
            for future in as_completed(futures):
                self._collect(future, report)
        logger.info(f"Simulated batch done: {report.accepted} accepted, {dict(report.rejected)} rejected")
        return report

    @staticmethod
    def _collect(future: Future[None], report: SubmissionReport) -> None:
        try:
            future.result()
            report.accepted += 1
        except VotingError as e:
            report.rejected[type(e).__name__] += 1
            logger.debug(f"Simulated submission rejected: {e}")
