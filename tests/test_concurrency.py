"""
Concurrency tests.

Real threads hammer the ledger and the round controller at the same time;
every submission must end as exactly one accepted vote or one typed
rejection.
"""

import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager

import pytest

from voteverse.config import ContestConfig
from voteverse.engine import VotingEngine
from voteverse.exceptions import DuplicateVote, RoundNotOpen, UnauthorizedRole
from voteverse.models import Role, Round, RoundKind
from voteverse.timing.clocks import ManualClock

THREADS = 16


def _make_engine() -> VotingEngine:
    engine = VotingEngine(ContestConfig(round_duration_seconds=60), clock=ManualClock())
    for pid in ("p1", "p2", "p3", "p4"):
        _ = engine.register_participant(pid.upper(), participant_id=pid)
    return engine


class TestConcurrentSubmissions:
    """Test duplicate resolution and gate atomicity under real threads."""

    def test_identical_judge_votes_resolve_to_one(self) -> None:
        """N identical concurrent submissions: one success, N-1 DuplicateVote."""
        # Arrange
        engine = _make_engine()
        judge = engine.sign_in("judge@example.com", Role.JUDGE)
        barrier = threading.Barrier(THREADS)

        def submit() -> str:
            _ = barrier.wait()
            try:
                _ = engine.submit_judge_vote(1, "p1", judge.voter_id, 7.5)
                return "accepted"
            except DuplicateVote:
                return "duplicate"

        # Act
        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            outcomes = list(executor.map(lambda _: submit(), range(THREADS)))

        # Assert
        assert outcomes.count("accepted") == 1, f"Exactly one should win, got {outcomes}"
        assert outcomes.count("duplicate") == THREADS - 1
        assert len(engine.ledger.snapshot().judge_votes) == 1

    def test_concurrent_ballots_from_one_voter(self) -> None:
        """One audience member voting for different participants at once gets one ballot."""
        # Arrange
        engine = _make_engine()
        admin = engine.sign_in("admin@example.com", Role.ADMIN)
        fan = engine.sign_in("fan@example.com", Role.AUDIENCE)
        _ = engine.admin.trigger_audience_voting(admin.voter_id)
        targets = ["p1", "p2", "p3", "p4"] * (THREADS // 4)
        barrier = threading.Barrier(len(targets))

        def submit(pid: str) -> str:
            _ = barrier.wait()
            try:
                _ = engine.submit_audience_vote(1, pid, fan.voter_id)
                return "accepted"
            except DuplicateVote:
                return "duplicate"

        # Act
        with ThreadPoolExecutor(max_workers=len(targets)) as executor:
            outcomes = list(executor.map(submit, targets))

        # Assert
        assert outcomes.count("accepted") == 1
        assert engine.tally.total_votes(1) == 1

    def test_distinct_votes_all_accepted(self) -> None:
        """Independent keys never block each other out."""
        # Arrange
        engine = _make_engine()
        judges = [engine.sign_in(f"judge{i}@example.com", Role.JUDGE).voter_id for i in range(8)]
        jobs = [(judge_id, pid) for judge_id in judges for pid in ("p1", "p2", "p3", "p4")]

        # Act
        with ThreadPoolExecutor(max_workers=8) as executor:
            votes = list(executor.map(lambda job: engine.submit_judge_vote(1, job[1], job[0], 5.0), jobs))

        # Assert
        assert len(votes) == 32
        assert len(engine.ledger.snapshot().judge_votes) == 32
        assert engine.aggregator.round_score("p1", 1) == 5.0

    def test_votes_racing_a_lock_are_never_dropped(self) -> None:
        """Every submission racing a lock is either in the ledger or got RoundNotOpen."""
        # Arrange
        engine = _make_engine()
        admin = engine.sign_in("admin@example.com", Role.ADMIN)
        judges = [engine.sign_in(f"judge{i}@example.com", Role.JUDGE).voter_id for i in range(THREADS)]
        barrier = threading.Barrier(THREADS + 1)

        def submit(judge_id: str) -> str:
            _ = barrier.wait()
            try:
                _ = engine.submit_judge_vote(1, "p1", judge_id, 6.0)
                return "accepted"
            except RoundNotOpen:
                return "rejected"

        def lock() -> str:
            _ = barrier.wait()
            _ = engine.admin.lock_voting(admin.voter_id)
            return "locked"

        # Act
        with ThreadPoolExecutor(max_workers=THREADS + 1) as executor:
            futures = [executor.submit(submit, judge_id) for judge_id in judges]
            lock_future = executor.submit(lock)
            outcomes = [f.result() for f in futures]
            _ = lock_future.result()

        # Assert
        accepted = outcomes.count("accepted")
        assert accepted + outcomes.count("rejected") == THREADS
        assert len(engine.ledger.snapshot().judge_votes) == accepted, "Accepted votes must all be recorded"
        assert not engine.current_round().is_open


class TestRosterChangesDuringVoting:
    """Test admin roster edits interleaved with a vote waiting on the round lock."""

    def _stall_gate(
        self, engine: VotingEngine, monkeypatch: pytest.MonkeyPatch
    ) -> tuple[threading.Event, threading.Event]:
        """Make votes pause after authorization, just before entering the round lock."""
        entered = threading.Event()
        release = threading.Event()
        original_gate = engine.controller.voting_gate

        @contextmanager
        def stalled_gate(round_index: int, kind: RoundKind = RoundKind.SCORING) -> Iterator[Round]:
            entered.set()
            assert release.wait(5), "Test never released the stalled vote"
            with original_gate(round_index, kind) as round_:
                yield round_

        monkeypatch.setattr(engine.controller, "voting_gate", stalled_gate)
        return entered, release

    def test_removed_voter_cannot_land_a_pending_vote(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A voter deleted while their vote waits is refused, never recorded."""
        # Arrange
        engine = _make_engine()
        admin = engine.sign_in("admin@example.com", Role.ADMIN)
        judge = engine.sign_in("judge@example.com", Role.JUDGE)
        entered, release = self._stall_gate(engine, monkeypatch)

        # Act
        with ThreadPoolExecutor(max_workers=1) as executor:
            pending = executor.submit(engine.submit_judge_vote, 1, "p1", judge.voter_id, 7.0)
            assert entered.wait(5)
            removed = engine.admin.remove_voter(admin.voter_id, judge.voter_id)
            release.set()

            # Assert
            with pytest.raises(UnauthorizedRole, match="unknown voter"):
                _ = pending.result()
        assert removed.voter_id == judge.voter_id
        assert engine.ledger.snapshot().judge_votes == (), "No vote may outlive its voter record"

    def test_role_change_refuses_a_pending_score(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A judge moved to the audience while their score waits is refused."""
        # Arrange
        engine = _make_engine()
        admin = engine.sign_in("admin@example.com", Role.ADMIN)
        judge = engine.sign_in("judge@example.com", Role.JUDGE)
        entered, release = self._stall_gate(engine, monkeypatch)

        # Act
        with ThreadPoolExecutor(max_workers=1) as executor:
            pending = executor.submit(engine.submit_judge_vote, 1, "p1", judge.voter_id, 7.0)
            assert entered.wait(5)
            _ = engine.admin.edit_voter(admin.voter_id, judge.voter_id, role=Role.AUDIENCE)
            release.set()

            # Assert
            with pytest.raises(UnauthorizedRole, match="only judges and leaders"):
                _ = pending.result()
        assert engine.ledger.snapshot().judge_votes == ()
        assert engine.roster.get_voter(judge.voter_id).role is Role.AUDIENCE
