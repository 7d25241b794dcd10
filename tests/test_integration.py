"""
Integration tests for the voteverse engine.

End-to-end tests with all real components: sign-in, simulated panels
submitting through worker threads, clock-driven rounds, persistence and
restore.
"""

import tempfile

import pytest

from voteverse.config import ContestConfig
from voteverse.engine import VotingEngine
from voteverse.exceptions import DuplicateVote, UnauthorizedRole, ValidationError
from voteverse.models import AuditKind, Role, RoundState, Severity
from voteverse.simulation.simulated_panel import SimulatedPanel
from voteverse.storage.jsonl_storage import JSONLStorage
from voteverse.timing.clocks import ManualClock


class TestSignIn:
    """Test the identity hand-off."""

    def test_first_sign_in_registers_verified_voter(self) -> None:
        """The verified {email, role} pair creates a verified voter and a login record."""
        # Arrange
        clock = ManualClock()
        engine = VotingEngine(clock=clock)

        # Act
        voter = engine.sign_in("Judge@Example.com", Role.JUDGE, "Jude")
        again = engine.sign_in("judge@example.com", "judge")

        # Assert
        assert voter.verified
        assert voter.last_login == clock.now()
        assert again.voter_id == voter.voter_id, "Email lookup should be case-insensitive"
        assert len(engine.audit.entries(AuditKind.LOGIN)) == 2

    def test_role_mismatch_refused(self) -> None:
        """A known email presenting another role is refused."""
        engine = VotingEngine(clock=ManualClock())
        _ = engine.sign_in("fan@example.com", Role.AUDIENCE)
        with pytest.raises(UnauthorizedRole, match="registered as audience"):
            _ = engine.sign_in("fan@example.com", Role.JUDGE)

    def test_unknown_role_refused(self) -> None:
        engine = VotingEngine(clock=ManualClock())
        with pytest.raises(ValidationError):
            _ = engine.sign_in("x@example.com", "superuser")

    def test_preregistered_voter_verified_on_sign_in(self) -> None:
        """Voters added during setup can only vote after signing in."""
        # Arrange
        engine = VotingEngine(clock=ManualClock())
        _ = engine.register_participant("Alice", participant_id="p1")
        voter = engine.register_voter("judge@example.com", Role.JUDGE)

        # Act / Assert
        with pytest.raises(UnauthorizedRole):
            _ = engine.submit_judge_vote(1, "p1", voter.voter_id, 5.0)
        _ = engine.sign_in("judge@example.com", Role.JUDGE)
        vote = engine.submit_judge_vote(1, "p1", voter.voter_id, 5.0)
        assert vote.voter_id == voter.voter_id


class TestEngineWiring:
    """Test cross-component behaviour of the engine."""

    def test_clash_is_audited_once_per_pair(self) -> None:
        """The first vote that creates a clash records a warning; repeats do not."""
        # Arrange
        engine = VotingEngine(clock=ManualClock())
        _ = engine.register_participant("Alice", participant_id="p1")
        judges = [engine.sign_in(f"j{i}@example.com", Role.JUDGE).voter_id for i in range(2)]
        leader = engine.sign_in("leader@example.com", Role.LEADER).voter_id

        # Act
        _ = engine.submit_judge_vote(1, "p1", judges[0], 8.5)
        _ = engine.submit_judge_vote(1, "p1", leader, 5.0)
        _ = engine.submit_judge_vote(1, "p1", judges[1], 9.0)

        # Assert
        clashes = engine.audit.entries(AuditKind.CLASH_DETECTED)
        assert len(clashes) == 1, "Clash persisted through the third vote; only one record"
        assert clashes[0].severity is Severity.WARNING
        assert "p1" in clashes[0].details
        assert engine.leaderboard().entry("p1").clash_detected

    def test_participants_follow_current_round(self) -> None:
        """Closing a round moves participants to the next one."""
        # Arrange
        engine = VotingEngine(ContestConfig(total_rounds=2), clock=ManualClock())
        _ = engine.register_participant("Alice", participant_id="p1")
        admin = engine.sign_in("admin@example.com", Role.ADMIN)

        # Act
        _ = engine.admin.force_advance(admin.voter_id)

        # Assert
        assert engine.participants()[0].current_round == 2

        # Act
        _ = engine.admin.force_advance(admin.voter_id)

        # Assert
        assert engine.participants()[0].current_round == 2, "Final round stays the last index"
        assert engine.controller.finished


class TestSimulatedContest:
    """Full contests driven by SimulatedPanel."""

    def _run(self, engine: VotingEngine, clock: ManualClock, leader_bias: float) -> None:
        quality = {"p1": 9.0, "p2": 6.0, "p3": 3.0}
        for pid in quality:
            _ = engine.register_participant(pid.upper(), participant_id=pid)
        admin = engine.sign_in("admin@example.com", Role.ADMIN)
        judges = [engine.sign_in(f"j{i}@example.com", Role.JUDGE).voter_id for i in range(3)]
        leaders = [engine.sign_in(f"l{i}@example.com", Role.LEADER).voter_id for i in range(2)]
        audience = [engine.sign_in(f"a{i}@example.com", Role.AUDIENCE).voter_id for i in range(20)]
        panel = SimulatedPanel(quality, noise=0.0, seed=7)

        while not engine.controller.finished:
            report = panel.run_scoring_round(
                engine, judges + leaders, max_workers=4, biases={v: leader_bias for v in leaders}
            )
            assert report.accepted == 15, f"Every score should land, got {report}"
            _ = engine.admin.trigger_audience_voting(admin.voter_id)
            ballots = panel.run_audience_round(engine, audience, max_workers=4)
            assert ballots.accepted == 20
            clock.advance(engine.time_remaining())
            assert engine.current_round().state is RoundState.LOCKED, "Clock should auto-lock the round"
            _ = engine.admin.force_advance(admin.voter_id)

    def test_full_contest_ranks_by_quality(self) -> None:
        """With noiseless panels the leaderboard follows latent quality."""
        # Arrange
        clock = ManualClock()
        engine = VotingEngine(ContestConfig(total_rounds=2, round_duration_seconds=60), clock=clock)

        # Act
        self._run(engine, clock, leader_bias=0.0)
        board = engine.leaderboard()

        # Assert
        assert board.final
        assert [e.participant_id for e in board.entries] == ["p1", "p2", "p3"]
        assert [e.total_score for e in board.entries] == [18.0, 12.0, 6.0]
        assert [e.participant_id for e in board.winners] == ["p1"]
        assert sum(e.audience_votes for e in board.entries) == 40
        assert not any(e.clash_detected for e in board.entries)

    def test_biased_leaders_raise_clashes(self) -> None:
        """Leaders scoring 3 points under the judges clash everywhere."""
        # Arrange
        clock = ManualClock()
        engine = VotingEngine(ContestConfig(total_rounds=2, round_duration_seconds=60), clock=clock)

        # Act
        self._run(engine, clock, leader_bias=-3.0)

        # Assert
        assert len(engine.aggregator.clashes()) == 6, "3 participants x 2 rounds"
        assert len(engine.audit.entries(AuditKind.CLASH_DETECTED)) == 6
        assert all(e.clash_detected for e in engine.leaderboard().entries)


class TestRestore:
    """Test persistence through JSONLStorage and engine restore."""

    def test_restored_engine_has_same_leaderboard(self) -> None:
        """A restarted engine reloads roster, rounds and votes."""
        with tempfile.TemporaryDirectory() as temp_dir:
            # Arrange
            config = ContestConfig(total_rounds=3, round_duration_seconds=60)
            engine = VotingEngine(config, clock=ManualClock(), store=JSONLStorage.in_directory(temp_dir))
            _ = engine.register_participant("Alice", participant_id="p1")
            _ = engine.register_participant("Bob", participant_id="p2")
            admin = engine.sign_in("admin@example.com", Role.ADMIN)
            judge = engine.sign_in("judge@example.com", Role.JUDGE)
            _ = engine.submit_judge_vote(1, "p1", judge.voter_id, 8.0)
            _ = engine.submit_judge_vote(1, "p2", judge.voter_id, 6.0)
            _ = engine.admin.force_advance(admin.voter_id)
            _ = engine.submit_judge_vote(2, "p1", judge.voter_id, 4.0)
            before = engine.leaderboard(include_live=True)

            # Act
            restored = VotingEngine(config, clock=ManualClock(), store=JSONLStorage.in_directory(temp_dir))
            found = restored.restore()
            after = restored.leaderboard(include_live=True)

            # Assert
            assert found
            assert [(e.participant_id, e.total_score, e.rank, e.live_score) for e in after.entries] == [
                (e.participant_id, e.total_score, e.rank, e.live_score) for e in before.entries
            ]
            assert restored.current_round().index == 2
            assert restored.current_round().state is RoundState.LOCKED, "Live round comes back locked"
            assert len(restored.ledger.snapshot()) == 3
            assert restored.roster.get_voter(judge.voter_id).verified
            assert len(restored.publisher.history()) == 1

            _ = restored.admin.unlock_voting(admin.voter_id)
            with pytest.raises(DuplicateVote):
                _ = restored.submit_judge_vote(2, "p1", judge.voter_id, 9.0)
            vote = restored.submit_judge_vote(2, "p2", judge.voter_id, 9.0)
            assert vote.round_index == 2

    def test_restore_without_saved_state(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            engine = VotingEngine(clock=ManualClock(), store=JSONLStorage.in_directory(temp_dir))
            assert not engine.restore()
            assert engine.current_round().index == 1

    def test_restore_after_final_round_without_shutdown(self) -> None:
        """Closing the final round is persisted on its own; a crash afterwards loses nothing."""
        with tempfile.TemporaryDirectory() as temp_dir:
            # Arrange
            config = ContestConfig(total_rounds=1, round_duration_seconds=60)
            engine = VotingEngine(config, clock=ManualClock(), store=JSONLStorage.in_directory(temp_dir))
            _ = engine.register_participant("Alice", participant_id="p1")
            admin = engine.sign_in("admin@example.com", Role.ADMIN)
            judge = engine.sign_in("judge@example.com", Role.JUDGE)
            _ = engine.submit_judge_vote(1, "p1", judge.voter_id, 7.0)
            _ = engine.admin.force_advance(admin.voter_id)

            # Act
            restored = VotingEngine(config, clock=ManualClock(), store=JSONLStorage.in_directory(temp_dir))
            found = restored.restore()

            # Assert
            assert found
            assert restored.controller.finished, "Saved state should record the finished contest"
            assert restored.current_round().state is RoundState.CLOSED
            assert [r.index for r in restored.controller.history()] == [1]
            board = restored.leaderboard()
            assert board.final
            assert board.entry("p1").is_winner
            assert board.entry("p1").total_score == 7.0
