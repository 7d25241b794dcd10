"""
Tests for RoundController.

Focus on the open/locked/closed lifecycle, clock-driven auto-lock, the
voting gate and restore.
"""

import pytest

from voteverse.config import ContestConfig
from voteverse.exceptions import InvalidTransition, RoundNotOpen
from voteverse.models import Round, RoundKind, RoundState
from voteverse.rounds.round_controller import RoundController
from voteverse.timing.clocks import ManualClock


def _make_controller(total_rounds: int = 3) -> tuple[ManualClock, RoundController]:
    clock = ManualClock()
    config = ContestConfig(
        total_rounds=total_rounds, round_duration_seconds=60, audience_window_seconds=30
    )
    return clock, RoundController(clock, config)


class TestRoundLifecycle:
    """Test scoring round transitions."""

    def test_round_one_opens_on_construction(self) -> None:
        """A new controller has round 1 open with a running clock."""
        # Arrange / Act
        _, controller = _make_controller()

        # Assert
        current = controller.current_round()
        assert current.index == 1
        assert current.state is RoundState.OPEN
        assert controller.time_remaining() == 60
        assert controller.history() == ()

    def test_lock_is_idempotent(self) -> None:
        """Locking a locked round changes nothing and notifies nobody."""
        # Arrange
        _, controller = _make_controller()
        transitions = list[Round]()
        controller.add_transition_listener(transitions.append)

        # Act
        first = controller.lock_voting()
        second = controller.lock_voting()

        # Assert
        assert first == second, "Second lock should return the same round"
        assert second.state is RoundState.LOCKED
        assert len(transitions) == 1, "Only the first lock is a transition"

    def test_unlock_resumes_remaining_time(self) -> None:
        """Time spent locked does not eat into the round."""
        # Arrange
        clock, controller = _make_controller()
        clock.advance(20)
        _ = controller.lock_voting()
        clock.advance(100)

        # Act
        round_ = controller.unlock_voting()

        # Assert
        assert round_.state is RoundState.OPEN
        assert controller.time_remaining() == 40

    def test_force_advance_open_round_requires_override(self) -> None:
        """An open round with time left only closes on an override."""
        # Arrange
        clock, controller = _make_controller()
        clock.advance(30)

        # Act / Assert
        with pytest.raises(InvalidTransition, match="remaining"):
            _ = controller.force_advance()
        assert controller.current_round().index == 1, "Round should still be running"

        next_round = controller.force_advance(override=True)
        assert next_round.index == 2
        assert next_round.state is RoundState.OPEN
        assert controller.closed_round_indices() == [1]
        assert controller.history()[0].state is RoundState.CLOSED

    def test_advance_after_expiry_needs_no_override(self) -> None:
        """Once the clock has run out, a plain advance closes the round."""
        # Arrange
        clock, controller = _make_controller()
        clock.advance(60)

        # Act
        next_round = controller.force_advance()

        # Assert
        assert next_round.index == 2
        assert controller.time_remaining() == 60, "Round 2 should start with a full clock"

    def test_final_round_finishes_contest(self) -> None:
        """Closing the last round finishes the contest; no further transitions."""
        # Arrange
        _, controller = _make_controller(total_rounds=2)

        # Act
        _ = controller.force_advance(override=True)
        final = controller.force_advance(override=True)

        # Assert
        assert controller.finished
        assert final.index == 2
        assert final.state is RoundState.CLOSED
        assert controller.time_remaining() == 0.0
        assert controller.closed_round_indices() == [1, 2]
        with pytest.raises(InvalidTransition, match="finished"):
            _ = controller.force_advance(override=True)
        with pytest.raises(InvalidTransition, match="finished"):
            _ = controller.lock_voting()

    def test_transition_listeners_see_settled_close(self) -> None:
        """When the final close is announced, history and the finished flag already reflect it."""
        # Arrange
        _, controller = _make_controller(total_rounds=1)
        seen = list[tuple[RoundState, list[int], bool]]()
        controller.add_transition_listener(
            lambda r: seen.append((r.state, [x.index for x in controller.rounds()], controller.finished))
        )

        # Act
        _ = controller.force_advance(override=True)

        # Assert
        assert seen[-1] == (RoundState.CLOSED, [1], True), "Listener should see the closed round in history"

    def test_close_listener_receives_closed_round(self) -> None:
        """Close listeners see each scoring round as it closes."""
        # Arrange
        _, controller = _make_controller()
        closed = list[Round]()
        controller.add_close_listener(closed.append)

        # Act
        _ = controller.force_advance(override=True)

        # Assert
        assert [r.index for r in closed] == [1]
        assert closed[0].state is RoundState.CLOSED

    def test_failing_listener_does_not_block_advance(self) -> None:
        """A listener that raises is logged and the transition still happens."""
        # Arrange
        _, controller = _make_controller()

        def broken(round_: Round) -> None:
            raise RuntimeError("boom")

        controller.add_close_listener(broken)

        # Act
        next_round = controller.force_advance(override=True)

        # Assert
        assert next_round.index == 2


class TestRoundClock:
    """Test clock-driven behaviour."""

    def test_never_auto_locks_early(self) -> None:
        """One second before the end, the round is still open."""
        # Arrange
        clock, controller = _make_controller()

        # Act
        clock.advance(59)

        # Assert
        assert controller.current_round().state is RoundState.OPEN
        assert controller.time_remaining() == 1

    def test_auto_locks_when_clock_runs_out(self) -> None:
        """Expiry locks the round without closing it."""
        # Arrange
        clock, controller = _make_controller()
        transitions = list[Round]()
        controller.add_transition_listener(transitions.append)

        # Act
        clock.advance(60)

        # Assert
        assert controller.current_round().state is RoundState.LOCKED
        assert [r.state for r in transitions] == [RoundState.LOCKED]
        assert controller.history() == (), "Expiry should not close the round"

    def test_unlock_after_expiry_requires_extra_time(self) -> None:
        """A round whose clock ran out reopens only with extra seconds."""
        # Arrange
        clock, controller = _make_controller()
        clock.advance(60)

        # Act / Assert
        with pytest.raises(InvalidTransition, match="extra time"):
            _ = controller.unlock_voting()

        round_ = controller.unlock_voting(extra_seconds=30)
        assert round_.state is RoundState.OPEN
        assert controller.time_remaining() == 30

    def test_pause_timer_keeps_round_open(self) -> None:
        """A paused clock does not expire but voting stays open."""
        # Arrange
        clock, controller = _make_controller()

        # Act
        _ = controller.pause_timer()
        clock.advance(100)

        # Assert
        assert controller.timer_paused()
        assert controller.current_round().state is RoundState.OPEN

        # Act
        _ = controller.resume_timer()
        clock.advance(60)

        # Assert
        assert controller.current_round().state is RoundState.LOCKED

    def test_start_timer_sets_new_duration(self) -> None:
        """start_timer restarts the clock with the given duration."""
        # Arrange
        clock, controller = _make_controller()
        clock.advance(50)

        # Act
        round_ = controller.start_timer(120)

        # Assert
        assert round_.duration_seconds == 120
        assert controller.time_remaining() == 120

    def test_timer_control_requires_open_round(self) -> None:
        """Clock controls are refused on a locked round."""
        # Arrange
        _, controller = _make_controller()
        _ = controller.lock_voting()

        # Act / Assert
        with pytest.raises(InvalidTransition, match="locked"):
            _ = controller.reset_timer()


class TestVotingGate:
    """Test the gate that vote appends go through."""

    def test_gate_yields_open_round(self) -> None:
        """An open round at the right index passes the gate."""
        _, controller = _make_controller()
        with controller.voting_gate(1) as round_:
            assert round_.index == 1

    def test_gate_rejects_locked_round(self) -> None:
        """Locked rounds refuse votes."""
        # Arrange
        _, controller = _make_controller()
        _ = controller.lock_voting()

        # Act / Assert
        with pytest.raises(RoundNotOpen) as exc_info:
            with controller.voting_gate(1):
                pass
        assert exc_info.value.state == "locked"

    def test_gate_rejects_other_round_index(self) -> None:
        """Votes for a round that is not current are refused."""
        # Arrange
        _, controller = _make_controller()
        _ = controller.force_advance(override=True)

        # Act / Assert
        with pytest.raises(RoundNotOpen) as exc_info:
            with controller.voting_gate(1):
                pass
        assert exc_info.value.state == "closed", "Round 1 should be reported closed"
        with pytest.raises(RoundNotOpen):
            with controller.voting_gate(3):
                pass


class TestAudienceWindow:
    """Test the audience voting window that runs alongside a round."""

    def test_trigger_opens_window_at_current_index(self) -> None:
        """The window carries the current round index and its own clock."""
        # Arrange
        clock, controller = _make_controller()

        # Act
        window = controller.trigger_audience_window()

        # Assert
        assert window.index == 1
        assert window.kind is RoundKind.AUDIENCE
        assert window.is_open
        assert controller.audience_time_remaining() == 30
        with pytest.raises(InvalidTransition, match="already triggered"):
            _ = controller.trigger_audience_window()

    def test_window_expires_independently(self) -> None:
        """The audience window auto-locks on its own clock; scoring stays open."""
        # Arrange
        clock, controller = _make_controller()
        _ = controller.trigger_audience_window()

        # Act
        clock.advance(30)

        # Assert
        window = controller.audience_window()
        assert window is not None and window.state is RoundState.LOCKED
        assert controller.current_round().state is RoundState.OPEN

    def test_advance_closes_window(self) -> None:
        """Closing the round closes its audience window too."""
        # Arrange
        _, controller = _make_controller()
        _ = controller.trigger_audience_window()

        # Act
        _ = controller.force_advance(override=True)

        # Assert
        assert controller.audience_window() is None
        kinds = [(r.index, r.kind, r.state) for r in controller.history()]
        assert (1, RoundKind.AUDIENCE, RoundState.CLOSED) in kinds
        with pytest.raises(RoundNotOpen):
            with controller.voting_gate(1, RoundKind.AUDIENCE):
                pass


class TestRestore:
    """Test rebuilding a controller from persisted rounds."""

    def test_live_round_comes_back_locked(self) -> None:
        """Restored live rounds are locked with a fresh clock until unlocked."""
        # Arrange
        _, original = _make_controller()
        _ = original.force_advance(override=True)
        _ = original.trigger_audience_window()
        saved = original.rounds()
        _, restored = _make_controller()

        # Act
        restored.restore(saved, finished=False)

        # Assert
        assert restored.current_round().index == 2
        assert restored.current_round().state is RoundState.LOCKED
        assert restored.closed_round_indices() == [1]
        window = restored.audience_window()
        assert window is not None and window.state is RoundState.LOCKED

        round_ = restored.unlock_voting()
        assert round_.state is RoundState.OPEN
        assert restored.time_remaining() == 60

    def test_finished_contest_stays_finished(self) -> None:
        """A finished contest restores with its final round closed."""
        # Arrange
        _, original = _make_controller(total_rounds=1)
        _ = original.force_advance(override=True)
        _, restored = _make_controller(total_rounds=1)

        # Act
        restored.restore(original.rounds(), finished=True)

        # Assert
        assert restored.finished
        assert restored.current_round().state is RoundState.CLOSED
        assert restored.closed_round_indices() == [1]
