"""
CLI entry point for voteverse.

Runs a simulated contest end to end: registers participants and a panel,
drives every round through scoring, audience voting, expiry and advance,
then prints the final leaderboard.
"""

import argparse
import sys
from argparse import Namespace
from pathlib import Path
from typing import TypedDict

import numpy as np
from prettytable import PrettyTable

from .config import ContestConfig
from .engine import VotingEngine
from .exceptions import ConfigurationError, VotingError
from .logging_config import get_logger, setup_logging
from .models import LeaderboardSnapshot, Role, Voter
from .simulation.simulated_panel import SimulatedPanel
from .storage.jsonl_storage import JSONLStorage
from .timing.clocks import ManualClock


class CLIArgs(TypedDict):
    """Typed representation of parsed CLI arguments."""
    participants: int
    judges: int
    leaders: int
    audience: int
    rounds: int
    round_duration: float
    clash_threshold: float
    workers: int
    noise: float
    leader_bias: float
    seed: int | None
    output_dir: str | None
    debug: bool
    log_level: str


def parse_args() -> Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="VoteVerse - live contest voting and tabulation (simulated contest)"
    )

    # Contest shape
    _ = parser.add_argument(
        "--participants",
        type=int,
        default=4,
        help="Number of participants (default: 4)"
    )
    _ = parser.add_argument(
        "--judges",
        type=int,
        default=3,
        help="Number of judges (default: 3)"
    )
    _ = parser.add_argument(
        "--leaders",
        type=int,
        default=2,
        help="Number of leaders (default: 2)"
    )
    _ = parser.add_argument(
        "--audience",
        type=int,
        default=50,
        help="Number of audience members (default: 50)"
    )
    _ = parser.add_argument(
        "--rounds",
        type=int,
        default=3,
        help="Number of scoring rounds (default: 3)"
    )
    _ = parser.add_argument(
        "--round-duration",
        type=float,
        default=300.0,
        help="Round length in simulated seconds (default: 300)"
    )
    _ = parser.add_argument(
        "--clash-threshold",
        type=float,
        default=2.0,
        help="Judge/leader mean gap that counts as a clash (default: 2.0)"
    )

    # Simulation
    _ = parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Number of worker threads submitting votes (default: 4)"
    )
    _ = parser.add_argument(
        "--noise",
        type=float,
        default=1.0,
        help="Standard deviation of simulated score noise (default: 1.0)"
    )
    _ = parser.add_argument(
        "--leader-bias",
        type=float,
        default=0.0,
        help="Offset added to every leader score, to provoke clashes (default: 0)"
    )
    _ = parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for a reproducible contest"
    )
    _ = parser.add_argument(
        "--output-dir",
        default=None,
        help="Persist votes and state here; an existing contest is resumed"
    )
    _ = parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Set logging level (default: WARNING)"
    )

    return parser.parse_args()


def args_to_typed(ns: Namespace) -> CLIArgs:
    """Convert argparse Namespace to typed CLIArgs."""
    return CLIArgs(
        participants=ns.participants,
        judges=ns.judges,
        leaders=ns.leaders,
        audience=ns.audience,
        rounds=ns.rounds,
        round_duration=ns.round_duration,
        clash_threshold=ns.clash_threshold,
        workers=ns.workers,
        noise=ns.noise,
        leader_bias=ns.leader_bias,
        seed=ns.seed,
        output_dir=ns.output_dir,
        debug=ns.debug,
        log_level=ns.log_level,
    )


def validate_config(args: CLIArgs) -> ContestConfig:
    """Validate CLI arguments and build the contest configuration."""
    logger = get_logger("validate_config")

    for key in ("participants", "judges", "workers"):
        if args[key] < 1:
            logger.error(f"{key} must be at least 1, got {args[key]}")
            print(f"Error: {key} must be at least 1, got {args[key]}")
            sys.exit(1)
    if args["leaders"] < 0 or args["audience"] < 0:
        print("Error: leaders and audience cannot be negative")
        sys.exit(1)

    try:
        config = ContestConfig(
            total_rounds=args["rounds"],
            round_duration_seconds=args["round_duration"],
            audience_window_seconds=args["round_duration"],
            clash_threshold=args["clash_threshold"],
        )
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Error: {e}")
        sys.exit(1)

    if args["output_dir"]:
        output_dir = Path(args["output_dir"])
        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Output directory: {output_dir}")
    return config


def enrol_panel(engine: VotingEngine, args: CLIArgs) -> tuple[list[Voter], list[Voter], list[Voter]]:
    """Sign in every simulated voter (idempotent on resume)."""
    judges = [
        engine.sign_in(f"judge{i}@voteverse.local", Role.JUDGE, f"Judge {i}")
        for i in range(1, args["judges"] + 1)
    ]
    leaders = [
        engine.sign_in(f"leader{i}@voteverse.local", Role.LEADER, f"Leader {i}")
        for i in range(1, args["leaders"] + 1)
    ]
    audience = [
        engine.sign_in(f"fan{i}@voteverse.local", Role.AUDIENCE)
        for i in range(1, args["audience"] + 1)
    ]
    return judges, leaders, audience


def run_contest(
    engine: VotingEngine,
    clock: ManualClock,
    panel: SimulatedPanel,
    args: CLIArgs,
    admin: Voter,
) -> LeaderboardSnapshot:
    """Drive every remaining round: scores, audience ballots, expiry, advance."""
    logger = get_logger("run_contest")
    judges, leaders, audience = enrol_panel(engine, args)
    scorer_ids = [v.voter_id for v in judges + leaders]
    biases = {v.voter_id: args["leader_bias"] for v in leaders}

    if not engine.current_round().is_open and not engine.controller.finished:
        # Restored rounds come back locked
        _ = engine.admin.unlock_voting(admin.voter_id, extra_seconds=engine.config.round_duration_seconds)

    while not engine.controller.finished:
        round_ = engine.current_round()
        print(f"\nRound {round_.index}/{engine.config.total_rounds}")

        scores = panel.run_scoring_round(engine, scorer_ids, args["workers"], biases)
        print(f"  Scores accepted: {scores.accepted}, rejected: {dict(scores.rejected) or 0}")

        if audience and engine.audience_window() is None:
            _ = engine.admin.trigger_audience_voting(admin.voter_id)
            ballots = panel.run_audience_round(engine, [v.voter_id for v in audience], args["workers"])
            print(f"  Ballots accepted: {ballots.accepted}, rejected: {dict(ballots.rejected) or 0}")
            leader = engine.tally.leader(round_.index)
            if leader is not None:
                share = engine.tally.percentage(leader, round_.index)
                print(f"  Audience favourite: {engine.roster.get_participant(leader).name} ({share:.1f}%)")

        # Let the clock run out; both windows auto-lock
        clock.advance(engine.time_remaining())
        logger.info(f"Round {round_.index} is {engine.current_round().state.value} after expiry")
        _ = engine.admin.force_advance(admin.voter_id)

    for clash in engine.aggregator.clashes():
        name = engine.roster.get_participant(clash.participant_id).name
        print(
            f"  Clash: {name} round {clash.round_index}: judges {clash.judge_score:.2f} vs leaders {clash.leader_score:.2f}"
        )
    return engine.leaderboard()


def print_leaderboard(board: LeaderboardSnapshot) -> None:
    table = PrettyTable()
    round_columns = [f"R{i}" for i in range(1, len(board.entries[0].per_round_scores) + 1)] if board.entries else []
    table.field_names = ["Rank", "Participant", "Total", "Average", *round_columns, "Audience", "Clash", "Winner"]
    for column in ["Rank", "Total", "Average", *round_columns, "Audience"]:
        table.align[column] = "r"

    for entry in board.entries:
        table.add_row([
            entry.rank,
            entry.name,
            f"{entry.total_score:.2f}",
            f"{entry.average_score:.2f}",
            *[f"{s:.2f}" if s is not None else "-" for s in entry.per_round_scores],
            entry.audience_votes,
            "yes" if entry.clash_detected else "",
            "*" if entry.is_winner else "",
        ])
    print(table)


def main() -> None:
    """Main CLI entry point."""
    try:
        raw_args = parse_args()
        args = args_to_typed(raw_args)

        log_file = str(Path(args["output_dir"]) / "voteverse.log") if args["output_dir"] else None
        setup_logging(level=args["log_level"], debug=args["debug"], log_file=log_file)
        logger = get_logger("main")

        logger.info("Starting VoteVerse simulated contest")
        config = validate_config(args)

        print("VoteVerse - Live Contest Voting")
        print("=" * 60)
        print(f"Participants: {args['participants']}")
        print(f"Panel: {args['judges']} judges, {args['leaders']} leaders, {args['audience']} audience")
        print(f"Rounds: {config.total_rounds} x {config.round_duration_seconds:g}s")
        print(f"Clash threshold: {config.clash_threshold:g}")
        print(f"Workers: {args['workers']}")
        print(f"Noise level: {args['noise']}")
        if args["output_dir"]:
            print(f"Output directory: {args['output_dir']}")
        print("=" * 60)

        clock = ManualClock()
        store = JSONLStorage.in_directory(args["output_dir"]) if args["output_dir"] else None
        engine = VotingEngine(config, clock=clock, store=store)

        if engine.restore():
            print(f"Resumed saved contest at round {engine.current_round().index}")
        else:
            for i in range(1, args["participants"] + 1):
                _ = engine.register_participant(f"Participant {i}", participant_id=f"p{i:02d}")

        rng = np.random.default_rng(args["seed"])
        quality = {
            p.participant_id: float(rng.uniform(config.score_min + 3, config.score_max - 1))
            for p in engine.participants()
        }
        panel = SimulatedPanel(quality, noise=args["noise"], seed=args["seed"])

        admin = engine.sign_in("admin@voteverse.local", Role.ADMIN, "Contest Admin")
        board = run_contest(engine, clock, panel, args, admin)
        engine.shutdown()

        print("\nFinal Leaderboard:")
        print("-" * 40)
        print_leaderboard(board)

        winners = ", ".join(entry.name for entry in board.winners) or "none"
        print(f"\nWinner: {winners}")
        summary = engine.admin.analytics(admin.voter_id)
        print(
            f"Votes: {summary.judge_votes} scores, {summary.audience_votes} ballots; "
            f"participation {summary.participation_rate:.1f}%; clashes {summary.clashes_detected}"
        )

    except VotingError as e:
        logger = get_logger("main")
        logger.error(f"Contest aborted: {e}")
        print(f"\nError: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger = get_logger("main")
        logger.warning("Contest interrupted by user")
        print("\nContest interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
