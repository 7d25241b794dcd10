"""
JSONL storage implementation.

Persists votes to append-only JSONL files and engine state to both a JSON
file (latest) and a JSONL file (history). Loaded records are validated with
pydantic; corrupt lines are skipped.
"""

import json
import threading
from collections.abc import Iterable
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from typing_extensions import override

from ..exceptions import ValidationError
from ..interfaces import (
    AudienceVoteRecord,
    EngineState,
    JudgeVoteRecord,
    ParticipantRecord,
    RoundRecord,
    VoteStore,
    VoterRecord,
)
from ..logging_config import get_logger
from ..models import AudienceVote, JudgeVote, Participant, Round, RoundKind, RoundState, Voter

# Module-level logger
logger = get_logger("jsonl_storage")

_judge_vote_adapter = TypeAdapter(JudgeVoteRecord)
_audience_vote_adapter = TypeAdapter(AudienceVoteRecord)
_state_adapter = TypeAdapter(EngineState)


def judge_vote_to_record(vote: JudgeVote) -> JudgeVoteRecord:
    return JudgeVoteRecord(
        round_index=vote.round_index,
        participant_id=vote.participant_id,
        voter_id=vote.voter_id,
        voter_role=vote.voter_role.value,
        score=vote.score,
        submitted_at=vote.submitted_at,
    )


def audience_vote_to_record(vote: AudienceVote) -> AudienceVoteRecord:
    return AudienceVoteRecord(
        round_index=vote.round_index,
        participant_id=vote.participant_id,
        voter_id=vote.voter_id,
        submitted_at=vote.submitted_at,
    )


def voter_to_record(voter: Voter) -> VoterRecord:
    return VoterRecord(
        voter_id=voter.voter_id,
        email=voter.email,
        role=voter.role.value,
        name=voter.name,
        verified=voter.verified,
        active=voter.active,
        last_login=voter.last_login,
    )


def voter_from_record(record: VoterRecord) -> Voter:
    return Voter(**record)  # type: ignore[arg-type]


def participant_to_record(participant: Participant) -> ParticipantRecord:
    return ParticipantRecord(**asdict(participant))  # type: ignore[typeddict-item]


def participant_from_record(record: ParticipantRecord) -> Participant:
    return Participant(**record)


def round_to_record(round_: Round) -> RoundRecord:
    return RoundRecord(
        index=round_.index,
        kind=round_.kind.value,
        state=round_.state.value,
        started_at=round_.started_at,
        duration_seconds=round_.duration_seconds,
    )


def round_from_record(record: RoundRecord) -> Round:
    try:
        return Round(
            index=record["index"],
            state=RoundState(record["state"]),
            started_at=record["started_at"],
            duration_seconds=record["duration_seconds"],
            kind=RoundKind(record["kind"]),
        )
    except ValueError as e:
        raise ValidationError(f"Invalid round record {record}: {e}") from None


class JSONLStorage(VoteStore):
    """
    JSONL-based storage implementation.

    Uses one append-only JSONL file per vote kind, a JSON file for the latest
    engine state and a JSONL file with every saved state.
    """

    judge_votes_path: Path
    audience_votes_path: Path
    state_path: Path
    states_jsonl_path: Path

    def __init__(
        self,
        judge_votes_path: Path,
        audience_votes_path: Path,
        state_path: Path,
    ):
        """
        Initialize JSONL storage.

        Args:
            judge_votes_path: Path to JSONL file for judge and leader votes
            audience_votes_path: Path to JSONL file for audience ballots
            state_path: Path to JSON file for the latest engine state
        """
        self.judge_votes_path = Path(judge_votes_path)
        self.audience_votes_path = Path(audience_votes_path)
        self.state_path = Path(state_path)
        # Create states.jsonl path in same directory as state_path
        self.states_jsonl_path = self.state_path.parent / "states.jsonl"
        self._lock = threading.Lock()

        # Ensure parent directories exist
        for path in (self.judge_votes_path, self.audience_votes_path, self.state_path):
            path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"JSONL storage initialized: judge_votes={self.judge_votes_path}, audience_votes={self.audience_votes_path}, state={self.state_path}"
        )

    @classmethod
    def in_directory(cls, directory: Path | str) -> "JSONLStorage":
        """Storage using the standard file names inside directory."""
        directory = Path(directory)
        return cls(
            directory / "judge_votes.jsonl",
            directory / "audience_votes.jsonl",
            directory / "latest_state.json",
        )

    @override
    def append_judge_vote(self, vote: JudgeVote) -> None:
        self._append(self.judge_votes_path, dict(judge_vote_to_record(vote)))
        logger.debug(f"Persisted judge vote {vote.key}")

    @override
    def append_audience_vote(self, vote: AudienceVote) -> None:
        self._append(self.audience_votes_path, dict(audience_vote_to_record(vote)))
        logger.debug(f"Persisted ballot {vote.key}")

    @override
    def load_judge_votes(self) -> Iterable[JudgeVote]:
        for data in self._read_lines(self.judge_votes_path):
            try:
                record = _judge_vote_adapter.validate_python(data)
                yield JudgeVote(**record)  # type: ignore[arg-type]
            except (PydanticValidationError, ValidationError) as e:
                logger.warning(f"Skipping invalid judge vote in {self.judge_votes_path}: {e}")

    @override
    def load_audience_votes(self) -> Iterable[AudienceVote]:
        for data in self._read_lines(self.audience_votes_path):
            try:
                record = _audience_vote_adapter.validate_python(data)
                yield AudienceVote(**record)
            except (PydanticValidationError, ValidationError) as e:
                logger.warning(f"Skipping invalid ballot in {self.audience_votes_path}: {e}")

    @override
    def save_state(self, state: EngineState) -> None:
        """Save engine state to both JSON and JSONL files."""
        with self._lock:
            # Write to JSON file (idempotent - latest state)
            tmp_path = self.state_path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.state_path)

            # Append to JSONL file (append-only - historical states)
            with open(self.states_jsonl_path, "a", encoding="utf-8") as f:
                json.dump(state, f, ensure_ascii=False)
                f.write("\n")

        logger.debug(f"Saved engine state: {len(state['voters'])} voters, {len(state['rounds'])} rounds")

    @override
    def load_state(self) -> EngineState | None:
        """Load engine state from JSON."""
        if not self.state_path.exists():
            logger.debug("No state file exists")
            return None

        logger.info(f"Loading engine state from {self.state_path}")
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data: Any = json.load(f)
            return _state_adapter.validate_python(data)
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(f"Failed to load state from {self.state_path}: {e}")
            return None

    def _append(self, path: Path, data: dict[str, Any]) -> None:
        with self._lock:
            with open(path, "a", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
                f.write("\n")

    def _read_lines(self, path: Path) -> Iterable[Any]:
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    # Skip corrupted lines
                    logger.warning(f"Skipping invalid JSON line in {path}: {e}")
