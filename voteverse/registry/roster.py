"""
Roster of voters and participants.

Owns Voter and Participant records. Records are frozen; edits replace them
under a lock so readers always see a whole record.
"""

import threading
import uuid
from dataclasses import replace

from ..exceptions import UnknownParticipant, UnknownVoter, ValidationError
from ..logging_config import get_logger
from ..models import Capability, Participant, Role, Voter

# Module-level logger
logger = get_logger("roster")


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class Roster:
    """Registry of everyone taking part in a contest."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._voters = dict[str, Voter]()
        self._by_email = dict[str, str]()
        self._participants = dict[str, Participant]()

    # Voters

    def register_voter(
        self,
        email: str,
        role: Role | str,
        name: str = "",
        verified: bool = False,
        voter_id: str | None = None,
    ) -> Voter:
        """Create a voter. Emails are unique, case-insensitively."""
        voter = Voter(
            voter_id=voter_id or _new_id("voter"),
            email=email.strip(),
            role=role,  # type: ignore[arg-type]
            name=name,
            verified=verified,
        )
        email_key = voter.email.lower()
        with self._lock:
            if email_key in self._by_email:
                raise ValidationError(f"A voter with email {voter.email} already exists")
            if voter.voter_id in self._voters:
                raise ValidationError(f"Duplicate voter_id: {voter.voter_id}")
            self._voters[voter.voter_id] = voter
            self._by_email[email_key] = voter.voter_id
        logger.info(f"Registered {voter.role.value} {voter.voter_id} <{voter.email}>")
        return voter

    def get_voter(self, voter_id: str) -> Voter:
        with self._lock:
            voter = self._voters.get(voter_id)
        if voter is None:
            raise UnknownVoter(voter_id)
        return voter

    def find_by_email(self, email: str) -> Voter | None:
        with self._lock:
            voter_id = self._by_email.get(email.strip().lower())
            return self._voters.get(voter_id) if voter_id else None

    def voters(self) -> list[Voter]:
        with self._lock:
            return list(self._voters.values())

    def update_voter(self, voter_id: str, **changes: object) -> Voter:
        """Replace a voter record with the given field changes (id and email are fixed)."""
        if "voter_id" in changes or "email" in changes:
            raise ValidationError("voter_id and email are immutable")
        with self._lock:
            current = self._voters.get(voter_id)
            if current is None:
                raise UnknownVoter(voter_id)
            updated = replace(current, **changes)  # type: ignore[arg-type]
            self._voters[voter_id] = updated
        logger.debug(f"Updated voter {voter_id}: {sorted(changes)}")
        return updated

    def mark_verified(self, voter_id: str, login_at: float) -> Voter:
        return self.update_voter(voter_id, verified=True, last_login=login_at)

    def remove_voter(self, voter_id: str) -> Voter:
        with self._lock:
            voter = self._voters.pop(voter_id, None)
            if voter is None:
                raise UnknownVoter(voter_id)
            del self._by_email[voter.email.lower()]
        logger.info(f"Removed voter {voter_id}")
        return voter

    def has_capability(self, voter_id: str, capability: Capability) -> bool:
        """True if the voter exists, is active, and its role grants capability."""
        with self._lock:
            voter = self._voters.get(voter_id)
        return voter is not None and voter.active and voter.role.can(capability)

    # Participants

    def add_participant(
        self, name: str, participant_id: str | None = None, description: str = "", current_round: int = 1
    ) -> Participant:
        participant = Participant(
            participant_id=participant_id or _new_id("participant"),
            name=name,
            current_round=current_round,
            description=description,
        )
        with self._lock:
            if participant.participant_id in self._participants:
                raise ValidationError(f"Duplicate participant_id: {participant.participant_id}")
            self._participants[participant.participant_id] = participant
        logger.info(f"Added participant {participant.participant_id} ({participant.name})")
        return participant

    def get_participant(self, participant_id: str) -> Participant:
        with self._lock:
            participant = self._participants.get(participant_id)
        if participant is None:
            raise UnknownParticipant(participant_id)
        return participant

    def has_participant(self, participant_id: str) -> bool:
        with self._lock:
            return participant_id in self._participants

    def participants(self) -> list[Participant]:
        """All participants ordered by id."""
        with self._lock:
            return sorted(self._participants.values(), key=lambda p: p.participant_id)

    def advance_participants(self, round_index: int) -> None:
        """Move every participant's current_round forward."""
        with self._lock:
            for participant_id, participant in self._participants.items():
                self._participants[participant_id] = replace(participant, current_round=round_index)

    # Persistence

    def load(self, voters: list[Voter], participants: list[Participant]) -> None:
        """Replace the roster contents with restored records."""
        with self._lock:
            self._voters = {v.voter_id: v for v in voters}
            self._by_email = {v.email.lower(): v.voter_id for v in voters}
            self._participants = {p.participant_id: p for p in participants}
        logger.info(f"Roster restored: {len(voters)} voters, {len(participants)} participants")
