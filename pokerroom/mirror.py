"""Client-side mirror of a room, kept in step with server events."""

import logging
from dataclasses import replace
from typing import Any, Optional

from .models import Participant, VoteResults, compute_results
from .protocol import (
    ParticipantAdded,
    ParticipantRemoved,
    RoomState,
    ServerEvent,
    TaskUpdated,
    Unrecognized,
    VoteUpdated,
    VotesReset,
    VotesRevealed,
)

logger = logging.getLogger(__name__)


class RoomMirror:
    """Local view of participants, task and reveal flag.

    Snapshots replace the view wholesale. Incremental events are last-write-wins,
    and a participantAdded for an id already present is ignored so duplicate
    delivery around a resync is harmless.
    """

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self.participants: list[Participant] = []
        self.task = ""
        self.votes_revealed = False
        self.my_participant: Optional[Participant] = None

    def apply(self, event: ServerEvent) -> None:
        if isinstance(event, RoomState):
            self.load_snapshot(event)
        elif isinstance(event, ParticipantAdded):
            self._add(event.participant)
        elif isinstance(event, ParticipantRemoved):
            self.participants = [p for p in self.participants if p.id != event.participant_id]
            if self.my_participant is not None and self.my_participant.id == event.participant_id:
                self.my_participant = None
        elif isinstance(event, VoteUpdated):
            participant = self.find(event.participant_id)
            if participant is not None:
                participant.vote = event.vote
                participant.has_voted = event.has_voted
        elif isinstance(event, TaskUpdated):
            self.task = event.task
        elif isinstance(event, VotesRevealed):
            self.votes_revealed = event.revealed
        elif isinstance(event, VotesReset):
            for p in self.participants:
                p.clear_vote()
            self.votes_revealed = False
        elif isinstance(event, Unrecognized):
            logger.debug("Ignoring unrecognized event %r", event.type)

    def load_snapshot(self, state: RoomState) -> None:
        self.participants = [replace(p) for p in state.participants]
        self.task = state.task
        self.votes_revealed = state.votes_revealed
        self.my_participant = next((p for p in self.participants if self.is_mine(p)), None)

    def _add(self, participant: Participant) -> None:
        if self.find(participant.id) is not None:
            return
        added = replace(participant)
        self.participants.append(added)
        if self.is_mine(added):
            self.my_participant = added

    def find(self, participant_id: Any) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def is_mine(self, participant: Participant) -> bool:
        return participant.client_id == self.client_id

    def others(self) -> list[Participant]:
        return [p for p in self.participants if not self.is_mine(p)]

    def everyone_voted(self) -> bool:
        return bool(self.participants) and all(p.has_voted for p in self.participants)

    def results(self) -> VoteResults:
        return compute_results(self.participants)

    def to_dict(self) -> dict:
        return {
            "participants": [p.to_dict() for p in self.participants],
            "task": self.task,
            "votesRevealed": self.votes_revealed,
        }
