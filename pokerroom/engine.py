"""Room engine - state transitions for a voting room.

Every transition mutates the room synchronously and returns the event that must be
fanned out, or None when the request was a no-op and nothing should be broadcast.
"""

import logging
from dataclasses import replace
from typing import Any, Optional

from .models import Participant, Room
from .protocol import (
    ParticipantAdded,
    ParticipantRemoved,
    TaskUpdated,
    VoteUpdated,
    VotesReset,
    VotesRevealed,
)

logger = logging.getLogger(__name__)


class RoomEngine:
    def add_participant(self, room: Room, participant: Participant, owner_client_id: Optional[str] = None) -> Optional[ParticipantAdded]:
        """Append a participant with no vote. Duplicate ids are ignored."""
        if room.find(participant.id) is not None:
            logger.debug("Duplicate participant %r in room %s ignored", participant.id, room.id)
            return None
        added = Participant(
            id=participant.id,
            name=participant.name,
            client_id=participant.client_id or owner_client_id,
        )
        room.participants.append(added)
        return ParticipantAdded(participant=replace(added))

    def remove_participant(self, room: Room, participant_id: Any) -> ParticipantRemoved:
        """Delete the participant if present; the removal is announced either way."""
        room.participants = [p for p in room.participants if p.id != participant_id]
        return ParticipantRemoved(participant_id=participant_id)

    def vote(self, room: Room, participant_id: Any, vote: str) -> Optional[VoteUpdated]:
        participant = room.find(participant_id)
        if participant is None:
            return None
        participant.vote = vote
        participant.has_voted = True
        return VoteUpdated(participant_id=participant_id, vote=vote, has_voted=True)

    def update_task(self, room: Room, task: str) -> TaskUpdated:
        room.task = task
        return TaskUpdated(task=task)

    def reveal_votes(self, room: Room, revealed: bool) -> VotesRevealed:
        room.votes_revealed = revealed
        return VotesRevealed(revealed=revealed)

    def reset_votes(self, room: Room) -> VotesReset:
        for p in room.participants:
            p.clear_vote()
        room.votes_revealed = False
        return VotesReset()

    def release_client(self, room: Room, client_id: str) -> list[ParticipantRemoved]:
        """Remove every participant owned by client_id, one removal event per id."""
        events = []
        for p in room.owned_by(client_id):
            events.append(self.remove_participant(room, p.id))
        return events
