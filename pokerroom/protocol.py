"""Wire protocol shared by the room server and its clients.

Every frame is one JSON object tagged by its ``type`` field. Frames decode into a
closed set of message dataclasses; tags this version does not know decode to
:class:`Unrecognized` so older peers keep working when new kinds appear.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Union

from .models import DEFAULT_ROOM_ID, Participant


class ProtocolError(ValueError):
    """Raised for frames that cannot be parsed or lack required fields."""


class MessageType(str, Enum):
    # client -> server
    JOIN = "join"
    ADD_PARTICIPANT = "addParticipant"
    REMOVE_PARTICIPANT = "removeParticipant"
    VOTE = "vote"
    UPDATE_TASK = "updateTask"
    REVEAL_VOTES = "revealVotes"
    RESET_VOTES = "resetVotes"
    # server -> client
    ROOM_STATE = "roomState"
    PARTICIPANT_ADDED = "participantAdded"
    PARTICIPANT_REMOVED = "participantRemoved"
    VOTE_UPDATED = "voteUpdated"
    TASK_UPDATED = "taskUpdated"
    VOTES_REVEALED = "votesRevealed"
    VOTES_RESET = "votesReset"


def _require(d: dict, key: str) -> Any:
    if key not in d or d[key] is None:
        raise ProtocolError(f"missing field {key!r}")
    return d[key]


def _require_str(d: dict, key: str) -> str:
    value = _require(d, key)
    if not isinstance(value, str):
        raise ProtocolError(f"field {key!r} must be a string")
    return value


def _require_bool(d: dict, key: str) -> bool:
    value = _require(d, key)
    if not isinstance(value, bool):
        raise ProtocolError(f"field {key!r} must be a boolean")
    return value


def _require_id(d: dict, key: str) -> Union[str, int]:
    """Participant ids are opaque: any string or integer the caller picked."""
    value = _require(d, key)
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ProtocolError(f"field {key!r} must be a string or integer id")
    return value


def _require_dict(d: dict, key: str) -> dict:
    value = _require(d, key)
    if not isinstance(value, dict):
        raise ProtocolError(f"field {key!r} must be an object")
    return value


def _vote_value(d: dict) -> str:
    value = _require(d, "vote")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ProtocolError("field 'vote' must be a string")
    return value if isinstance(value, str) else str(value)


def _participant(d: dict) -> Participant:
    client_id = d.get("clientId")
    if client_id is not None and not isinstance(client_id, str):
        raise ProtocolError("field 'clientId' must be a string")
    vote = d.get("vote")
    return Participant(
        id=_require_id(d, "id"),
        name=_require_str(d, "name"),
        client_id=client_id,
        vote=vote if isinstance(vote, str) else None,
        has_voted=d.get("hasVoted") is True,
    )


# ---------------------------------------------------------------------------
# Client -> server


@dataclass
class Join:
    type: ClassVar[MessageType] = MessageType.JOIN

    client_id: str
    room_id: str = DEFAULT_ROOM_ID

    def to_dict(self) -> dict:
        return {"type": self.type.value, "roomId": self.room_id, "clientId": self.client_id}

    @classmethod
    def from_dict(cls, d: dict) -> "Join":
        room_id = d.get("roomId") or DEFAULT_ROOM_ID
        if not isinstance(room_id, str):
            raise ProtocolError("field 'roomId' must be a string")
        return cls(client_id=_require_str(d, "clientId"), room_id=room_id)


@dataclass
class AddParticipant:
    type: ClassVar[MessageType] = MessageType.ADD_PARTICIPANT

    participant: Participant

    def to_dict(self) -> dict:
        p = self.participant
        return {"type": self.type.value, "participant": {"id": p.id, "name": p.name, "clientId": p.client_id}}

    @classmethod
    def from_dict(cls, d: dict) -> "AddParticipant":
        return cls(participant=_participant(_require_dict(d, "participant")))


@dataclass
class RemoveParticipant:
    type: ClassVar[MessageType] = MessageType.REMOVE_PARTICIPANT

    participant_id: Union[str, int]

    def to_dict(self) -> dict:
        return {"type": self.type.value, "participantId": self.participant_id}

    @classmethod
    def from_dict(cls, d: dict) -> "RemoveParticipant":
        return cls(participant_id=_require_id(d, "participantId"))


@dataclass
class Vote:
    type: ClassVar[MessageType] = MessageType.VOTE

    participant_id: Union[str, int]
    vote: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "participantId": self.participant_id, "vote": self.vote}

    @classmethod
    def from_dict(cls, d: dict) -> "Vote":
        return cls(participant_id=_require_id(d, "participantId"), vote=_vote_value(d))


@dataclass
class UpdateTask:
    type: ClassVar[MessageType] = MessageType.UPDATE_TASK

    task: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "task": self.task}

    @classmethod
    def from_dict(cls, d: dict) -> "UpdateTask":
        return cls(task=_require_str(d, "task"))


@dataclass
class RevealVotes:
    type: ClassVar[MessageType] = MessageType.REVEAL_VOTES

    revealed: bool

    def to_dict(self) -> dict:
        return {"type": self.type.value, "revealed": self.revealed}

    @classmethod
    def from_dict(cls, d: dict) -> "RevealVotes":
        return cls(revealed=_require_bool(d, "revealed"))


@dataclass
class ResetVotes:
    type: ClassVar[MessageType] = MessageType.RESET_VOTES

    def to_dict(self) -> dict:
        return {"type": self.type.value}

    @classmethod
    def from_dict(cls, d: dict) -> "ResetVotes":
        return cls()


# ---------------------------------------------------------------------------
# Server -> client


@dataclass
class RoomState:
    type: ClassVar[MessageType] = MessageType.ROOM_STATE

    participants: list[Participant] = field(default_factory=list)
    task: str = ""
    votes_revealed: bool = False

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "room": {
                "participants": [p.to_dict() for p in self.participants],
                "task": self.task,
                "votesRevealed": self.votes_revealed,
            },
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RoomState":
        room = _require_dict(d, "room")
        participants = room.get("participants") or []
        if not isinstance(participants, list) or not all(isinstance(p, dict) for p in participants):
            raise ProtocolError("field 'participants' must be a list of objects")
        task = room.get("task") or ""
        if not isinstance(task, str):
            raise ProtocolError("field 'task' must be a string")
        return cls(
            participants=[_participant(p) for p in participants],
            task=task,
            votes_revealed=room.get("votesRevealed") is True,
        )


@dataclass
class ParticipantAdded:
    type: ClassVar[MessageType] = MessageType.PARTICIPANT_ADDED

    participant: Participant

    def to_dict(self) -> dict:
        return {"type": self.type.value, "participant": self.participant.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> "ParticipantAdded":
        return cls(participant=_participant(_require_dict(d, "participant")))


@dataclass
class ParticipantRemoved:
    type: ClassVar[MessageType] = MessageType.PARTICIPANT_REMOVED

    participant_id: Union[str, int]

    def to_dict(self) -> dict:
        return {"type": self.type.value, "participantId": self.participant_id}

    @classmethod
    def from_dict(cls, d: dict) -> "ParticipantRemoved":
        return cls(participant_id=_require_id(d, "participantId"))


@dataclass
class VoteUpdated:
    type: ClassVar[MessageType] = MessageType.VOTE_UPDATED

    participant_id: Union[str, int]
    vote: str
    has_voted: bool = True

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "participantId": self.participant_id,
            "vote": self.vote,
            "hasVoted": self.has_voted,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "VoteUpdated":
        return cls(
            participant_id=_require_id(d, "participantId"),
            vote=_vote_value(d),
            has_voted=d.get("hasVoted", True) is not False,
        )


@dataclass
class TaskUpdated:
    type: ClassVar[MessageType] = MessageType.TASK_UPDATED

    task: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "task": self.task}

    @classmethod
    def from_dict(cls, d: dict) -> "TaskUpdated":
        return cls(task=_require_str(d, "task"))


@dataclass
class VotesRevealed:
    type: ClassVar[MessageType] = MessageType.VOTES_REVEALED

    revealed: bool

    def to_dict(self) -> dict:
        return {"type": self.type.value, "revealed": self.revealed}

    @classmethod
    def from_dict(cls, d: dict) -> "VotesRevealed":
        return cls(revealed=_require_bool(d, "revealed"))


@dataclass
class VotesReset:
    type: ClassVar[MessageType] = MessageType.VOTES_RESET

    def to_dict(self) -> dict:
        return {"type": self.type.value}

    @classmethod
    def from_dict(cls, d: dict) -> "VotesReset":
        return cls()


@dataclass
class Unrecognized:
    """A well-formed frame whose ``type`` this version does not handle."""

    type: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return dict(self.data, type=self.type)


ClientMessage = Union[Join, AddParticipant, RemoveParticipant, Vote, UpdateTask, RevealVotes, ResetVotes, Unrecognized]
ServerEvent = Union[
    RoomState, ParticipantAdded, ParticipantRemoved, VoteUpdated, TaskUpdated, VotesRevealed, VotesReset, Unrecognized
]

CLIENT_MESSAGES = {
    cls.type.value: cls
    for cls in (Join, AddParticipant, RemoveParticipant, Vote, UpdateTask, RevealVotes, ResetVotes)
}
SERVER_EVENTS = {
    cls.type.value: cls
    for cls in (RoomState, ParticipantAdded, ParticipantRemoved, VoteUpdated, TaskUpdated, VotesRevealed, VotesReset)
}


def _decode(raw: Union[str, bytes, dict], kinds: dict) -> Any:
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise ProtocolError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("frame must be a JSON object")
    kind = data.get("type")
    if not isinstance(kind, str) or not kind:
        raise ProtocolError("missing field 'type'")
    cls = kinds.get(kind)
    if cls is None:
        return Unrecognized(type=kind, data=data)
    return cls.from_dict(data)


def decode_client_message(raw: Union[str, bytes, dict]) -> ClientMessage:
    """Decode a client -> server frame. Raises ProtocolError when malformed."""
    return _decode(raw, CLIENT_MESSAGES)


def decode_server_event(raw: Union[str, bytes, dict]) -> ServerEvent:
    """Decode a server -> client frame. Raises ProtocolError when malformed."""
    return _decode(raw, SERVER_EVENTS)


def encode_message(message: Any) -> str:
    """Serialize any protocol message to a single JSON text frame."""
    return json.dumps(message.to_dict(), separators=(",", ":"))


def room_state_for(room) -> RoomState:
    """Full snapshot of a room, sent only to a joining connection."""
    return RoomState(
        participants=[replace(p) for p in room.participants],
        task=room.task,
        votes_revealed=room.votes_revealed,
    )
