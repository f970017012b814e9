"""Per-connection protocol state machine."""

import logging
from enum import Enum
from typing import Optional

from .broadcast import Broadcaster, Subscriber
from .engine import RoomEngine
from .models import Room
from .protocol import (
    AddParticipant,
    ClientMessage,
    Join,
    ProtocolError,
    RemoveParticipant,
    ResetVotes,
    RevealVotes,
    Unrecognized,
    UpdateTask,
    Vote,
    decode_client_message,
    room_state_for,
)
from .registry import RoomRegistry

logger = logging.getLogger(__name__)

ENGINE = RoomEngine()


class SessionState(str, Enum):
    Unjoined = "unjoined"
    Joined = "joined"
    Closed = "closed"


class RoomSession:
    """Binds one connection to a room and applies its events.

    Handlers run on the event loop and never await between mutating a room and
    queueing the resulting broadcast, so each event is applied atomically with
    respect to every other connection in the room.
    """

    def __init__(
        self,
        subscriber: Subscriber,
        registry: RoomRegistry,
        broadcaster: Optional[Broadcaster] = None,
        engine: Optional[RoomEngine] = None,
    ) -> None:
        self.subscriber = subscriber
        self.registry = registry
        self.broadcaster = broadcaster or Broadcaster()
        self.engine = engine or ENGINE
        self.state = SessionState.Unjoined
        self.room: Optional[Room] = None

    @property
    def client_id(self) -> Optional[str]:
        return self.subscriber.client_id

    def handle_text(self, raw) -> None:
        """Decode and apply one inbound frame. Malformed frames are logged and dropped."""
        try:
            message = decode_client_message(raw)
        except ProtocolError as e:
            logger.warning("Malformed message from client %s ignored: %s", self.client_id, e)
            return
        self.handle_message(message)

    def handle_message(self, message: ClientMessage) -> None:
        if self.state == SessionState.Closed:
            return
        if isinstance(message, Unrecognized):
            logger.debug("Unrecognized message type %r from client %s", message.type, self.client_id)
            return
        if isinstance(message, Join):
            self._join(message)
            return
        if self.state != SessionState.Joined:
            logger.debug("Ignoring %s before join", message.type.value)
            return

        room = self.room
        if isinstance(message, AddParticipant):
            event = self.engine.add_participant(room, message.participant, self.client_id)
            if event:
                self.broadcaster.broadcast(room, event)
        elif isinstance(message, RemoveParticipant):
            self.broadcaster.broadcast(room, self.engine.remove_participant(room, message.participant_id))
        elif isinstance(message, Vote):
            event = self.engine.vote(room, message.participant_id, message.vote)
            if event:
                self.broadcaster.broadcast(room, event)
        elif isinstance(message, UpdateTask):
            # The sender already shows the text it typed
            self.broadcaster.broadcast(room, self.engine.update_task(room, message.task), exclude=self.subscriber)
        elif isinstance(message, RevealVotes):
            self.broadcaster.broadcast(room, self.engine.reveal_votes(room, message.revealed), exclude=self.subscriber)
        elif isinstance(message, ResetVotes):
            self.broadcaster.broadcast(room, self.engine.reset_votes(room))

    def _join(self, message: Join) -> None:
        if self.room is not None and self.room.id != message.room_id:
            self._leave_room()
        elif self.room is not None and self.client_id != message.client_id:
            self._release(self.room, self.client_id)
        self.subscriber.client_id = message.client_id
        room = self.registry.get_or_create(message.room_id)
        room.subscribers.add(self.subscriber)
        self.room = room
        self.state = SessionState.Joined
        self.broadcaster.send(self.subscriber, room_state_for(room))
        logger.info("Client %s joined room %s", message.client_id, room.id)

    def close(self) -> None:
        """Connection is gone: release its participants and drop an empty room."""
        if self.state == SessionState.Closed:
            return
        self.state = SessionState.Closed
        self._leave_room()

    def _leave_room(self) -> None:
        room = self.room
        if room is None:
            return
        self.room = None
        room.subscribers.discard(self.subscriber)
        self._release(room, self.client_id)
        logger.info("Client %s left room %s", self.client_id, room.id)
        if not room.subscribers and self.registry.get(room.id) is room:
            self.registry.remove(room.id)

    def _release(self, room: Room, client_id: Optional[str]) -> None:
        """Remove the participants of client_id unless another connection still holds that identity."""
        if not client_id:
            return
        if any(s.client_id == client_id for s in room.open_subscribers() if s is not self.subscriber):
            return
        for event in self.engine.release_client(room, client_id):
            self.broadcaster.broadcast(room, event)
