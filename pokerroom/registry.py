"""Room registry: maps a room id to its live Room."""

import logging
from typing import Optional

from .models import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns every live room. One instance per server application.

    Not thread-safe: all calls are expected from the event loop that serves the
    room's connections.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(id=room_id)
            self._rooms[room_id] = room
            logger.info("Room created: %s", room_id)
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def remove(self, room_id: str) -> Optional[Room]:
        room = self._rooms.pop(room_id, None)
        if room is not None:
            logger.info("Room deleted (empty): %s", room_id)
        return room

    def room_ids(self) -> list[str]:
        return list(self._rooms)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms
