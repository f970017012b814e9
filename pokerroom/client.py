"""WebSocket client that keeps a room mirror in sync, with reconnect and resync."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from .identity import ClientIdentity, identity_path, load_identity, save_identity
from .mirror import RoomMirror
from .models import CARD_VALUES, DEFAULT_ROOM_ID, Participant
from .protocol import (
    AddParticipant,
    Join,
    ParticipantAdded,
    ProtocolError,
    RemoveParticipant,
    ResetVotes,
    RevealVotes,
    RoomState,
    ServerEvent,
    UpdateTask,
    Vote,
    decode_server_event,
    encode_message,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[ServerEvent], Awaitable[None] | None]
StatusCallback = Callable[["ConnectionStatus"], None]


class ConnectionStatus(str, Enum):
    Connecting = "connecting"
    Connected = "connected"
    Disconnected = "disconnected"
    Failed = "failed"
    Closed = "closed"


class ReconnectExhaustedError(ConnectionError):
    """The server stayed unreachable for every allowed reconnect attempt."""


@dataclass
class ReconnectPolicy:
    """Exponential backoff: attempt n waits base * factor**n, capped at max_delay."""

    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 10.0
    max_attempts: int = 5
    attempts: int = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None once attempts are exhausted."""
        if self.attempts >= self.max_attempts:
            return None
        self.attempts += 1
        return min(self.base_delay * self.factor ** self.attempts, self.max_delay)

    def reset(self) -> None:
        self.attempts = 0


class PokerClient:
    """Connects to a room, mirrors its state and re-joins after connection loss."""

    def __init__(
        self,
        url: str,
        room_id: str = DEFAULT_ROOM_ID,
        identity: Optional[ClientIdentity] = None,
        *,
        identity_file: Optional[Path] = None,
        policy: Optional[ReconnectPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        on_event: Optional[EventCallback] = None,
        on_status: Optional[StatusCallback] = None,
        auto_register: bool = True,
        heartbeat: Optional[float] = 30.0,
    ) -> None:
        if identity is None:
            identity_file = identity_file or identity_path()
            identity = load_identity(identity_file)
        self.url = url
        self.room_id = room_id
        self.identity = identity
        self.policy = policy or ReconnectPolicy()
        self.mirror = RoomMirror(identity.client_id)
        self.status = ConnectionStatus.Disconnected
        self._connections = 0
        self._identity_file = identity_file
        self._session = session
        self._owns_session = session is None
        self._on_event = on_event
        self._on_status = on_status
        self._auto_register = auto_register
        self._heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._me: Optional[Participant] = None
        self._pending_add = False
        self._synced = asyncio.Event()
        self._stop = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def reconnects(self) -> int:
        """Number of successful connections after the first one."""
        return max(0, self._connections - 1)

    @property
    def participant(self) -> Optional[Participant]:
        """The participant this client registered, if any."""
        return self._me

    async def run(self) -> None:
        """Stay connected until close() is called.

        Raises ReconnectExhaustedError when the server cannot be reached within the
        reconnect policy; the client does not keep retrying after that.
        """
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            while not self._stop.is_set():
                try:
                    await self._connect_once()
                except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                    logger.warning("Connection to %s failed: %s", self.url, e)
                if self._stop.is_set():
                    break
                self._set_status(ConnectionStatus.Disconnected)
                delay = self.policy.next_delay()
                if delay is None:
                    self._set_status(ConnectionStatus.Failed)
                    logger.error("Max reconnection attempts reached")
                    raise ReconnectExhaustedError(
                        f"Lost connection to {self.url} after {self.policy.max_attempts} reconnect attempts"
                    )
                logger.info(
                    "Attempting to reconnect in %.1fs (attempt %d/%d)",
                    delay, self.policy.attempts, self.policy.max_attempts,
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
            if self.status != ConnectionStatus.Failed:
                self._set_status(ConnectionStatus.Closed)

    async def close(self) -> None:
        self._stop.set()
        if self._ws is not None:
            await self._ws.close()

    async def wait_synced(self, timeout: Optional[float] = None) -> None:
        """Wait until the current connection has received its room snapshot."""
        await asyncio.wait_for(self._synced.wait(), timeout)

    async def _connect_once(self) -> None:
        self._set_status(ConnectionStatus.Connecting)
        async with self._session.ws_connect(self.url, heartbeat=self._heartbeat) as ws:
            self._ws = ws
            self.policy.reset()
            self._connections += 1
            self._set_status(ConnectionStatus.Connected)
            logger.info("Connected to %s", self.url)
            try:
                if self._stop.is_set():
                    return
                await ws.send_str(encode_message(Join(client_id=self.identity.client_id, room_id=self.room_id)))
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        await self._handle_frame(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("WebSocket error: %s", ws.exception())
                        break
            finally:
                self._ws = None
                self._synced.clear()
                self._pending_add = False
                logger.info("Disconnected from %s", self.url)

    async def _handle_frame(self, raw: str) -> None:
        try:
            event = decode_server_event(raw)
        except ProtocolError as e:
            logger.warning("Malformed event from server ignored: %s", e)
            return
        self.mirror.apply(event)
        if isinstance(event, RoomState):
            self._synced.set()
            await self._ensure_registered()
        elif isinstance(event, ParticipantAdded) and self._me is not None and event.participant.id == self._me.id:
            self._pending_add = False
        if self._on_event is not None:
            try:
                result = self._on_event(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event callback failed for %s", event.type)

    async def _ensure_registered(self) -> None:
        """After a snapshot, put our participant back if the server no longer has it."""
        if self._me is None:
            if not (self._auto_register and self.identity.user_name):
                return
            self._me = self._new_participant(self.identity.user_name)
        if self.mirror.find(self._me.id) is None and not self._pending_add:
            await self._send_add()

    def _new_participant(self, name: str) -> Participant:
        return Participant(id=str(uuid.uuid4()), name=name, client_id=self.identity.client_id)

    async def _send_add(self) -> None:
        self._pending_add = await self.send(AddParticipant(participant=self._me))

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    async def send(self, message: Any) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            logger.error("WebSocket is not connected, dropping %s", message.type.value)
            return False
        await ws.send_str(encode_message(message))
        return True

    async def register(self, name: str) -> Participant:
        """Join the vote as `name`; the name is remembered for the next start."""
        self._me = self._new_participant(name)
        self.identity.user_name = name
        if self._identity_file is not None:
            save_identity(self.identity, self._identity_file)
        if self.connected and not self._pending_add:
            await self._send_add()
        return self._me

    async def vote(self, value: str) -> bool:
        me = self.mirror.my_participant or self._me
        if me is None:
            logger.warning("Cannot vote before registering a participant")
            return False
        if value not in CARD_VALUES:
            logger.debug("Free-form vote %r", value)
        return await self.send(Vote(participant_id=me.id, vote=value))

    async def remove_participant(self, participant_id: Any) -> bool:
        if self._me is not None and self._me.id == participant_id:
            self._me = None
        return await self.send(RemoveParticipant(participant_id=participant_id))

    async def update_task(self, task: str) -> bool:
        # The server does not echo task edits back to their author
        self.mirror.task = task
        return await self.send(UpdateTask(task=task))

    async def reveal(self, revealed: Optional[bool] = None) -> bool:
        """Set the reveal flag; with no argument, toggle it."""
        if revealed is None:
            revealed = not self.mirror.votes_revealed
        self.mirror.votes_revealed = revealed
        return await self.send(RevealVotes(revealed=revealed))

    async def reset_votes(self) -> bool:
        return await self.send(ResetVotes())
