"""Fan-out of room events to subscribed connections."""

import asyncio
import contextlib
import logging
from typing import Any, Optional

from .models import Room
from .protocol import encode_message

logger = logging.getLogger(__name__)

SEND_QUEUE_SIZE = 256
SEND_TIMEOUT_SECONDS = 5.0


class Subscriber:
    """A live connection in a room.

    Frames are queued and written by a dedicated task, so delivery order per
    connection matches emission order and a slow peer never blocks the caller.
    A peer that overflows its queue or times out on a send is dropped.
    """

    def __init__(self, ws, *, queue_size: int = SEND_QUEUE_SIZE, send_timeout: float = SEND_TIMEOUT_SECONDS) -> None:
        self.ws = ws
        self.client_id: Optional[str] = None
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._send_timeout = send_timeout
        self._dropped = False
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._dropped or self.ws.closed

    def start(self) -> None:
        self._writer = asyncio.create_task(self._send_loop())

    def enqueue(self, frame: str) -> bool:
        """Queue a frame without blocking. Returns False if the connection is gone."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Send queue full for client %s, dropping connection", self.client_id)
            self.drop()
            return False
        return True

    def drop(self) -> None:
        """Stop delivering and close the underlying connection."""
        if self._dropped:
            return
        self._dropped = True
        if not self.ws.closed:
            self._closer = asyncio.ensure_future(self.ws.close())

    async def flush(self) -> None:
        """Wait until every queued frame has been written or discarded."""
        await self._queue.join()

    async def stop(self) -> None:
        self._dropped = True
        if self._writer is not None:
            self._writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None
        if self._closer is not None:
            await asyncio.gather(self._closer, return_exceptions=True)
            self._closer = None

    async def _send_loop(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                if self.closed:
                    continue
                await asyncio.wait_for(self.ws.send_str(frame), self._send_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Send to client %s timed out after %.1fs, dropping connection",
                    self.client_id, self._send_timeout,
                )
                self.drop()
            except (ConnectionError, RuntimeError) as e:
                logger.info("Send to client %s failed: %s", self.client_id, e)
                self.drop()
            except Exception:
                logger.exception("Unexpected error sending to client %s, dropping connection", self.client_id)
                self.drop()
            finally:
                self._queue.task_done()


class Broadcaster:
    def send(self, subscriber: Subscriber, event: Any) -> bool:
        """Deliver an event to a single connection."""
        return subscriber.enqueue(encode_message(event))

    def broadcast(self, room: Room, event: Any, exclude: Optional[Subscriber] = None) -> int:
        """Deliver an event to every open subscriber of the room except `exclude`.

        Closed connections are skipped silently. Returns the number of subscribers
        the event was queued for.
        """
        frame = encode_message(event)
        delivered = 0
        for sub in room.open_subscribers():
            if sub is exclude:
                continue
            if sub.enqueue(frame):
                delivered += 1
        logger.debug("Broadcast %s to %d subscriber(s) in room %s", event.type.value, delivered, room.id)
        return delivered
