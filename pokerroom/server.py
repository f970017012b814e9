"""HTTP + WebSocket server for the planning poker room."""

import logging
import os
from datetime import datetime, timezone

from aiohttp import WSMsgType, web

from .broadcast import SEND_QUEUE_SIZE, SEND_TIMEOUT_SECONDS, Broadcaster, Subscriber
from .registry import RoomRegistry
from .session import RoomSession

logger = logging.getLogger(__name__)

HOST = os.environ.get("POKERROOM_HOST", "0.0.0.0")
PORT = int(os.environ.get("POKERROOM_PORT") or os.environ.get("PORT") or 3000)
HEARTBEAT_SECONDS = float(os.environ.get("POKERROOM_HEARTBEAT", 30))
SEND_TIMEOUT = float(os.environ.get("POKERROOM_SEND_TIMEOUT", SEND_TIMEOUT_SECONDS))
SEND_QUEUE = int(os.environ.get("POKERROOM_SEND_QUEUE", SEND_QUEUE_SIZE))

REGISTRY_KEY = web.AppKey("registry", RoomRegistry)
BROADCASTER_KEY = web.AppKey("broadcaster", Broadcaster)


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=HEARTBEAT_SECONDS)
    await ws.prepare(request)

    subscriber = Subscriber(ws, queue_size=SEND_QUEUE, send_timeout=SEND_TIMEOUT)
    subscriber.start()
    session = RoomSession(subscriber, request.app[REGISTRY_KEY], request.app[BROADCASTER_KEY])
    logger.info("New client connected: %s", request.remote)

    try:
        async for msg in ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                session.handle_text(msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.warning("WebSocket error for client %s: %s", session.client_id, ws.exception())
                break
    finally:
        session.close()
        await subscriber.stop()
        await ws.close()
        logger.info("Client disconnected: %s", session.client_id)

    return ws


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "rooms": len(request.app[REGISTRY_KEY]),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def handle_room_info(request: web.Request) -> web.Response:
    room = request.app[REGISTRY_KEY].get(request.match_info["room_id"])
    if room is None:
        return web.json_response({"error": "Room not found"}, status=404)
    return web.json_response(room.summary())


def create_app(registry: RoomRegistry | None = None) -> web.Application:
    app = web.Application()
    app[REGISTRY_KEY] = registry if registry is not None else RoomRegistry()
    app[BROADCASTER_KEY] = Broadcaster()
    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/api/rooms/{room_id}", handle_room_info)
    return app


def run(host: str = HOST, port: int = PORT):
    app = create_app()
    logger.info("Server starting on %s:%d", host, port)
    web.run_app(app, host=host, port=port)
