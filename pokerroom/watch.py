"""Headless room watcher: joins a room and logs every change to its state."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .client import ConnectionStatus, PokerClient, ReconnectExhaustedError
from .identity import identity_path
from .main import setup_logging
from .models import DEFAULT_ROOM_ID
from .protocol import ServerEvent

logger = logging.getLogger("pokerroom.watch")


def describe(client: PokerClient) -> str:
    mirror = client.mirror
    lines = [f"Task: {mirror.task or '-'}"]
    for p in mirror.participants:
        if not p.has_voted:
            status = "thinking..."
        elif mirror.votes_revealed:
            status = p.vote
        else:
            status = "voted"
        me = " (you)" if mirror.is_mine(p) else ""
        lines.append(f"  {p.name}{me}: {status}")
    if mirror.votes_revealed:
        results = mirror.results()
        if results.has_data:
            consensus = "yes" if results.consensus else "no"
            lines.append(f"Mean {results.mean:.1f}, median {results.median:g}, consensus: {consensus}")
        else:
            lines.append("No votes to count")
    return "\n".join(lines)


async def watch(args: argparse.Namespace) -> int:
    def on_status(status: ConnectionStatus) -> None:
        logger.info("Connection status: %s", status.value)

    def on_event(event: ServerEvent) -> None:
        kind = getattr(event.type, "value", event.type)
        logger.info("%s\n%s", kind, describe(client))

    client = PokerClient(
        args.url,
        args.room,
        identity_file=args.identity_file,
        on_event=on_event,
        on_status=on_status,
    )
    if args.name:
        await client.register(args.name)
    try:
        await client.run()
    except ReconnectExhaustedError as e:
        logger.error("%s. Please restart the watcher.", e)
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch a planning poker room")
    parser.add_argument("url", help="WebSocket URL of the server, e.g. ws://localhost:3000/ws")
    parser.add_argument("--room", default=DEFAULT_ROOM_ID, help="Room id to join")
    parser.add_argument("--name", help="Join the vote under this name (remembered for next time)")
    parser.add_argument("--identity-file", type=Path, default=identity_path(), help="Where the client identity is stored")
    parser.add_argument("--log-level", type=str.upper, default="INFO", help="Logging verbosity")
    args = parser.parse_args()
    setup_logging(args.log_level)
    try:
        sys.exit(asyncio.run(watch(args)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
