"""Entry point for the planning poker room server."""

import argparse
import logging
import os
import sys

from .server import HOST, PORT, run

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Planning poker room server")
    parser.add_argument("--host", default=HOST, help="Host/IP to bind")
    parser.add_argument("--port", type=int, default=PORT, help="HTTP/WebSocket port")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity",
    )
    args = parser.parse_args()
    setup_logging(args.log_level)
    run(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
