"""Client entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random

from blessed import Terminal

from ..common.constants import (
    DEFAULT_NAMES,
    DEFAULT_PORT,
    LATITUDE_HEADER,
    LONGITUDE_HEADER,
    SYSTEM_IDS,
)
from ..common.protocol import GeoPoint, RoomKind
from .party_client import PartyClient
from .terminal_ui import TerminalRenderer

DEFAULT_URL = os.environ.get("STAR_PARTY_URL", f"ws://localhost:{DEFAULT_PORT}")


def setup_logging(log_file: str | None, verbose: bool) -> None:
    """Log to a file only; the terminal belongs to the UI."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        root.addHandler(file_handler)
    else:
        root.addHandler(logging.NullHandler())

    logging.getLogger("websockets").setLevel(logging.WARNING)


def main() -> None:
    parser = argparse.ArgumentParser(description="Star Party client")
    parser.add_argument("--url", default=DEFAULT_URL, help="Server websocket URL")
    parser.add_argument(
        "--system", default=SYSTEM_IDS[0], help="Room to join (star system or world id)"
    )
    parser.add_argument(
        "--name", default=random.choice(DEFAULT_NAMES), help="Display name"
    )
    parser.add_argument("--globe", action="store_true", help="Join a globe room")
    parser.add_argument("--lat", type=float, help="Latitude to report (globe)")
    parser.add_argument("--lng", type=float, help="Longitude to report (globe)")
    parser.add_argument("--headless", action="store_true", help="No terminal UI")
    parser.add_argument("--duration", type=float, help="Seconds to stay connected")
    parser.add_argument("--log", help="Log file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(args.log, args.verbose)

    kind = RoomKind.GLOBE if args.globe else RoomKind.SPACE
    headers: dict[str, str] = {}
    if args.globe and args.lat is not None and args.lng is not None:
        headers = {LATITUDE_HEADER: str(args.lat), LONGITUDE_HEADER: str(args.lng)}

    term = None if args.headless else Terminal()
    ui = TerminalRenderer(term) if term is not None else None
    client = PartyClient(
        args.url, args.system, args.name, kind=kind, renderer=ui, headers=headers
    )
    if headers:
        client.position = GeoPoint(args.lat, args.lng)

    if ui is not None:

        @client.on_tick
        def render(c: PartyClient) -> None:
            ui.render(
                c.room, c.username, c.position, c.emitter.sent, c.emitter.dropped
            )

    async def run_client() -> None:
        if await client.connect():
            await client.run(args.duration)
        else:
            print("Failed to connect to server")

    try:
        if term is not None:
            with term.fullscreen(), term.hidden_cursor():
                asyncio.run(run_client())
        else:
            asyncio.run(run_client())
    except KeyboardInterrupt:
        pass
    finally:
        if ui is not None:
            ui.cleanup()


if __name__ == "__main__":
    main()
