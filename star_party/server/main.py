"""Server entry point."""

import argparse
import asyncio
import logging

from ..common.constants import DEFAULT_HOST, DEFAULT_PORT, OUTBOX_LIMIT
from .party_server import PartyServer


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def setup_logging(log_file: str, verbose: bool = False) -> None:
    """Configure logging to file and console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )
    # Suppress per-frame websockets debug logs
    logging.getLogger("websockets").setLevel(logging.WARNING)


def main() -> None:
    parser = argparse.ArgumentParser(description="Star Party presence server")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Host to bind to")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Port to bind to"
    )
    parser.add_argument(
        "--outbox-limit",
        type=positive_int,
        default=OUTBOX_LIMIT,
        help=f"Queued frames per connection before it is dropped (default: {OUTBOX_LIMIT})",
    )
    parser.add_argument(
        "--log-file", default="star_party_server.log", help="Log file path"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(args.log_file, args.verbose)

    server = PartyServer(args.host, args.port, outbox_limit=args.outbox_limit)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
