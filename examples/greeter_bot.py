#!/usr/bin/env python3
"""Example headless client that logs who comes and goes.

The bot:
- Orbits the star like every other player
- Logs a greeting for each peer it sees, at most once every 10 seconds
- Logs a farewell when a peer leaves

Usage:
    python examples/greeter_bot.py [--url URL] [--system SYSTEM] [--name NAME]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time

from star_party.client.party_client import PartyClient
from star_party.client.reconciler import RemoteEntityProxy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("greeter_bot")
logging.getLogger("websockets").setLevel(logging.WARNING)

# Greeting cooldown per peer (seconds)
GREETING_COOLDOWN = 10.0


async def main() -> None:
    parser = argparse.ArgumentParser(description="Greeter bot for star-party")
    parser.add_argument("--url", default="ws://localhost:1999", help="Server URL")
    parser.add_argument("--system", default="sol-system", help="Room to join")
    parser.add_argument("--name", default="GreeterBot", help="Bot display name")
    args = parser.parse_args()

    # Track last greeting time for each peer
    last_greeted: dict[str, float] = {}

    bot = PartyClient(args.url, args.system, args.name)

    @bot.on_join
    async def on_join(proxy: RemoteEntityProxy) -> None:
        now = time.time()
        last_time = last_greeted.get(proxy.id, 0)
        if now - last_time >= GREETING_COOLDOWN:
            last_greeted[proxy.id] = now
            logger.info(f"Hello, {proxy.username or proxy.id}!")

    @bot.on_leave
    async def on_leave(proxy: RemoteEntityProxy) -> None:
        logger.info(f"Goodbye, {proxy.username or proxy.id}")

    logger.info(f"Connecting to {args.url} as {args.name}...")
    if not await bot.connect():
        logger.error("Failed to connect to server")
        return

    await bot.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
