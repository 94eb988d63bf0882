"""Outbound position updates, one sample per render tick."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State as TransportState

from ..common.protocol import ClientMove, State, encode_message

logger = logging.getLogger(__name__)


class LocalUpdateEmitter:
    """Pushes the local position to the server without ever blocking a tick.

    Only the latest sample is kept: a tick that finds the previous sample
    still unsent replaces it, and a tick while the socket is not open is
    dropped. Position is a value, so the next tick always supersedes.
    """

    def __init__(self, websocket: Any = None) -> None:
        self.websocket = websocket
        self.sent = 0
        self.dropped = 0
        self._pending: State | None = None
        self._wakeup = asyncio.Event()
        self._closed = False

    def is_ready(self) -> bool:
        return (
            not self._closed
            and self.websocket is not None
            and self.websocket.state is TransportState.OPEN
        )

    def tick(self, position: State) -> bool:
        """Offer this tick's position.

        Returns:
            True if the sample will be sent (unless a newer one replaces it).
        """
        if not self.is_ready():
            self.dropped += 1
            return False
        if self._pending is not None:
            self.dropped += 1
        self._pending = position
        self._wakeup.set()
        return True

    async def run(self) -> None:
        """Send pending samples until closed or the socket fails."""
        while not self._closed:
            await self._wakeup.wait()
            self._wakeup.clear()
            position, self._pending = self._pending, None
            if position is None:
                continue
            try:
                await self.websocket.send(encode_message(ClientMove(position)))
            except (ConnectionClosed, OSError) as e:
                logger.info(f"Position updates stopped: {type(e).__name__}: {e}")
                self._closed = True
                return
            self.sent += 1

    def close(self) -> None:
        self._closed = True
        self._pending = None
        self._wakeup.set()
