"""Per-socket lifecycle state machine and outbound queue."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from websockets.exceptions import ConnectionClosed

from ..common.constants import OUTBOX_LIMIT
from ..common.errors import DeliveryFailure, InvalidTransition

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    CONNECTING = "connecting"
    IDENTIFYING = "identifying"
    ACTIVE = "active"
    CLOSED = "closed"


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.IDENTIFYING, ConnectionState.ACTIVE, ConnectionState.CLOSED}
    ),
    ConnectionState.IDENTIFYING: frozenset(
        {ConnectionState.ACTIVE, ConnectionState.CLOSED}
    ),
    ConnectionState.ACTIVE: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}

FailureCallback = Callable[["Connection"], None]


class Connection:
    """One client socket from accept to close.

    Outbound frames go through a bounded queue drained by ``run_writer``,
    so broadcasting to this connection never waits on its socket. A full
    queue or a failed send counts as a delivery failure; the owner learns
    about the latter through ``on_failure``.
    """

    def __init__(
        self,
        connection_id: str,
        websocket: Any = None,
        outbox_limit: int = OUTBOX_LIMIT,
        on_failure: FailureCallback | None = None,
    ) -> None:
        self.id = connection_id
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        self.outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=outbox_limit)
        self.on_failure = on_failure

    def __repr__(self) -> str:
        return f"Connection({self.id!r}, {self.state.value})"

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def transition(self, new_state: ConnectionState) -> None:
        """Move to ``new_state``.

        Raises:
            InvalidTransition: the move is not allowed from the current
                state. CLOSED is terminal.
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"{self.id}: {self.state.value} -> {new_state.value} not allowed"
            )
        logger.debug(f"{self.id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def close(self) -> bool:
        """Enter CLOSED and discard queued frames.

        Returns:
            True on the first call, False if the connection was already closed.
        """
        if self.is_closed:
            return False
        self.transition(ConnectionState.CLOSED)
        while not self.outbox.empty():
            self.outbox.get_nowait()
        return True

    def enqueue(self, frame: str) -> None:
        """Queue a frame for delivery without waiting.

        Raises:
            DeliveryFailure: the connection is closed or its queue is full.
        """
        if self.is_closed:
            raise DeliveryFailure(self.id, "connection closed")
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            raise DeliveryFailure(self.id, "outbox full") from None

    async def run_writer(self) -> None:
        """Send queued frames until the connection closes or a send fails."""
        while True:
            frame = await self.outbox.get()
            if self.is_closed:
                return
            try:
                await self.websocket.send(frame)
            except (ConnectionClosed, OSError) as e:
                logger.info(f"{self.id}: send failed ({type(e).__name__}: {e})")
                if self.on_failure is not None:
                    self.on_failure(self)
                return
