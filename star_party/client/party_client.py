"""Presence client: connects to a room, mirrors peers, publishes position."""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
import uuid
from typing import Any, Callable, Coroutine

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..common.constants import CONNECTION_ID_PARAM, TICK_INTERVAL
from ..common.errors import MalformedMessage
from ..common.protocol import (
    Identify,
    Join,
    Leave,
    RoomKind,
    State,
    Sync,
    encode_message,
    parse_server_message,
)
from .emitter import LocalUpdateEmitter
from .motion import OrbitPath
from .reconciler import Reconciler, RemoteEntityProxy, Renderer

logger = logging.getLogger(__name__)


# Type aliases for event callbacks
ProxyCallback = Callable[[RemoteEntityProxy], Coroutine[Any, Any, None]]
TickCallback = Callable[["PartyClient"], None]


class PartyClient:
    """Client for one room.

    Example usage:
        async def main():
            client = PartyClient("ws://localhost:1999", "sol-system", "Alice")

            @client.on_join
            async def greet(proxy):
                print(f"{proxy.username} arrived")

            if await client.connect():
                await client.run()
    """

    def __init__(
        self,
        url: str,
        room: str,
        username: str,
        kind: RoomKind = RoomKind.SPACE,
        renderer: Renderer | None = None,
        client_id: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.room = room
        self.username = username
        self.kind = kind
        # Chosen locally so the client can recognise itself in server events
        self.client_id = client_id or uuid.uuid4().hex
        self.headers = headers or {}
        self.reconciler = Reconciler(renderer, local_id=self.client_id)
        self.emitter = LocalUpdateEmitter()
        self.orbit = OrbitPath()
        self.position: State | None = None
        self.running = False
        self._websocket: ClientConnection | None = None

        # Event callbacks
        self._on_join_callbacks: list[ProxyCallback] = []
        self._on_leave_callbacks: list[ProxyCallback] = []
        self._on_tick_callbacks: list[TickCallback] = []

    # Event decorator methods

    def on_join(self, callback: ProxyCallback) -> ProxyCallback:
        """Decorator for peers appearing (from sync or join)."""
        self._on_join_callbacks.append(callback)
        return callback

    def on_leave(self, callback: ProxyCallback) -> ProxyCallback:
        """Decorator for peers leaving."""
        self._on_leave_callbacks.append(callback)
        return callback

    def on_tick(self, callback: TickCallback) -> TickCallback:
        """Decorator for a plain function run after every tick (rendering)."""
        self._on_tick_callbacks.append(callback)
        return callback

    # Connection methods

    def room_url(self) -> str:
        room = urllib.parse.quote(self.room, safe="")
        query = urllib.parse.urlencode({CONNECTION_ID_PARAM: self.client_id})
        return f"{self.url.rstrip('/')}/{self.kind.value}/{room}?{query}"

    async def connect(self) -> bool:
        """Open the socket and identify.

        Returns:
            True if connection successful, False otherwise.
        """
        try:
            self._websocket = await connect(
                self.room_url(), additional_headers=self.headers
            )
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect: {e}")
            return False

        self.emitter.websocket = self._websocket
        if self.kind is RoomKind.SPACE:
            try:
                await self._websocket.send(encode_message(Identify(self.username)))
            except ConnectionClosed as e:
                logger.error(f"Connection closed during identify: {e}")
                return False

        logger.info(f"Connected to {self.room_url()} as {self.username}")
        return True

    async def disconnect(self) -> None:
        """Close the socket and drop every proxy."""
        self.running = False
        self.emitter.close()
        if self._websocket is not None:
            await self._websocket.close()
        self.reconciler.clear()

    async def run(self, duration: float | None = None) -> None:
        """Run receive, send and tick loops.

        Blocks until the server goes away, ``stop()`` is called, or
        ``duration`` seconds have passed.
        """
        self.running = True
        loop = asyncio.get_running_loop()
        deadline = None if duration is None else loop.time() + duration

        message_receiver_task = asyncio.create_task(self._receive_messages())
        position_sender_task = asyncio.create_task(self.emitter.run())
        tick_task = asyncio.create_task(self._tick_loop())
        try:
            while self.running:
                if deadline is not None and loop.time() >= deadline:
                    break
                await asyncio.sleep(0.05)
        finally:
            self.running = False
            for task in (message_receiver_task, position_sender_task, tick_task):
                task.cancel()
            for task in (message_receiver_task, position_sender_task, tick_task):
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await self.disconnect()

    def stop(self) -> None:
        self.running = False

    # Message handling

    async def _receive_messages(self) -> None:
        """Receive and apply messages from the server."""
        if self._websocket is None:
            return
        try:
            async for frame in self._websocket:
                await self.handle_frame(frame)
        except ConnectionClosed:
            pass
        finally:
            logger.info("Server connection closed")
            self.running = False

    async def handle_frame(self, frame: str | bytes) -> None:
        """Apply one frame from the server to the local mirror."""
        try:
            message = parse_server_message(frame, self.kind)
        except MalformedMessage as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        result = self.reconciler.apply(message)
        if isinstance(message, Sync):
            for proxy in result:
                await self._fire(self._on_join_callbacks, proxy)
        elif isinstance(message, Join) and result is not None:
            await self._fire(self._on_join_callbacks, result)
        elif isinstance(message, Leave) and result is not None:
            await self._fire(self._on_leave_callbacks, result)

    async def _fire(
        self, callbacks: list[ProxyCallback], proxy: RemoteEntityProxy
    ) -> None:
        for callback in callbacks:
            try:
                await callback(proxy)
            except Exception as e:
                logger.error(f"Error in {callback.__name__} callback: {e}")

    async def _tick_loop(self) -> None:
        """Advance the local player and offer its position once per tick."""
        while self.running:
            if self.kind is RoomKind.SPACE:
                self.position = self.orbit.advance()
                self.emitter.tick(self.position)
            for callback in self._on_tick_callbacks:
                callback(self)
            await asyncio.sleep(TICK_INTERVAL)
