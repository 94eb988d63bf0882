"""Websocket server routing connections into rooms."""

from __future__ import annotations

import asyncio
import logging
import threading
import urllib.parse
from typing import Any

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from ..common.constants import (
    CLOSE_POLICY_VIOLATION,
    CONNECTION_ID_PARAM,
    LATITUDE_HEADER,
    LONGITUDE_HEADER,
    OUTBOX_LIMIT,
)
from ..common.errors import (
    DuplicateConnection,
    MalformedMessage,
    MissingIdentity,
    UnknownConnection,
)
from ..common.protocol import (
    ClientMove,
    GeoPoint,
    Identify,
    RoomKind,
    deserialize_position,
    parse_client_message,
)
from .broadcast import BroadcastCoordinator
from .connection import Connection, ConnectionState
from .room import Room

logger = logging.getLogger(__name__)


def parse_route(path: str) -> tuple[RoomKind, str, str | None] | None:
    """Split a request path into room kind, room name and requested id.

    ``/party/sol-system?_pk=abc`` -> ``(RoomKind.SPACE, "sol-system", "abc")``.
    Returns None for paths that do not name a room.
    """
    parts = urllib.parse.urlsplit(path)
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) != 2:
        return None
    prefix, name = segments
    try:
        kind = RoomKind(prefix)
    except ValueError:
        return None
    name = urllib.parse.unquote(name)
    query = urllib.parse.parse_qs(parts.query)
    requested = query.get(CONNECTION_ID_PARAM, [""])[0] or None
    return kind, name, requested


def geo_from_headers(headers: Any) -> GeoPoint:
    """Read the visitor location the edge proxy attached to the request.

    Raises:
        MissingIdentity: either header is absent or not a valid coordinate.
    """
    lat = headers.get(LATITUDE_HEADER)
    lng = headers.get(LONGITUDE_HEADER)
    if lat is None or lng is None:
        raise MissingIdentity("no location headers on connection")
    try:
        position = deserialize_position(
            {"lat": float(lat), "lng": float(lng)}, RoomKind.GLOBE
        )
    except (ValueError, MalformedMessage) as e:
        raise MissingIdentity(f"bad location headers: {e}") from e
    assert isinstance(position, GeoPoint)
    return position


class PartyServer:
    def __init__(
        self,
        host: str,
        port: int,
        outbox_limit: int = OUTBOX_LIMIT,
    ) -> None:
        if outbox_limit < 1:
            # Queue maxsize 0 would mean unbounded
            raise ValueError(f"outbox_limit must be at least 1, got {outbox_limit}")
        self.host = host
        self.port = port
        self.outbox_limit = outbox_limit
        self.rooms: dict[tuple[RoomKind, str], Room] = {}
        self.broadcasters: dict[tuple[RoomKind, str], BroadcastCoordinator] = {}
        # Guards the room tables only; each room has its own lock
        self._lock = threading.Lock()
        self._close_tasks: set[asyncio.Task[None]] = set()

    def get_room(self, kind: RoomKind, name: str) -> Room:
        """Return the room, creating it on first use."""
        key = (kind, name)
        with self._lock:
            room = self.rooms.get(key)
            if room is None:
                room = Room(name, kind)
                self.rooms[key] = room
                self.broadcasters[key] = BroadcastCoordinator(
                    room, on_evict=self._close_socket
                )
                logger.info(f"Opened room {kind.value}/{name}")
            return room

    def coordinator_for(self, room: Room) -> BroadcastCoordinator:
        return self.broadcasters[(room.kind, room.name)]

    def _discard_if_empty(self, room: Room) -> None:
        key = (room.kind, room.name)
        with self._lock:
            if self.rooms.get(key) is room and len(room) == 0:
                del self.rooms[key]
                del self.broadcasters[key]
                logger.info(f"Closed empty room {room.kind.value}/{room.name}")

    async def start(self) -> None:
        async with serve(self.handle_client, self.host, self.port) as server:
            addr = next(iter(server.sockets)).getsockname()
            print(f"Server listening on {addr[0]}:{addr[1]}")
            await server.serve_forever()

    async def handle_client(self, websocket: ServerConnection) -> None:
        route = parse_route(websocket.request.path)
        if route is None:
            logger.warning(f"Rejected connection to {websocket.request.path!r}")
            await websocket.close(CLOSE_POLICY_VIOLATION, "unknown room")
            return
        kind, name, requested_id = route
        connection_id = requested_id or str(websocket.id)

        # No await between get_room and open_connection: the room cannot be
        # discarded in between
        room = self.get_room(kind, name)
        coordinator = self.coordinator_for(room)
        connection = Connection(connection_id, websocket, self.outbox_limit)
        try:
            self.open_connection(coordinator, connection, websocket.request.headers)
        except DuplicateConnection as e:
            logger.error(f"{room.name}: {e}")
            await websocket.close(CLOSE_POLICY_VIOLATION, "duplicate connection id")
            return

        writer_task = asyncio.create_task(connection.run_writer())
        try:
            async for frame in websocket:
                if connection.is_closed:
                    break
                self.handle_frame(coordinator, connection, frame)
        except ConnectionClosed:
            pass  # Client disconnected
        except Exception as e:
            logger.error(
                f"Unexpected error for {connection.id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
        finally:
            coordinator.drop(connection)
            writer_task.cancel()
            try:
                await writer_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(
                    f"Writer for {connection.id} failed: {type(e).__name__}: {e}",
                    exc_info=True,
                )
            self._discard_if_empty(room)

    def open_connection(
        self, coordinator: BroadcastCoordinator, connection: Connection, headers: Any
    ) -> None:
        """Register a freshly accepted connection in its room.

        Space rooms register immediately and wait for IDENTIFY. Globe rooms
        need location headers; without them the connection stays inert and
        is never registered.

        Raises:
            DuplicateConnection: the id is already in use in this room.
        """
        room = coordinator.room
        connection.on_failure = lambda c: self._on_send_failure(coordinator, c)
        if room.kind is RoomKind.SPACE:
            room.register(connection.id, connection=connection)
            connection.transition(ConnectionState.IDENTIFYING)
            return

        try:
            position = geo_from_headers(headers)
        except MissingIdentity as e:
            logger.warning(f"{room.name}: {connection.id} stays inactive: {e}")
            return
        room.register(connection.id, connection=connection)
        connection.transition(ConnectionState.IDENTIFYING)
        coordinator.activate(connection, position)

    def handle_frame(
        self,
        coordinator: BroadcastCoordinator,
        connection: Connection,
        frame: str | bytes,
    ) -> None:
        """Apply one inbound frame from ``connection``."""
        if connection.state in (ConnectionState.CONNECTING, ConnectionState.CLOSED):
            return
        room = coordinator.room
        try:
            message = parse_client_message(frame, room.kind)
        except MalformedMessage as e:
            logger.warning(f"{room.name}: dropping frame from {connection.id}: {e}")
            return

        if isinstance(message, Identify):
            if room.kind is RoomKind.GLOBE:
                return  # Globe identity is the connection id
            try:
                room.set_username(connection.id, message.username)
            except UnknownConnection:
                return
            logger.info(f"{room.name}: {connection.id} identified as {message.username}")
        elif isinstance(message, ClientMove):
            if connection.is_active:
                coordinator.relay_move(connection, message.position)
                return
            record = room.get(connection.id)
            if record is None or (room.kind is RoomKind.SPACE and record.username is None):
                logger.debug(f"{room.name}: move before identify from {connection.id}")
                return
            coordinator.activate(connection, message.position)

    def _on_send_failure(
        self, coordinator: BroadcastCoordinator, connection: Connection
    ) -> None:
        if coordinator.drop(connection):
            self._close_socket(connection)

    def _close_socket(self, connection: Connection) -> None:
        """Close the socket of a connection dropped outside its own handler."""
        if connection.websocket is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(connection.websocket.close())
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)
