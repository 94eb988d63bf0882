"""Fan-out of lifecycle and position events to the members of a room."""

from __future__ import annotations

import logging
from typing import Callable

from ..common.errors import DeliveryFailure, UnknownConnection
from ..common.protocol import (
    Join,
    Leave,
    ServerMessage,
    ServerMove,
    State,
    Sync,
    encode_message,
)
from .connection import Connection, ConnectionState
from .room import Room
from .session import SessionRecord

logger = logging.getLogger(__name__)

EvictCallback = Callable[[Connection], None]


class BroadcastCoordinator:
    """Decides who hears about what in one room, and delivers it.

    All registry changes and the enqueueing that follows them happen under
    the room lock, which fixes the order each recipient sees. Enqueueing
    never blocks, so a stalled peer cannot hold up the others. A recipient
    that cannot take a frame is dropped once the current fan-out is done,
    exactly as if its own socket had failed.
    """

    def __init__(self, room: Room, on_evict: EvictCallback | None = None) -> None:
        self.room = room
        # Called for connections dropped because delivery to them failed
        self.on_evict = on_evict

    def activate(self, connection: Connection, state: State) -> bool:
        """Give a registered connection its first state and announce it.

        The newcomer gets a ``sync`` with every other active participant,
        then each of those gets a ``join`` for the newcomer.

        Returns:
            False if the connection is closed or no longer registered.
        """
        failed: list[Connection] = []
        with self.room.locked():
            if connection.is_closed:
                return False
            try:
                record = self.room.update_state(connection.id, state)
            except UnknownConnection:
                logger.debug(f"{self.room.name}: activation of unknown {connection.id}")
                return False
            connection.transition(ConnectionState.ACTIVE)
            others = [r for r in self.room.active() if r.id != connection.id]
            self._deliver(
                connection, encode_message(Sync(tuple(r.to_peer() for r in others))), failed
            )
            self._fan_out(others, Join(record.to_peer()), failed)
            logger.info(
                f"{self.room.name}: {connection.id} active "
                f"({len(others)} others, state={state})"
            )
        self._drop_failed(failed)
        return True

    def relay_move(self, connection: Connection, position: State) -> bool:
        """Store a new position and pass it to everyone except the sender.

        Moves for connections that are gone are dropped silently.
        """
        failed: list[Connection] = []
        with self.room.locked():
            if not connection.is_active:
                return False
            try:
                self.room.update_state(connection.id, position)
            except UnknownConnection:
                logger.debug(f"{self.room.name}: late move from {connection.id}")
                return False
            recipients = [r for r in self.room.active() if r.id != connection.id]
            self._fan_out(recipients, ServerMove(connection.id, position), failed)
        self._drop_failed(failed)
        return True

    def drop(self, connection: Connection) -> bool:
        """Close a connection, remove its record and tell the room.

        Safe to call any number of times from any cleanup path; only the
        call that actually removes the record broadcasts ``leave``, and only
        if the record had been announced.

        Returns:
            True if this call removed the record.
        """
        failed: list[Connection] = []
        with self.room.locked():
            connection.close()
            record = self.room.get(connection.id)
            if record is None or record.connection is not connection:
                return False
            self.room.remove(connection.id)
            if record.is_active:
                self._fan_out(self.room.active(), Leave(connection.id), failed)
            logger.info(f"{self.room.name}: {connection.id} left ({len(self.room)} remain)")
        self._drop_failed(failed)
        return True

    def _fan_out(
        self,
        recipients: list[SessionRecord],
        message: ServerMessage,
        failed: list[Connection],
    ) -> None:
        if not recipients:
            return
        frame = encode_message(message)
        for record in recipients:
            if record.connection is not None:
                self._deliver(record.connection, frame, failed)

    def _deliver(
        self, connection: Connection, frame: str, failed: list[Connection]
    ) -> None:
        try:
            connection.enqueue(frame)
        except DeliveryFailure as e:
            logger.warning(f"{self.room.name}: {e}")
            failed.append(connection)

    def _drop_failed(self, failed: list[Connection]) -> None:
        for connection in failed:
            if self.drop(connection) and self.on_evict is not None:
                self.on_evict(connection)
