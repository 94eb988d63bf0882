"""Room registry: exclusive owner of the session records of one room."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from ..common.errors import DuplicateConnection, UnknownConnection
from ..common.protocol import RoomKind, State
from .session import SessionRecord

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class Room:
    """Session records for one room, in registration order.

    Every operation takes the room's re-entrant lock, so a record is never
    observed half-mutated. Callers that need several operations to appear
    atomic (update state, then fan out) hold ``locked()`` around them.
    Rooms share nothing with each other.
    """

    def __init__(self, name: str, kind: RoomKind = RoomKind.SPACE) -> None:
        self.name = name
        self.kind = kind
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[Room]:
        with self._lock:
            yield self

    def register(
        self,
        connection_id: str,
        initial_state: State | None = None,
        *,
        connection: Connection | None = None,
        username: str | None = None,
    ) -> SessionRecord:
        """Create the record for a new connection.

        Raises:
            DuplicateConnection: the id is already registered. The existing
                record is left as it was.
        """
        with self._lock:
            if connection_id in self._records:
                raise DuplicateConnection(connection_id)
            record = SessionRecord(
                connection_id,
                state=initial_state,
                username=username,
                connection=connection,
            )
            if initial_state is not None:
                record.last_update_time = time.monotonic()
            self._records[connection_id] = record
            logger.debug(f"{self.name}: registered {connection_id}")
            return record

    def update_state(self, connection_id: str, new_state: State) -> SessionRecord:
        """Replace the state of a registered connection.

        Raises:
            UnknownConnection: the id is not registered (a late update after
                disconnect); callers drop it.
        """
        with self._lock:
            record = self._records.get(connection_id)
            if record is None:
                raise UnknownConnection(connection_id)
            record.state = new_state
            record.last_update_time = time.monotonic()
            return record

    def set_username(self, connection_id: str, username: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(connection_id)
            if record is None:
                raise UnknownConnection(connection_id)
            record.username = username
            return record

    def remove(self, connection_id: str) -> SessionRecord | None:
        """Delete and return the record, or None if it is already gone."""
        with self._lock:
            record = self._records.pop(connection_id, None)
            if record is not None:
                logger.debug(f"{self.name}: removed {connection_id}")
            return record

    def get(self, connection_id: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(connection_id)

    def snapshot(self) -> list[SessionRecord]:
        """All records present right now, oldest first."""
        with self._lock:
            return list(self._records.values())

    def active(self) -> list[SessionRecord]:
        """Records that have reported state, oldest first."""
        with self._lock:
            return [r for r in self._records.values() if r.is_active]

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
