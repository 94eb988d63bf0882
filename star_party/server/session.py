"""Session record: the server's view of one connection."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..common.protocol import PeerState, State

if TYPE_CHECKING:
    from .connection import Connection


@dataclass
class SessionRecord:
    id: str
    # Last reported position; None until the first one arrives
    state: State | None = None
    # Display name from IDENTIFY (space rooms only)
    username: str | None = None
    # Outbound handle for this participant
    connection: Connection | None = None
    connected_at: float = field(default_factory=time.monotonic)
    last_update_time: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.state is not None

    def to_peer(self) -> PeerState:
        """Wire form of this record; only valid once it has state."""
        if self.state is None:
            raise ValueError(f"session {self.id!r} has no state yet")
        return PeerState(self.id, self.state, self.username)
