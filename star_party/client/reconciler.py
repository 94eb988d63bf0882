"""Local mirror of the remote participants in a room."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from ..common.protocol import (
    Join,
    Leave,
    PeerState,
    ServerMessage,
    ServerMove,
    State,
    Sync,
)

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """Scene collaborator that owns the drawable object for each proxy."""

    def create_proxy(self, peer_id: str, position: State, username: str | None) -> Any: ...

    def move_proxy(self, handle: Any, position: State) -> None: ...

    def destroy_proxy(self, handle: Any) -> None: ...


class NullRenderer:
    """Renderer for headless clients; the handle is just the peer id."""

    def create_proxy(self, peer_id: str, position: State, username: str | None) -> Any:
        return peer_id

    def move_proxy(self, handle: Any, position: State) -> None:
        pass

    def destroy_proxy(self, handle: Any) -> None:
        pass


@dataclass
class RemoteEntityProxy:
    id: str
    handle: Any
    last_position: State
    username: str | None = None


class Reconciler:
    """Applies server events to the id -> proxy mapping.

    Upserts are idempotent: a peer already present is never recreated.
    A ``move`` never creates a proxy and a ``leave`` for an unknown id is
    a no-op, so late or duplicated events cannot leave orphans behind.
    Events about ``local_id`` are ignored.
    """

    def __init__(self, renderer: Renderer | None = None, local_id: str | None = None) -> None:
        self.renderer: Renderer = renderer if renderer is not None else NullRenderer()
        self.local_id = local_id
        self._proxies: dict[str, RemoteEntityProxy] = {}
        # Render tick and network receipt may run on different threads
        self._lock = threading.RLock()

    def apply(self, message: ServerMessage) -> Any:
        if isinstance(message, Sync):
            return self.on_sync(message.players)
        if isinstance(message, Join):
            return self.on_join(message.player)
        if isinstance(message, ServerMove):
            return self.on_move(message.id, message.position)
        if isinstance(message, Leave):
            return self.on_leave(message.id)
        raise TypeError(f"not a server message: {message!r}")

    def on_sync(self, players: tuple[PeerState, ...] | list[PeerState]) -> list[RemoteEntityProxy]:
        """Create proxies for every listed peer not yet known.

        Returns:
            The proxies created by this call.
        """
        created = []
        with self._lock:
            for peer in players:
                proxy = self._create(peer)
                if proxy is not None:
                    created.append(proxy)
        return created

    def on_join(self, peer: PeerState) -> RemoteEntityProxy | None:
        with self._lock:
            return self._create(peer)

    def on_move(self, peer_id: str, position: State) -> RemoteEntityProxy | None:
        with self._lock:
            proxy = self._proxies.get(peer_id)
            if proxy is None:
                return None
            proxy.last_position = position
            self.renderer.move_proxy(proxy.handle, position)
            return proxy

    def on_leave(self, peer_id: str) -> RemoteEntityProxy | None:
        with self._lock:
            proxy = self._proxies.pop(peer_id, None)
            if proxy is None:
                return None
            self.renderer.destroy_proxy(proxy.handle)
            logger.debug(f"Removed proxy {peer_id}")
            return proxy

    def clear(self) -> None:
        """Destroy every proxy."""
        with self._lock:
            for proxy in self._proxies.values():
                self.renderer.destroy_proxy(proxy.handle)
            self._proxies.clear()

    def _create(self, peer: PeerState) -> RemoteEntityProxy | None:
        if peer.id == self.local_id or peer.id in self._proxies:
            return None
        handle = self.renderer.create_proxy(peer.id, peer.position, peer.username)
        proxy = RemoteEntityProxy(peer.id, handle, peer.position, peer.username)
        self._proxies[peer.id] = proxy
        logger.debug(f"Created proxy {peer.id} ({peer.username})")
        return proxy

    def get(self, peer_id: str) -> RemoteEntityProxy | None:
        with self._lock:
            return self._proxies.get(peer_id)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._proxies)

    def proxies(self) -> list[RemoteEntityProxy]:
        with self._lock:
            return list(self._proxies.values())

    def __contains__(self, peer_id: object) -> bool:
        with self._lock:
            return peer_id in self._proxies

    def __len__(self) -> int:
        with self._lock:
            return len(self._proxies)
