"""Terminal rendering with blessed."""

from __future__ import annotations

import time
from dataclasses import dataclass

from blessed import Terminal

from ..common.constants import PLAYER_ORBIT_RADIUS
from ..common.protocol import GeoPoint, State, Vec3

# Redraw at most this often; ticks are much faster
RENDER_INTERVAL = 0.1
MAP_WIDTH = 41
MAP_HEIGHT = 21


@dataclass
class Marker:
    """Drawable handle for one remote participant."""

    peer_id: str
    username: str | None
    position: State

    @property
    def label(self) -> str:
        return self.username or self.peer_id[:8]


def _plane(position: State) -> tuple[float, float, float, float]:
    """Project a position to (u, v) plus the half-extent of each axis."""
    if isinstance(position, Vec3):
        extent = PLAYER_ORBIT_RADIUS * 1.2
        return position.x, position.z, extent, extent
    return position.lng, -position.lat, 180.0, 90.0


class TerminalRenderer:
    """Top-down map and roster of the room.

    Implements the reconciler's renderer interface: each remote proxy is a
    ``Marker`` handle that this class draws.
    """

    def __init__(self, terminal: Terminal) -> None:
        self.term = terminal
        self.markers: dict[str, Marker] = {}
        self._last_render_time = 0.0

    def create_proxy(self, peer_id: str, position: State, username: str | None) -> Marker:
        marker = Marker(peer_id, username, position)
        self.markers[peer_id] = marker
        return marker

    def move_proxy(self, handle: Marker, position: State) -> None:
        handle.position = position

    def destroy_proxy(self, handle: Marker) -> None:
        self.markers.pop(handle.peer_id, None)

    def render(
        self,
        room: str,
        local_name: str,
        local_position: State | None,
        sent: int,
        dropped: int,
        force: bool = False,
    ) -> None:
        """Render the room state to the terminal."""
        now = time.monotonic()
        if not force and now - self._last_render_time < RENDER_INTERVAL:
            return
        self._last_render_time = now

        output = [self.term.home + self.term.clear]
        cells = self._plot(local_position)
        for row in cells:
            output.append("".join(row))

        output.append("")
        status = f"[{room}] {local_name}"
        if local_position is not None:
            status += f" at {self._format(local_position)}"
        status += f" | Peers: {len(self.markers)} | Sent: {sent} Dropped: {dropped}"
        output.append(status)

        output.append("")
        output.append("Peers:")
        for marker in self.markers.values():
            output.append(f"  {marker.label} at {self._format(marker.position)}")

        output.append("")
        output.append("Ctrl-C to quit")
        print("\n".join(output), end="", flush=True)

    def _plot(self, local_position: State | None) -> list[list[str]]:
        cells = [["." for _ in range(MAP_WIDTH)] for _ in range(MAP_HEIGHT)]
        for marker in self.markers.values():
            self._put(cells, marker.position, self.term.bold_yellow("o"))
        if local_position is not None:
            self._put(cells, local_position, self.term.bold_green("@"))
        return cells

    def _put(self, cells: list[list[str]], position: State, char: str) -> None:
        u, v, u_extent, v_extent = _plane(position)
        col = round((u / u_extent + 1) / 2 * (MAP_WIDTH - 1))
        row = round((v / v_extent + 1) / 2 * (MAP_HEIGHT - 1))
        if 0 <= col < MAP_WIDTH and 0 <= row < MAP_HEIGHT:
            cells[row][col] = char

    def _format(self, position: State) -> str:
        if isinstance(position, GeoPoint):
            return f"({position.lat:.2f}, {position.lng:.2f})"
        return f"({position.x:.1f}, {position.y:.1f}, {position.z:.1f})"

    def cleanup(self) -> None:
        """Restore terminal state."""
        print(self.term.normal + self.term.clear, end="")
