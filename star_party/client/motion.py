"""Local player motion: a circular orbit with a vertical bob."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..common.constants import (
    PLAYER_ORBIT_RADIUS,
    PLAYER_ORBIT_SPEED,
    PLAYER_VERTICAL_AMPLITUDE,
    PLAYER_VERTICAL_SPEED,
    TIME_DELTA,
)
from ..common.protocol import Vec3


@dataclass
class OrbitPath:
    radius: float = PLAYER_ORBIT_RADIUS
    orbit_speed: float = PLAYER_ORBIT_SPEED
    vertical_speed: float = PLAYER_VERTICAL_SPEED
    amplitude: float = PLAYER_VERTICAL_AMPLITUDE
    time_delta: float = TIME_DELTA
    time: float = 0.0

    def position_at(self, t: float) -> Vec3:
        return Vec3(
            math.cos(t * self.orbit_speed) * self.radius,
            math.sin(t * self.vertical_speed) * self.amplitude,
            math.sin(t * self.orbit_speed) * self.radius,
        )

    def advance(self) -> Vec3:
        """Step one tick and return the new position."""
        self.time += self.time_delta
        return self.position_at(self.time)
