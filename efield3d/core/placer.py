"""
Initial and trial particle placement.

A polarity may be made of several disjoint surfaces. Placement first picks
one of them uniformly by index (not by area), then samples a point on it;
area weighting only happens inside a ``MeshSurface``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from efield3d.errors import ConfigurationError

if TYPE_CHECKING:
    from efield3d.core.rng import DeterministicRng
    from efield3d.core.surfaces import Surface
    from efield3d.core.vector import Vector3


@dataclass(slots=True)
class Particle:
    """
    A point charge and the surface it was drawn from.

    Attributes:
        position: Location in meters
        source_index: Index of the generating surface within its polarity
    """
    position: "Vector3"
    source_index: int


class ParticlePlacer:
    """Draws particles from an ordered set of surfaces of one polarity."""

    def __init__(self, surfaces: Sequence["Surface"], rng: "DeterministicRng", *, label: str = "") -> None:
        if not surfaces:
            raise ConfigurationError(f"No surfaces for {label or 'polarity'}.")
        self.surfaces = list(surfaces)
        self.rng = rng
        self.label = label

    def pick_surface(self) -> int:
        """
        Pick a surface index uniformly over the surface count.

        With a single surface no random draw is consumed.
        """
        n = len(self.surfaces)
        if n == 1:
            return 0
        idx = int(math.floor(self.rng.next_uniform() * n))
        return min(idx, n - 1)

    def place(self) -> Particle:
        idx = self.pick_surface()
        return Particle(self.surfaces[idx].random_point(), idx)

    def place_many(self, count: int) -> list[Particle]:
        return [self.place() for _ in range(count)]
