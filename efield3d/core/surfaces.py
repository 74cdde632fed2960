"""
Sampleable conductor surfaces.

Every surface offers one capability, ``random_point()``, returning a point
drawn uniformly over the surface. All randomness comes from the shared
``DeterministicRng`` handed to the constructor; each variant consumes a
fixed number of draws per call, in a fixed order:

- Ring: 1 (angle)
- Torus / TorusSegment: 2 (major angle, then minor angle)
- Post: 2 (position along the axis, then angle)
- SphereSegment: 2 (cos of polar angle, then azimuth)
- MeshSurface: 3 (triangle choice, then two barycentric draws)

Frames (perp_x, perp_y) are computed once at construction from the axis.
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_left, bisect_right
from typing import TYPE_CHECKING, Sequence

from efield3d.core.vector import Vector3
from efield3d.errors import ConfigurationError

if TYPE_CHECKING:
    from efield3d.core.rng import DeterministicRng

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def _frame(axis: Vector3, shape: str) -> tuple[Vector3, Vector3]:
    if axis.length() == 0.0:
        raise ConfigurationError(f"A {shape} requires a non-zero axis.")
    return axis.perpendiculars()


class Surface:
    """
    Base interface for sampleable surfaces.

    Subclasses implement ``random_point`` and ``area``.
    """

    kind = "Surface"

    def random_point(self) -> Vector3:
        """Return a random point, uniformly distributed over the surface."""
        raise NotImplementedError

    @property
    def area(self) -> float:
        raise NotImplementedError


class Ring(Surface):
    """A thin circular wire: center, axis and radius."""

    kind = "Ring"

    def __init__(self, center: Vector3, axis: Vector3, radius: float, rng: "DeterministicRng") -> None:
        self.center = center
        self.axis = axis
        self.radius = float(radius)
        self.rng = rng
        self.perp_x, self.perp_y = _frame(axis, self.kind)

    @property
    def area(self) -> float:
        # A ring has no area; its measure is the circumference.
        return TWO_PI * self.radius

    def random_point(self) -> Vector3:
        theta = TWO_PI * self.rng.next_uniform()
        c = self.radius * math.cos(theta)
        s = self.radius * math.sin(theta)
        px, py, ctr = self.perp_x, self.perp_y, self.center
        return Vector3(
            ctr.x + c * px.x + s * py.x,
            ctr.y + c * px.y + s * py.y,
            ctr.z + c * px.z + s * py.z,
        )


class Torus(Surface):
    """
    A wire bent into a circle.

    theta runs around the major circle, phi around the wire:
    point = center + (R + r*cos(phi)) * radial(theta) + r*sin(phi) * axis
    where radial(theta) = cos(theta)*perp_x + sin(theta)*perp_y.
    """

    kind = "Torus"

    def __init__(
        self,
        center: Vector3,
        axis: Vector3,
        radius: float,
        wire_radius: float,
        rng: "DeterministicRng",
    ) -> None:
        self.center = center
        self.radius = float(radius)
        self.wire_radius = float(wire_radius)
        self.rng = rng
        self.perp_x, self.perp_y = _frame(axis, self.kind)
        self.axis = axis.normalize()

    @property
    def area(self) -> float:
        return 4.0 * math.pi * math.pi * self.radius * self.wire_radius

    def random_point(self) -> Vector3:
        theta = TWO_PI * self.rng.next_uniform()
        phi = TWO_PI * self.rng.next_uniform()

        r1 = self.radius + self.wire_radius * math.cos(phi)
        ax = r1 * math.cos(theta)
        ay = r1 * math.sin(theta)
        az = self.wire_radius * math.sin(phi)

        px, py, n, ctr = self.perp_x, self.perp_y, self.axis, self.center
        return Vector3(
            ctr.x + ax * px.x + ay * py.x + az * n.x,
            ctr.y + ax * px.y + ay * py.y + az * n.y,
            ctr.z + ax * px.z + ay * py.z + az * n.z,
        )


class TorusSegment(Surface):
    """
    Part of a torus built in a local frame, then rotated and offset.

    The local torus lies in the xy plane around the origin. The minor angle
    is restricted to [phi_start, phi_end); the major angle to
    [theta_start, theta_end), a full circle by default. The local point is
    rotated by ``theta`` about y, then ``phi`` about z, then offset.
    """

    kind = "TorusSegment"

    def __init__(
        self,
        radius: float,
        wire_radius: float,
        *,
        phi_start: float,
        phi_end: float,
        rng: "DeterministicRng",
        theta: float = 0.0,
        phi: float = 0.0,
        offset: Vector3 = Vector3(0.0, 0.0, 0.0),
        theta_start: float = 0.0,
        theta_end: float = TWO_PI,
    ) -> None:
        self.radius = float(radius)
        self.wire_radius = float(wire_radius)
        self.phi_start = float(phi_start)
        self.phi_end = float(phi_end)
        self.theta_start = float(theta_start)
        self.theta_end = float(theta_end)
        self.theta = float(theta)
        self.phi = float(phi)
        self.offset = offset
        self.rng = rng

    @property
    def area(self) -> float:
        dt = abs(self.theta_end - self.theta_start)
        r, a = self.radius, self.wire_radius
        # integral of a * (R + a cos p) dp dt over the segment
        radial = r * (self.phi_end - self.phi_start) + a * (math.sin(self.phi_end) - math.sin(self.phi_start))
        return abs(a * dt * radial)

    def random_point(self) -> Vector3:
        a1 = (self.theta_end - self.theta_start) * self.rng.next_uniform() + self.theta_start
        a2 = (self.phi_end - self.phi_start) * self.rng.next_uniform() + self.phi_start
        r1 = self.radius + self.wire_radius * math.cos(a2)
        v = Vector3(r1 * math.cos(a1), r1 * math.sin(a1), self.wire_radius * math.sin(a2))
        v = v.rotate(self.theta, self.phi)
        return v.offset(self.offset.x, self.offset.y, self.offset.z)


class Post(Surface):
    """
    A straight wire from ``start`` to ``start + axis``.

    The axis length is the wire length; points lie on the cylinder of
    radius ``wire_radius`` around it.
    """

    kind = "Post"

    def __init__(self, start: Vector3, axis: Vector3, wire_radius: float, rng: "DeterministicRng") -> None:
        self.start = start
        self.axis = axis
        self.wire_radius = float(wire_radius)
        self.rng = rng
        self.perp_x, self.perp_y = _frame(axis, self.kind)

    @property
    def area(self) -> float:
        return TWO_PI * self.wire_radius * self.axis.length()

    def random_point(self) -> Vector3:
        az = self.rng.next_uniform()
        phi = TWO_PI * self.rng.next_uniform()

        ax = self.wire_radius * math.cos(phi)
        ay = self.wire_radius * math.sin(phi)

        px, py, n, s = self.perp_x, self.perp_y, self.axis, self.start
        return Vector3(
            s.x + ax * px.x + ay * py.x + az * n.x,
            s.y + ax * px.y + ay * py.y + az * n.y,
            s.z + ax * px.z + ay * py.z + az * n.z,
        )


class SphereSegment(Surface):
    """
    A latitude band of a spherical shell.

    The axis points from the center to the north pole; only its direction
    matters. ``north`` and ``south`` are latitudes in degrees: 90/-90 is a
    whole sphere, 90/0 the northern hemisphere.

    Raises:
        ConfigurationError: north > 90, south < -90 or south >= north
    """

    kind = "SphereSegment"

    def __init__(
        self,
        center: Vector3,
        axis: Vector3,
        radius: float,
        north: float,
        south: float,
        rng: "DeterministicRng",
    ) -> None:
        if north > 90.0 or south < -90.0 or south >= north:
            raise ConfigurationError(
                f"Invalid latitude cutoff for {self.kind}: north={north} south={south}"
            )
        self.center = center
        self.radius = float(radius)
        self.north = float(north)
        self.south = float(south)
        self.rng = rng
        self.perp_x, self.perp_y = _frame(axis, self.kind)
        self.axis = axis.normalize()
        # Extents of cos(theta), theta measured from the north pole.
        self.cos_low = -1.0 if south == -90.0 else math.sin(math.radians(south))
        self.cos_high = 1.0 if north == 90.0 else math.sin(math.radians(north))

    @property
    def area(self) -> float:
        return TWO_PI * self.radius * self.radius * (self.cos_high - self.cos_low)

    def random_point(self) -> Vector3:
        cos_t = self.cos_low + (self.cos_high - self.cos_low) * self.rng.next_uniform()
        sin_t = math.sqrt(max(0.0, 1.0 - cos_t * cos_t))
        phi = TWO_PI * self.rng.next_uniform()

        ax = self.radius * math.cos(phi) * sin_t
        ay = self.radius * math.sin(phi) * sin_t
        az = self.radius * cos_t

        px, py, n, ctr = self.perp_x, self.perp_y, self.axis, self.center
        return Vector3(
            ctr.x + ax * px.x + ay * py.x + az * n.x,
            ctr.y + ax * px.y + ay * py.y + az * n.y,
            ctr.z + ax * px.z + ay * py.z + az * n.z,
        )


class Triangle:
    """One mesh facet stored as a corner plus two edge vectors (meters)."""

    __slots__ = ("a", "ab", "ac")

    def __init__(self, v1: Vector3, v2: Vector3, v3: Vector3) -> None:
        self.a = v1
        self.ab = v2 - v1
        self.ac = v3 - v1

    @property
    def area(self) -> float:
        return self.ab.cross(self.ac).length() / 2.0

    def random_point(self, rng: "DeterministicRng") -> Vector3:
        r1 = rng.next_uniform()
        r2 = rng.next_uniform()
        if r1 + r2 > 1.0:
            r1 = 1.0 - r1
            r2 = 1.0 - r2
        return self.a + r1 * self.ab + r2 * self.ac


class MeshSurface(Surface):
    """
    A triangulated surface sampled by area.

    A triangle is chosen by binary search of the cumulative area table, so
    zero-area triangles are never picked; the point inside it uses
    reflected barycentric coordinates.

    Raises:
        ConfigurationError: no triangles, or zero total area
    """

    kind = "Mesh"

    def __init__(
        self,
        triangles: Sequence[tuple[Vector3, Vector3, Vector3]],
        rng: "DeterministicRng",
        *,
        name: str = "mesh",
    ) -> None:
        self.name = name
        self.rng = rng
        self.triangles = [Triangle(v1, v2, v3) for v1, v2, v3 in triangles]
        if not self.triangles:
            raise ConfigurationError(f"Mesh {name} has no triangles.")
        total = 0.0
        cumulative: list[float] = []
        for t in self.triangles:
            total += t.area
            cumulative.append(total)
        if not total > 0.0:
            raise ConfigurationError(f"Mesh {name} has zero total area.")
        self.cumulative_areas = cumulative
        self.total_area = total
        logger.debug("Mesh %s: %d triangles, area %.6g m^2", name, len(self.triangles), total)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def area(self) -> float:
        return self.total_area

    def pick_triangle(self, u: float) -> int:
        """Index of the triangle owning the fraction ``u`` of the total area."""
        target = self.total_area * u
        idx = bisect_right(self.cumulative_areas, target)
        if idx >= len(self.cumulative_areas):
            idx = bisect_left(self.cumulative_areas, self.total_area)
        return idx

    def random_point(self) -> Vector3:
        idx = self.pick_triangle(self.rng.next_uniform())
        return self.triangles[idx].random_point(self.rng)
