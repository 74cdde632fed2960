"""
Immutable 3-D vector used for positions and directions.

All lengths are meters once a geometry has been loaded; unit conversion is
the loaders' job.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Below this horizontal radius a vector is treated as lying on the z axis.
AXIS_EPSILON = 1e-14


@dataclass(frozen=True, slots=True)
class Vector3:
    x: float
    y: float
    z: float

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, e: float) -> "Vector3":
        return Vector3(e * self.x, e * self.y, e * self.z)

    __rmul__ = __mul__

    def __neg__(self) -> "Vector3":
        return Vector3(-self.x, -self.y, -self.z)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalize(self) -> "Vector3":
        """Return a parallel vector of length 1."""
        n = self.length()
        return Vector3(self.x / n, self.y / n, self.z / n)

    def dot(self, other: "Vector3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: "Vector3") -> "Vector3":
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def vector_to(self, p: "Vector3") -> "Vector3":
        return Vector3(p.x - self.x, p.y - self.y, p.z - self.z)

    def offset(self, dx: float, dy: float, dz: float) -> "Vector3":
        return Vector3(self.x + dx, self.y + dy, self.z + dz)

    def rotate(self, theta: float, phi: float) -> "Vector3":
        """
        Rotate by theta around the y axis, then by phi around the z axis.

        Args:
            theta: First rotation angle in radians (about y)
            phi: Second rotation angle in radians (about z)

        Returns:
            The rotated vector
        """
        c = math.cos(theta)
        s = math.sin(theta)
        z1 = self.z * c - self.x * s
        x1 = self.z * s + self.x * c
        y1 = self.y
        c = math.cos(phi)
        s = math.sin(phi)
        return Vector3(x1 * c - y1 * s, x1 * s + y1 * c, z1)

    def perpendiculars(self) -> tuple["Vector3", "Vector3"]:
        """
        Return two unit vectors orthogonal to this one and to each other.

        The triple (p0, p1, self) is right-handed: (p0 x p1) points along
        self. Vectors whose horizontal radius is below AXIS_EPSILON get the
        x/y axes as fallbacks instead of dividing by that radius.

        Returns:
            (p0, p1) unit vectors
        """
        x, y, z = self.x, self.y, self.z
        r = math.sqrt(x * x + y * y)
        n = math.sqrt(x * x + y * y + z * z)
        z_norm = z / n
        if r < AXIS_EPSILON:
            return Vector3(z_norm, 0.0, 0.0), Vector3(0.0, 1.0, 0.0)
        return (
            Vector3(x * z_norm / r, y * z_norm / r, -r / n),
            Vector3(-y / r, x / r, 0.0),
        )

    def __str__(self) -> str:
        return f"({self.x:13.10f},{self.y:13.10f},{self.z:13.10f})"


def distance(v1: Vector3, v2: Vector3) -> float:
    """Distance between two points."""
    dx = v1.x - v2.x
    dy = v1.y - v2.y
    dz = v1.z - v2.z
    return math.sqrt(dx * dx + dy * dy + dz * dz)


ORIGIN = Vector3(0.0, 0.0, 0.0)
X_AXIS = Vector3(1.0, 0.0, 0.0)
Y_AXIS = Vector3(0.0, 1.0, 0.0)
Z_AXIS = Vector3(0.0, 0.0, 1.0)
