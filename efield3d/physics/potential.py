"""
Potential and field evaluation for sets of point charges.

Every particle of a polarity carries the same charge ``unit_charge``
(1/n coulomb in a relaxation run). Positive charges add ``+1/r``, negative
charges ``-1/r``; the sum is scaled by ``ke * unit_charge``.

This module provides:
- potential / potential_omit: the pure-Python evaluators used by the
  relaxation loop, with a fixed summation order (positives, then
  negatives) so runs are reproducible bit for bit
- electric_field: the E vector at a point
- CalibratedField: a relaxed point set rescaled to given electrode voltages
- PotentialSolver backends for evaluating many probe points at once

Example:
    >>> from efield3d.physics.potential import potential
    >>> phi = potential(x, positives, negatives, 1.0 / n)
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from efield3d.core.vector import Vector3
from efield3d.errors import ConfigurationError

KE = 8.9875517923e9  # Coulomb constant in volt-meters/coulomb.
KE_NORMALIZED = 1.0


def _accumulate(
    total: float,
    x: Vector3,
    points: Sequence[Vector3],
    sign: float,
    c2: float,
    omit: int,
) -> float:
    xx, xy, xz = x.x, x.y, x.z
    for j, p in enumerate(points):
        if j == omit:
            continue
        dx = xx - p.x
        dy = xy - p.y
        dz = xz - p.z
        d2 = dx * dx + dy * dy + dz * dz
        if d2 == 0.0 and (omit < 0 or c2 == 0.0):
            # Exact coincidence is the particle itself.
            continue
        total += sign / math.sqrt(d2 + c2)
    return total


def potential(
    x: Vector3,
    positives: Sequence[Vector3],
    negatives: Sequence[Vector3],
    unit_charge: float,
    *,
    cutoff: float = 0.0,
    ke: float = KE,
) -> float:
    """
    Potential at ``x``, skipping any source point exactly equal to ``x``.

    Args:
        x: Evaluation point
        positives: Positive charge positions
        negatives: Negative charge positions
        unit_charge: Charge of each particle in coulombs
        cutoff: Minimum distance c; distances become sqrt(d^2 + c^2)
        ke: Coulomb constant (KE for volts, 1.0 for relative potentials)

    Returns:
        Potential at x
    """
    c2 = cutoff * cutoff
    total = _accumulate(0.0, x, positives, 1.0, c2, -1)
    total = _accumulate(total, x, negatives, -1.0, c2, -1)
    return ke * total * unit_charge


def potential_omit(
    x: Vector3,
    positives: Sequence[Vector3],
    negatives: Sequence[Vector3],
    unit_charge: float,
    *,
    omit_positive: int = -1,
    omit_negative: int = -1,
    cutoff: float = 0.0,
    ke: float = KE,
) -> float:
    """
    Potential at ``x`` leaving out one particle by index.

    Used when ``x`` is the position (or trial position) of a particle from
    one of the arrays being summed, so the self term is removed even if
    another particle happens to coincide with it. Without a cutoff a
    zero distance to any other particle is skipped rather than dividing by
    zero.
    """
    c2 = cutoff * cutoff
    total = _accumulate(0.0, x, positives, 1.0, c2, omit_positive)
    total = _accumulate(total, x, negatives, -1.0, c2, omit_negative)
    return ke * total * unit_charge


def electric_field(
    x: Vector3,
    positives: Sequence[Vector3],
    negatives: Sequence[Vector3],
    unit_charge: float,
    *,
    cutoff: float = 0.0,
    ke: float = KE,
) -> Vector3:
    """
    Electric field vector at ``x`` (volts/meter for ke=KE).

    Positive charges push away from themselves, negative charges pull
    toward themselves. Coincident source points are skipped.
    """
    c2 = cutoff * cutoff
    ex = ey = ez = 0.0
    for points, sign in ((positives, 1.0), (negatives, -1.0)):
        for p in points:
            dx = x.x - p.x
            dy = x.y - p.y
            dz = x.z - p.z
            d2 = dx * dx + dy * dy + dz * dz
            if d2 == 0.0:
                continue
            inv_r = 1.0 / math.sqrt(d2 + c2)
            f = sign * inv_r * inv_r * inv_r
            ex += dx * f
            ey += dy * f
            ez += dz * f
    scale = ke * unit_charge
    return Vector3(ex * scale, ey * scale, ez * scale)


def mean_potentials(
    positives: Sequence[Vector3],
    negatives: Sequence[Vector3],
    *,
    cutoff: float = 0.0,
) -> tuple[float, float]:
    """Mean relative potential (ke = q = 1) on the positive and negative sets."""
    n_pos = len(positives)
    n_neg = len(negatives)
    if n_pos == 0 or n_neg == 0:
        raise ConfigurationError("Both polarities need at least one charge.")
    pos_sum = 0.0
    for i, x in enumerate(positives):
        pos_sum += potential_omit(x, positives, negatives, 1.0, omit_positive=i, cutoff=cutoff, ke=1.0)
    neg_sum = 0.0
    for i, x in enumerate(negatives):
        neg_sum += potential_omit(x, positives, negatives, 1.0, omit_negative=i, cutoff=cutoff, ke=1.0)
    return pos_sum / n_pos, neg_sum / n_neg


class CalibratedField:
    """
    Field of a relaxed charge set scaled to real electrode voltages.

    The point charges fix the shape of the field; the scale ``kq`` and the
    additive constant ``phi_infinity`` are chosen so the mean potential on
    the positive set is ``v_plus`` and on the negative set ``v_minus``.

    Attributes:
        kq: Coulomb constant times the real charge per point
        phi_infinity: Potential offset
    """

    def __init__(
        self,
        positives: Sequence[Vector3],
        negatives: Sequence[Vector3],
        *,
        v_plus: float,
        v_minus: float,
        scale: float = 1.0,
    ) -> None:
        """
        Args:
            positives, negatives: Charge positions in input units
            v_plus, v_minus: Target electrode voltages
            scale: Factor converting the input units to meters

        Raises:
            ConfigurationError: unequal set sizes, or no potential difference
        """
        if len(positives) != len(negatives):
            raise ConfigurationError("Unequal number of positive and negative charges.")
        self.positives = [p * scale for p in positives]
        self.negatives = [p * scale for p in negatives]
        phi_plus, phi_minus = mean_potentials(self.positives, self.negatives)
        delta = phi_plus - phi_minus
        if delta == 0.0:
            raise ConfigurationError("Charge sets produce no potential difference.")
        self.delta_phi = delta
        self.kq = (v_plus - v_minus) / delta
        self.phi_infinity = v_plus - self.kq * phi_plus

    def potential(self, r: Vector3) -> float:
        return self.phi_infinity + potential(r, self.positives, self.negatives, 1.0, ke=self.kq)

    def field(self, r: Vector3) -> Vector3:
        return electric_field(r, self.positives, self.negatives, 1.0, ke=self.kq)


class PotentialSolver:
    """
    Abstract base interface for batch potential evaluation.

    Subclasses evaluate the potential at many probe points for one charge
    configuration.
    """

    def compute(
        self,
        points: Sequence[Vector3],
        positives: Sequence[Vector3],
        negatives: Sequence[Vector3],
        unit_charge: float,
        *,
        cutoff: float = 0.0,
        ke: float = KE,
    ) -> list[float]:
        raise NotImplementedError


class PythonPotentialSolver(PotentialSolver):
    """Reference implementation: one ``potential`` call per probe point."""

    def compute(self, points, positives, negatives, unit_charge, *, cutoff=0.0, ke=KE):
        return [potential(x, positives, negatives, unit_charge, cutoff=cutoff, ke=ke) for x in points]


def _as_array(points: Sequence[Vector3]) -> np.ndarray:
    arr = np.empty((len(points), 3), dtype=np.float64)
    for i, p in enumerate(points):
        arr[i, 0] = p.x
        arr[i, 1] = p.y
        arr[i, 2] = p.z
    return arr


class DirectPotentialSolver(PotentialSolver):
    """
    Direct O(N*M) evaluation using NumPy.

    Probe points are processed in tiles to bound memory. Source points that
    coincide exactly with a probe are skipped, like ``potential``.
    """

    def __init__(self, tile_size: int = 256):
        self.tile_size = max(1, int(tile_size))

    def _partial(self, probes: np.ndarray, sources: np.ndarray, c2: float) -> np.ndarray:
        out = np.zeros(probes.shape[0], dtype=np.float64)
        if sources.shape[0] == 0:
            return out
        tile = self.tile_size
        for i0 in range(0, probes.shape[0], tile):
            i1 = min(probes.shape[0], i0 + tile)
            d = probes[i0:i1, None, :] - sources[None, :, :]
            d2 = np.sum(d * d, axis=2)
            r = np.sqrt(d2 + c2)
            r[d2 == 0.0] = np.inf
            out[i0:i1] = np.sum(1.0 / r, axis=1)
        return out

    def compute(self, points, positives, negatives, unit_charge, *, cutoff=0.0, ke=KE):
        if len(points) == 0:
            return []
        probes = _as_array(points)
        c2 = float(cutoff) * float(cutoff)
        total = self._partial(probes, _as_array(positives), c2) - self._partial(probes, _as_array(negatives), c2)
        return (ke * unit_charge * total).tolist()


def scan_axis(
    positives: Sequence[Vector3],
    negatives: Sequence[Vector3],
    unit_charge: float,
    *,
    x0: float,
    x1: float,
    count: int,
    scale: float = 0.001,
    cutoff: float = 0.0,
    ke: float = KE,
    solver: PotentialSolver | None = None,
) -> list[tuple[float, float]]:
    """
    Tabulate the potential along the x axis.

    Args:
        x0, x1: Scan limits in input units (millimetres by default)
        count: Number of intervals; count + 1 points are returned
        scale: Factor converting input units to meters

    Returns:
        List of (x in input units, potential)
    """
    count = max(1, int(count))
    step = (x1 - x0) / count
    xs = [x0 + i * step for i in range(count + 1)]
    probes = [Vector3(x * scale, 0.0, 0.0) for x in xs]
    solver = solver or DirectPotentialSolver()
    values = solver.compute(probes, positives, negatives, unit_charge, cutoff=cutoff, ke=ke)
    return list(zip(xs, values))
