"""
Monte-Carlo charge balancing.

Two equal populations of point charges, one per polarity, live on their
conductor surfaces. A sweep visits every positive particle (index order),
then every negative one. Each visit draws a trial position from the
particle's surfaces and keeps it only if it does not make things worse:

- positive: accept when phi_after <= phi_before
- negative: accept when phi_after >= phi_before

There is no annealing; a worse move is never accepted. Every evaluation
sees the current arrays, so earlier moves in a sweep affect later ones and
the visiting order is part of the reproducibility contract.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from efield3d.core.placer import Particle, ParticlePlacer
from efield3d.errors import ConfigurationError
from efield3d.physics.potential import KE, potential_omit

if TYPE_CHECKING:
    from efield3d.core.rng import DeterministicRng
    from efield3d.core.surfaces import Surface
    from efield3d.core.vector import Vector3

logger = logging.getLogger(__name__)

POSITIVE = 1
NEGATIVE = -1


class CancellationToken:
    """Cooperative stop flag, polled by the relaxation loop between sweeps."""

    def __init__(self) -> None:
        self.requested = False

    def cancel(self) -> None:
        self.requested = True


@dataclass(slots=True)
class RelaxationStats:
    """Mean and sample standard deviation of the potential on each polarity."""
    pos_mean: float
    pos_sdev: float
    neg_mean: float
    neg_sdev: float

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.pos_mean, self.pos_sdev, self.neg_mean, self.neg_sdev)


@dataclass(slots=True)
class MoveResult:
    sign: int
    index: int
    before: float
    after: float
    accepted: bool


@dataclass(slots=True)
class SweepStats:
    pos_accepted: int = 0
    neg_accepted: int = 0

    @property
    def accepted(self) -> int:
        return self.pos_accepted + self.neg_accepted


def _mean_sdev(values: list[float]) -> tuple[float, float]:
    n = len(values)
    total = 0.0
    total2 = 0.0
    for phi in values:
        total += phi
        total2 += phi * phi
    avg = total / n
    var = (total2 - n * avg * avg) / (n - 1)
    # Cancellation can leave a tiny negative variance for a flat distribution.
    return avg, math.sqrt(max(0.0, var))


class ChargeBalancer:
    """
    Owns the two particle populations and relaxes them.

    Attributes:
        positives, negatives: Current particle positions (mutated in place)
        pos_sources, neg_sources: Index of the surface each particle came from
        sweeps: Number of completed sweeps
    """

    def __init__(
        self,
        positive_surfaces: Sequence["Surface"],
        negative_surfaces: Sequence["Surface"],
        rng: "DeterministicRng",
        n_particles: int,
        *,
        cutoff: float = 0.0,
        ke: float = KE,
        initial: tuple[Sequence[Particle], Sequence[Particle]] | None = None,
    ) -> None:
        """
        Place ``n_particles`` charges of each polarity.

        Initial draws alternate: positive 0, negative 0, positive 1, ...

        Args:
            positive_surfaces, negative_surfaces: Non-empty surface sets
            rng: Shared generator
            n_particles: Particles per polarity
            cutoff: Minimum-distance regularization
            ke: Coulomb constant (KE, or 1.0 for relative potentials)
            initial: Explicit (positive, negative) particles instead of
                random placement

        Raises:
            ConfigurationError: empty surface sets, n_particles < 1,
                unequal explicit populations
        """
        self.pos_placer = ParticlePlacer(positive_surfaces, rng, label="positive")
        self.neg_placer = ParticlePlacer(negative_surfaces, rng, label="negative")
        self.rng = rng
        self.cutoff = max(0.0, float(cutoff))
        self.ke = float(ke)
        self.sweeps = 0

        if initial is not None:
            pos_init, neg_init = initial
            if len(pos_init) != len(neg_init):
                raise ConfigurationError(
                    f"Population sizes differ: {len(pos_init)} positive, {len(neg_init)} negative."
                )
            n_particles = len(pos_init)
        if int(n_particles) < 1:
            raise ConfigurationError("At least one particle per polarity is required.")
        self.n = int(n_particles)

        self.positives: list["Vector3"] = []
        self.negatives: list["Vector3"] = []
        self.pos_sources: list[int] = []
        self.neg_sources: list[int] = []
        if initial is not None:
            for p in pos_init:
                self.positives.append(p.position)
                self.pos_sources.append(p.source_index)
            for p in neg_init:
                self.negatives.append(p.position)
                self.neg_sources.append(p.source_index)
        else:
            for _ in range(self.n):
                p = self.pos_placer.place()
                self.positives.append(p.position)
                self.pos_sources.append(p.source_index)
                p = self.neg_placer.place()
                self.negatives.append(p.position)
                self.neg_sources.append(p.source_index)

        logger.debug(
            "Balancer: %d particles per polarity, %d positive / %d negative surfaces",
            self.n, len(self.pos_placer.surfaces), len(self.neg_placer.surfaces),
        )

    @property
    def unit_charge(self) -> float:
        # One coulomb in total on each electrode.
        return 1.0 / self.n

    @property
    def state(self) -> str:
        return "initialized" if self.sweeps == 0 else "relaxing"

    def particles(self, sign: int) -> list[Particle]:
        if sign > 0:
            return [Particle(x, s) for x, s in zip(self.positives, self.pos_sources)]
        return [Particle(x, s) for x, s in zip(self.negatives, self.neg_sources)]

    def _potential_at(self, x: "Vector3", sign: int, index: int) -> float:
        if sign > 0:
            return potential_omit(
                x, self.positives, self.negatives, self.unit_charge,
                omit_positive=index, cutoff=self.cutoff, ke=self.ke,
            )
        return potential_omit(
            x, self.positives, self.negatives, self.unit_charge,
            omit_negative=index, cutoff=self.cutoff, ke=self.ke,
        )

    def particle_potential(self, sign: int, index: int) -> float:
        """Potential at a particle due to every other particle of the system."""
        x = self.positives[index] if sign > 0 else self.negatives[index]
        return self._potential_at(x, sign, index)

    def try_move(self, sign: int, index: int) -> MoveResult:
        """
        Propose a new position for one particle and keep it if allowed.

        The trial point is drawn from the particle's polarity surfaces
        (surface picked uniformly by index when there are several).
        """
        if sign > 0:
            positions, sources, placer = self.positives, self.pos_sources, self.pos_placer
        else:
            positions, sources, placer = self.negatives, self.neg_sources, self.neg_placer

        old = positions[index]
        before = self._potential_at(old, sign, index)
        trial = placer.place()
        positions[index] = trial.position
        after = self._potential_at(trial.position, sign, index)

        accepted = after <= before if sign > 0 else after >= before
        if accepted:
            sources[index] = trial.source_index
        else:
            positions[index] = old
        return MoveResult(sign=sign, index=index, before=before, after=after, accepted=accepted)

    def step(self) -> SweepStats:
        """Run one sweep: every positive particle, then every negative one."""
        stats = SweepStats()
        for i in range(self.n):
            if self.try_move(POSITIVE, i).accepted:
                stats.pos_accepted += 1
        for i in range(self.n):
            if self.try_move(NEGATIVE, i).accepted:
                stats.neg_accepted += 1
        self.sweeps += 1
        logger.debug(
            "Sweep %d: accepted %d/%d positive, %d/%d negative",
            self.sweeps, stats.pos_accepted, self.n, stats.neg_accepted, self.n,
        )
        return stats

    def do_steps(self, n_steps: int, cancel: CancellationToken | None = None) -> int:
        """
        Run up to ``n_steps`` sweeps.

        The cancellation token is polled before each sweep, never inside
        one, so the arrays are always in a consistent state.

        Returns:
            Number of sweeps actually completed
        """
        done = 0
        for _ in range(max(0, int(n_steps))):
            if cancel is not None and cancel.requested:
                break
            self.step()
            done += 1
        return done

    def potentials(self, sign: int) -> list[float]:
        return [self.particle_potential(sign, i) for i in range(self.n)]

    def statistics(self) -> RelaxationStats:
        """
        Mean and Bessel-corrected standard deviation of the potential on
        each polarity.

        Raises:
            ConfigurationError: fewer than two particles per polarity
        """
        if self.n < 2:
            raise ConfigurationError("Standard deviation needs at least 2 particles per polarity.")
        pos_mean, pos_sdev = _mean_sdev(self.potentials(POSITIVE))
        neg_mean, neg_sdev = _mean_sdev(self.potentials(NEGATIVE))
        return RelaxationStats(pos_mean, pos_sdev, neg_mean, neg_sdev)
