"""
Run driver: builds the geometry from RunParams, relaxes it in batches and
summarises the result.

Progress lines go to the ``efield3d`` logger; the CLI decides where they
end up (console, file or both).
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field

from efield3d.core.balancer import CancellationToken, ChargeBalancer, RelaxationStats
from efield3d.core.rng import DeterministicRng
from efield3d.errors import ConfigurationError
from efield3d.io.geometry import Geometry, load_geometry
from efield3d.io.stl import mesh_from_stl
from efield3d.params import RunParams

logger = logging.getLogger(__name__)


def clock_seed() -> int:
    """32-bit seed taken from the wall clock."""
    return time.time_ns() & 0xFFFFFFFF


def make_rng(seed: int) -> DeterministicRng:
    """Generator for a run seed: element 0, sequence = seed."""
    return DeterministicRng(element=0, sequence=seed)


def build_geometry(params: RunParams, rng: DeterministicRng) -> Geometry:
    """
    Geometry from a shapes file, or from an anode/cathode STL pair.

    Raises:
        ConfigurationError: nothing to load, or invalid geometry
    """
    if params.geometry_file:
        return load_geometry(params.geometry_file, rng, stl_scale=params.stl_scale)
    if not params.positive_file or not params.negative_file:
        raise ConfigurationError("Either geometry_file or both positive_file and negative_file are required.")
    anode = mesh_from_stl(params.positive_file, rng, scale=params.stl_scale)
    cathode = mesh_from_stl(params.negative_file, rng, scale=params.stl_scale)
    return Geometry(positives=[anode], negatives=[cathode]).check()


def _percent(sdev: float, mean: float) -> float:
    if mean == 0.0:
        return math.inf if sdev else 0.0
    return 100.0 * sdev / abs(mean)


@dataclass(slots=True)
class RunSummary:
    """
    Final report arithmetic.

    Potentials are for one coulomb on each electrode, so the capacitance
    is 1 / (phi+ - phi-) farad.
    """
    stats: RelaxationStats
    steps: int
    cancelled: bool
    run_time: float  # seconds

    @property
    def potential_difference(self) -> float:
        return self.stats.pos_mean - self.stats.neg_mean

    @property
    def pos_spread_percent(self) -> float:
        return _percent(self.stats.pos_sdev, self.stats.pos_mean)

    @property
    def neg_spread_percent(self) -> float:
        return _percent(self.stats.neg_sdev, self.stats.neg_mean)

    @property
    def capacitance_pf(self) -> float:
        # Coincident electrodes: no potential difference, unbounded capacitance.
        dphi = self.potential_difference
        return 1e12 / dphi if dphi != 0.0 else math.inf


def format_stats(steps: int, stats: RelaxationStats) -> str:
    return (
        f"Steps: {steps:5d}   Potentials: {stats.pos_mean:.2e} {stats.pos_sdev:.2e}  "
        f"{stats.neg_mean:.2e} {stats.neg_sdev:.2e}"
    )


@dataclass
class RelaxationRun:
    """
    Batches of sweeps with a statistics report after each batch.

    Attributes:
        balancer: The relaxing system
        reps: Total sweep budget
        batch: Sweeps between reports, at least 1
        history: (steps done, stats) for the start and every batch
    """
    balancer: ChargeBalancer
    reps: int
    batch: int = 10
    history: list[tuple[int, RelaxationStats]] = field(default_factory=list)
    steps: int = 0

    def __post_init__(self) -> None:
        self.reps = max(0, int(self.reps))
        self.batch = max(1, int(self.batch))

    @classmethod
    def from_params(cls, params: RunParams, rng: DeterministicRng | None = None) -> "RelaxationRun":
        """
        Set up geometry and particles for a run.

        Raises:
            ConfigurationError: invalid geometry, or fewer than 2 particles
        """
        if params.particle_count < 2:
            raise ConfigurationError("Reporting needs at least 2 particles per polarity.")
        if rng is None:
            seed = params.seed if params.seed is not None else clock_seed()
            logger.info("Seed = %d", seed)
            rng = make_rng(seed)
        geometry = build_geometry(params, rng)
        balancer = ChargeBalancer(
            geometry.positives,
            geometry.negatives,
            rng,
            params.particle_count,
            cutoff=params.cutoff,
            ke=params.coulomb_constant,
        )
        if params.cutoff > 0.0:
            logger.info("Cutoff c = %.4f", params.cutoff)
        return cls(balancer=balancer, reps=params.reps, batch=params.batch)

    def _report(self) -> RelaxationStats:
        stats = self.balancer.statistics()
        self.history.append((self.steps, stats))
        logger.info(format_stats(self.steps, stats))
        return stats

    def run(self, cancel: CancellationToken | None = None) -> RunSummary:
        """
        Relax until ``reps`` sweeps are done or ``cancel`` is requested.

        Cancellation takes effect at the next sweep boundary; the final
        statistics are still computed.
        """
        start = time.perf_counter()
        stats = self._report()
        cancelled = False
        while self.steps < self.reps:
            todo = min(self.batch, self.reps - self.steps)
            done = self.balancer.do_steps(todo, cancel)
            self.steps += done
            if done:
                stats = self._report()
            if cancel is not None and cancel.requested:
                cancelled = True
                break
        elapsed = time.perf_counter() - start
        if cancelled:
            logger.warning("Cancel received, terminating early after %d steps", self.steps)
        return RunSummary(stats=stats, steps=self.steps, cancelled=cancelled, run_time=elapsed)


def log_summary(summary: RunSummary) -> None:
    s = summary.stats
    logger.info("Run time = %.3f minutes", summary.run_time / 60.0)
    logger.info(
        "Final potentials: %.2e (%.1f%%)  %.2e (%.1f%%)",
        s.pos_mean, summary.pos_spread_percent, s.neg_mean, summary.neg_spread_percent,
    )
    logger.info("Final potential difference: %.2e", summary.potential_difference)
    logger.info("Capacitance: %.1f pF", summary.capacitance_pf)
