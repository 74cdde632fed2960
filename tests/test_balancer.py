"""Tests for particle placement and the Monte-Carlo charge balancer."""

import unittest

from efield3d.core.balancer import (
    NEGATIVE,
    POSITIVE,
    CancellationToken,
    ChargeBalancer,
    _mean_sdev,
)
from efield3d.core.placer import Particle, ParticlePlacer
from efield3d.core.rng import DeterministicRng
from efield3d.core.surfaces import Ring
from efield3d.core.vector import Vector3
from efield3d.errors import ConfigurationError

Z = Vector3(0.0, 0.0, 1.0)


def _rings(rng: DeterministicRng, gap: float = 0.1):
    return (
        [Ring(Vector3(0.0, 0.0, 0.0), Z, 1.0, rng)],
        [Ring(Vector3(0.0, 0.0, gap), Z, 1.0, rng)],
    )


def _balancer(seed: int = 42, n: int = 20, **kwargs) -> ChargeBalancer:
    rng = DeterministicRng(element=0, sequence=seed)
    pos, neg = _rings(rng)
    return ChargeBalancer(pos, neg, rng, n, ke=1.0, **kwargs)


class TestParticlePlacer(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = DeterministicRng(element=0, sequence=7)

    def test_single_surface_uses_no_selection_draw(self) -> None:
        placer = ParticlePlacer([Ring(Vector3(0.0, 0.0, 0.0), Z, 1.0, self.rng)], self.rng)
        before = self.rng.element
        p = placer.place()
        self.assertEqual(p.source_index, 0)
        self.assertEqual(self.rng.element - before, 1)

    def test_surfaces_picked_uniformly_by_index(self) -> None:
        small = Ring(Vector3(0.0, 0.0, 0.0), Z, 0.01, self.rng)
        large = Ring(Vector3(0.0, 0.0, 1.0), Z, 100.0, self.rng)
        placer = ParticlePlacer([small, large], self.rng)
        picks = [p.source_index for p in placer.place_many(10000)]
        self.assertAlmostEqual(picks.count(0) / len(picks), 0.5, delta=0.03)

    def test_source_index_matches_surface(self) -> None:
        lower = Ring(Vector3(0.0, 0.0, 0.0), Z, 1.0, self.rng)
        upper = Ring(Vector3(0.0, 0.0, 5.0), Z, 1.0, self.rng)
        placer = ParticlePlacer([lower, upper], self.rng)
        for p in placer.place_many(200):
            self.assertAlmostEqual(p.position.z, 5.0 * p.source_index)

    def test_empty_surface_set_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            ParticlePlacer([], self.rng, label="positive")


class TestBalancerSetup(unittest.TestCase):
    def test_populations(self) -> None:
        b = _balancer(n=15)
        self.assertEqual(len(b.positives), 15)
        self.assertEqual(len(b.negatives), 15)
        self.assertEqual(b.state, "initialized")
        self.assertAlmostEqual(b.unit_charge, 1.0 / 15)

    def test_initial_points_on_surfaces(self) -> None:
        b = _balancer()
        for p in b.positives:
            self.assertAlmostEqual(p.z, 0.0)
        for p in b.negatives:
            self.assertAlmostEqual(p.z, 0.1)

    def test_invalid_configurations(self) -> None:
        rng = DeterministicRng(element=0, sequence=1)
        pos, neg = _rings(rng)
        with self.assertRaises(ConfigurationError):
            ChargeBalancer([], neg, rng, 10)
        with self.assertRaises(ConfigurationError):
            ChargeBalancer(pos, [], rng, 10)
        with self.assertRaises(ConfigurationError):
            ChargeBalancer(pos, neg, rng, 0)

    def test_explicit_initial_populations(self) -> None:
        rng = DeterministicRng(element=0, sequence=1)
        pos, neg = _rings(rng)
        a = [Particle(Vector3(1.0, 0.0, 0.0), 0), Particle(Vector3(-1.0, 0.0, 0.0), 0)]
        c = [Particle(Vector3(0.0, 1.0, 0.1), 0), Particle(Vector3(0.0, -1.0, 0.1), 0)]
        b = ChargeBalancer(pos, neg, rng, 99, initial=(a, c))
        self.assertEqual(b.n, 2)
        self.assertEqual(b.positives[0], Vector3(1.0, 0.0, 0.0))
        with self.assertRaises(ConfigurationError):
            ChargeBalancer(pos, neg, rng, 2, initial=(a, c[:1]))

    def test_statistics_needs_two_particles(self) -> None:
        b = _balancer(n=1)
        with self.assertRaises(ConfigurationError):
            b.statistics()


class TestMoves(unittest.TestCase):
    def test_positive_moves_never_raise_potential(self) -> None:
        b = _balancer()
        for i in range(b.n):
            before = b.particle_potential(POSITIVE, i)
            result = b.try_move(POSITIVE, i)
            after = b.particle_potential(POSITIVE, i)
            self.assertLessEqual(after, before)
            self.assertEqual(result.accepted, result.after <= result.before)
            self.assertEqual(after, result.after if result.accepted else result.before)

    def test_negative_moves_never_lower_potential(self) -> None:
        b = _balancer()
        for i in range(b.n):
            before = b.particle_potential(NEGATIVE, i)
            result = b.try_move(NEGATIVE, i)
            after = b.particle_potential(NEGATIVE, i)
            self.assertGreaterEqual(after, before)
            self.assertEqual(result.accepted, result.after >= result.before)

    def test_rejected_move_restores_position(self) -> None:
        b = _balancer()
        for _ in range(5):
            b.step()
        for i in range(b.n):
            old = b.positives[i]
            result = b.try_move(POSITIVE, i)
            if not result.accepted:
                self.assertEqual(b.positives[i], old)

    def test_same_seed_same_result(self) -> None:
        a = _balancer(seed=9)
        b = _balancer(seed=9)
        a.do_steps(5)
        b.do_steps(5)
        self.assertEqual(a.positives, b.positives)
        self.assertEqual(a.negatives, b.negatives)
        self.assertEqual(a.statistics(), b.statistics())

    def test_different_seed_different_result(self) -> None:
        a = _balancer(seed=9)
        b = _balancer(seed=10)
        self.assertNotEqual(a.positives, b.positives)


class TestCancellation(unittest.TestCase):
    def test_cancel_before_start(self) -> None:
        b = _balancer()
        token = CancellationToken()
        token.cancel()
        self.assertEqual(b.do_steps(10, token), 0)
        self.assertEqual(b.sweeps, 0)

    def test_cancel_between_sweeps(self) -> None:
        b = _balancer()
        token = CancellationToken()
        original_step = b.step

        def step_and_cancel():
            stats = original_step()
            if b.sweeps == 3:
                token.cancel()
            return stats

        b.step = step_and_cancel
        self.assertEqual(b.do_steps(10, token), 3)
        self.assertEqual(b.sweeps, 3)
        self.assertEqual(b.state, "relaxing")


class TestStatistics(unittest.TestCase):
    def test_mean_sdev(self) -> None:
        avg, sdev = _mean_sdev([1.0, 2.0, 3.0, 4.0])
        self.assertAlmostEqual(avg, 2.5)
        self.assertAlmostEqual(sdev, (5.0 / 3.0) ** 0.5)

    def test_flat_distribution_has_zero_spread(self) -> None:
        avg, sdev = _mean_sdev([0.1] * 7)
        self.assertAlmostEqual(avg, 0.1)
        self.assertGreaterEqual(sdev, 0.0)
        self.assertAlmostEqual(sdev, 0.0)


class TestCoaxialRings(unittest.TestCase):
    def test_relaxes_to_symmetric_potentials(self) -> None:
        rng = DeterministicRng(element=0, sequence=42)
        pos, neg = _rings(rng)
        b = ChargeBalancer(pos, neg, rng, 50, ke=1.0)
        start = b.statistics()
        b.do_steps(100)
        stats = b.statistics()

        self.assertAlmostEqual(stats.pos_mean / stats.neg_mean, -1.0, delta=0.05)
        self.assertLess(stats.pos_sdev, start.pos_sdev)
        self.assertLess(stats.neg_sdev, start.neg_sdev)

    def test_fixed_seed_run_is_pinned(self) -> None:
        """Seed 42, four particles per ring, three sweeps: exact positions and statistics."""
        rng = DeterministicRng(element=0, sequence=42)
        pos, neg = _rings(rng)
        b = ChargeBalancer(pos, neg, rng, 4, ke=1.0)
        self.assertEqual(b.do_steps(3), 3)

        self.assertEqual(b.positives, [
            Vector3(-0.81741762584309929, 0.57604550598110815, 0.0),
            Vector3(-0.85046634343799676, -0.52602946559979247, 0.0),
            Vector3(0.64166823104200177, -0.76698232135521105, 0.0),
            Vector3(0.94325954868855433, -0.332056356373229, 0.0),
        ])
        self.assertEqual(b.negatives, [
            Vector3(-0.88234794207530187, 0.4705976084889083, 0.1),
            Vector3(0.7542520495923537, -0.65658498740508342, 0.1),
            Vector3(0.96632600192796936, -0.25732092413541924, 0.1),
            Vector3(-0.91728010629687851, -0.39824264788190034, 0.1),
        ])
        self.assertEqual(b.statistics().as_tuple(), (
            -1.6081434300663129,
            0.37614885477001397,
            1.5496633562489102,
            0.19446057069955988,
        ))
        # 8 initial placements plus 8 trial draws per sweep.
        self.assertEqual((rng.element, rng.sequence), (32, 42))


if __name__ == "__main__":
    unittest.main()
