"""Tests for Vector3 arithmetic and perpendicular frames."""

import math
import unittest

from efield3d.core.rng import DeterministicRng
from efield3d.core.vector import Vector3, distance
from efield3d.utils.selftest import FIXED_VECTORS, check_vector, main as selftest_main, make_test_vectors


class TestArithmetic(unittest.TestCase):
    def test_operators(self) -> None:
        a = Vector3(1.0, 2.0, 3.0)
        b = Vector3(-1.0, 0.5, 2.0)
        self.assertEqual(a + b, Vector3(0.0, 2.5, 5.0))
        self.assertEqual(a - b, Vector3(2.0, 1.5, 1.0))
        self.assertEqual(a * 2.0, Vector3(2.0, 4.0, 6.0))
        self.assertEqual(2.0 * a, Vector3(2.0, 4.0, 6.0))
        self.assertEqual(-a, Vector3(-1.0, -2.0, -3.0))

    def test_dot_cross_length(self) -> None:
        x = Vector3(1.0, 0.0, 0.0)
        y = Vector3(0.0, 1.0, 0.0)
        self.assertEqual(x.dot(y), 0.0)
        self.assertEqual(x.cross(y), Vector3(0.0, 0.0, 1.0))
        self.assertAlmostEqual(Vector3(3.0, 4.0, 12.0).length(), 13.0)
        self.assertAlmostEqual(Vector3(3.0, 4.0, 12.0).normalize().length(), 1.0)

    def test_distance_and_vector_to(self) -> None:
        a = Vector3(1.0, 1.0, 1.0)
        b = Vector3(4.0, 5.0, 1.0)
        self.assertAlmostEqual(distance(a, b), 5.0)
        self.assertEqual(a.vector_to(b), Vector3(3.0, 4.0, 0.0))
        self.assertEqual(a.offset(1.0, -1.0, 2.0), Vector3(2.0, 0.0, 3.0))

    def test_rotate_theta_about_y(self) -> None:
        v = Vector3(1.0, 0.0, 0.0).rotate(math.pi / 2, 0.0)
        self.assertAlmostEqual(v.x, 0.0)
        self.assertAlmostEqual(v.y, 0.0)
        self.assertAlmostEqual(v.z, -1.0)

    def test_rotate_phi_about_z(self) -> None:
        v = Vector3(1.0, 0.0, 0.0).rotate(0.0, math.pi / 2)
        self.assertAlmostEqual(v.x, 0.0)
        self.assertAlmostEqual(v.y, 1.0)
        self.assertAlmostEqual(v.z, 0.0)


class TestPerpendiculars(unittest.TestCase):
    def assertFrame(self, v: Vector3) -> None:
        self.assertEqual(check_vector(v), [], msg=str(v))

    def test_fixed_vectors(self) -> None:
        for v in FIXED_VECTORS:
            with self.subTest(v=v.as_tuple()):
                self.assertFrame(v)

    def test_z_axis_fallback(self) -> None:
        p0, p1 = Vector3(0.0, 0.0, 2.0).perpendiculars()
        self.assertEqual(p0, Vector3(1.0, 0.0, 0.0))
        self.assertEqual(p1, Vector3(0.0, 1.0, 0.0))

    def test_negative_z_frame_is_right_handed(self) -> None:
        v = Vector3(0.0, 0.0, -1.0)
        p0, p1 = v.perpendiculars()
        self.assertAlmostEqual(p0.cross(p1).dot(v), 1.0)

    def test_random_vectors(self) -> None:
        rng = DeterministicRng(element=0, sequence=1234)
        vecs = make_test_vectors(rng, 200)
        self.assertEqual(len(vecs), 200)
        for v in vecs:
            self.assertFrame(v)

    def test_minimum_vector_count(self) -> None:
        rng = DeterministicRng(element=0, sequence=1)
        self.assertEqual(len(make_test_vectors(rng, 1)), len(FIXED_VECTORS) + 1)

    def test_selftest_cli(self) -> None:
        self.assertEqual(selftest_main(["--seed", "1234", "--vectors", "50"]), 0)


if __name__ == "__main__":
    unittest.main()
