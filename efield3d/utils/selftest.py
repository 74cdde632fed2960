#!/usr/bin/env python3
"""
Built-in checks for the random generator and the vector frame code.

- RNG: known-answer vectors for hash64 and the first 32-bit draw
- Vectors: perpendiculars of fixed edge cases (axes, near-z vectors) and
  random vectors are unit length, mutually orthogonal and right-handed

Usage:
    python -m efield3d.utils.selftest [--seed 1234] [--vectors 100]
"""

from __future__ import annotations

import argparse
import math
import sys
import time

from efield3d.core.rng import DeterministicRng
from efield3d.core.vector import Vector3

TOLERANCE = 1e-13

FIXED_VECTORS = (
    Vector3(1.0, 0.0, 0.0),
    Vector3(0.0, 1.0, 0.0),
    Vector3(0.0, 0.0, 1.0),
    Vector3(-1.0, 0.0, 0.0),
    Vector3(0.0, -1.0, 0.0),
    Vector3(0.0, 0.0, -1.0),
    Vector3(1e-15, 1e-11, 1.0),
    Vector3(1e-11, 1e-15, -1.0),
    Vector3(1e-15, 1e-11, 1.01),
    Vector3(1e-11, 1e-15, -1.01),
)


def frame_errors(v: Vector3) -> dict[str, float]:
    """Residuals that must all be below TOLERANCE for a valid frame."""
    p0, p1 = v.perpendiculars()
    length = math.sqrt(v.dot(v))
    return {
        "p0.p1": p0.dot(p1),
        "p0.v": p0.dot(v),
        "v.p1": v.dot(p1),
        "p0.p0 - 1": p0.dot(p0) - 1.0,
        "p1.p1 - 1": p1.dot(p1) - 1.0,
        "(p0xp1.v)/|v| - 1": p0.cross(p1).dot(v) / length - 1.0,
    }


def check_vector(v: Vector3) -> list[str]:
    return [
        f"{name} is {value:.3e} and not small"
        for name, value in frame_errors(v).items()
        if not abs(value) < TOLERANCE
    ]


def make_test_vectors(rng: DeterministicRng, count: int) -> list[Vector3]:
    """The fixed edge cases followed by random vectors, ``count`` in total (at least 11)."""
    count = max(count, len(FIXED_VECTORS) + 1)
    vecs = list(FIXED_VECTORS)
    while len(vecs) < count:
        vecs.append(Vector3(rng.next_uniform(), rng.next_uniform(), rng.next_uniform()))
    return vecs


def run_selftest(seed: int, n_vectors: int) -> bool:
    rng = DeterministicRng(element=0, sequence=seed)
    all_passed = True

    if rng.self_test():
        print("RNG test passed")
    else:
        print("RNG test FAILED")
        all_passed = False

    vectors_passed = True
    for i, v in enumerate(make_test_vectors(rng, n_vectors)):
        problems = check_vector(v)
        if problems:
            vectors_passed = False
            p0, p1 = v.perpendiculars()
            print(f"Vector test FAILED for i={i}")
            for msg in problems:
                print(f"  {msg}")
            print(f"  v  = {v}")
            print(f"  p0 = {p0}")
            print(f"  p1 = {p1}")
    print("Vector test passed" if vectors_passed else "Vector test FAILED")
    all_passed &= vectors_passed

    print("All unit tests passed" if all_passed else "Some unit tests FAILED")
    return all_passed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="efield3d self test")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the random vectors")
    parser.add_argument("--vectors", type=int, default=100, help="Number of vectors to test")
    args = parser.parse_args(argv)
    if args.vectors <= 0:
        parser.error("Invalid number of vectors")

    seed = args.seed if args.seed is not None else time.time_ns() & 0xFFFFFFFF
    print(f"Random seed = {seed}")
    print(f"Vectors = {max(args.vectors, len(FIXED_VECTORS) + 1)}")
    return 0 if run_selftest(seed, args.vectors) else 1


if __name__ == "__main__":
    sys.exit(main())
