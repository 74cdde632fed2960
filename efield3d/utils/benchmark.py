#!/usr/bin/env python3
"""
Performance benchmark for potential evaluation and relaxation sweeps.

Compares:
- Python reference solver (one potential() call per probe)
- Direct CPU solver (NumPy, tiled)
- One relaxation sweep of a two-ring system

Usage:
    python -m efield3d.utils.benchmark [--particles 1000] [--iterations 10]
"""

from __future__ import annotations

import argparse
import math
import time
from typing import Callable

from efield3d.core.balancer import ChargeBalancer
from efield3d.core.rng import DeterministicRng
from efield3d.core.surfaces import Ring
from efield3d.core.vector import Vector3
from efield3d.physics.potential import (
    KE_NORMALIZED,
    DirectPotentialSolver,
    PotentialSolver,
    PythonPotentialSolver,
)


def generate_points(n: int, seed: int = 42) -> tuple[list[Vector3], list[Vector3], list[Vector3]]:
    """Random positive, negative and probe points in a unit cube."""
    rng = DeterministicRng(element=0, sequence=seed)

    def cloud(count: int) -> list[Vector3]:
        return [
            Vector3(rng.next_uniform() - 0.5, rng.next_uniform() - 0.5, rng.next_uniform() - 0.5)
            for _ in range(count)
        ]

    return cloud(n), cloud(n), cloud(n)


def _time(fn: Callable[[], object], iterations: int) -> tuple[float, float]:
    times = []
    for _ in range(iterations):
        t0 = time.perf_counter()
        fn()
        times.append(time.perf_counter() - t0)
    mean = sum(times) / len(times)
    std = math.sqrt(sum((t - mean) ** 2 for t in times) / len(times))
    return mean * 1000, std * 1000


def benchmark_solver(solver: PotentialSolver, n: int, iterations: int) -> tuple[float, float]:
    positives, negatives, probes = generate_points(n)
    q = 1.0 / n
    return _time(lambda: solver.compute(probes, positives, negatives, q, ke=KE_NORMALIZED), iterations)


def benchmark_sweep(n: int, iterations: int) -> tuple[float, float]:
    """Time one sweep of the two coaxial ring system."""
    rng = DeterministicRng(element=0, sequence=42)
    z = Vector3(0.0, 0.0, 1.0)
    balancer = ChargeBalancer(
        [Ring(Vector3(0.0, 0.0, 0.0), z, 1.0, rng)],
        [Ring(Vector3(0.0, 0.0, 0.1), z, 1.0, rng)],
        rng,
        n,
        ke=KE_NORMALIZED,
    )
    return _time(balancer.step, iterations)


def run_benchmark(n_particles: int, iterations: int) -> dict:
    """Run full benchmark suite."""
    print(f"\n{'='*60}")
    print(f"Benchmark: {n_particles} particles, {iterations} iterations")
    print(f"{'='*60}")

    results = {}

    print("Python solver...", end=" ", flush=True)
    py_time, py_std = benchmark_solver(PythonPotentialSolver(), n_particles, iterations)
    print(f"{py_time:.2f} ± {py_std:.2f} ms")
    results["python"] = py_time

    print("Direct CPU (NumPy)...", end=" ", flush=True)
    np_time, np_std = benchmark_solver(DirectPotentialSolver(), n_particles, iterations)
    print(f"{np_time:.2f} ± {np_std:.2f} ms")
    results["direct_cpu"] = np_time

    print("Relaxation sweep...", end=" ", flush=True)
    sw_time, sw_std = benchmark_sweep(n_particles, iterations)
    print(f"{sw_time:.2f} ± {sw_std:.2f} ms")
    results["sweep"] = sw_time

    if np_time > 0:
        print(f"\nSpeedup (NumPy vs Python): {py_time / np_time:.1f}x")
    return results


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="efield3d benchmark")
    parser.add_argument("--particles", "-n", type=int, default=500, help="Number of particles per polarity")
    parser.add_argument("--iterations", "-i", type=int, default=5, help="Iterations per test")
    parser.add_argument("--sweep", action="store_true", help="Run sweep across particle counts")
    args = parser.parse_args(argv)

    if args.sweep:
        counts = [50, 100, 200, 500, 1000]
        all_results = {n: run_benchmark(n, args.iterations) for n in counts}

        print(f"\n{'='*60}")
        print("Summary (ms per evaluation)")
        print(f"{'='*60}")
        print(f"{'N':>8} {'Python':>12} {'NumPy':>12} {'Sweep':>12}")
        for n, res in all_results.items():
            print(f"{n:>8} {res['python']:>12.2f} {res['direct_cpu']:>12.2f} {res['sweep']:>12.2f}")
    else:
        run_benchmark(args.particles, args.iterations)


if __name__ == "__main__":
    main()
