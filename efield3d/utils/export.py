"""
Export utilities for relaxed charge distributions.

This module writes the final state of a run:
- particle dump: ``particles N N`` followed by fixed-width rows
- CSV: positions, polarity, source surface and potential per particle
- axis scan: tabulated potential along the x axis

Usage:
    >>> from efield3d.utils.export import export_particles_csv
    >>> export_particles_csv(balancer, "particles.csv")
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Sequence, TextIO

if TYPE_CHECKING:
    from efield3d.core.balancer import ChargeBalancer
    from efield3d.core.vector import Vector3


@dataclass
class ExportStats:
    """Statistics from an export operation."""
    file_path: Path
    particle_count: int
    positive_count: int
    negative_count: int
    timestamp: str


def write_particle_dump(
    stream: TextIO,
    positives: Sequence["Vector3"],
    negatives: Sequence["Vector3"],
) -> None:
    """
    Write the plain particle dump.

    The header line is ``particles <n_pos> <n_neg>``, followed by one
    ``x y z`` row per positive particle, then per negative particle, each
    coordinate right-aligned in 10 columns with 4 decimals.
    """
    stream.write(f"particles {len(positives)} {len(negatives)}\n")
    for x in positives:
        stream.write(f"{x.x:10.4f}{x.y:10.4f}{x.z:10.4f}\n")
    for x in negatives:
        stream.write(f"{x.x:10.4f}{x.y:10.4f}{x.z:10.4f}\n")


def write_scan(stream: TextIO, rows: Sequence[tuple[float, float]]) -> None:
    """Write an x-axis scan as ``x  phi`` rows."""
    stream.write("Scan along X-axis\n")
    for x, phi in rows:
        stream.write(f"{x:10.2f}  {phi:.3e}\n")


def read_particle_dump(path: str | Path) -> tuple[list["Vector3"], list["Vector3"]]:
    """
    Read a file containing a particle dump back into two position lists.

    Lines before the ``particles`` header are ignored, so a full run log
    can be read directly.
    """
    from efield3d.core.vector import Vector3
    from efield3d.errors import ConfigurationError

    lines = Path(path).read_text(encoding="utf-8").splitlines()
    for k, line in enumerate(lines):
        words = line.split()
        if len(words) == 3 and words[0] == "particles":
            n_pos, n_neg = int(words[1]), int(words[2])
            rows = lines[k + 1:k + 1 + n_pos + n_neg]
            if len(rows) != n_pos + n_neg:
                raise ConfigurationError(f"Particle dump in {path} is truncated.")
            pts = []
            for row in rows:
                x, y, z = (float(w) for w in row.split())
                pts.append(Vector3(x, y, z))
            return pts[:n_pos], pts[n_pos:]
    raise ConfigurationError(f"No particle dump found in {path}.")


def export_particles_csv(
    balancer: "ChargeBalancer",
    output_path: str | Path,
    *,
    include_potential: bool = True,
    step: int | None = None,
) -> ExportStats:
    """
    Export the particles of a balancer to a CSV file.

    Args:
        balancer: Relaxed system
        output_path: Path to output CSV file
        include_potential: Add the potential at each particle
        step: Optional sweep count to include in output

    Returns:
        ExportStats with export details
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    header = ["index", "x", "y", "z", "sign", "surface"]
    if include_potential:
        header.append("potential")
    if step is not None:
        header.insert(0, "step")

    timestamp = datetime.now().isoformat()
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)

        writer.writerow([f"# efield3d export - {timestamp}"])
        writer.writerow([f"# Particles per polarity: {balancer.n}"])
        writer.writerow(header)

        for sign in (1, -1):
            positions = balancer.positives if sign > 0 else balancer.negatives
            sources = balancer.pos_sources if sign > 0 else balancer.neg_sources
            for i, p in enumerate(positions):
                row: list[object] = []
                if step is not None:
                    row.append(step)
                row.extend([
                    i,
                    f"{p.x:.6f}",
                    f"{p.y:.6f}",
                    f"{p.z:.6f}",
                    sign,
                    sources[i],
                ])
                if include_potential:
                    row.append(f"{balancer.particle_potential(sign, i):.6e}")
                writer.writerow(row)

    return ExportStats(
        file_path=output_path,
        particle_count=2 * balancer.n,
        positive_count=balancer.n,
        negative_count=balancer.n,
        timestamp=timestamp,
    )
