"""
STL mesh reader.

Both ASCII and binary files are supported. A file is treated as ASCII when
it starts with ``solid ``, its first line is shorter than 80 characters and
its second line starts with ``facet``; anything else is read as binary.

Usage:
    >>> from efield3d.io.stl import read_stl
    >>> facets = read_stl("anode.stl")
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Iterator

import numpy as np

from efield3d.core.surfaces import MeshSurface
from efield3d.core.vector import Vector3
from efield3d.errors import ConfigurationError

if TYPE_CHECKING:
    from efield3d.core.rng import DeterministicRng

logger = logging.getLogger(__name__)

BINARY_HEADER_SIZE = 80

FACET_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attribute", "<u2"),
])


@dataclass(slots=True)
class Facet:
    normal: Vector3
    v1: Vector3
    v2: Vector3
    v3: Vector3
    attribute: int = 0


@dataclass(slots=True)
class StlFile:
    """
    Parsed STL contents.

    Attributes:
        title: Solid name (ASCII) or header text up to the first NUL (binary)
        is_ascii: Format of the source file
        facets: Facets in file order, in the file's own units
    """
    title: str
    is_ascii: bool
    facets: list[Facet]

    def __len__(self) -> int:
        return len(self.facets)

    def __iter__(self) -> Iterator[Facet]:
        return iter(self.facets)


def _is_ascii(data: bytes) -> bool:
    if not data.startswith(b"solid "):
        return False
    lines = data.split(b"\n", 2)
    if len(lines) < 2 or len(lines[0].rstrip(b"\r")) >= BINARY_HEADER_SIZE:
        return False
    return lines[1].strip().startswith(b"facet ")


def _floats(words: list[str], start: int) -> tuple[float, float, float]:
    return float(words[start]), float(words[start + 1]), float(words[start + 2])


def _parse_ascii(text: str) -> StlFile:
    lines = [ln.split() for ln in text.splitlines()]
    lines = [w for w in lines if w]
    if not lines or lines[0][0] != "solid":
        raise ConfigurationError("ASCII STL must start with 'solid'.")
    title = " ".join(lines[0][1:])
    facets: list[Facet] = []
    i = 1
    try:
        while i < len(lines):
            words = lines[i]
            if words[0] == "endsolid":
                # Some exporters write several solids back to back.
                i += 1
                if i < len(lines) and lines[i][0] == "solid":
                    i += 1
                    continue
                break
            if len(words) != 5 or words[0] != "facet" or words[1] != "normal":
                raise ValueError(f"expected 'facet normal', got {' '.join(words)!r}")
            normal = Vector3(*_floats(words, 2))
            if lines[i + 1] != ["outer", "loop"]:
                raise ValueError("expected 'outer loop'")
            pts = []
            for k in range(3):
                vw = lines[i + 2 + k]
                if len(vw) != 4 or vw[0] != "vertex":
                    raise ValueError(f"expected 'vertex', got {' '.join(vw)!r}")
                pts.append(Vector3(*_floats(vw, 1)))
            if lines[i + 5] != ["endloop"] or lines[i + 6] != ["endfacet"]:
                raise ValueError("expected 'endloop' and 'endfacet'")
            facets.append(Facet(normal, pts[0], pts[1], pts[2], 0))
            i += 7
    except (ValueError, IndexError) as exc:
        raise ConfigurationError(f"STL format error after {len(facets)} facets: {exc}") from exc
    return StlFile(title=title, is_ascii=True, facets=facets)


def _parse_binary(data: bytes) -> StlFile:
    if len(data) < BINARY_HEADER_SIZE + 4:
        raise ConfigurationError("Binary STL is shorter than its header.")
    header = data[:BINARY_HEADER_SIZE]
    title = header.split(b"\0", 1)[0].decode("ascii", errors="replace")
    count = int(np.frombuffer(data, dtype="<u4", count=1, offset=BINARY_HEADER_SIZE)[0])
    available = (len(data) - BINARY_HEADER_SIZE - 4) // FACET_DTYPE.itemsize
    if available < count:
        raise ConfigurationError(f"STL format error after {available} facets: file truncated ({count} declared).")
    records = np.frombuffer(data, dtype=FACET_DTYPE, count=count, offset=BINARY_HEADER_SIZE + 4)

    facets: list[Facet] = []
    for rec in records:
        n = rec["normal"].astype(np.float64)
        v = rec["vertices"].astype(np.float64)
        facets.append(Facet(
            Vector3(float(n[0]), float(n[1]), float(n[2])),
            Vector3(float(v[0, 0]), float(v[0, 1]), float(v[0, 2])),
            Vector3(float(v[1, 0]), float(v[1, 1]), float(v[1, 2])),
            Vector3(float(v[2, 0]), float(v[2, 1]), float(v[2, 2])),
            int(rec["attribute"]),
        ))
    return StlFile(title=title, is_ascii=False, facets=facets)


def read_stl(source: str | Path | BinaryIO) -> StlFile:
    """
    Read an STL file from a path or a binary stream.

    Raises:
        ConfigurationError: malformed contents
        OSError: the file cannot be read
    """
    if isinstance(source, (str, Path)):
        data = Path(source).read_bytes()
    else:
        data = source.read()
    if _is_ascii(data):
        return _parse_ascii(data.decode("utf-8", errors="replace"))
    return _parse_binary(data)


def write_ascii_stl(stl: StlFile, target: str | Path) -> None:
    """Write facets as an ASCII STL file."""
    out = io.StringIO()
    out.write(f"solid {stl.title}\n")
    for f in stl.facets:
        out.write(f"  facet normal {f.normal.x:e} {f.normal.y:e} {f.normal.z:e}\n")
        out.write("    outer loop\n")
        for v in (f.v1, f.v2, f.v3):
            out.write(f"      vertex {v.x:e} {v.y:e} {v.z:e}\n")
        out.write("    endloop\n")
        out.write("  endfacet\n")
    out.write(f"endsolid {stl.title}\n")
    Path(target).write_text(out.getvalue(), encoding="utf-8")


def mesh_from_stl(
    source: str | Path,
    rng: "DeterministicRng",
    *,
    scale: float = 0.001,
) -> MeshSurface:
    """
    Build a MeshSurface from an STL file.

    Args:
        source: STL path
        rng: Shared generator
        scale: Factor converting file units to meters (STL files are
            assumed to be in millimetres)

    Returns:
        MeshSurface in meters
    """
    stl = read_stl(source)
    triangles = [(f.v1 * scale, f.v2 * scale, f.v3 * scale) for f in stl.facets]
    mesh = MeshSurface(triangles, rng, name=str(source))
    logger.info("%s  Triangles: %d   Area: %.4f m^2", source, mesh.triangle_count, mesh.total_area)
    return mesh
