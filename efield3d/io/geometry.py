"""
Geometry configuration files.

A geometry is a list of shapes, each with a ``type`` and a ``charge`` of
+1 or -1. Two layouts are accepted:

JSON::

    {"shapes": [
        {"type": "Ring", "charge": 1, "center": [0, 0, 0], "axis": [0, 0, 1], "radius": 1.0},
        {"type": "TorusSegment", "charge": -1, "radius": 1, "radius2": 0.1,
         "theta": 0, "phi": 0, "phi2": "-pi*0.5", "phi3": "pi*0.5", "x": 0, "y": 0, "z": 0.1}
    ]}

XML::

    <geometry><config><shapes>
      <shape><type>Ring</type><charge>1</charge><radius>1</radius>...</shape>
    </shapes></config></geometry>

Vectors are lists in JSON or comma-separated strings in XML. Angles are
radians and may be written ``pi*k`` or ``k*pi``. Lengths are meters,
except mesh files, which are scaled by ``scale`` (default 0.001).
"""

from __future__ import annotations

import json
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from efield3d.core.surfaces import Post, Ring, SphereSegment, Surface, Torus, TorusSegment
from efield3d.core.vector import Vector3
from efield3d.errors import ConfigurationError
from efield3d.io.stl import mesh_from_stl

if TYPE_CHECKING:
    from efield3d.core.rng import DeterministicRng

logger = logging.getLogger(__name__)


@dataclass
class Geometry:
    """Surfaces grouped by polarity, in file order."""
    positives: list[Surface] = field(default_factory=list)
    negatives: list[Surface] = field(default_factory=list)

    def check(self) -> "Geometry":
        if not self.positives or not self.negatives:
            raise ConfigurationError("There must be both positive and negative shapes.")
        return self


class ShapeSpec:
    """Typed access to the raw key/value pairs of one shape definition."""

    def __init__(self, values: dict[str, Any], base_dir: Path | None = None) -> None:
        self.values = values
        self.type = str(values.get("type", "")).strip()
        self.base_dir = base_dir

    def _raw(self, key: str) -> Any:
        if key not in self.values:
            raise ConfigurationError(f"A {self.type} requires a value for {key}")
        return self.values[key]

    def _invalid(self, key: str) -> ConfigurationError:
        return ConfigurationError(f"Invalid value {self.values[key]!r} for {key} in {self.type} definition.")

    def has(self, key: str) -> bool:
        return key in self.values

    def double(self, key: str, default: float | None = None) -> float:
        if default is not None and key not in self.values:
            return default
        raw = self._raw(key)
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise self._invalid(key) from None

    def angle(self, key: str, default: float | None = None) -> float:
        if default is not None and key not in self.values:
            return default
        raw = self._raw(key)
        if isinstance(raw, (int, float)):
            return float(raw)
        text = str(raw).strip()
        # A leading sign applies to the whole product: "-pi*0.5", "+0.5*pi".
        sign = 1.0
        if text[:1] in ("-", "+") and "*" in text:
            sign = -1.0 if text[0] == "-" else 1.0
            text = text[1:]
        words = [w.strip() for w in text.split("*") if w.strip()]
        has_pi = False
        if len(words) == 2:
            if words[0].lower() == "pi":
                words = [words[1]]
            elif words[1].lower() == "pi":
                words = [words[0]]
            else:
                raise self._invalid(key)
            has_pi = True
        elif len(words) != 1:
            raise self._invalid(key)
        try:
            x = float(words[0])
        except ValueError:
            raise self._invalid(key) from None
        return sign * x * math.pi if has_pi else sign * x

    def vector(self, key: str, default: Vector3 | None = None) -> Vector3:
        if default is not None and key not in self.values:
            return default
        raw = self._raw(key)
        parts = raw if isinstance(raw, (list, tuple)) else str(raw).split(",")
        if len(parts) != 3:
            raise self._invalid(key)
        try:
            return Vector3(float(parts[0]), float(parts[1]), float(parts[2]))
        except (TypeError, ValueError):
            raise self._invalid(key) from None

    def wire_radius(self) -> float:
        if self.has("wire_radius"):
            return self.double("wire_radius")
        return self.double("wire_diameter") / 2.0

    def path(self, key: str) -> Path:
        p = Path(str(self._raw(key)))
        if not p.is_absolute() and self.base_dir is not None:
            p = self.base_dir / p
        return p


def _ring(spec: ShapeSpec, rng: "DeterministicRng") -> Surface:
    return Ring(spec.vector("center"), spec.vector("axis"), spec.double("radius"), rng)


def _torus(spec: ShapeSpec, rng: "DeterministicRng") -> Surface:
    return Torus(spec.vector("center"), spec.vector("axis"), spec.double("radius"), spec.wire_radius(), rng)


def _torus_segment(spec: ShapeSpec, rng: "DeterministicRng") -> Surface:
    return TorusSegment(
        spec.double("radius"),
        spec.double("radius2"),
        phi_start=spec.angle("phi2"),
        phi_end=spec.angle("phi3"),
        theta=spec.angle("theta"),
        phi=spec.angle("phi"),
        offset=Vector3(spec.double("x"), spec.double("y"), spec.double("z")),
        theta_start=spec.angle("theta2", 0.0),
        theta_end=spec.angle("theta3", 2.0 * math.pi),
        rng=rng,
    )


def _post(spec: ShapeSpec, rng: "DeterministicRng") -> Surface:
    return Post(spec.vector("start"), spec.vector("axis"), spec.wire_radius(), rng)


def _sphere(spec: ShapeSpec, rng: "DeterministicRng") -> Surface:
    return SphereSegment(
        spec.vector("center"),
        spec.vector("axis"),
        spec.double("radius"),
        spec.double("north", 90.0),
        spec.double("south", -90.0),
        rng,
    )


def _mesh(spec: ShapeSpec, rng: "DeterministicRng", default_scale: float) -> Surface:
    return mesh_from_stl(spec.path("file"), rng, scale=spec.double("scale", default_scale))


SHAPE_BUILDERS: dict[str, Callable[[ShapeSpec, "DeterministicRng"], Surface]] = {
    "ring": _ring,
    "torus": _torus,
    "torussegment": _torus_segment,
    "post": _post,
    "sphere": _sphere,
    "spheresegment": _sphere,
}


def surface_from_dict(
    values: dict[str, Any],
    rng: "DeterministicRng",
    *,
    base_dir: Path | None = None,
    stl_scale: float = 0.001,
) -> Surface:
    """
    Build one surface from its key/value description.

    Raises:
        ConfigurationError: unknown type, missing or malformed values
    """
    spec = ShapeSpec(values, base_dir)
    kind = spec.type.lower()
    if kind in {"mesh", "stl"}:
        return _mesh(spec, rng, stl_scale)
    builder = SHAPE_BUILDERS.get(kind)
    if builder is None:
        raise ConfigurationError(f"Unknown shape type {spec.type}")
    return builder(spec, rng)


def _parse_charge(values: dict[str, Any]) -> int:
    try:
        charge = int(str(values["charge"]).strip())
    except (KeyError, ValueError):
        raise ConfigurationError("Invalid charge value") from None
    if charge not in (1, -1):
        raise ConfigurationError("Invalid charge value")
    return charge


def build_geometry(
    shapes: list[dict[str, Any]],
    rng: "DeterministicRng",
    *,
    base_dir: Path | None = None,
    stl_scale: float = 0.001,
) -> Geometry:
    geometry = Geometry()
    for values in shapes:
        if not isinstance(values, dict) or "type" not in values or "charge" not in values:
            raise ConfigurationError("A shape must have a type and a charge")
        charge = _parse_charge(values)
        surface = surface_from_dict(values, rng, base_dir=base_dir, stl_scale=stl_scale)
        if charge == 1:
            geometry.positives.append(surface)
        else:
            geometry.negatives.append(surface)
    geometry.check()
    logger.info(
        "Configuration has %d positive and %d negative shapes",
        len(geometry.positives), len(geometry.negatives),
    )
    return geometry


def _shapes_from_xml(text: str) -> list[dict[str, Any]]:
    root = ET.fromstring(text)
    configs = root.findall(".//config") if root.tag != "config" else [root]
    if not configs:
        raise ConfigurationError("No config section in XML root")
    if len(configs) > 1:
        raise ConfigurationError("More than one config section in XML root")
    shapes_nodes = configs[0].findall(".//shapes")
    if not shapes_nodes:
        raise ConfigurationError("No shapes section in XML config")
    if len(shapes_nodes) > 1:
        raise ConfigurationError("More than one shapes section in XML config")

    shapes: list[dict[str, Any]] = []
    for node in shapes_nodes[0].iter("shape"):
        values: dict[str, Any] = {}
        for child in node:
            if len(child):
                raise ConfigurationError(f"Shape has non-simple node: {child.tag}")
            if child.tag in values:
                raise ConfigurationError(f"Value of {child.tag} is multiply defined in a shape")
            values[child.tag] = (child.text or "").strip()
        shapes.append(values)
    return shapes


def load_geometry(
    path: str | Path,
    rng: "DeterministicRng",
    *,
    stl_scale: float = 0.001,
) -> Geometry:
    """
    Load a JSON or XML geometry file (chosen by extension).

    Raises:
        ConfigurationError: unreadable layout or invalid shapes
        OSError: the file cannot be read
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".xml":
        try:
            shapes = _shapes_from_xml(text)
        except ET.ParseError as exc:
            raise ConfigurationError(f"Error reading XML file {path}: {exc}") from exc
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Error reading JSON file {path}: {exc}") from exc
        shapes = data.get("shapes") if isinstance(data, dict) else data
        if not isinstance(shapes, list):
            raise ConfigurationError(f"No shapes list in {path}")
    return build_geometry(shapes, rng, base_dir=path.parent, stl_scale=stl_scale)
