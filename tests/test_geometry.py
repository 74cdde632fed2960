"""Tests for JSON/XML geometry configuration loading."""

import json
import math

import pytest

from efield3d.core.rng import DeterministicRng
from efield3d.core.surfaces import MeshSurface, Post, Ring, SphereSegment, Torus, TorusSegment
from efield3d.errors import ConfigurationError
from efield3d.io.geometry import ShapeSpec, build_geometry, load_geometry, surface_from_dict

RINGS = {
    "shapes": [
        {"type": "Ring", "charge": 1, "center": [0, 0, 0], "axis": [0, 0, 1], "radius": 1.0},
        {"type": "Ring", "charge": -1, "center": [0, 0, 0.1], "axis": [0, 0, 1], "radius": 1.0},
    ]
}

XML_CONFIG = """<?xml version="1.0"?>
<geometry>
  <config>
    <shapes>
      <shape>
        <type>TorusSegment</type>
        <charge>1</charge>
        <radius>1</radius>
        <radius2>0.1</radius2>
        <theta>0</theta>
        <phi>0</phi>
        <phi2>-pi*0.5</phi2>
        <phi3>0.5*pi</phi3>
        <x>0</x><y>0</y><z>0</z>
      </shape>
      <shape>
        <type>Post</type>
        <charge>-1</charge>
        <start>0,0,1</start>
        <axis>0,0,2</axis>
        <wire_diameter>0.02</wire_diameter>
      </shape>
      <shape>
        <type>Sphere</type>
        <charge>-1</charge>
        <center>0,0,-2</center>
        <axis>0,0,1</axis>
        <radius>0.5</radius>
      </shape>
    </shapes>
  </config>
</geometry>
"""


@pytest.fixture
def rng():
    return DeterministicRng(element=0, sequence=1)


def test_load_json(tmp_path, rng) -> None:
    path = tmp_path / "rings.json"
    path.write_text(json.dumps(RINGS), encoding="utf-8")

    geometry = load_geometry(path, rng)
    assert len(geometry.positives) == 1
    assert len(geometry.negatives) == 1
    assert isinstance(geometry.negatives[0], Ring)
    assert geometry.negatives[0].center.z == pytest.approx(0.1)


def test_load_json_list(tmp_path, rng) -> None:
    path = tmp_path / "rings.json"
    path.write_text(json.dumps(RINGS["shapes"]), encoding="utf-8")
    assert len(load_geometry(path, rng).positives) == 1


def test_load_xml(tmp_path, rng) -> None:
    path = tmp_path / "shapes.xml"
    path.write_text(XML_CONFIG, encoding="utf-8")

    geometry = load_geometry(path, rng)
    seg = geometry.positives[0]
    assert isinstance(seg, TorusSegment)
    assert seg.phi_start == pytest.approx(-math.pi / 2)
    assert seg.phi_end == pytest.approx(math.pi / 2)
    post, sphere = geometry.negatives
    assert isinstance(post, Post)
    assert post.wire_radius == pytest.approx(0.01)
    assert isinstance(sphere, SphereSegment)
    assert (sphere.north, sphere.south) == (90.0, -90.0)


def test_xml_duplicate_value(tmp_path, rng) -> None:
    path = tmp_path / "bad.xml"
    path.write_text(XML_CONFIG.replace("<radius>0.5</radius>", "<radius>0.5</radius><radius>1</radius>"), encoding="utf-8")
    with pytest.raises(ConfigurationError, match="multiply defined"):
        load_geometry(path, rng)


def test_xml_without_config(tmp_path, rng) -> None:
    path = tmp_path / "bad.xml"
    path.write_text("<geometry><shapes/></geometry>", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="No config section"):
        load_geometry(path, rng)


def test_malformed_files(tmp_path, rng) -> None:
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_geometry(bad_json, rng)

    bad_xml = tmp_path / "bad.xml"
    bad_xml.write_text("<geometry>", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_geometry(bad_xml, rng)


def test_torus_and_wire_radius(rng) -> None:
    torus = surface_from_dict(
        {"type": "torus", "center": "0,0,0", "axis": "0,0,1", "radius": "2", "wire_radius": "0.5"}, rng
    )
    assert isinstance(torus, Torus)
    assert torus.area == pytest.approx(4.0 * math.pi ** 2)


def test_mesh_shape_relative_path(tmp_path, rng) -> None:
    (tmp_path / "tri.stl").write_text(
        "solid t\n facet normal 0 0 1\n  outer loop\n   vertex 0 0 0\n   vertex 1000 0 0\n"
        "   vertex 0 1000 0\n  endloop\n endfacet\nendsolid t\n",
        encoding="utf-8",
    )
    mesh = surface_from_dict({"type": "Mesh", "file": "tri.stl"}, rng, base_dir=tmp_path)
    assert isinstance(mesh, MeshSurface)
    assert mesh.total_area == pytest.approx(0.5)


def test_angle_forms() -> None:
    spec = ShapeSpec({"type": "x", "a": "pi*0.25", "b": "0.25*pi", "c": "1.5", "d": 2, "e": "pi*two"})
    assert spec.angle("a") == pytest.approx(math.pi / 4)
    assert spec.angle("b") == pytest.approx(math.pi / 4)
    assert spec.angle("c") == 1.5
    assert spec.angle("d") == 2.0
    assert spec.angle("missing", 0.0) == 0.0
    with pytest.raises(ConfigurationError):
        spec.angle("e")


def test_signed_angle_forms() -> None:
    spec = ShapeSpec({
        "type": "TorusSegment",
        "phi2": "-pi*0.5",
        "phi3": "+0.5*pi",
        "theta": "pi*-0.25",
        "theta2": " -0.75 * PI ",
        "theta3": "-1.5",
        "bad": "-pi*pi",
    })
    assert spec.angle("phi2") == pytest.approx(-math.pi / 2)
    assert spec.angle("phi3") == pytest.approx(math.pi / 2)
    assert spec.angle("theta") == pytest.approx(-math.pi / 4)
    assert spec.angle("theta2") == pytest.approx(-0.75 * math.pi)
    assert spec.angle("theta3") == -1.5
    with pytest.raises(ConfigurationError):
        spec.angle("bad")


def test_missing_value(rng) -> None:
    with pytest.raises(ConfigurationError, match="requires a value for radius"):
        surface_from_dict({"type": "Ring", "center": [0, 0, 0], "axis": [0, 0, 1]}, rng)


def test_bad_vector(rng) -> None:
    with pytest.raises(ConfigurationError, match="Invalid value"):
        surface_from_dict({"type": "Ring", "center": "0,0", "axis": [0, 0, 1], "radius": 1}, rng)


def test_unknown_type(rng) -> None:
    with pytest.raises(ConfigurationError, match="Unknown shape type"):
        surface_from_dict({"type": "Helix"}, rng)


def test_charge_values(rng) -> None:
    shapes = [dict(s) for s in RINGS["shapes"]]
    shapes[0]["charge"] = 2
    with pytest.raises(ConfigurationError, match="Invalid charge value"):
        build_geometry(shapes, rng)

    shapes[0]["charge"] = "+1"
    assert len(build_geometry(shapes, rng).positives) == 1


def test_missing_polarity(rng) -> None:
    with pytest.raises(ConfigurationError, match="both positive and negative"):
        build_geometry(RINGS["shapes"][:1], rng)


def test_shape_without_charge(rng) -> None:
    with pytest.raises(ConfigurationError, match="type and a charge"):
        build_geometry([{"type": "Ring"}], rng)
