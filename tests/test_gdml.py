import logging
import math
import xml.etree.ElementTree as ET
from types import SimpleNamespace

import pytest

from gdml_exporter.assembler import ExportSettings, TreeAssembler, export_volume_tree
from gdml_exporter.diagnostics import diagnostic_level
from gdml_exporter.document import SECTION_NAMES
from gdml_exporter.errors import (
    InvalidArgument, InvalidShapeParameters, UnknownMaterialPreset, UnresolvedVolumeReference,
    UnsupportedRotationOrder
)
from gdml_exporter.gdml_writer import GDMLWriter
from gdml_exporter.geometry_types import PlacementMode, VolumeNode


def placements(doc, parent_name):
    return doc.find("structure", f"vol_{parent_name}").findall("physvol")


def placed_refs(doc, parent_name):
    return [pv.find("volumeref").get("ref") for pv in placements(doc, parent_name)]


def parent_with_child(**child_kwargs):
    parent = VolumeNode("Parent", "box", [(100, "cm")])
    parent.add_child(VolumeNode("Child", "box", [(10, "cm")], **child_kwargs))
    return parent


@pytest.fixture
def nested_tree():
    # World -> A -> (A1, A2), World -> B
    world = VolumeNode("World", "box", [(1000, "cm")])
    a = world.add_child(VolumeNode("A", "box", [(100, "cm")], position=[10, 0, 0]))
    a.add_child(VolumeNode("A1", "orb", [(5, "cm")], position=[0, 1, 0]))
    a.add_child(VolumeNode("A2", "eltube", [1, 2, 3], position=[0, -1, 0]))
    world.add_child(VolumeNode("B", "tube", [0, 5, 20, 0, 360], position=[-10, 0, 0]))
    return world


def test_single_leaf():
    doc = export_volume_tree(VolumeNode("A", "box", [(10, "cm")]))

    solid = doc.find("solids", "sol_A")
    assert (float(solid.get("x")), float(solid.get("y")), float(solid.get("z"))) == (10.0, 10.0, 10.0)
    volume = doc.find("structure", "vol_A")
    assert volume.find("materialref").get("ref") == "mat_vacuum"
    assert volume.find("solidref").get("ref") == "sol_A"
    assert doc.find("materials", "mat_vacuum") is not None
    assert doc.world_ref == "vol_A"
    assert len(doc.elements("setup")) == 1

def test_child_with_inline_position():
    doc = export_volume_tree(parent_with_child(position=[5, 0, 0], position_unit="cm"))

    pvs = placements(doc, "Parent")
    assert len(pvs) == 1
    pv = pvs[0]
    assert pv.find("volumeref").get("ref") == "vol_Child"
    position = pv.find("position")
    assert position.attrib == {"name": "pos_Child", "x": "5.0", "y": "0.0", "z": "0.0", "unit": "cm"}
    assert pv.find("rotation") is None
    assert pv.find("rotationref") is None

def test_suppressed_child_still_hosts_grandchild():
    parent = VolumeNode("Parent", "box", [100])
    child = parent.add_child(VolumeNode("Child", "box", [50], position=[1, 0, 0], ids=[0]))
    child.add_child(VolumeNode("Grandchild", "box", [5], position=[0, 2, 0]))
    doc = export_volume_tree(parent)

    assert placed_refs(doc, "Parent") == []
    assert placed_refs(doc, "Child") == ["vol_Grandchild"]
    # Definitions do not depend on suppression
    assert doc.find("solids", "sol_Child") is not None
    assert doc.find("structure", "vol_Child") is not None

def test_explicit_nonzero_identifier_is_placed():
    doc = export_volume_tree(parent_with_child(position=[1, 0, 0], ids=[4]))
    assert placed_refs(doc, "Parent") == ["vol_Child"]

def test_unknown_default_material_fails_before_any_change():
    settings = ExportSettings(default_material="mat_unknown")
    assembler = TreeAssembler(settings)
    with pytest.raises(UnknownMaterialPreset):
        assembler.add_top_volume(VolumeNode("A", "box", [10]))
    assert all(assembler.document.elements(name) == [] for name in SECTION_NAMES)

def test_every_node_defined_once(nested_tree):
    doc = export_volume_tree(nested_tree)
    names = [node.name for node in nested_tree.iter_nodes()]
    assert sorted(doc.registry.names("solids")) == sorted(f"sol_{n}" for n in names)
    assert sorted(doc.registry.names("structure")) == sorted(f"vol_{n}" for n in names)

def test_children_defined_before_parents(nested_tree):
    doc = export_volume_tree(nested_tree)
    assert [s.get("name") for s in doc.elements("solids")] == \
        ["sol_A1", "sol_A2", "sol_A", "sol_B", "sol_World"]
    assert [v.get("name") for v in doc.elements("structure")] == \
        ["vol_A1", "vol_A2", "vol_A", "vol_B", "vol_World"]

def test_placement_hierarchy(nested_tree):
    doc = export_volume_tree(nested_tree)
    assert placed_refs(doc, "World") == ["vol_A", "vol_B"]
    assert placed_refs(doc, "A") == ["vol_A1", "vol_A2"]
    assert placed_refs(doc, "A1") == []

def test_identity_transform_is_omitted():
    doc = export_volume_tree(parent_with_child())
    pv = placements(doc, "Parent")[0]
    assert [child.tag for child in pv] == ["volumeref"]
    assert doc.elements("define") == []

def test_position_by_reference():
    settings = ExportSettings(position_loc="by-reference")
    doc = export_volume_tree(parent_with_child(position=[5, 0, -2]), settings)

    pv = placements(doc, "Parent")[0]
    assert pv.find("position") is None
    assert pv.find("positionref").get("ref") == "pos_Child_in_Parent"
    define = doc.find("define", "pos_Child_in_Parent")
    assert (define.get("x"), define.get("y"), define.get("z")) == ("5.0", "0.0", "-2.0")
    assert define.get("unit") == "cm"

def test_rotation_converted_to_degrees():
    # Default settings: input angles in rad, output in deg
    doc = export_volume_tree(parent_with_child(rotation=[math.pi / 2, 0, 0]))
    rotation = placements(doc, "Parent")[0].find("rotation")
    assert rotation.get("name") == "rot_Child_in_Parent"
    assert float(rotation.get("x")) == pytest.approx(90.0)
    assert float(rotation.get("y")) == 0.0
    assert rotation.get("unit") == "deg"

def test_rotation_converted_to_radians():
    settings = ExportSettings(desired_angle_unit="rad", actual_angle_unit="deg")
    doc = export_volume_tree(parent_with_child(rotation=[0, 180, 0]), settings)
    rotation = placements(doc, "Parent")[0].find("rotation")
    assert float(rotation.get("y")) == pytest.approx(math.pi)
    assert rotation.get("unit") == "rad"

def test_node_rotation_unit_overrides_input_unit():
    doc = export_volume_tree(parent_with_child(rotation=[30, 0, 0], rotation_unit="deg"))
    rotation = placements(doc, "Parent")[0].find("rotation")
    assert rotation.get("x") == "30.0"

def test_rotation_by_reference_with_axis_order():
    settings = ExportSettings(rotation_loc="global", actual_angle_unit="deg")
    doc = export_volume_tree(parent_with_child(rotation=[10, 20, 30], rotation_order="zyx"), settings)

    pv = placements(doc, "Parent")[0]
    assert pv.find("rotationref").get("ref") == "rot_Child_in_Parent"
    rotation = doc.find("define", "rot_Child_in_Parent")
    assert (rotation.get("x"), rotation.get("y"), rotation.get("z")) == ("30.0", "20.0", "10.0")
    assert rotation.get("unit") == "deg"

def test_inline_rotation_uses_axis_order():
    settings = ExportSettings(rotation_loc="inline", actual_angle_unit="deg")
    doc = export_volume_tree(parent_with_child(rotation=[10, 20, 30], rotation_order="zyx"), settings)

    rotation = placements(doc, "Parent")[0].find("rotation")
    assert (rotation.get("x"), rotation.get("y"), rotation.get("z")) == ("30.0", "20.0", "10.0")
    assert doc.elements("define") == []

def test_placement_failure_does_not_stop_traversal():
    world = VolumeNode("World", "box", [100])
    world.add_child(VolumeNode("A", "box", [1], position=[1, 0, 0]))
    world.add_child(VolumeNode("B", "box", [1], position=[2, 0, 0]))

    assembler = TreeAssembler()
    assembler.add_logical_tree(world, "mat_vacuum")
    # Added after the definitions pass, so it has no logical volume
    world.children.insert(1, VolumeNode("Ghost", "box", [1]))
    failures = assembler.add_physical_tree(world)

    assert placed_refs(assembler.document, "World") == ["vol_A", "vol_B"]
    assert len(failures) == 1
    parent_name, child_name, error = failures[0]
    assert (parent_name, child_name) == ("World", "Ghost")
    assert isinstance(error, UnresolvedVolumeReference)
    assert assembler.placement_failures == failures

def plain_node(name, position=(0, 0, 0), rotation=(0, 0, 0), rotation_order="xyz", children=()):
    return SimpleNamespace(name=name, shape="box", dimensions=[1], position=list(position),
                           rotation=list(rotation), rotation_order=rotation_order,
                           rotation_unit=None, position_unit=None, ids=[], children=list(children))

def test_malformed_position_skips_only_that_edge():
    world = plain_node("W", children=[plain_node("A", position=[1, 2]),
                                      plain_node("B", position=[3, 0, 0])])
    assembler = TreeAssembler()
    assembler.add_top_volume(world)

    assert placed_refs(assembler.document, "W") == ["vol_B"]
    assert len(assembler.placement_failures) == 1
    parent_name, child_name, error = assembler.placement_failures[0]
    assert (parent_name, child_name) == ("W", "A")
    assert isinstance(error, InvalidArgument)
    assert "'A' in 'W'" in str(error)
    assert assembler.document.elements("define") == []

def test_non_numeric_rotation_skips_only_that_edge():
    world = plain_node("W", children=[plain_node("A", rotation=[1, "left", 0]), plain_node("B")])
    assembler = TreeAssembler()
    assembler.add_top_volume(world)

    assert placed_refs(assembler.document, "W") == ["vol_B"]
    assert isinstance(assembler.placement_failures[0][2], InvalidArgument)

def test_unknown_rotation_order_skips_only_that_edge():
    world = plain_node("W", children=[plain_node("A", rotation=[1, 0, 0], rotation_order="qqq"),
                                      plain_node("B", rotation=[1, 0, 0])])
    assembler = TreeAssembler()
    assembler.add_top_volume(world)

    assert placed_refs(assembler.document, "W") == ["vol_B"]
    assert len(assembler.placement_failures) == 1
    assert isinstance(assembler.placement_failures[0][2], UnsupportedRotationOrder)

def test_bad_shape_aborts_export():
    world = VolumeNode("World", "box", [100])
    world.add_child(VolumeNode("Broken", "orb", [1, 2]))
    with pytest.raises(InvalidShapeParameters, match="Broken"):
        export_volume_tree(world)

def test_duplicate_names_abort_export():
    world = VolumeNode("World", "box", [100])
    world.add_child(VolumeNode("Twin", "box", [1]))
    world.add_child(VolumeNode("Twin", "box", [2]))
    with pytest.raises(InvalidArgument, match="sol_Twin"):
        export_volume_tree(world)

def test_materialless_export():
    doc = export_volume_tree(VolumeNode("A", "box", [1]), ExportSettings(default_material=None))
    assert doc.elements("materials") == []
    assert doc.find("structure", "vol_A").find("materialref") is None

def test_world_is_set_once():
    assembler = TreeAssembler()
    assembler.add_top_volume(VolumeNode("A", "box", [1]))
    with pytest.raises(InvalidArgument):
        assembler.add_world("A")

def test_world_must_exist():
    with pytest.raises(UnresolvedVolumeReference):
        TreeAssembler().add_world("Nowhere")

def test_settings():
    settings = ExportSettings.from_dict({"position_loc": "global", "verbose": True})
    assert settings.position_loc is PlacementMode.BY_REFERENCE
    assert settings.rotation_loc is PlacementMode.INLINE
    assert settings.to_dict()["desired_angle_unit"] == "deg"
    with pytest.raises(InvalidArgument):
        ExportSettings(rotation_loc="somewhere")
    with pytest.raises(InvalidArgument):
        ExportSettings(length_unit="furlong")

def test_output_is_deterministic(nested_tree):
    settings = ExportSettings(position_loc="by-reference", rotation_loc="by-reference")
    first = GDMLWriter(export_volume_tree(nested_tree, settings)).get_gdml_string()
    second = GDMLWriter(export_volume_tree(nested_tree, settings)).get_gdml_string()
    assert first == second

def test_gdml_string_sections(nested_tree):
    gdml_str = GDMLWriter(export_volume_tree(nested_tree)).get_gdml_string()
    assert gdml_str.startswith("<?xml")
    root = ET.fromstring(gdml_str.encode("utf-8"))
    assert root.tag == "gdml"
    assert [section.tag for section in root] == list(SECTION_NAMES)
    assert root.find("setup/world").get("ref") == "vol_World"

def test_write_file(tmp_path, nested_tree):
    writer = GDMLWriter(export_volume_tree(nested_tree))
    path = writer.write_file(tmp_path / "detector")
    assert path.endswith("detector.gdml")
    with open(path, encoding="utf-8") as f:
        assert f.read() == writer.get_gdml_string()

def test_verbose_reports_progress(caplog):
    caplog.set_level(logging.INFO, logger="gdml_exporter")
    export_volume_tree(VolumeNode("A", "box", [1]), ExportSettings(verbose=True))
    assert "added solid 'sol_A'" in caplog.text
    assert "added world from logical volume 'vol_A'" in caplog.text

def test_quiet_by_default(caplog):
    caplog.set_level(logging.INFO, logger="gdml_exporter")
    export_volume_tree(VolumeNode("A", "box", [1]))
    assert "added solid" not in caplog.text

def test_diagnostic_level():
    assert diagnostic_level(True) == logging.INFO
    assert diagnostic_level(False) == logging.DEBUG
