# gdml_exporter/assembler.py
import logging
import xml.etree.ElementTree as ET

from .diagnostics import diagnostic_level
from .document import DocumentModel
from .errors import GDMLExportError, InvalidArgument, UnresolvedVolumeReference
from .geometry_types import (
    DEFAULT_OUTPUT_LUNIT, DEFAULT_OUTPUT_AUNIT, DEFAULT_INPUT_AUNIT, UNIT_FACTORS,
    AngleUnit, PlacementMode, RotationOrder,
    _triple, convert_angles, convert_length, format_number, is_suppressed
)
from .materials import DEFAULT_MATERIAL_REF, add_material_preset
from .solids import add_solid, build_logical_volume, volume_name

log = logging.getLogger(__name__)


class ExportSettings:
    """Options consumed by the tree assembler. Invalid values are rejected here."""
    def __init__(self, position_loc=PlacementMode.INLINE, rotation_loc=PlacementMode.INLINE,
                 desired_angle_unit=DEFAULT_OUTPUT_AUNIT, actual_angle_unit=DEFAULT_INPUT_AUNIT,
                 default_material=DEFAULT_MATERIAL_REF, length_unit=DEFAULT_OUTPUT_LUNIT,
                 verbose=False):
        self.position_loc = PlacementMode.coerce(position_loc)
        self.rotation_loc = PlacementMode.coerce(rotation_loc)
        self.desired_angle_unit = AngleUnit.coerce(desired_angle_unit)
        self.actual_angle_unit = AngleUnit.coerce(actual_angle_unit)
        if default_material is not None and not default_material:
            raise InvalidArgument("default material must be a non-empty string or None")
        self.default_material = default_material
        if length_unit not in UNIT_FACTORS["length"]:
            raise InvalidArgument(f"unknown length unit '{length_unit}'")
        self.length_unit = length_unit
        self.verbose = bool(verbose)

    def to_dict(self):
        return {
            "position_loc": self.position_loc.value,
            "rotation_loc": self.rotation_loc.value,
            "desired_angle_unit": self.desired_angle_unit.value,
            "actual_angle_unit": self.actual_angle_unit.value,
            "default_material": self.default_material,
            "length_unit": self.length_unit,
            "verbose": self.verbose
        }

    @classmethod
    def from_dict(cls, data):
        defaults = cls().to_dict()
        defaults.update(data or {})
        return cls(**defaults)


def _vector_element(tag, name, components, unit):
    element = ET.Element(tag, {"name": name})
    for axis in ("x", "y", "z"):
        element.set(axis, format_number(components[axis]))
    element.set("unit", unit)
    return element


class TreeAssembler:
    """
    Builds a GDML document from a volume tree in two passes: a post-order
    definitions pass (one solid + one logical volume per node) and, once the
    whole tree is defined, a pre-order placement pass linking parent and child
    logical volumes with physvols.
    """
    def __init__(self, settings=None, document=None):
        self.settings = settings if settings is not None else ExportSettings()
        self.document = document if document is not None else DocumentModel()
        self.placement_failures = []

    def _report(self, message, *args):
        log.log(diagnostic_level(self.settings.verbose), message, *args)

    def add_top_volume(self, root):
        if root is None:
            raise InvalidArgument("no top volume given")
        s = self.settings
        self._report("adding top volume '%s': position location=%s, rotation location=%s, "
                     "material=%s, actual angle unit=%s, desired angle unit=%s",
                     root.name, s.position_loc.value, s.rotation_loc.value, s.default_material,
                     s.actual_angle_unit.value, s.desired_angle_unit.value)

        material_ref = s.default_material
        if material_ref is not None and not self.document.registry.contains("materials", material_ref):
            add_material_preset(self.document, material_ref, verbose=s.verbose)
        self.add_logical_tree(root, material_ref)
        self.add_physical_tree(root)
        self.add_world(root.name)
        return self.document

    # --- Definitions pass ---

    def add_logical_tree(self, root, material_ref=None):
        """
        Adds a solid and a logical volume for every node, children before
        their parent. Any error aborts the export.
        """
        if root is None:
            raise InvalidArgument("no volume given to add_logical_tree")
        stack = [(root, False)]
        while stack:
            node, children_done = stack.pop()
            if children_done:
                add_solid(self.document, node, self.settings.length_unit,
                          self.settings.desired_angle_unit, self.settings.verbose)
                build_logical_volume(self.document, node, material_ref, self.settings.verbose)
                continue
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(node.children))

    # --- Placement pass ---

    def add_physical_tree(self, root):
        """
        Places every child inside its parent's logical volume, walking the
        tree parent-first. A suppressed child gets no placement but still
        hosts its own children. A failing edge is logged and skipped.

        Returns:
            list: (parent name, child name, error) for every edge that failed.
        """
        if root is None:
            raise InvalidArgument("no volume given to add_physical_tree")
        failures = []
        stack = [(root, child) for child in reversed(root.children)]
        while stack:
            parent, child = stack.pop()
            if is_suppressed(child):
                self._report("skipped placement of '%s' in '%s': identifier is 0",
                             volume_name(child.name), volume_name(parent.name))
            else:
                try:
                    self.add_physical_volume(parent.name, child)
                except GDMLExportError as e:
                    log.warning("could not place '%s' in '%s': %s", child.name, parent.name, e)
                    failures.append((parent.name, child.name, e))
            stack.extend((child, grandchild) for grandchild in reversed(child.children))
        self.placement_failures.extend(failures)
        return failures

    def add_physical_volume(self, parent_name, child):
        if not parent_name:
            raise InvalidArgument("empty parent name")
        if child is None:
            raise InvalidArgument(f"no volume given to place in '{parent_name}'")

        parent_ref = volume_name(parent_name)
        child_ref = volume_name(child.name)
        registry = self.document.registry
        parent_el = registry.require("structure", parent_ref, UnresolvedVolumeReference,
                                     context=f"placement of '{child_ref}'")
        registry.require("structure", child_ref, UnresolvedVolumeReference,
                         context=f"placement in '{parent_ref}'")

        # Everything that can fail is resolved before the document is touched
        where = f"placement of '{child.name}' in '{parent_name}'"
        position = self._local_position(child, where)
        rotation = self._local_rotation(child, where)
        order = RotationOrder.coerce(getattr(child, 'rotation_order', RotationOrder.XYZ))

        physvol_el = ET.Element("physvol")
        ET.SubElement(physvol_el, "volumeref", {"ref": child_ref})
        if position is not None:
            physvol_el.append(self._position_element(child.name, parent_name, position))
        if rotation is not None:
            physvol_el.append(self._rotation_element(child.name, parent_name, rotation, order))
        parent_el.append(physvol_el)

        self._report("added physical volume '%s' to logical volume '%s'", child_ref, parent_ref)
        return physvol_el

    def _local_position(self, node, where):
        position = _triple(node.position, f"{where}: position")
        if all(v == 0.0 for v in position):
            return None
        unit = getattr(node, 'position_unit', None)
        return [convert_length(v, unit, self.settings.length_unit) for v in position]

    def _local_rotation(self, node, where):
        rotation = _triple(node.rotation, f"{where}: rotation")
        if all(v == 0.0 for v in rotation):
            return None
        actual = getattr(node, 'rotation_unit', None) or self.settings.actual_angle_unit
        return convert_angles(rotation, actual, self.settings.desired_angle_unit)

    def _position_element(self, child_name, parent_name, position):
        unit = self.settings.length_unit
        if self.settings.position_loc == PlacementMode.INLINE:
            return _vector_element("position", f"pos_{child_name}", dict(zip("xyz", position)), unit)
        name = f"pos_{child_name}_in_{parent_name}"
        if self.document.registry.contains("define", name):
            self._report("reusing position '%s'", name)
        else:
            self.add_position(name, position, unit)
        return ET.Element("positionref", {"ref": name})

    def _rotation_element(self, child_name, parent_name, rotation, order):
        unit = self.settings.desired_angle_unit.value
        name = f"rot_{child_name}_in_{parent_name}"
        if self.settings.rotation_loc == PlacementMode.INLINE:
            return _vector_element("rotation", name, order.assign(rotation), unit)
        if self.document.registry.contains("define", name):
            self._report("reusing rotation '%s'", name)
        else:
            self.add_rotation(name, rotation, order, unit)
        return ET.Element("rotationref", {"ref": name})

    # --- Named definitions and world ---

    def add_position(self, name, values, unit):
        if not name:
            raise InvalidArgument("empty position name")
        if values is None or len(values) != 3:
            raise InvalidArgument(f"position '{name}': expected 3 components, got {values!r}")
        if not unit:
            raise InvalidArgument(f"position '{name}': empty unit")
        position_el = _vector_element("position", name, dict(zip("xyz", values)), unit)
        self.document.append("define", position_el)
        self._report("added position '%s'", name)
        return position_el

    def add_rotation(self, name, values, order, unit):
        if not name:
            raise InvalidArgument("empty rotation name")
        if values is None or len(values) != 3:
            raise InvalidArgument(f"rotation '{name}': expected 3 components, got {values!r}")
        if not unit:
            raise InvalidArgument(f"rotation '{name}': empty unit")
        order = RotationOrder.coerce(order)
        rotation_el = _vector_element("rotation", name, order.assign(values), unit)
        self.document.append("define", rotation_el)
        self._report("added rotation '%s'", name)
        return rotation_el

    def add_world(self, name):
        if not name:
            raise InvalidArgument("empty world volume name")
        current = self.document.world_ref
        if current is not None:
            raise InvalidArgument(f"world is already set to '{current}'")
        ref = volume_name(name)
        self.document.registry.require("structure", ref, UnresolvedVolumeReference, context="world")
        world_el = self.document.append("setup", ET.Element("world", {"ref": ref}), register=False)
        self._report("added world from logical volume '%s'", ref)
        return world_el


def export_volume_tree(root, settings=None):
    """Assembles a fresh DocumentModel for the tree under `root`."""
    return TreeAssembler(settings).add_top_volume(root)
