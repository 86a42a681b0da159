# gdml_exporter/solids.py
import logging
import xml.etree.ElementTree as ET

from .diagnostics import diagnostic_level
from .errors import (
    InvalidArgument, InvalidShapeParameters, UnsupportedShapeKind, UnresolvedSolidReference
)
from .geometry_types import (
    DEFAULT_OUTPUT_LUNIT, DEFAULT_OUTPUT_AUNIT, AngleUnit, Measurement,
    convert_angles, convert_length, format_number, unit_category
)

log = logging.getLogger(__name__)

# Other spellings accepted for the GDML tag of a shape kind
SHAPE_ALIASES = {"elliptical-tube": "eltube", "ellipticaltube": "eltube"}


def solid_name(node_name):
    return f"sol_{node_name}"


def volume_name(node_name):
    return f"vol_{node_name}"


def _check_arity(node, kind, dims, allowed):
    if len(dims) not in allowed:
        expected = " or ".join(str(n) for n in allowed)
        raise InvalidShapeParameters(
            f"volume '{node.name}': shape '{kind}' needs {expected} dimensions, got {len(dims)}")


def _length(measurement, lunit):
    return format_number(convert_length(measurement.value, measurement.unit, lunit))


def _angle(measurement, aunit):
    if unit_category(measurement.unit) == "angle":
        return format_number(convert_angles([measurement.value], measurement.unit, aunit)[0])
    return format_number(measurement.value)


def _box(node, dims, lunit, aunit):
    _check_arity(node, "box", dims, (1, 3))
    values = [_length(d, lunit) for d in dims]
    if len(values) == 1: # cube
        values = values * 3
    return list(zip(("x", "y", "z"), values))


def _eltube(node, dims, lunit, aunit):
    # elliptical cylinder along the z axis
    _check_arity(node, "eltube", dims, (3,))
    return list(zip(("dx", "dy", "dz"), (_length(d, lunit) for d in dims)))


def _orb(node, dims, lunit, aunit):
    _check_arity(node, "orb", dims, (1,))
    return [("r", _length(dims[0], lunit))]


def _tube(node, dims, lunit, aunit):
    # hollow tube segment
    _check_arity(node, "tube", dims, (5,))
    rmin, rmax, z, startphi, deltaphi = dims
    return [
        ("rmin", _length(rmin, lunit)),
        ("rmax", _length(rmax, lunit)),
        ("z", _length(z, lunit)),
        ("startphi", _angle(startphi, aunit)),
        ("deltaphi", _angle(deltaphi, aunit)),
        ("aunit", aunit.value),
    ]


SHAPE_BUILDERS = {
    "box": _box,
    "eltube": _eltube,
    "orb": _orb,
    "tube": _tube,
}


def shape_kind(shape):
    kind = str(shape).lower() if shape else ""
    return SHAPE_ALIASES.get(kind, kind)


def build_solid(node, length_unit=DEFAULT_OUTPUT_LUNIT, angle_unit=DEFAULT_OUTPUT_AUNIT):
    """
    Converts one node's shape kind and dimension list into a solid element
    named sol_<node.name>. The element is returned, not appended.

    Raises:
        InvalidArgument: node is None.
        UnsupportedShapeKind: the kind is not box, tube, orb or eltube.
        InvalidShapeParameters: wrong number of dimensions for the kind.
    """
    if node is None:
        raise InvalidArgument("no volume given to build a solid from")
    kind = shape_kind(node.shape)
    builder = SHAPE_BUILDERS.get(kind)
    if builder is None:
        raise UnsupportedShapeKind(f"volume '{node.name}': unsupported shape kind '{node.shape}'")

    dims = [Measurement.coerce(d) for d in node.dimensions]
    attributes = builder(node, dims, length_unit, AngleUnit.coerce(angle_unit))

    solid_el = ET.Element(kind, {"name": solid_name(node.name)})
    for key, value in attributes:
        solid_el.set(key, value)
    solid_el.set("lunit", length_unit)
    return solid_el


def add_solid(document, node, length_unit=DEFAULT_OUTPUT_LUNIT, angle_unit=DEFAULT_OUTPUT_AUNIT,
              verbose=False):
    solid_el = build_solid(node, length_unit, angle_unit)
    document.append("solids", solid_el)
    log.log(diagnostic_level(verbose), "added solid '%s'", solid_el.get("name"))
    return solid_el


def build_logical_volume(document, node, material_ref=None, verbose=False):
    """
    Binds sol_<node.name> and a material into the logical volume
    vol_<node.name>, then appends and registers it. With material_ref=None
    the materialref is left out so a material can be bound later.
    """
    if node is None:
        raise InvalidArgument("no volume given to build a logical volume from")
    if material_ref is not None and not material_ref:
        raise InvalidArgument(f"volume '{node.name}': empty material reference")

    sol_ref = solid_name(node.name)
    vol_ref = volume_name(node.name)
    document.registry.require("solids", sol_ref, UnresolvedSolidReference,
                              context=f"logical volume '{vol_ref}'")

    volume_el = ET.Element("volume", {"name": vol_ref})
    if material_ref is not None:
        ET.SubElement(volume_el, "materialref", {"ref": material_ref})
    ET.SubElement(volume_el, "solidref", {"ref": sol_ref})
    document.append("structure", volume_el)

    log.log(diagnostic_level(verbose), "added logical volume '%s'", vol_ref)
    return volume_el
