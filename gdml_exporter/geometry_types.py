# gdml_exporter/geometry_types.py

from enum import Enum

import numpy as np

from .errors import InvalidArgument, UnsupportedRotationOrder
from .expression_evaluator import ExpressionEvaluator

# --- Helper for Units ---
# Factors relative to mm for length and rad for angle
UNIT_FACTORS = {
    "length": {"mm": 1.0, "cm": 10.0, "m": 1000.0},
    "angle": {"rad": 1.0, "deg": np.pi / 180.0}
}
DEFAULT_OUTPUT_LUNIT = "cm"
DEFAULT_OUTPUT_AUNIT = "deg"
DEFAULT_INPUT_AUNIT = "rad"


def _coerce_enum(enum_cls, value, error_cls, label):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise error_cls(f"unknown {label} '{value}' (expected one of: {allowed})") from None


class AngleUnit(Enum):
    DEG = "deg"
    RAD = "rad"

    @classmethod
    def coerce(cls, value):
        return _coerce_enum(cls, value, InvalidArgument, "angle unit")


class PlacementMode(Enum):
    """Where a placement's position/rotation is written."""
    INLINE = "inline"
    BY_REFERENCE = "by-reference"

    @classmethod
    def _missing_(cls, value):
        # 'local' and 'global' are the older names for the two modes
        return {"local": cls.INLINE, "global": cls.BY_REFERENCE}.get(value)

    @classmethod
    def coerce(cls, value):
        return _coerce_enum(cls, value, InvalidArgument, "placement mode")


class RotationOrder(Enum):
    """
    Axis order of a measured rotation. The value spells out which output axis
    receives the first, second and third measured component.
    """
    XYZ = "xyz"
    YZX = "yzx"
    ZXY = "zxy"
    ZYX = "zyx"
    YXZ = "yxz"

    @classmethod
    def coerce(cls, value):
        return _coerce_enum(cls, value, UnsupportedRotationOrder, "rotation order")

    @property
    def axes(self):
        return tuple(self.value)

    def assign(self, components):
        """Returns {'x':..,'y':..,'z':..} with the components routed to their axes."""
        routed = dict(zip(self.axes, components))
        return {axis: routed[axis] for axis in "xyz"}


def convert_angles(values, actual_unit, desired_unit):
    """
    Converts a rotation triple from actual_unit to desired_unit.
    Units are compared as enumeration values, so 'deg' == AngleUnit.DEG.
    """
    actual = AngleUnit.coerce(actual_unit)
    desired = AngleUnit.coerce(desired_unit)
    angles = np.asarray(values, dtype=float)
    if actual == desired:
        return [float(v) for v in angles]
    if desired == AngleUnit.RAD:
        return [float(v) for v in np.radians(angles)]
    return [float(v) for v in np.degrees(angles)]


def convert_length(value, from_unit, to_unit):
    factors = UNIT_FACTORS["length"]
    if not from_unit or from_unit not in factors or from_unit == to_unit:
        return float(value)
    if to_unit not in factors:
        raise InvalidArgument(f"unknown length unit '{to_unit}'")
    return float(value) * factors[from_unit] / factors[to_unit]


def unit_category(unit_str):
    """'length', 'angle' or None for an unknown/empty unit."""
    for category, factors in UNIT_FACTORS.items():
        if unit_str in factors:
            return category
    return None


def _evaluate_number(value, evaluator, context):
    if isinstance(value, str):
        success, result = evaluator.evaluate(value)
        if not success:
            raise InvalidArgument(f"{context}: could not evaluate '{value}': {result}")
        value = result
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{context}: '{value}' is not a number") from None


def _triple(values, context):
    if values is None:
        return [0.0, 0.0, 0.0]
    try:
        values = [float(v) for v in values]
    except (TypeError, ValueError):
        raise InvalidArgument(f"{context}: expected 3 numbers, got {values!r}") from None
    if len(values) != 3:
        raise InvalidArgument(f"{context}: expected 3 components, got {len(values)}")
    return values


class Measurement:
    """A dimension value with an optional unit tag."""
    def __init__(self, value, unit=None):
        self.value = float(value)
        self.unit = unit

    @classmethod
    def coerce(cls, data):
        if isinstance(data, Measurement):
            return data
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise InvalidArgument(f"measurement must be (value, unit), got {data!r}")
            return cls(data[0], data[1])
        return cls(data)

    def to_dict(self):
        return {"value": self.value, "unit": self.unit}

    @classmethod
    def from_dict(cls, data, evaluator=None, context="measurement"):
        evaluator = evaluator or ExpressionEvaluator()
        if isinstance(data, dict):
            value, unit = data.get('value'), data.get('unit')
        elif isinstance(data, (list, tuple)) and len(data) == 2:
            value, unit = data
        else:
            value, unit = data, None
        return cls(_evaluate_number(value, evaluator, context), unit)

    def __eq__(self, other):
        if not isinstance(other, Measurement):
            return NotImplemented
        return self.value == other.value and self.unit == other.unit

    def __repr__(self):
        return f"Measurement({self.value!r}, {self.unit!r})"


def is_suppressed(node):
    """A node whose identifier tag is explicitly 0 is never placed under its parent."""
    ids = getattr(node, 'ids', None) or []
    return len(ids) > 0 and ids[0] == 0


class VolumeNode:
    """
    One node of the volume tree handed to the exporter. Positions and
    rotations are local to the parent and already computed.
    """
    def __init__(self, name, shape, dimensions=None,
                 position=None, rotation=None, rotation_order="xyz",
                 rotation_unit=None, position_unit=None, children=None, ids=None):
        if not name or not isinstance(name, str):
            raise InvalidArgument(f"volume name must be a non-empty string, got {name!r}")
        self.name = name
        self.shape = shape
        self.dimensions = [Measurement.coerce(d) for d in (dimensions or [])]
        self.position = _triple(position, f"volume '{name}' position")
        self.rotation = _triple(rotation, f"volume '{name}' rotation")
        self.rotation_order = RotationOrder.coerce(rotation_order)
        self.rotation_unit = AngleUnit.coerce(rotation_unit) if rotation_unit else None
        self.position_unit = position_unit
        self.ids = [int(i) for i in (ids or [])]
        self.children = []
        for child in children or []:
            self.add_child(child)

    def add_child(self, child):
        self.children.append(child)
        return child

    @property
    def is_suppressed(self):
        return is_suppressed(self)

    def iter_nodes(self):
        """Pre-order walk over this node and all descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self):
        return {
            "name": self.name, "shape": self.shape,
            "dimensions": [[d.value, d.unit] for d in self.dimensions],
            "position": list(self.position),
            "rotation": list(self.rotation),
            "rotation_order": self.rotation_order.value,
            "rotation_unit": self.rotation_unit.value if self.rotation_unit else None,
            "position_unit": self.position_unit,
            "ids": list(self.ids),
            "children": [child.to_dict() for child in self.children]
        }

    @classmethod
    def from_dict(cls, data, evaluator=None):
        """
        Builds a tree from nested mappings. Any numeric field may be an
        expression string, evaluated with the given (or a fresh) evaluator.
        """
        evaluator = evaluator or ExpressionEvaluator()
        name = data.get('name')
        context = f"volume '{name}'"

        dimensions = [Measurement.from_dict(d, evaluator, f"{context} dimension {i}")
                      for i, d in enumerate(data.get('dimensions', []))]

        def vector(key):
            raw = data.get(key)
            if raw is None:
                return None
            if isinstance(raw, dict):
                raw = [raw.get(axis, 0) for axis in "xyz"]
            return [_evaluate_number(v, evaluator, f"{context} {key}") for v in raw]

        instance = cls(
            name, data.get('shape'), dimensions,
            position=vector('position'),
            rotation=vector('rotation'),
            rotation_order=data.get('rotation_order', 'xyz'),
            rotation_unit=data.get('rotation_unit'),
            position_unit=data.get('position_unit'),
            ids=data.get('ids')
        )
        for child_data in data.get('children', []):
            instance.add_child(cls.from_dict(child_data, evaluator))
        return instance

    def __repr__(self):
        return f"VolumeNode({self.name!r}, {self.shape!r}, children={len(self.children)})"


class Material:
    """A simple single-element material: Z, density and atomic mass."""
    def __init__(self, name, Z, density, density_unit="g/cm3", atom=0.0, atom_unit="g/mole"):
        if not name:
            raise InvalidArgument("material name must be a non-empty string")
        if int(Z) < 1:
            raise InvalidArgument(f"material '{name}': Z must be >= 1, got {Z}")
        if float(density) < 0.0:
            raise InvalidArgument(f"material '{name}': negative density {density}")
        if not density_unit:
            raise InvalidArgument(f"material '{name}': empty density unit")
        if float(atom) < 0.0:
            raise InvalidArgument(f"material '{name}': negative atomic mass {atom}")
        if not atom_unit:
            raise InvalidArgument(f"material '{name}': empty atomic mass unit")
        self.name = name
        self.Z = int(Z)
        self.density = float(density)
        self.density_unit = density_unit
        self.atom = float(atom)
        self.atom_unit = atom_unit

    def renamed(self, name):
        return Material(name, self.Z, self.density, self.density_unit, self.atom, self.atom_unit)

    def to_dict(self):
        return {
            "name": self.name, "Z": self.Z,
            "density": self.density, "density_unit": self.density_unit,
            "atom": self.atom, "atom_unit": self.atom_unit
        }

    @classmethod
    def from_dict(cls, data):
        return cls(data['name'], data['Z'], data.get('density', 0.0),
                   data.get('density_unit', "g/cm3"),
                   data.get('atom', 0.0), data.get('atom_unit', "g/mole"))


def format_number(value):
    """Decimal text for a numeric attribute ('10.0', '0.5', '-3.25')."""
    return str(float(value))
