from .assembler import ExportSettings, TreeAssembler, export_volume_tree
from .document import DocumentModel, ReferenceRegistry
from .gdml_writer import GDMLWriter
from .geometry_types import (
    AngleUnit, Material, Measurement, PlacementMode, RotationOrder, VolumeNode, convert_angles
)
from .materials import MATERIAL_PRESETS, add_material, add_material_preset
from .rewriter import replace_attribute, replace_volume_material
from .solids import build_logical_volume, build_solid
