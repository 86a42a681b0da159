# gdml_exporter/materials.py
import logging
import xml.etree.ElementTree as ET

from .diagnostics import diagnostic_level
from .errors import InvalidArgument, UnknownMaterialPreset
from .geometry_types import Material, format_number

log = logging.getLogger(__name__)

DEFAULT_MATERIAL_REF = "mat_vacuum"

MATERIAL_PRESETS = {
    "mat_vacuum": Material("mat_vacuum", Z=1, density=0.0, density_unit="g/cm3",
                           atom=0.0, atom_unit="g/mole"),
}


def get_material_preset(preset_key):
    if not preset_key:
        raise InvalidArgument("empty material preset name")
    try:
        return MATERIAL_PRESETS[preset_key]
    except KeyError:
        known = ", ".join(sorted(MATERIAL_PRESETS))
        raise UnknownMaterialPreset(
            f"material preset '{preset_key}' does not exist (known presets: {known})") from None


def add_material(document, material, verbose=False):
    material_el = ET.Element("material", {"name": material.name, "Z": str(material.Z)})
    ET.SubElement(material_el, "D", {"unit": material.density_unit,
                                     "value": format_number(material.density)})
    ET.SubElement(material_el, "atom", {"unit": material.atom_unit,
                                        "value": format_number(material.atom)})
    document.append("materials", material_el)
    log.log(diagnostic_level(verbose), "added material '%s'", material.name)
    return material_el


def add_material_preset(document, preset_key, name=None, verbose=False):
    """
    Writes the preset material `preset_key` into the materials section,
    optionally under another name. The preset is looked up before anything
    is written, so an unknown key leaves the document untouched.
    """
    material = get_material_preset(preset_key)
    if name is not None:
        material = material.renamed(name)
    return add_material(document, material, verbose)
