# gdml_exporter/document.py
import xml.etree.ElementTree as ET

from .errors import InvalidArgument, UnknownSection, UnresolvedReference

SECTION_NAMES = ("define", "materials", "solids", "structure", "setup")

GDML_ROOT_ATTRIBUTES = {
    "xmlns:xsi": "http://www.w3.org/2001/XMLSchema-instance",
    "xsi:noNamespaceSchemaLocation": "http://service-spi.web.cern.ch/service-spi/app/releases/GDML/schema/gdml.xsd"
}


class ReferenceRegistry:
    """
    Name -> element index for each document section. Every cross-reference
    written into the document is checked here first, by exact name.
    """
    def __init__(self):
        self._entries = {section: {} for section in SECTION_NAMES}

    def _section(self, section):
        if section not in self._entries:
            raise UnknownSection(f"unknown section '{section}'")
        return self._entries[section]

    def register(self, section, element):
        name = element.get("name")
        if not name:
            raise InvalidArgument(f"cannot register unnamed <{element.tag}> in '{section}'")
        entries = self._section(section)
        if name in entries:
            raise InvalidArgument(f"duplicate name '{name}' in section '{section}'")
        entries[name] = element
        return name

    def get(self, section, name):
        return self._section(section).get(name)

    def contains(self, section, name):
        return name in self._section(section)

    def require(self, section, name, error_cls=UnresolvedReference, context=None):
        element = self.get(section, name)
        if element is None:
            where = f" (needed by {context})" if context else ""
            raise error_cls(f"could not find '{name}' in section '{section}'{where}")
        return element

    def names(self, section):
        return list(self._section(section))


class DocumentModel:
    """
    The assembled GDML tree: a <gdml> root holding the five sections in fixed
    order. Sections are only ever appended to.
    """
    def __init__(self):
        self.root = ET.Element("gdml", dict(GDML_ROOT_ATTRIBUTES))
        self.sections = {}
        for name in SECTION_NAMES:
            attrs = {"name": "default", "version": "1.0"} if name == "setup" else {}
            self.sections[name] = ET.SubElement(self.root, name, attrs)
        self.registry = ReferenceRegistry()

    def section(self, name):
        if name not in self.sections:
            raise UnknownSection(f"unknown section '{name}' (expected one of: {', '.join(SECTION_NAMES)})")
        return self.sections[name]

    def append(self, section_name, element, register=True):
        section = self.section(section_name)
        # Register first so a duplicate name leaves the section untouched
        if register:
            self.registry.register(section_name, element)
        section.append(element)
        return element

    def elements(self, section_name):
        return list(self.section(section_name))

    def find(self, section_name, name):
        return self.registry.get(section_name, name)

    @property
    def world_ref(self):
        world = self.section("setup").find("world")
        return world.get("ref") if world is not None else None
