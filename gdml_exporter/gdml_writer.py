# gdml_exporter/gdml_writer.py
import logging
import xml.etree.ElementTree as ET
from xml.dom import minidom

from .errors import InvalidArgument

log = logging.getLogger(__name__)

GDML_EXTENSION = ".gdml"


class GDMLWriter:
    """
    Serializes an assembled DocumentModel to GDML text. The document is not
    modified, so the same document always produces the same text.
    """
    def __init__(self, document):
        if document is None:
            raise InvalidArgument("no document given to GDMLWriter")
        self.document = document

    def get_gdml_string(self):
        xml_str = ET.tostring(self.document.root, encoding='unicode', xml_declaration=True)
        # minidom is slow for very large files but keeps the output readable
        dom = minidom.parseString(xml_str)
        return dom.toprettyxml(indent="  ", newl="\n", encoding="UTF-8").decode('utf-8')

    def write_file(self, name):
        """Writes `<name>.gdml` and returns the path written."""
        if not name:
            raise InvalidArgument("empty file name")
        filename = str(name)
        if not filename.endswith(GDML_EXTENSION):
            filename += GDML_EXTENSION
        with open(filename, "w", encoding="utf-8") as f:
            f.write(self.get_gdml_string())
        log.info("wrote file '%s'", filename)
        return filename
