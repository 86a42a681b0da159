# gdml_exporter/errors.py

class GDMLExportError(Exception):
    """Base class for every error raised while assembling a GDML document."""


class InvalidArgument(GDMLExportError, ValueError):
    """An empty required string, a missing required object or an out-of-range value."""


class InvalidShapeParameters(InvalidArgument):
    """The number of dimensions does not match what the shape kind requires."""


class UnsupportedShapeKind(InvalidArgument):
    pass


class UnsupportedRotationOrder(InvalidArgument):
    pass


class UnresolvedReference(GDMLExportError, LookupError):
    """A cross-reference names an element that is not in the registry."""


class UnresolvedSolidReference(UnresolvedReference):
    pass


class UnresolvedVolumeReference(UnresolvedReference):
    pass


class UnknownMaterialPreset(GDMLExportError, LookupError):
    pass


class UnknownSection(GDMLExportError, LookupError):
    pass
