# gdml_exporter/diagnostics.py
import logging


def diagnostic_level(verbose):
    """Progress messages go out at INFO when verbose, DEBUG otherwise."""
    return logging.INFO if verbose else logging.DEBUG
