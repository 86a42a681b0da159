# gdml_exporter/rewriter.py
import logging

from .diagnostics import diagnostic_level
from .errors import InvalidArgument, UnknownSection

log = logging.getLogger(__name__)

# Sections that may be searched and rewritten
REWRITABLE_SECTIONS = ("structure",)


def _find_matches(section_el, match_kind, match_attribute, match_substring):
    """Descendants (not the section itself) whose attribute contains the substring."""
    for element in section_el.iter():
        if element is section_el:
            continue
        if match_kind != "*" and element.tag != match_kind:
            continue
        value = element.get(match_attribute)
        if value is not None and match_substring in value:
            yield element


def replace_attribute(document, section_name, match_kind, match_attribute, match_substring,
                      target_kind, target_attribute, new_value, verbose=False):
    """
    Finds elements of kind `match_kind` under `section_name` whose
    `match_attribute` contains `match_substring`, and overwrites
    `target_attribute` on the first direct child of kind `target_kind`.
    Matches without such a child or attribute are skipped.

    Returns:
        list: one dict per match with 'name' and 'status' ('changed' or
              'skipped'), plus 'old'/'new' or 'reason'.
    """
    arguments = {
        "section_name": section_name, "match_kind": match_kind,
        "match_attribute": match_attribute, "match_substring": match_substring,
        "target_kind": target_kind, "target_attribute": target_attribute,
        "new_value": new_value,
    }
    for key, value in arguments.items():
        if not value:
            raise InvalidArgument(f"replace_attribute: empty {key}")
    if section_name not in REWRITABLE_SECTIONS:
        raise UnknownSection(f"unknown section '{section_name}' for attribute replacement")

    level = diagnostic_level(verbose)
    section_el = document.section(section_name)
    matches = list(_find_matches(section_el, match_kind, match_attribute, match_substring))
    if not matches:
        log.log(level, "replace_attribute: no matches for '%s'", match_substring)
        return []
    log.log(level, "replace_attribute: %d matches for '%s'", len(matches), match_substring)

    results = []
    for element in matches:
        name = element.get(match_attribute)
        target_el = next((child for child in element if child.tag == target_kind), None)
        if target_el is None:
            reason = f"has no <{target_kind}>"
        elif target_el.get(target_attribute) is None:
            reason = f"<{target_kind}> has no attribute '{target_attribute}'"
        else:
            old_value = target_el.get(target_attribute)
            target_el.set(target_attribute, new_value)
            log.log(level, "changed: %s: %s -> %s", name, old_value, new_value)
            results.append({"name": name, "status": "changed", "old": old_value, "new": new_value})
            continue
        log.log(level, "skipped: %s: %s", name, reason)
        results.append({"name": name, "status": "skipped", "reason": reason})
    return results


def replace_volume_material(document, volume_substring, material_ref, verbose=False):
    """Points every logical volume whose name contains `volume_substring` at `material_ref`."""
    return replace_attribute(document, "structure", "volume", "name", volume_substring,
                             "materialref", "ref", material_ref, verbose)
