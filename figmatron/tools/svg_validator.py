"""Structural and safety validator for SVG headed to the canvas."""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import List

from figmatron.models.protocol import ValidationReport

MAX_SVG_LENGTH = 400_000
MAX_SVG_NODE_COUNT = 5_000

DISALLOWED_TAGS = ("script", "foreignObject", "iframe", "object", "embed")

_XML_PROLOG_RE = re.compile(r"<\?xml[\s\S]*?\?>", re.IGNORECASE)
_DOCTYPE_RE = re.compile(r"<!DOCTYPE[\s\S]*?>", re.IGNORECASE)


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def sanitize_svg(svg_text: str) -> str:
    """Strip BOM, XML prolog and doctype so the markup parses standalone."""
    text = (svg_text or "").lstrip("\ufeff")
    text = _XML_PROLOG_RE.sub("", text)
    text = _DOCTYPE_RE.sub("", text)
    return text.strip()


def validate_svg(svg_text: str) -> ValidationReport:
    errors: List[str] = []
    warnings: List[str] = []
    sanitized = sanitize_svg(svg_text)

    if not sanitized:
        errors.append("SVG content is empty.")
        return ValidationReport(category="parse", errors=errors, warnings=warnings, repairable=False, svg=sanitized)

    if len(sanitized) > MAX_SVG_LENGTH:
        warnings.append(f"SVG length ({len(sanitized)}) is very large.")

    try:
        root = ET.fromstring(sanitized)
    except ET.ParseError:
        errors.append("SVG XML parse error.")
        return ValidationReport(category="parse", errors=errors, warnings=warnings, repairable=True, svg=sanitized)

    if _local_name(root.tag).lower() != "svg":
        errors.append("Root element must be <svg>.")

    if not root.attrib.get("viewBox"):
        errors.append("Missing required viewBox attribute on <svg>.")

    elements = list(root.iter())
    found_tags = {_local_name(elem.tag).lower() for elem in elements}
    bad_tags = [tag for tag in DISALLOWED_TAGS if tag.lower() in found_tags]
    if bad_tags:
        errors.append(f"Disallowed tags found: {', '.join(bad_tags)}")

    if len(elements) > MAX_SVG_NODE_COUNT:
        errors.append(f"SVG has too many nodes ({len(elements)}).")

    external_href = False
    for elem in elements:
        for attr_name, attr_value in elem.attrib.items():
            name = _local_name(attr_name)
            value = (attr_value or "").strip().lower()
            if name.lower() == "href" and value.startswith(("http://", "https://")):
                external_href = True
            if name.lower().startswith("on"):
                errors.append(f'Event attribute "{name}" is not allowed.')
    if external_href:
        errors.append("External href references are not allowed.")

    if not root.attrib.get("width") or not root.attrib.get("height"):
        warnings.append("SVG width/height missing; relying on viewBox only.")

    return ValidationReport(
        category="validation",
        errors=errors,
        warnings=warnings,
        repairable=bool(errors),
        svg=sanitized,
    )
