"""Validation for model-supplied structured diagram descriptions.

The validator only reports; it never mutates the description. Every check
runs independently so one pass surfaces all problems at once.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel

from figmatron.models.diagram import DIAGRAM_KIND
from figmatron.models.protocol import ValidationReport

MAX_READABLE_NODES = 100


@dataclass(frozen=True)
class _Box:
    node_id: str
    x: float
    y: float
    width: float
    height: float

    def overlaps(self, other: "_Box") -> bool:
        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )


def _number(value: Any) -> Optional[float]:
    """Finite numeric value, or None. JSON may carry ``1e400`` or ``NaN``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _positive(value: Any) -> bool:
    number = _number(value)
    return number is not None and number > 0


def _as_mapping(diagram: Any) -> Mapping[str, Any]:
    if isinstance(diagram, BaseModel):
        return diagram.model_dump(by_alias=True)
    if isinstance(diagram, Mapping):
        return diagram
    return {}


def _component_count(node_ids: List[str], links: List[tuple[str, str]]) -> int:
    parent: Dict[str, str] = {node_id: node_id for node_id in node_ids}

    def find(node_id: str) -> str:
        while parent[node_id] != node_id:
            parent[node_id] = parent[parent[node_id]]
            node_id = parent[node_id]
        return node_id

    for left, right in links:
        root_left, root_right = find(left), find(right)
        if root_left != root_right:
            parent[root_right] = root_left
    return len({find(node_id) for node_id in node_ids})


def validate_diagram_ir(diagram: Any) -> ValidationReport:
    errors: List[str] = []
    warnings: List[str] = []
    data = _as_mapping(diagram)

    if data.get("kind") != DIAGRAM_KIND:
        errors.append(f'Diagram IR kind must be "{DIAGRAM_KIND}".')

    canvas = data.get("canvas")
    if not isinstance(canvas, Mapping) or not (_positive(canvas.get("width")) and _positive(canvas.get("height"))):
        errors.append("Diagram canvas width and height must be positive.")
    elif canvas.get("padding") is not None:
        padding = _number(canvas.get("padding"))
        if padding is None or padding < 0:
            errors.append("Diagram canvas padding must be a non-negative number.")

    styles = data.get("styles")
    if isinstance(styles, Mapping):
        for key in ("strokeWidth", "fontSize"):
            if styles.get(key) is not None and not _positive(styles.get(key)):
                errors.append(f"Diagram style {key} must be a positive number.")

    raw_nodes = data.get("nodes")
    nodes = raw_nodes if isinstance(raw_nodes, list) else []
    if not nodes:
        errors.append("Diagram must contain at least one node.")

    raw_edges = data.get("edges")
    if not isinstance(raw_edges, list):
        errors.append("Diagram edges must be an array.")
    edges = raw_edges if isinstance(raw_edges, list) else []

    node_ids: List[str] = []
    boxes: List[_Box] = []
    for node in nodes:
        node = node if isinstance(node, Mapping) else {}
        node_id = node.get("id")
        if not node_id or not isinstance(node_id, str):
            errors.append("Node is missing id.")
            continue
        if node_id in node_ids:
            errors.append(f"Duplicate node id: {node_id}")
            continue
        node_ids.append(node_id)
        if not (_positive(node.get("width")) and _positive(node.get("height"))):
            errors.append(f'Node "{node_id}" has non-positive size.')
            continue
        x, y = _number(node.get("x")), _number(node.get("y"))
        if x is None or y is None:
            errors.append(f'Node "{node_id}" has non-numeric position.')
            continue
        boxes.append(_Box(node_id, x, y, float(node["width"]), float(node["height"])))

    known = set(node_ids)
    links: List[tuple[str, str]] = []
    for edge in edges:
        edge = edge if isinstance(edge, Mapping) else {}
        edge_id = edge.get("id", "")
        source, target = edge.get("from"), edge.get("to")
        source_ok = isinstance(source, str) and source in known
        target_ok = isinstance(target, str) and target in known
        if not source_ok:
            errors.append(f'Edge "{edge_id}" references missing from-node "{source}".')
        if not target_ok:
            errors.append(f'Edge "{edge_id}" references missing to-node "{target}".')
        if source_ok and target_ok:
            links.append((source, target))

    for index, box in enumerate(boxes):
        for other in boxes[index + 1:]:
            if box.overlaps(other):
                errors.append(f'Nodes "{box.node_id}" and "{other.node_id}" overlap, which breaks readability.')

    if len(node_ids) > 1:
        components = _component_count(node_ids, links)
        if components > 1:
            warnings.append(
                f"Diagram has unconnected components ({components} groups); connect related nodes with edges."
            )

    if len(nodes) > MAX_READABLE_NODES:
        warnings.append("Large diagram node count may reduce readability.")

    return ValidationReport(
        category="validation",
        errors=errors,
        warnings=warnings,
        repairable=bool(errors),
    )
