"""Deterministic structured-diagram to SVG renderer."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, Tuple

from figmatron.models.diagram import DiagramEdge, DiagramIR, DiagramNode, Side

DEFAULT_STROKE = "#1f2937"
DEFAULT_FILL = "#ffffff"
DEFAULT_TEXT_COLOR = "#111827"
DEFAULT_STROKE_WIDTH = 2
DEFAULT_FONT_SIZE = 14
DEFAULT_PADDING = 24
FONT_FAMILY = "Inter, Helvetica, Arial, sans-serif"

BLOCK_RADIUS = 8
GATE_RADIUS = 18


@dataclass(frozen=True)
class _Style:
    stroke: str
    fill: str
    text_color: str
    stroke_width: float
    font_size: float


def _fmt(value: float) -> str:
    """Format a coordinate without float noise so output stays byte-stable."""
    rounded = round(float(value), 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def _resolve_style(diagram: DiagramIR) -> _Style:
    styles = diagram.styles
    return _Style(
        stroke=(styles.stroke if styles and styles.stroke else DEFAULT_STROKE),
        fill=(styles.fill if styles and styles.fill else DEFAULT_FILL),
        text_color=(styles.text_color if styles and styles.text_color else DEFAULT_TEXT_COLOR),
        stroke_width=(styles.stroke_width if styles and styles.stroke_width else DEFAULT_STROKE_WIDTH),
        font_size=(styles.font_size if styles and styles.font_size else DEFAULT_FONT_SIZE),
    )


def side_point(node: DiagramNode, side: Side) -> Tuple[float, float]:
    if side == "top":
        return node.x + node.width / 2, node.y
    if side == "right":
        return node.x + node.width, node.y + node.height / 2
    if side == "bottom":
        return node.x + node.width / 2, node.y + node.height
    return node.x, node.y + node.height / 2


def infer_side(source: DiagramNode, target: DiagramNode) -> Side:
    dx = (target.x + target.width / 2) - (source.x + source.width / 2)
    dy = (target.y + target.height / 2) - (source.y + source.height / 2)
    if abs(dx) > abs(dy):
        return "right" if dx > 0 else "left"
    return "bottom" if dy > 0 else "top"


def _stroke_attrs(style: _Style, fill: str) -> Dict[str, str]:
    return {
        "fill": fill,
        "stroke": style.stroke,
        "stroke-width": _fmt(style.stroke_width),
    }


def _append_edge(group: ET.Element, edge: DiagramEdge, nodes: Dict[str, DiagramNode], style: _Style) -> None:
    source = nodes.get(edge.from_)
    target = nodes.get(edge.to)
    if source is None or target is None:
        return
    start_x, start_y = side_point(source, edge.from_side or infer_side(source, target))
    end_x, end_y = side_point(target, edge.to_side or infer_side(target, source))
    mid_x = round((start_x + end_x) / 2)
    path = (
        f"M {_fmt(start_x)} {_fmt(start_y)} L {_fmt(mid_x)} {_fmt(start_y)} "
        f"L {_fmt(mid_x)} {_fmt(end_y)} L {_fmt(end_x)} {_fmt(end_y)}"
    )
    attrs = {"d": path, **_stroke_attrs(style, "none"), "stroke-linecap": "round", "stroke-linejoin": "round"}
    ET.SubElement(group, "path", attrs)
    if edge.label:
        label = ET.SubElement(group, "text", {
            "x": _fmt(mid_x),
            "y": _fmt(round((start_y + end_y) / 2) - 6),
            "text-anchor": "middle",
            "fill": style.text_color,
            "font-size": _fmt(max(style.font_size - 2, 10)),
        })
        label.text = edge.label


def _append_shape(group: ET.Element, node: DiagramNode, style: _Style) -> None:
    x, y, w, h = node.x, node.y, node.width, node.height
    if node.kind == "text":
        return
    if node.kind == "decision":
        points = [(x + w / 2, y), (x + w, y + h / 2), (x + w / 2, y + h), (x, y + h / 2)]
        d = "M " + " L ".join(f"{_fmt(px)} {_fmt(py)}" for px, py in points) + " Z"
        ET.SubElement(group, "path", {"d": d, **_stroke_attrs(style, style.fill)})
        return
    if node.kind == "terminator":
        ET.SubElement(group, "ellipse", {
            "cx": _fmt(x + w / 2),
            "cy": _fmt(y + h / 2),
            "rx": _fmt(w / 2),
            "ry": _fmt(h / 2),
            **_stroke_attrs(style, style.fill),
        })
        return
    if node.kind == "io":
        skew = max(8, round(w * 0.12))
        corners = [(x + skew, y), (x + w, y), (x + w - skew, y + h), (x, y + h)]
        points = " ".join(f"{_fmt(px)},{_fmt(py)}" for px, py in corners)
        ET.SubElement(group, "polygon", {"points": points, **_stroke_attrs(style, style.fill)})
        return
    radius = min(GATE_RADIUS, h / 2) if node.kind == "gate" else BLOCK_RADIUS
    ET.SubElement(group, "rect", {
        "x": _fmt(x),
        "y": _fmt(y),
        "width": _fmt(w),
        "height": _fmt(h),
        "rx": _fmt(radius),
        "ry": _fmt(radius),
        **_stroke_attrs(style, style.fill),
    })


def _append_label(group: ET.Element, node: DiagramNode, style: _Style) -> None:
    text = ET.SubElement(group, "text", {
        "x": _fmt(round(node.x + node.width / 2)),
        "y": _fmt(round(node.y + node.height / 2 + style.font_size * 0.35)),
        "text-anchor": "middle",
        "fill": style.text_color,
        "font-size": _fmt(style.font_size),
        "font-family": FONT_FAMILY,
    })
    text.text = node.label


def render_diagram_ir_to_svg(diagram: DiagramIR) -> str:
    """Render a validated diagram description to an SVG string.

    Pure function: the same description always yields the same bytes. Edges
    are drawn before nodes so shapes sit on top of connector ends.
    """
    style = _resolve_style(diagram)
    width, height = diagram.canvas.width, diagram.canvas.height
    padding = diagram.canvas.padding or DEFAULT_PADDING

    svg = ET.Element("svg", {
        "xmlns": "http://www.w3.org/2000/svg",
        "viewBox": f"0 0 {_fmt(width)} {_fmt(height)}",
        "width": _fmt(width),
        "height": _fmt(height),
    })
    ET.SubElement(svg, "rect", {
        "x": "0",
        "y": "0",
        "width": _fmt(width),
        "height": _fmt(height),
        "fill": "white",
    })
    group = ET.SubElement(svg, "g", {"transform": f"translate({_fmt(padding)}, {_fmt(padding)})"})

    nodes_by_id = {node.id: node for node in diagram.nodes}
    for edge in diagram.edges:
        _append_edge(group, edge, nodes_by_id, style)
    for node in diagram.nodes:
        _append_shape(group, node, style)
        _append_label(group, node, style)

    return ET.tostring(svg, encoding="unicode")
