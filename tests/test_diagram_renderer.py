import xml.etree.ElementTree as ET

from figmatron.models.diagram import DiagramIR, DiagramNode
from figmatron.renderers.diagram_renderer import infer_side, render_diagram_ir_to_svg, side_point
from figmatron.tools.svg_validator import validate_svg

SVG_NS = "{http://www.w3.org/2000/svg}"

DIAGRAM = {
    "kind": "diagram",
    "canvas": {"width": 640, "height": 240, "padding": 16},
    "nodes": [
        {"id": "start", "kind": "terminator", "label": "Start", "x": 0, "y": 80, "width": 120, "height": 48},
        {"id": "read", "kind": "io", "label": "Read input", "x": 160, "y": 80, "width": 120, "height": 48},
        {"id": "ok", "kind": "decision", "label": "Valid?", "x": 320, "y": 64, "width": 100, "height": 80},
        {"id": "and", "kind": "gate", "label": "AND", "x": 460, "y": 80, "width": 80, "height": 48},
        {"id": "note", "kind": "text", "label": "note", "x": 460, "y": 0, "width": 80, "height": 24},
    ],
    "edges": [
        {"id": "e1", "from": "start", "to": "read"},
        {"id": "e2", "from": "read", "to": "ok", "label": "next"},
        {"id": "e3", "from": "ok", "to": "and", "fromSide": "right", "toSide": "left"},
        {"id": "e4", "from": "and", "to": "note"},
    ],
    "styles": {"stroke": "#0f172a", "strokeWidth": 1.5, "fontSize": 12},
}


def test_render_is_deterministic():
    diagram = DiagramIR.model_validate(DIAGRAM)
    first = render_diagram_ir_to_svg(diagram)
    second = render_diagram_ir_to_svg(DiagramIR.model_validate(DIAGRAM))
    assert first == second


def test_rendered_markup_passes_validation():
    svg = render_diagram_ir_to_svg(DiagramIR.model_validate(DIAGRAM))
    report = validate_svg(svg)
    assert report.ok
    assert report.warnings == []


def test_shapes_per_kind_and_edges_first():
    svg = render_diagram_ir_to_svg(DiagramIR.model_validate(DIAGRAM))
    root = ET.fromstring(svg)
    assert root.attrib["viewBox"] == "0 0 640 240"
    group = root.find(f"{SVG_NS}g")
    assert group.attrib["transform"] == "translate(16, 16)"
    tags = [child.tag.replace(SVG_NS, "") for child in group]
    # four edges (one labelled) come before any node shape
    assert tags[:5] == ["path", "path", "text", "path", "path"]
    assert tags.count("ellipse") == 1
    assert tags.count("polygon") == 1
    assert tags.count("rect") == 1
    labels = [child.text for child in group if child.tag == f"{SVG_NS}text"]
    assert labels == ["next", "Start", "Read input", "Valid?", "AND", "note"]
    assert 'stroke="#0f172a"' in svg
    assert 'stroke-width="1.5"' in svg


def test_side_helpers():
    left = DiagramNode(id="a", x=0, y=0, width=100, height=40)
    right = DiagramNode(id="b", x=200, y=0, width=100, height=40)
    below = DiagramNode(id="c", x=0, y=200, width=100, height=40)
    assert infer_side(left, right) == "right"
    assert infer_side(right, left) == "left"
    assert infer_side(left, below) == "bottom"
    assert side_point(left, "right") == (100, 20)
    assert side_point(left, "top") == (50, 0)
