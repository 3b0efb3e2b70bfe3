import pytest

from figmatron.tools.response_parser import (
    ResponseParseError,
    extract_json_from_response,
    extract_svg_from_response,
    parse_diagram_payload,
)


def test_extract_svg_prefers_fenced_block():
    text = 'Here:\n```svg\n<svg viewBox="0 0 1 1"><g/></svg>\n```\nand <svg id="late"></svg>'
    assert extract_svg_from_response(text) == '<svg viewBox="0 0 1 1"><g/></svg>'


def test_extract_svg_falls_back_to_bare_markup():
    text = 'Sure thing <SVG viewBox="0 0 2 2"></SVG> done'
    assert extract_svg_from_response(text) == '<SVG viewBox="0 0 2 2"></SVG>'


def test_extract_svg_returns_none_without_markup():
    assert extract_svg_from_response("I cannot draw that.") is None
    assert extract_svg_from_response("") is None


def test_extract_json_from_fence_or_braces():
    assert extract_json_from_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert extract_json_from_response('prefix {"a": {"b": 2}} suffix') == '{"a": {"b": 2}}'
    assert extract_json_from_response("no json here") is None


def test_parse_diagram_payload_returns_mapping():
    payload = parse_diagram_payload('```json\n{"kind": "diagram", "nodes": []}\n```')
    assert payload == {"kind": "diagram", "nodes": []}


@pytest.mark.parametrize(
    "text",
    [
        "nothing structured",
        '```json\n{"kind": "diagram",,}\n```',
        "```json\n[1, 2, 3]\n```",
    ],
)
def test_parse_diagram_payload_failures(text):
    with pytest.raises(ResponseParseError):
        parse_diagram_payload(text)
