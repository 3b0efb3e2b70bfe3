from figmatron.tools.svg_validator import MAX_SVG_LENGTH, MAX_SVG_NODE_COUNT, sanitize_svg, validate_svg

MINIMAL = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10" width="10" height="10"><rect width="5" height="5"/></svg>'


def test_minimal_svg_is_valid():
    report = validate_svg(MINIMAL)
    assert report.ok
    assert report.errors == []
    assert report.warnings == []
    assert report.repairable is False
    assert report.svg == MINIMAL


def test_sanitize_strips_bom_prolog_and_doctype():
    raw = '\ufeff<?xml version="1.0"?>\n<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" "x.dtd">\n' + MINIMAL
    assert sanitize_svg(raw) == MINIMAL
    assert validate_svg(raw).ok


def test_empty_markup_is_unrepairable_parse_failure():
    report = validate_svg("   ")
    assert report.category == "parse"
    assert report.errors == ["SVG content is empty."]
    assert report.repairable is False


def test_malformed_markup_is_repairable_parse_failure():
    report = validate_svg('<svg viewBox="0 0 1 1"><g></svg>')
    assert report.category == "parse"
    assert report.errors == ["SVG XML parse error."]
    assert report.repairable is True
    assert report.svg == '<svg viewBox="0 0 1 1"><g></svg>'


def test_event_attribute_is_rejected():
    report = validate_svg('<svg viewBox="0 0 1 1" width="1" height="1"><rect onclick="alert(1)"/></svg>')
    assert report.category == "validation"
    assert report.errors == ['Event attribute "onclick" is not allowed.']
    assert report.repairable is True


def test_script_tag_and_external_href_are_rejected():
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" viewBox="0 0 1 1">'
        '<script>alert(1)</script>'
        '<image xlink:href="https://example.com/a.png"/>'
        '<image href="http://example.com/b.png"/>'
        '</svg>'
    )
    report = validate_svg(svg)
    assert "Disallowed tags found: script" in report.errors
    assert report.errors.count("External href references are not allowed.") == 1


def test_root_and_viewbox_requirements():
    report = validate_svg('<g width="1" height="1"/>')
    assert "Root element must be <svg>." in report.errors
    assert "Missing required viewBox attribute on <svg>." in report.errors


def test_missing_dimensions_is_only_a_warning():
    report = validate_svg('<svg viewBox="0 0 1 1"></svg>')
    assert report.ok
    assert report.warnings == ["SVG width/height missing; relying on viewBox only."]


def test_node_count_limit():
    body = "<g/>" * MAX_SVG_NODE_COUNT
    report = validate_svg(f'<svg viewBox="0 0 1 1" width="1" height="1">{body}</svg>')
    assert report.errors == [f"SVG has too many nodes ({MAX_SVG_NODE_COUNT + 1})."]


def test_very_long_markup_only_warns():
    svg = '<svg viewBox="0 0 1 1" width="1" height="1"><desc>' + "x" * MAX_SVG_LENGTH + "</desc></svg>"
    report = validate_svg(svg)
    assert report.ok
    assert report.errors == []
    assert report.warnings == [f"SVG length ({len(svg)}) is very large."]
