import json

from typer.testing import CliRunner

from figmatron.cli import app

runner = CliRunner()

DIAGRAM = {
    "kind": "diagram",
    "canvas": {"width": 300, "height": 120},
    "nodes": [
        {"id": "a", "label": "Client", "x": 0, "y": 0, "width": 100, "height": 40},
        {"id": "b", "label": "Server", "x": 160, "y": 0, "width": 100, "height": 40},
    ],
    "edges": [{"id": "e", "from": "a", "to": "b"}],
}


def test_validate_svg_reports_errors(tmp_path):
    bad = tmp_path / "bad.svg"
    bad.write_text('<svg viewBox="0 0 1 1"><script>x()</script></svg>', encoding="utf-8")
    result = runner.invoke(app, ["validate-svg", str(bad)])
    assert result.exit_code == 1
    assert "Disallowed tags found: script" in result.stdout


def test_validate_svg_accepts_clean_file(tmp_path):
    good = tmp_path / "good.svg"
    good.write_text('<svg viewBox="0 0 1 1" width="1" height="1"/>', encoding="utf-8")
    result = runner.invoke(app, ["validate-svg", str(good)])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["errors"] == []


def test_render_diagram_writes_svg(tmp_path):
    source = tmp_path / "diagram.json"
    source.write_text(json.dumps(DIAGRAM), encoding="utf-8")
    output = tmp_path / "diagram.svg"
    result = runner.invoke(app, ["render-diagram", str(source), "--output", str(output)])
    assert result.exit_code == 0
    assert output.read_text(encoding="utf-8").startswith("<svg")


def test_render_diagram_rejects_invalid_description(tmp_path):
    broken = dict(DIAGRAM, edges=[{"id": "e", "from": "a", "to": "ghost"}])
    source = tmp_path / "diagram.json"
    source.write_text(json.dumps(broken), encoding="utf-8")
    result = runner.invoke(app, ["render-diagram", str(source)])
    assert result.exit_code == 1


def test_generate_rejects_unknown_mode():
    result = runner.invoke(app, ["generate", "A circle", "--mode", "paint"])
    assert result.exit_code != 0
