"""CLI interface."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from figmatron.models.diagram import DiagramIR
from figmatron.models.protocol import QueryMode, RouteOverride
from figmatron.orchestrator.pipeline import PipelineOrchestrator, PipelineResult, TextArtifact
from figmatron.renderers.diagram_renderer import render_diagram_ir_to_svg
from figmatron.services.host_bridge import HostBridge
from figmatron.services.host_environment import FileCanvasHost, HostEnvironment, connect_in_process
from figmatron.tools.diagram_validator import validate_diagram_ir
from figmatron.tools.svg_validator import validate_svg
from figmatron.utils.config import settings

app = typer.Typer(add_completion=False)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


async def _run_pipeline(
    prompt: str,
    mode: QueryMode,
    route: RouteOverride,
    host: FileCanvasHost,
    force_repair: bool,
    store: bool,
) -> PipelineResult:
    config = settings.pipeline_config(route_override=route)
    bridge = HostBridge(
        lambda message: None,
        context_timeout_s=config.context_timeout_s,
        insert_timeout_s=config.insert_timeout_s,
    )
    environment = HostEnvironment(host, lambda message: None)
    connect_in_process(bridge, environment)
    orchestrator = PipelineOrchestrator(config, bridge)
    if store:
        from figmatron.db import SessionLocal, init_db
        from figmatron.services.trace_service import trace_sink

        init_db()
        orchestrator.add_trace_sink(trace_sink(SessionLocal))
    return await orchestrator.run(prompt, mode, force_repair=force_repair)


@app.command()
def generate(
    prompt: str = typer.Argument("", help="What to create, change or ask."),
    mode: str = typer.Option("create", "--mode", "-m", help="create | modify | ask | vectorize"),
    route: str = typer.Option("auto", "--route", help="auto | direct_svg | structured_ir"),
    selection_svg: Optional[Path] = typer.Option(None, "--selection-svg", help="SVG standing in for the selection."),
    screenshot: Optional[Path] = typer.Option(None, "--screenshot", help="PNG standing in for the selection."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where inserted SVG is written."),
    force_repair: bool = typer.Option(False, "--force-repair", help="Always run one repair pass."),
    no_store: bool = typer.Option(False, "--no-store", help="Do not persist the execution trace."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run one request through the pipeline against file-backed selection data."""
    if mode not in ("create", "modify", "ask", "vectorize"):
        raise typer.BadParameter(f"Unknown mode: {mode}")
    if route not in ("auto", "direct_svg", "structured_ir"):
        raise typer.BadParameter(f"Unknown route: {route}")
    _configure_logging(verbose)

    host = FileCanvasHost(selection_svg=selection_svg, selection_png=screenshot, output_path=output)
    try:
        result = asyncio.run(_run_pipeline(prompt, mode, route, host, force_repair, not no_store))
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if isinstance(result.artifact, TextArtifact):
        typer.echo(result.artifact.text)
    else:
        typer.echo(result.message)
    if result.report and result.report.errors:
        for error in result.report.errors:
            typer.echo(f"  - {error}", err=True)
    if verbose:
        typer.echo(json.dumps(result.trace.model_dump(mode="json"), indent=2))
    if output is None and host.inserted:
        typer.echo(host.inserted[-1])
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("validate-svg")
def validate_svg_file(file: Path = typer.Argument(..., exists=True, dir_okay=False)):
    """Validate an SVG file and print the report."""
    report = validate_svg(file.read_text(encoding="utf-8"))
    typer.echo(json.dumps(report.model_dump(exclude={"svg"}), indent=2))
    if report.errors:
        raise typer.Exit(code=1)


@app.command("render-diagram")
def render_diagram(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Diagram JSON file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
):
    """Validate a diagram description and render it to SVG."""
    payload = json.loads(file.read_text(encoding="utf-8"))
    report = validate_diagram_ir(payload)
    for warning in report.warnings:
        typer.echo(f"warning: {warning}", err=True)
    if report.errors:
        for error in report.errors:
            typer.echo(f"error: {error}", err=True)
        raise typer.Exit(code=1)
    svg = render_diagram_ir_to_svg(DiagramIR.model_validate(payload))
    if output is not None:
        output.write_text(svg, encoding="utf-8")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(svg)


@app.command()
def traces(limit: int = typer.Option(12, "--limit", "-n")):
    """List recently stored execution traces."""
    from figmatron.db import SessionLocal, init_db
    from figmatron.services.trace_service import list_recent_traces

    init_db()
    db = SessionLocal()
    try:
        for record in list_recent_traces(db, limit=limit):
            flag = " repaired" if record.repaired else ""
            typer.echo(
                f"{record.request_id}  {record.mode:<9} {record.route:<13} "
                f"{record.outcome or '-':<8} {record.total_ms or 0}ms{flag}"
            )
    finally:
        db.close()


@app.command()
def trace(request_id: str = typer.Argument(...)):
    """Print one stored execution trace as JSON."""
    from figmatron.db import SessionLocal, init_db
    from figmatron.services.trace_service import get_trace, trace_from_record

    init_db()
    db = SessionLocal()
    try:
        record = get_trace(db, request_id)
        if record is None:
            typer.echo(f"No trace for {request_id}", err=True)
            raise typer.Exit(code=1)
        typer.echo(json.dumps(trace_from_record(record).model_dump(mode="json"), indent=2))
    finally:
        db.close()


if __name__ == "__main__":
    app()
