"""Request pipeline state machine.

prepare_context -> route -> model_call -> parse -> validate
  -> [repair_if_needed -> parse -> validate] -> insert_or_return -> done

One request runs at a time per orchestrator. Every failure is normalized
into a ``PipelineError`` category before it reaches the caller, and each
request emits exactly one frozen ``ExecutionTrace``.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Deque, List, Literal, Optional, Tuple, Union

from pydantic import ValidationError

from figmatron.intent.router import choose_route, response_mode_for
from figmatron.models.diagram import DiagramIR
from figmatron.models.protocol import (
    ContextPacket,
    ExecutionTrace,
    FailureCategory,
    Outcome,
    QueryMode,
    ResponseMode,
    RouteMode,
    StageName,
    ValidationReport,
    estimate_base64_bytes,
)
from figmatron.orchestrator.errors import MissingApiKeyError, PipelineBusyError, PipelineError, normalize_error
from figmatron.orchestrator.trace import StageClock, finalize, with_response
from figmatron.prompts.builder import build_prompt_text, build_repair_prompt, system_prompt_for
from figmatron.prompts.templates import DEFAULT_VECTORIZE_PROMPT, MANUAL_REPAIR_REASON
from figmatron.renderers.diagram_renderer import render_diagram_ir_to_svg
from figmatron.services.host_bridge import HostBridge
from figmatron.tools.diagram_validator import validate_diagram_ir
from figmatron.tools.response_parser import ResponseParseError, extract_svg_from_response, parse_diagram_payload
from figmatron.tools.svg_validator import validate_svg
from figmatron.utils.abort import AbortController, AbortSignal
from figmatron.utils.config import PipelineConfig
from figmatron.utils.gemini_client import ModelRequest, call_gemini

logger = logging.getLogger(__name__)

MAX_RECENT_TRACES = 12

ModelCall = Callable[[ModelRequest, Optional[AbortSignal]], Awaitable[str]]
TraceSink = Callable[[ExecutionTrace], None]
MessageKind = Literal["normal", "success", "error"]


@dataclass(frozen=True)
class TextArtifact:
    text: str


@dataclass(frozen=True)
class MarkupArtifact:
    svg: str
    report: ValidationReport
    repaired: bool


@dataclass(frozen=True)
class DiagramArtifact:
    diagram: DiagramIR
    svg: str
    report: ValidationReport


Artifact = Union[TextArtifact, MarkupArtifact, DiagramArtifact]


@dataclass(frozen=True)
class PipelineResult:
    request_id: str
    outcome: Outcome
    message: str
    kind: MessageKind
    trace: ExecutionTrace
    artifact: Optional[Artifact] = None
    category: Optional[FailureCategory] = None
    report: Optional[ValidationReport] = None

    @property
    def ok(self) -> bool:
        return self.outcome == "success"


@dataclass(frozen=True)
class FailedRequest:
    prompt: str
    mode: QueryMode
    message: str


@dataclass
class _Run:
    """State of the single in-flight request.

    ``trace`` is rebound to a new frozen copy at every stage so the latest
    snapshot survives a failure at any point.
    """

    request_id: str
    prompt: str
    mode: QueryMode
    route: RouteMode
    response_mode: ResponseMode
    force_repair: bool
    controller: AbortController
    clock: StageClock
    trace: ExecutionTrace

    @property
    def signal(self) -> AbortSignal:
        return self.controller.signal


class PipelineOrchestrator:
    def __init__(
        self,
        config: PipelineConfig,
        bridge: HostBridge,
        model_call: ModelCall = call_gemini,
        *,
        clock_factory: Callable[[], StageClock] = StageClock,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        on_stage: Optional[Callable[[str, StageName], None]] = None,
    ) -> None:
        self.config = config
        self.bridge = bridge
        self.model_call = model_call
        self._clock_factory = clock_factory
        self._id_factory = id_factory
        self.on_stage = on_stage
        self.recent_traces: Deque[ExecutionTrace] = deque(maxlen=MAX_RECENT_TRACES)
        self.last_failure: Optional[FailedRequest] = None
        self._sinks: List[TraceSink] = []
        self._active: Optional[_Run] = None

    def add_trace_sink(self, sink: TraceSink) -> None:
        self._sinks.append(sink)

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    @property
    def active_request_id(self) -> Optional[str]:
        return self._active.request_id if self._active else None

    def elapsed_ms(self) -> int:
        active = self._active
        if active is None:
            return 0
        return int(round((active.clock.now() - active.trace.started_at) * 1000))

    def cancel(self) -> bool:
        active = self._active
        if active is None:
            return False
        logger.info("[%s] canceled by user", active.request_id)
        active.controller.abort("Request canceled.")
        self.bridge.cancel(active.request_id)
        return True

    async def retry_last(self, force_repair: bool = False) -> PipelineResult:
        if self.last_failure is None:
            raise ValueError("No failed request to retry.")
        return await self.run(self.last_failure.prompt, self.last_failure.mode, force_repair=force_repair)

    async def run(self, prompt: str, mode: QueryMode, force_repair: bool = False) -> PipelineResult:
        if not self.config.api_key.strip():
            raise MissingApiKeyError("Please configure a Gemini API key.")
        if self._active is not None:
            raise PipelineBusyError(f"Request {self._active.request_id} is still running.")

        prompt = (prompt or "").strip()
        if not prompt and mode == "vectorize":
            prompt = DEFAULT_VECTORIZE_PROMPT
        if not prompt:
            raise ValueError("Prompt is empty.")

        request_id = self._id_factory()
        route = choose_route(prompt, mode, self.config.route_override)
        response_mode = response_mode_for(mode, route)
        clock = self._clock_factory()
        run = _Run(
            request_id=request_id,
            prompt=prompt,
            mode=mode,
            route=route,
            response_mode=response_mode,
            force_repair=force_repair,
            controller=AbortController(),
            clock=clock,
            trace=ExecutionTrace(
                request_id=request_id,
                mode=mode,
                route=route,
                response_mode=response_mode,
                model=self.config.model,
                started_at=clock.now(),
            ),
        )
        self._active = run
        logger.info("[%s] start mode=%s route=%s", request_id, mode, route)

        try:
            artifact, message, kind = await self._execute(run)
            self._enter(run, "done")
            report = _artifact_report(artifact)
            run.trace = run.trace.model_copy(update={"validation": report, "outcome": "success"})
            self.last_failure = None
            result = PipelineResult(request_id, "success", message, kind, run.trace, artifact, report=report)
        except (Exception, asyncio.CancelledError) as exc:
            result = self._fail(run, exc)
            if isinstance(exc, asyncio.CancelledError):
                self._finish(run, result)
                raise
        return self._finish(run, result)

    def _fail(self, run: _Run, exc: BaseException) -> PipelineResult:
        error = normalize_error(exc)
        outcome: Outcome = "canceled" if error.category == "canceled" else "failed"
        message = f"Error ({error.category}): {error.message}"
        run.trace = run.trace.model_copy(update={
            "validation": error.report,
            "error_message": error.message,
            "outcome": outcome,
        })
        if outcome == "failed":
            logger.warning("[%s] failed (%s): %s", run.request_id, error.category, error.message)
            self.last_failure = FailedRequest(run.prompt, run.mode, message)
        return PipelineResult(
            run.request_id, outcome, message, "error", run.trace,
            category=error.category, report=error.report,
        )

    def _finish(self, run: _Run, result: PipelineResult) -> PipelineResult:
        trace = finalize(run.clock.close(run.trace), run.clock.now())
        self._active = None
        logger.info("[%s] %s in %sms", trace.request_id, trace.outcome, trace.total_ms)
        self.recent_traces.appendleft(trace)
        for sink in self._sinks:
            try:
                sink(trace)
            except Exception:
                logger.exception("Trace sink failed for %s", trace.request_id)
        return replace(result, trace=trace)

    def _enter(self, run: _Run, stage: StageName) -> None:
        run.signal.raise_if_aborted()
        run.trace = run.clock.enter(run.trace, stage)
        logger.info("[%s] %s", run.request_id, stage)
        if self.on_stage is not None:
            self.on_stage(run.request_id, stage)

    def _close(self, run: _Run) -> None:
        run.trace = run.clock.close(run.trace)

    async def _execute(self, run: _Run) -> Tuple[Artifact, str, MessageKind]:
        context, include_screenshot = await self._prepare_context(run)
        request = self._route(run, context, include_screenshot)
        response_text = await self._call_model(run, request)

        if run.response_mode == "text":
            return self._return_text(run, response_text)
        if run.response_mode == "ir_json":
            return await self._insert_diagram(run, response_text)
        if run.response_mode == "svg":
            return await self._insert_markup(run, request, response_text)
        raise AssertionError(f"Unhandled response mode: {run.response_mode}")

    async def _prepare_context(self, run: _Run) -> Tuple[ContextPacket, bool]:
        self._enter(run, "prepare_context")
        include_screenshot = self.config.screenshot_enabled_for(run.mode)
        try:
            result = await run.signal.guard(self.bridge.request_context(
                run.request_id, run.mode, include_screenshot, self.config.max_screenshot_bytes
            ))
        except Exception as exc:
            raise normalize_error(exc, timeout_category="model") from exc
        if result.error:
            raise PipelineError("model", f"Context preparation failed: {result.error}")

        context = result.context
        summary = run.trace.context_summary.model_copy(update={
            "selection_count": context.selection_info.count,
            "has_svg": bool(context.svg),
            "has_screenshot": bool(context.screenshot_png_base64),
        })
        run.trace = run.trace.model_copy(update={"context_summary": summary}).with_payload(
            context_svg_chars=len(context.svg or ""),
            screenshot_bytes=estimate_base64_bytes(context.screenshot_png_base64),
        )
        self._close(run)

        if context.screenshot_error:
            if run.mode == "vectorize":
                raise PipelineError("model", context.screenshot_error)
            logger.warning("[%s] %s", run.request_id, context.screenshot_error)
            run.trace = run.trace.with_warning(context.screenshot_error)
        return context, include_screenshot

    def _route(self, run: _Run, context: ContextPacket, include_screenshot: bool) -> ModelRequest:
        self._enter(run, "route")
        image = context.screenshot_png_base64 if include_screenshot else None
        limit = self.config.max_screenshot_bytes
        if image and estimate_base64_bytes(image) > limit:
            message = f"Screenshot ({estimate_base64_bytes(image)} bytes) exceeds the {limit} byte limit."
            if run.mode == "vectorize":
                raise PipelineError("model", message)
            run.trace = run.trace.with_warning(f"{message} Sent without screenshot.")
            image = None
        if run.mode == "vectorize" and not image:
            raise PipelineError("model", "Vectorize mode requires a screenshot of the selection.")

        user_text = build_prompt_text(
            user_prompt=run.prompt,
            mode=run.mode,
            route=run.route,
            context=context,
            screenshot_included=image is not None,
        )
        run.trace = run.trace.with_payload(prompt_chars=len(user_text))
        self._close(run)
        return ModelRequest(
            api_key=self.config.api_key,
            model=self.config.model,
            system_prompt=system_prompt_for(run.mode, run.route),
            user_text=user_text,
            screenshot_png_base64=image,
            max_image_bytes=limit,
        )

    async def _call_model(self, run: _Run, request: ModelRequest) -> str:
        self._enter(run, "model_call")
        response_text = await run.signal.guard(self.model_call(request, run.signal))
        run.trace = with_response(run.trace, response_text)
        self._close(run)
        return response_text

    def _return_text(self, run: _Run, response_text: str) -> Tuple[Artifact, str, MessageKind]:
        self._enter(run, "parse")
        self._enter(run, "validate")
        self._enter(run, "insert_or_return")
        self._close(run)
        return TextArtifact(response_text), response_text, "normal"

    async def _insert_diagram(self, run: _Run, response_text: str) -> Tuple[Artifact, str, MessageKind]:
        self._enter(run, "parse")
        try:
            payload = parse_diagram_payload(response_text)
        except ResponseParseError as exc:
            raise PipelineError("parse", str(exc)) from exc

        self._enter(run, "validate")
        diagram_report = validate_diagram_ir(payload)
        if diagram_report.errors:
            raise PipelineError(
                "validation",
                f"Invalid structured diagram output: {' | '.join(diagram_report.errors)}",
                diagram_report,
            )
        try:
            diagram = DiagramIR.model_validate(payload)
        except ValidationError as exc:
            errors = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
            report = diagram_report.model_copy(update={"errors": errors, "repairable": True})
            raise PipelineError(
                "validation", f"Invalid structured diagram output: {' | '.join(errors)}", report
            ) from exc

        self._enter(run, "insert_or_return")
        rendered = render_diagram_ir_to_svg(diagram)
        svg_report = validate_svg(rendered)
        report = svg_report.model_copy(update={"warnings": [*diagram_report.warnings, *svg_report.warnings]})
        if report.errors:
            raise PipelineError("validation", f"Structured SVG invalid: {' | '.join(report.errors)}", report)
        svg = report.svg or rendered
        await self._insert(run, svg)
        self._close(run)
        message = "Structured diagram rendered and inserted via deterministic pipeline."
        return DiagramArtifact(diagram=diagram, svg=svg, report=report), message, "success"

    async def _insert_markup(
        self, run: _Run, request: ModelRequest, response_text: str
    ) -> Tuple[Artifact, str, MessageKind]:
        self._enter(run, "parse")
        svg = extract_svg_from_response(response_text)
        if not svg:
            raise PipelineError("parse", "No <svg> element was found in the model response.")

        self._enter(run, "validate")
        report = validate_svg(svg)
        self._close(run)

        repaired = False
        if _needs_repair(report, run.force_repair):
            self._enter(run, "repair_if_needed")
            repaired = True
            run.trace = run.trace.model_copy(update={"repaired": True})
            repair_request = replace(
                request,
                user_text=build_repair_prompt(
                    original_prompt=run.prompt,
                    original_response=response_text,
                    validation_errors=report.errors or [MANUAL_REPAIR_REASON],
                ),
                screenshot_png_base64=None,
            )
            repair_text = await run.signal.guard(self.model_call(repair_request, run.signal))
            run.trace = with_response(run.trace, repair_text, accumulate=True)

            self._enter(run, "parse")
            svg = extract_svg_from_response(repair_text)
            if not svg:
                raise PipelineError("parse", "Repair response did not include a valid <svg> block.")

            self._enter(run, "validate")
            report = validate_svg(svg)
            self._close(run)

        if report.errors:
            raise PipelineError(report.category, " | ".join(report.errors), report)

        self._enter(run, "insert_or_return")
        svg = report.svg or svg
        await self._insert(run, svg)
        self._close(run)
        if repaired:
            return MarkupArtifact(svg, report, True), "Inserted SVG after one automatic repair pass.", "success"
        return MarkupArtifact(svg, report, False), "Inserted SVG successfully.", "normal"

    async def _insert(self, run: _Run, svg: str) -> None:
        try:
            result = await run.signal.guard(
                self.bridge.request_insertion(run.request_id, svg, run.mode, run.route)
            )
        except Exception as exc:
            raise normalize_error(exc, timeout_category="insert") from exc
        if not result.success:
            raise PipelineError("insert", result.error or "Unknown insertion failure.")


def _needs_repair(report: ValidationReport, force_repair: bool) -> bool:
    """Repair once for repairable errors, or on request when the markup is clean."""
    if report.errors:
        return report.repairable
    return force_repair


def _artifact_report(artifact: Artifact) -> Optional[ValidationReport]:
    if isinstance(artifact, TextArtifact):
        return None
    if isinstance(artifact, (MarkupArtifact, DiagramArtifact)):
        return artifact.report
    raise AssertionError(f"Unhandled artifact: {artifact!r}")
