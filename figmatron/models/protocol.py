"""Shared request/response types exchanged between the pipeline and the canvas host."""
from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

STAGES = (
    "prepare_context",
    "route",
    "model_call",
    "parse",
    "validate",
    "repair_if_needed",
    "insert_or_return",
    "done",
)

StageName = Literal[
    "prepare_context",
    "route",
    "model_call",
    "parse",
    "validate",
    "repair_if_needed",
    "insert_or_return",
    "done",
]

QueryMode = Literal["create", "modify", "ask", "vectorize"]
RouteMode = Literal["direct_svg", "structured_ir"]
RouteOverride = Literal["auto", "direct_svg", "structured_ir"]
ResponseMode = Literal["text", "svg", "ir_json"]
FailureCategory = Literal["model", "parse", "validation", "insert", "canceled"]
Outcome = Literal["success", "failed", "canceled"]


class SelectionInfo(BaseModel):
    count: int = 0
    has_selection: bool = False
    primary_id: Optional[str] = None
    primary_name: Optional[str] = None
    primary_type: Optional[str] = None


class SelectionMetadata(BaseModel):
    id: str
    name: str
    type: str
    width: float
    height: float
    x: float
    y: float
    rotation: float = 0
    visible: bool = True
    locked: bool = False
    fills_count: int = 0
    strokes_count: int = 0


class ContextPacket(BaseModel):
    """Snapshot of the host selection, consumed to build exactly one prompt."""

    model_config = ConfigDict(frozen=True)

    svg: Optional[str] = None
    metadata: Optional[SelectionMetadata] = None
    screenshot_png_base64: Optional[str] = None
    screenshot_error: Optional[str] = None
    selection_info: SelectionInfo = Field(default_factory=SelectionInfo)


def estimate_base64_bytes(payload: Optional[str]) -> int:
    if not payload:
        return 0
    return int(len(payload) * 0.75)


class ValidationReport(BaseModel):
    category: FailureCategory
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    repairable: bool = False
    svg: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.errors


class PayloadSizes(BaseModel):
    prompt_chars: int = 0
    context_svg_chars: int = 0
    screenshot_bytes: int = 0
    response_chars: int = 0


class ContextSummary(BaseModel):
    selection_count: int = 0
    has_svg: bool = False
    has_screenshot: bool = False


class ExecutionTrace(BaseModel):
    """Per-request diagnostics record.

    Instances are immutable: stages hand back updated copies which the
    orchestrator rebinds, and the final copy is emitted once when the
    request ends.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str
    mode: QueryMode
    route: RouteMode
    response_mode: ResponseMode
    model: str
    started_at: float
    ended_at: Optional[float] = None
    total_ms: Optional[int] = None
    stage_timings_ms: Dict[str, int] = Field(default_factory=dict)
    payload_sizes: PayloadSizes = Field(default_factory=PayloadSizes)
    context_summary: ContextSummary = Field(default_factory=ContextSummary)
    validation: Optional[ValidationReport] = None
    response_preview: Optional[str] = None
    repaired: bool = False
    outcome: Optional[Outcome] = None
    error_message: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    def with_payload(self, **sizes: int) -> "ExecutionTrace":
        return self.model_copy(update={"payload_sizes": self.payload_sizes.model_copy(update=sizes)})

    def with_warning(self, warning: str) -> "ExecutionTrace":
        return self.model_copy(update={"warnings": [*self.warnings, warning]})


# Messages sent from the pipeline to the host.


class PrepareContextMessage(BaseModel):
    type: Literal["prepare-context"] = "prepare-context"
    request_id: str
    mode: QueryMode
    include_screenshot: bool
    max_screenshot_bytes: int


class InsertSvgMessage(BaseModel):
    type: Literal["insert-svg"] = "insert-svg"
    request_id: str
    svg: str
    mode: QueryMode
    route: RouteMode


class CancelRequestMessage(BaseModel):
    type: Literal["cancel-request"] = "cancel-request"
    request_id: str


PluginRequestMessage = Annotated[
    Union[PrepareContextMessage, InsertSvgMessage, CancelRequestMessage],
    Field(discriminator="type"),
]


# Messages sent from the host back to the pipeline.


class SelectionStateMessage(BaseModel):
    type: Literal["selection-state"] = "selection-state"
    selection: SelectionInfo


class ContextReadyMessage(BaseModel):
    type: Literal["context-ready"] = "context-ready"
    request_id: str
    context: ContextPacket
    error: Optional[str] = None


class InsertResultMessage(BaseModel):
    type: Literal["insert-result"] = "insert-result"
    request_id: str
    success: bool
    error: Optional[str] = None


class RequestCanceledMessage(BaseModel):
    type: Literal["request-canceled"] = "request-canceled"
    request_id: str


PluginResponseMessage = Annotated[
    Union[SelectionStateMessage, ContextReadyMessage, InsertResultMessage, RequestCanceledMessage],
    Field(discriminator="type"),
]
