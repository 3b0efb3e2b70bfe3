"""Route selection for incoming prompts.

Rules:
- An explicit route override always wins.
- ask and vectorize requests always go direct to SVG.
- Prompts asking for rich detail (circuits, schematics, symbols) go direct to SVG,
  even when they also mention flowcharts.
- Flowchart / layout language goes through the structured IR route.
- Everything else goes direct to SVG.
"""
from __future__ import annotations

from figmatron.models.protocol import QueryMode, ResponseMode, RouteMode, RouteOverride

STRUCTURAL_KEYWORDS = (
    "flowchart",
    "flow chart",
    "block diagram",
    "workflow",
    "process map",
    "process flow",
    "decision tree",
    "reflow",
    "orientation",
    "rotate",
)

# Requests for detailed components/symbols need unconstrained rendering.
BYPASS_KEYWORDS = (
    "circuit",
    "logic gate",
    "schematic",
    "schema",
    "detailed",
    "symbols",
)


def is_structured_task_prompt(prompt: str, mode: QueryMode) -> bool:
    if mode == "ask":
        return False

    normalized = (prompt or "").lower()
    if any(keyword in normalized for keyword in BYPASS_KEYWORDS):
        return False
    return any(keyword in normalized for keyword in STRUCTURAL_KEYWORDS)


def choose_route(prompt: str, mode: QueryMode, route_override: RouteOverride = "auto") -> RouteMode:
    if route_override in ("direct_svg", "structured_ir"):
        return route_override
    if mode in ("ask", "vectorize"):
        return "direct_svg"
    return "structured_ir" if is_structured_task_prompt(prompt, mode) else "direct_svg"


def response_mode_for(mode: QueryMode, route: RouteMode) -> ResponseMode:
    if mode == "ask":
        return "text"
    if route == "structured_ir":
        return "ir_json"
    return "svg"
