"""Prompt assembly for model and repair calls."""
from __future__ import annotations

import json
from typing import Sequence

from figmatron.models.protocol import ContextPacket, QueryMode, RouteMode, estimate_base64_bytes
from figmatron.prompts.templates import (
    ASK_PROMPT,
    BASE_SVG_PROMPT,
    REPAIR_PROMPT,
    STRUCTURED_IR_PROMPT,
    VECTORIZE_PROMPT,
)

MAX_PROMPT_SVG_CHARS = 120_000
MAX_REPAIR_RESPONSE_CHARS = 180_000

CONTEXT_SVG_MARKER = "SELECTED_CONTEXT_SVG"


def truncate(value: str, max_chars: int) -> str:
    """Cut ``value`` to ``max_chars`` and append a visible truncation marker."""
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}\n...[TRUNCATED {len(value) - max_chars} CHARS]"


def _response_format_tag(mode: QueryMode, route: RouteMode) -> str:
    if route == "structured_ir":
        return "JSON_DIAGRAM_IR"
    if mode == "ask":
        return "TEXT"
    return "SVG"


def build_prompt_text(
    *,
    user_prompt: str,
    mode: QueryMode,
    route: RouteMode,
    context: ContextPacket,
    screenshot_included: bool,
) -> str:
    segments = [
        f"MODE: {mode.upper()}",
        f"RESPONSE_FORMAT: {_response_format_tag(mode, route)}",
        f"USER_PROMPT:\n{user_prompt}",
        f"SELECTION_SUMMARY: {json.dumps(context.selection_info.model_dump(exclude_none=True), indent=2)}",
    ]

    if context.metadata is not None:
        segments.append(f"PRIMARY_NODE_METADATA:\n{json.dumps(context.metadata.model_dump(), indent=2)}")

    # vectorize works from the raster snapshot only
    if context.svg and mode != "vectorize":
        segments.append(f"{CONTEXT_SVG_MARKER}:\n```xml\n{truncate(context.svg, MAX_PROMPT_SVG_CHARS)}\n```")

    if screenshot_included:
        segments.append(f"SCREENSHOT_ATTACHED: {estimate_base64_bytes(context.screenshot_png_base64)} bytes")

    return "\n\n".join(segments)


def system_prompt_for(mode: QueryMode, route: RouteMode) -> str:
    if mode == "ask":
        return ASK_PROMPT.strip()
    if mode == "vectorize":
        return VECTORIZE_PROMPT.strip()
    if route == "structured_ir":
        return STRUCTURED_IR_PROMPT.strip()
    return BASE_SVG_PROMPT.strip()


def build_repair_prompt(
    *,
    original_prompt: str,
    original_response: str,
    validation_errors: Sequence[str],
) -> str:
    numbered = "\n".join(f"{index}. {error}" for index, error in enumerate(validation_errors, start=1))
    return (
        f"{REPAIR_PROMPT.strip()}\n\n"
        f"ORIGINAL_USER_PROMPT:\n{original_prompt}\n\n"
        f"VALIDATION_ERRORS:\n{numbered}\n\n"
        f"BROKEN_OUTPUT:\n```\n{truncate(original_response, MAX_REPAIR_RESPONSE_CHARS)}\n```"
    )
