"""Extract SVG / diagram JSON payloads from raw model text."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_FENCED_SVG_RE = re.compile(r"```(?:xml|svg|html)?\s*([\s\S]*?<svg[\s\S]*?</svg>[\s\S]*?)```", re.IGNORECASE)
_SVG_RE = re.compile(r"<svg[\s\S]*?</svg>", re.IGNORECASE)
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ResponseParseError(ValueError):
    """Raised when model text does not contain the expected artifact."""


def extract_svg_from_response(response_text: str) -> Optional[str]:
    fenced = _FENCED_SVG_RE.search(response_text or "")
    if fenced:
        in_fence = _SVG_RE.search(fenced.group(1))
        if in_fence:
            return in_fence.group(0).strip()

    raw = _SVG_RE.search(response_text or "")
    return raw.group(0).strip() if raw else None


def extract_json_from_response(response_text: str) -> Optional[str]:
    text = response_text or ""
    fenced = _FENCED_JSON_RE.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace >= 0 and last_brace > first_brace:
        return text[first_brace:last_brace + 1].strip()
    return None


def parse_diagram_payload(response_text: str) -> Dict[str, Any]:
    """Return the raw diagram mapping found in ``response_text``.

    The mapping is not schema-checked here; the diagram validator reports
    structural problems so they can be surfaced together.
    """
    candidate = extract_json_from_response(response_text)
    if not candidate:
        raise ResponseParseError("No JSON object found for structured diagram response.")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Structured diagram JSON is malformed: {exc.msg}.") from exc
    if not isinstance(parsed, dict):
        raise ResponseParseError("Structured diagram JSON must be an object.")
    return parsed
