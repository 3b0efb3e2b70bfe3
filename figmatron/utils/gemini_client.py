"""Gemini model-call collaborator."""
from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from figmatron.models.protocol import estimate_base64_bytes
from figmatron.utils.abort import AbortSignal

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 3 * 1024 * 1024


class ModelCallError(RuntimeError):
    """Transport or content failure reported by the model endpoint."""

    def __init__(self, message: str, finish_reason: Optional[str] = None):
        super().__init__(message)
        self.finish_reason = finish_reason


class EmptyModelResponseError(ModelCallError):
    pass


@dataclass(frozen=True)
class ModelRequest:
    api_key: str
    model: str
    system_prompt: str
    user_text: str
    screenshot_png_base64: Optional[str] = None
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES


@lru_cache(maxsize=4)
def get_gemini_client(api_key: str) -> genai.Client:
    """Return a shared client per api key."""
    if not api_key:
        raise ValueError("GEMINI_API_KEY is not set")
    return genai.Client(api_key=api_key)


def _build_parts(request: ModelRequest) -> list[types.Part]:
    parts = [types.Part(text=request.user_text)]
    if request.screenshot_png_base64:
        estimated = estimate_base64_bytes(request.screenshot_png_base64)
        if estimated <= request.max_image_bytes:
            parts.append(types.Part.from_bytes(
                data=base64.b64decode(request.screenshot_png_base64),
                mime_type="image/png",
            ))
        else:
            logger.warning(
                "Omitting screenshot from model call (%d bytes > %d limit)", estimated, request.max_image_bytes
            )
    return parts


def _extract_text(response: types.GenerateContentResponse) -> str:
    candidates = response.candidates or []
    candidate = candidates[0] if candidates else None
    parts = (candidate.content.parts if candidate and candidate.content else None) or []
    answer = "\n".join(part.text or "" for part in parts).strip()
    if not answer:
        reason = getattr(candidate, "finish_reason", None) if candidate else None
        reason_name = getattr(reason, "name", None) or (str(reason) if reason else "unknown")
        raise EmptyModelResponseError(
            f"Model returned no text content (finishReason={reason_name}).", finish_reason=reason_name
        )
    return answer


async def call_gemini(request: ModelRequest, signal: Optional[AbortSignal] = None) -> str:
    """Send one generateContent call and return the joined text parts."""
    client = get_gemini_client(request.api_key)
    config = types.GenerateContentConfig(system_instruction=request.system_prompt)
    contents = [types.Content(role="user", parts=_build_parts(request))]

    logger.debug("Generate via %s (%d char prompt)", request.model, len(request.user_text))
    t0 = time.perf_counter()
    call = client.aio.models.generate_content(model=request.model, contents=contents, config=config)
    try:
        response = await (signal.guard(call) if signal is not None else call)
    except genai_errors.APIError as exc:
        raise ModelCallError(exc.message or f"Model request failed: {exc.code}") from exc
    text = _extract_text(response)
    logger.debug("Generate complete: %d chars, %.0fms", len(text), (time.perf_counter() - t0) * 1000)
    return text
