"""Categorized pipeline failures."""
from __future__ import annotations

import asyncio
from typing import Optional

from figmatron.models.protocol import FailureCategory, ValidationReport
from figmatron.services.host_bridge import HostRequestError
from figmatron.utils.abort import RequestAborted
from figmatron.utils.gemini_client import ModelCallError


class PipelineError(Exception):
    """The only error type allowed to cross a stage boundary."""

    def __init__(self, category: FailureCategory, message: str, report: Optional[ValidationReport] = None):
        super().__init__(message)
        self.category = category
        self.report = report

    @property
    def message(self) -> str:
        return str(self)


class PipelineBusyError(RuntimeError):
    """A request is already in flight on this orchestrator."""


class MissingApiKeyError(ValueError):
    pass


def normalize_error(exc: BaseException, *, timeout_category: FailureCategory = "model") -> PipelineError:
    if isinstance(exc, PipelineError):
        return exc
    if isinstance(exc, (RequestAborted, asyncio.CancelledError)):
        return PipelineError("canceled", "Request canceled.")
    if isinstance(exc, HostRequestError):
        if exc.kind == "canceled":
            return PipelineError("canceled", "Request was canceled.")
        return PipelineError(timeout_category, str(exc))
    if isinstance(exc, ModelCallError):
        return PipelineError("model", str(exc))
    return PipelineError("model", str(exc) or "Unknown pipeline failure.")
