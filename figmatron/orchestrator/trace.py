"""Execution trace accumulation helpers."""
from __future__ import annotations

import time
from typing import Callable, Optional

from figmatron.models.protocol import ExecutionTrace, StageName

PREVIEW_CHARS = 2000


class StageClock:
    """Tracks the open stage and folds its duration into a trace when it closes.

    Cycled stages (parse/validate after a repair) accumulate their time.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self.current: Optional[StageName] = None
        self._started = 0.0

    def now(self) -> float:
        return self._clock()

    def enter(self, trace: ExecutionTrace, stage: StageName) -> ExecutionTrace:
        trace = self.close(trace)
        self.current = stage
        self._started = self._clock()
        return trace

    def close(self, trace: ExecutionTrace) -> ExecutionTrace:
        if self.current is None:
            return trace
        elapsed = int(round((self._clock() - self._started) * 1000))
        timings = dict(trace.stage_timings_ms)
        timings[self.current] = timings.get(self.current, 0) + elapsed
        self.current = None
        return trace.model_copy(update={"stage_timings_ms": timings})


def with_response(trace: ExecutionTrace, response_text: str, *, accumulate: bool = False) -> ExecutionTrace:
    chars = len(response_text)
    if accumulate:
        chars += trace.payload_sizes.response_chars
    trace = trace.with_payload(response_chars=chars)
    return trace.model_copy(update={"response_preview": response_text[:PREVIEW_CHARS]})


def finalize(trace: ExecutionTrace, ended_at: float) -> ExecutionTrace:
    return trace.model_copy(update={
        "ended_at": ended_at,
        "total_ms": int(round((ended_at - trace.started_at) * 1000)),
    })
