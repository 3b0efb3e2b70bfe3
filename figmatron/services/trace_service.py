"""Service for recording and querying execution traces."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from figmatron.db_models import ExecutionTraceRecord
from figmatron.models.protocol import ExecutionTrace

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 12


def record_trace(db: DbSession, trace: ExecutionTrace) -> ExecutionTraceRecord:
    """Store one finished trace. The full trace is kept as JSON for replay."""
    record = ExecutionTraceRecord(
        request_id=trace.request_id,
        mode=trace.mode,
        route=trace.route,
        response_mode=trace.response_mode,
        model=trace.model,
        outcome=trace.outcome,
        repaired=trace.repaired,
        total_ms=trace.total_ms,
        error_message=trace.error_message,
        trace_json=trace.model_dump(mode="json"),
    )
    db.add(record)
    db.flush()
    return record


def trace_from_record(record: ExecutionTraceRecord) -> ExecutionTrace:
    return ExecutionTrace.model_validate(record.trace_json)


def list_recent_traces(db: DbSession, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ExecutionTraceRecord]:
    return list(
        db.execute(
            select(ExecutionTraceRecord)
            .order_by(ExecutionTraceRecord.created_at.desc(), ExecutionTraceRecord.id.desc())
            .limit(limit)
        ).scalars()
    )


def get_trace(db: DbSession, request_id: str) -> Optional[ExecutionTraceRecord]:
    return db.execute(
        select(ExecutionTraceRecord).where(ExecutionTraceRecord.request_id == request_id)
    ).scalar_one_or_none()


def trace_sink(session_factory: Callable[[], DbSession]) -> Callable[[ExecutionTrace], None]:
    """Build an orchestrator trace sink that commits each trace in its own session.

    Storage failures are logged and never reach the pipeline.
    """

    def _sink(trace: ExecutionTrace) -> None:
        db = session_factory()
        try:
            record_trace(db, trace)
            db.commit()
        except Exception:
            db.rollback()
            logger.debug("Failed to record execution trace %s", trace.request_id, exc_info=True)
        finally:
            db.close()

    return _sink
