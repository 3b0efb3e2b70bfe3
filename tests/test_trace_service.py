"""Tests for execution trace recording and querying."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from figmatron.db import Base
from figmatron.db_models import ExecutionTraceRecord
from figmatron.models.protocol import ExecutionTrace, ValidationReport
from figmatron.services.trace_service import (
    get_trace,
    list_recent_traces,
    record_trace,
    trace_from_record,
    trace_sink,
)


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _trace(request_id="req-1", **overrides):
    values = dict(
        request_id=request_id,
        mode="create",
        route="direct_svg",
        response_mode="svg",
        model="gemini-3-flash-preview",
        started_at=10.0,
        ended_at=10.25,
        total_ms=250,
        stage_timings_ms={"prepare_context": 5, "model_call": 240, "validate": 2},
        validation=ValidationReport(category="validation", errors=["Missing viewBox."], repairable=True),
        response_preview="<svg>",
        repaired=True,
        outcome="failed",
        error_message="Missing viewBox.",
    )
    values.update(overrides)
    return ExecutionTrace(**values)


class TestRecordTrace:
    def test_basic_record(self, db):
        record = record_trace(db, _trace())
        assert record.id is not None
        assert record.request_id == "req-1"
        assert record.outcome == "failed"
        assert record.repaired is True
        assert record.total_ms == 250
        assert record.trace_json["stage_timings_ms"]["model_call"] == 240

    def test_round_trips_into_identical_trace(self, db):
        trace = _trace()
        record = record_trace(db, trace)
        assert trace_from_record(record) == trace


class TestQueries:
    def test_get_trace_by_request_id(self, db):
        record_trace(db, _trace("a"))
        record_trace(db, _trace("b", outcome="success", error_message=None))
        assert get_trace(db, "b").outcome == "success"
        assert get_trace(db, "missing") is None

    def test_list_recent_is_newest_first_and_limited(self, db):
        for index in range(5):
            record_trace(db, _trace(f"req-{index}"))
        records = list_recent_traces(db, limit=3)
        assert [r.request_id for r in records] == ["req-4", "req-3", "req-2"]


class TestTraceSink:
    def test_sink_commits_each_trace(self, session_factory):
        sink = trace_sink(session_factory)
        sink(_trace("sunk"))
        db = session_factory()
        try:
            assert db.query(ExecutionTraceRecord).count() == 1
        finally:
            db.close()

    def test_sink_swallows_storage_errors(self, session_factory):
        sink = trace_sink(session_factory)
        sink(_trace("dup"))
        # unique request_id violation is logged, not raised
        sink(_trace("dup"))
        db = session_factory()
        try:
            assert db.query(ExecutionTraceRecord).count() == 1
        finally:
            db.close()
