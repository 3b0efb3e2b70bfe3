"""SQLAlchemy models for persisted execution traces."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from figmatron.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionTraceRecord(Base):
    __tablename__ = "execution_traces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    mode: Mapped[str] = mapped_column(String(16))
    route: Mapped[str] = mapped_column(String(32))
    response_mode: Mapped[str] = mapped_column(String(16))
    model: Mapped[str] = mapped_column(String(128))
    outcome: Mapped[str | None] = mapped_column(String(16), nullable=True)
    repaired: Mapped[bool] = mapped_column(Boolean, default=False)
    total_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    trace_json: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
