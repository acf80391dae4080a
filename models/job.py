"""
Job ORM model — maps to the "jobs" table in the SQLite store.

Key design decisions:
- UUID string primary key: opaque, assigned on insert
- JSON for payload/result: each job type stores different data without schema changes
- correlation_id: its own indexed column, so dedup lookups never pattern-match
  inside the serialized payload
- run_at and the bookkeeping timestamps are naive UTC; all timezone math
  happens before a value reaches this table
- Rows are never deleted: the table doubles as the audit trail
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.enums import JobStatus


def _new_job_id() -> str:
    return str(uuid.uuid4())


class Job(Base):
    __tablename__ = "jobs"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_job_id)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ── Scheduling fields ───────────────────────────────────────
    run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Payload & Results ───────────────────────────────────────
    # createFromCandidate: {"correlationId": "C1", "firstName": ..., "joinDate": "20-11-2026"}
    # disableUser:         {"correlationId": "1042", "businessId": "1042", "email": ...}
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Bookkeeping ─────────────────────────────────────────────
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_jobs_status_run_at", "status", "run_at"),
        Index("ix_jobs_type_correlation", "job_type", "correlation_id"),
    )

    def __repr__(self) -> str:
        return f"<Job {self.id} [{self.job_type}] {self.status}>"
