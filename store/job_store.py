"""
Durable store for jobs and key/value entries.

One JobStore instance is created per process and passed explicitly to
everything that needs it (ticker, executor, handlers, trigger service).

Write discipline:
- every mutating method opens its own session and commits before returning,
  so a crash between two calls never loses the first call's work
- writers are serialized by a process-level lock; SQLite allows one writer
  at a time anyway, and the lock keeps read-modify-write helpers
  (bump_kv_int, mark_job's transition check) atomic within the process
- readers (cooldown checks from handler threads) never take the lock
- exclusive() holds the same lock across several calls, for callers whose
  read-then-write sequence must not interleave with another thread's

Callers get JobRecord snapshots, never live ORM objects, so nothing outside
this module depends on a session being open.
"""

import enum
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy import select, func, update, or_, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models.base import create_sqlite_engine
from models.enums import JobStatus, ACTIVE_STATUSES, can_transition
from models.job import Job
from models.kv import KVEntry
from models.timestamps import utcnow, to_naive_utc, as_aware_utc
from store.errors import StoreError
from store.migrations import ensure_schema, correlation_id_from_payload

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 8000

_MUTABLE_FIELDS = frozenset({"status", "attempts", "last_error", "result", "run_at"})


def _enum_value(value) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


@dataclass(frozen=True)
class JobRecord:
    """Immutable snapshot of a jobs row. Datetimes are aware UTC."""
    id: str
    job_type: str
    run_at: datetime
    status: str
    attempts: int
    payload: dict = field(default_factory=dict)
    correlation_id: Optional[str] = None
    last_error: Optional[str] = None
    result: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, job: Job) -> "JobRecord":
        return cls(
            id=job.id,
            job_type=job.job_type,
            run_at=as_aware_utc(job.run_at),
            status=job.status,
            attempts=job.attempts or 0,
            payload=dict(job.payload or {}),
            correlation_id=job.correlation_id,
            last_error=job.last_error,
            result=job.result,
            created_at=as_aware_utc(job.created_at),
            updated_at=as_aware_utc(job.updated_at),
        )


class JobStore:

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self._engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)
        self._clock = clock
        self._write_lock = threading.RLock()

    @classmethod
    def open(cls, database_path: str, clock: Callable[[], datetime] = utcnow) -> "JobStore":
        """Create the engine, evolve the schema, and return a ready store."""
        engine = create_sqlite_engine(database_path)
        ensure_schema(engine)
        logger.info(f"SQLite store ready at {database_path}")
        return cls(engine, clock=clock)

    def close(self) -> None:
        self._engine.dispose()

    def ping(self) -> None:
        """Trivial query; raises StoreError if the database is unusable."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"Store unreachable: {e}") from e

    def _now(self) -> datetime:
        return to_naive_utc(self._clock())

    @contextmanager
    def exclusive(self):
        """
        Hold the write lock for the duration of the block.

        The lock is reentrant, so store writes made inside the block go
        through as usual while other threads' writes wait for it to exit.
        """
        with self._write_lock:
            yield self

    # ── Jobs: writes ────────────────────────────────────────────

    def insert_job(
        self,
        job_type,
        run_at: datetime,
        payload: dict | None,
        correlation_id: str | None = None,
    ) -> str:
        """Insert a pending job and return its id. Raises StoreError on failure."""
        payload = dict(payload or {})
        if correlation_id is None:
            correlation_id = correlation_id_from_payload(payload)
        now = self._now()
        job = Job(
            job_type=_enum_value(job_type),
            correlation_id=str(correlation_id) if correlation_id is not None else None,
            run_at=to_naive_utc(run_at),
            status=JobStatus.PENDING.value,
            attempts=0,
            payload=payload,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._write_lock, self._session_factory() as session:
                session.add(job)
                session.commit()
                return job.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert {job.job_type} job: {e}") from e

    def mark_job(self, job_id: str, **fields) -> bool:
        """
        Apply a partial update (status, attempts, last_error, result, run_at).

        Never raises. Returns False, after logging, when the row is missing,
        the status change is not allowed by the state machine, attempts would
        go down, or the write itself fails.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            logger.error(f"mark_job({job_id}) called with unsupported fields: {sorted(unknown)}")
            return False

        try:
            with self._write_lock, self._session_factory() as session:
                job = session.get(Job, job_id)
                if job is None:
                    logger.warning(f"Job {job_id} not found, update skipped")
                    return False

                if JobStatus(job.status).is_terminal:
                    logger.warning(f"Job {job_id} is {job.status} (terminal), update skipped")
                    return False

                if "status" in fields:
                    target = _enum_value(fields["status"])
                    if target != job.status and not can_transition(job.status, target):
                        logger.warning(
                            f"Job {job_id}: illegal transition {job.status} → {target}, update skipped"
                        )
                        return False
                    job.status = target

                if "attempts" in fields:
                    if fields["attempts"] < job.attempts:
                        logger.warning(
                            f"Job {job_id}: attempts cannot decrease "
                            f"({job.attempts} → {fields['attempts']}), update skipped"
                        )
                        return False
                    job.attempts = fields["attempts"]

                if "last_error" in fields:
                    error = fields["last_error"]
                    if error is not None:
                        error = str(error)[:MAX_ERROR_CHARS]
                    job.last_error = error

                if "result" in fields:
                    job.result = fields["result"]

                if "run_at" in fields:
                    job.run_at = to_naive_utc(fields["run_at"])

                job.updated_at = self._now()
                session.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to update job {job_id}: {e}")
            return False

    def reconcile_stale_running(self, older_than: timedelta) -> int:
        """
        Put `running` jobs whose last update is older than `older_than` back
        to `pending`.

        Called once at startup: no in-process state survives a restart, so a
        job still marked running was interrupted mid-flight. Its attempt is
        already counted, and it becomes due again immediately.
        """
        now = self._now()
        cutoff = now - older_than
        try:
            with self._write_lock, self._session_factory() as session:
                result = session.execute(
                    update(Job)
                    .where(
                        Job.status == JobStatus.RUNNING.value,
                        or_(Job.updated_at.is_(None), Job.updated_at <= cutoff),
                    )
                    .values(
                        status=JobStatus.PENDING.value,
                        last_error="reset to pending: still running after unclean shutdown",
                        updated_at=now,
                    )
                )
                session.commit()
                count = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to reconcile running jobs: {e}") from e

        if count:
            logger.warning(f"Reset {count} orphaned running jobs to pending")
        return count

    # ── Jobs: reads ─────────────────────────────────────────────

    def fetch_due_jobs(
        self,
        now: datetime,
        limit: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[JobRecord]:
        """Pending jobs with run_at <= now, oldest run_at first, at most `limit`."""
        if limit <= 0:
            return []
        stmt = select(Job).where(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= to_naive_utc(now),
        )
        excluded = list(exclude_ids)
        if excluded:
            stmt = stmt.where(Job.id.not_in(excluded))
        stmt = stmt.order_by(Job.run_at.asc(), Job.created_at.asc()).limit(limit)
        try:
            with self._session_factory() as session:
                return [JobRecord.from_orm(job) for job in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch due jobs: {e}") from e

    def find_active_job_by_correlation(self, job_type, correlation_id: str) -> JobRecord | None:
        """Most recent pending/running job of `job_type` for `correlation_id`."""
        stmt = (
            select(Job)
            .where(
                Job.job_type == _enum_value(job_type),
                Job.correlation_id == str(correlation_id),
                Job.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .order_by(Job.created_at.desc())
            .limit(1)
        )
        try:
            with self._session_factory() as session:
                job = session.scalars(stmt).first()
                return JobRecord.from_orm(job) if job else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to look up active job for {correlation_id}: {e}") from e

    def get_job(self, job_id: str) -> JobRecord | None:
        try:
            with self._session_factory() as session:
                job = session.get(Job, job_id)
                return JobRecord.from_orm(job) if job else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read job {job_id}: {e}") from e

    def list_jobs(
        self,
        status: str | None = None,
        job_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """One page of jobs (newest first) plus the total matching count."""
        conditions = []
        if status:
            conditions.append(Job.status == _enum_value(status))
        if job_type:
            conditions.append(Job.job_type == _enum_value(job_type))
        count_query = select(func.count(Job.id))
        page_query = select(Job)
        if conditions:
            count_query = count_query.where(*conditions)
            page_query = page_query.where(*conditions)
        page_query = page_query.order_by(Job.created_at.desc()).offset(offset).limit(limit)
        try:
            with self._session_factory() as session:
                total = session.scalar(count_query) or 0
                return [JobRecord.from_orm(job) for job in session.scalars(page_query)], total
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list jobs: {e}") from e

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(Job.status, func.count(Job.id)).group_by(Job.status)
                ).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count jobs: {e}") from e
        for status, count in rows:
            counts[status] = count
        return counts

    # ── Key/value ───────────────────────────────────────────────

    def get_kv(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                entry = session.get(KVEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read kv {key}: {e}") from e

    def set_kv(self, key: str, value) -> None:
        """Insert or overwrite `key`."""
        try:
            with self._write_lock, self._session_factory() as session:
                self._upsert_kv(session, key, value)
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write kv {key}: {e}") from e

    def get_kv_int(self, key: str, default: int = 0) -> int:
        raw = self.get_kv(key)
        try:
            return int(str(raw).strip())
        except (TypeError, ValueError):
            return default

    def bump_kv_int(self, key: str, start_at: int = 1) -> int:
        """Increment an integer counter and return the new value (start_at if absent)."""
        try:
            with self._write_lock, self._session_factory() as session:
                entry = session.get(KVEntry, key)
                try:
                    current = int(str(entry.value).strip()) if entry else start_at - 1
                except (TypeError, ValueError):
                    current = start_at - 1
                next_value = current + 1
                self._upsert_kv(session, key, next_value)
                session.commit()
                return next_value
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to bump kv {key}: {e}") from e

    def _upsert_kv(self, session, key: str, value) -> None:
        text_value = None if value is None else str(value)
        entry = session.get(KVEntry, key)
        if entry is None:
            session.add(KVEntry(key=key, value=text_value, updated_at=self._now()))
        else:
            entry.value = text_value
            entry.updated_at = self._now()
