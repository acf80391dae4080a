"""
Dedup and cooldown index over the job store.

Webhooks from the HR system arrive in bursts: the same edit fires twice, and
the directory changes this service makes echo back as fresh webhooks. Two
mechanisms keep those from turning into duplicate work:

Active-job dedup
    Before inserting a job for a correlation id, look for a pending/running
    job of the same type. If its run_at is within the tolerance window of the
    newly computed one, the request is a duplicate: return the existing job.
    If it differs by more, the schedule really changed: cancel the old job
    (supersede) and insert the new one.

Cooldown
    After a handler finishes a mutation for a correlation id it writes
    COOLDOWN_UNTIL:<id> = now + cooldown into the kv table. Triggers for that
    id are acknowledged but not scheduled until the marker expires.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from models.enums import JobStatus, TriggerStatus
from models.timestamps import as_aware_utc, isoformat_utc
from store.job_store import JobStore

logger = logging.getLogger(__name__)

COOLDOWN_KEY_PREFIX = "COOLDOWN_UNTIL:"


def cooldown_key(correlation_id: str) -> str:
    return f"{COOLDOWN_KEY_PREFIX}{correlation_id}"


@dataclass(frozen=True)
class ScheduleOutcome:
    status: TriggerStatus
    job_id: Optional[str] = None
    run_at: Optional[datetime] = None
    superseded_job_id: Optional[str] = None
    retry_after: Optional[timedelta] = None


class DedupIndex:

    def __init__(self, store: JobStore, tolerance: timedelta, cooldown: timedelta):
        self._store = store
        self._tolerance = tolerance
        self._cooldown = cooldown

    # ── Cooldown markers ────────────────────────────────────────

    def cooldown_remaining(self, correlation_id: str, now: datetime) -> Optional[timedelta]:
        """Time left on the cooldown for `correlation_id`, or None if none is active."""
        raw = self._store.get_kv(cooldown_key(correlation_id))
        if not raw:
            return None
        try:
            until = as_aware_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError:
            logger.warning(f"Ignoring unreadable cooldown marker for {correlation_id}: {raw!r}")
            return None
        remaining = until - now
        return remaining if remaining > timedelta(0) else None

    def set_cooldown(self, correlation_id: str, now: datetime) -> datetime:
        until = now + self._cooldown
        self._store.set_kv(cooldown_key(correlation_id), isoformat_utc(until))
        logger.info(f"Cooldown set for {correlation_id} until {isoformat_utc(until)}")
        return until

    # ── Scheduling with dedup ───────────────────────────────────

    def schedule(
        self,
        job_type,
        correlation_id: str,
        run_at: datetime,
        payload: dict,
        now: datetime,
    ) -> ScheduleOutcome:
        """
        Schedule `job_type` for `correlation_id` unless a cooldown or an
        equivalent active job makes the request redundant.
        """
        remaining = self.cooldown_remaining(correlation_id, now)
        if remaining is not None:
            logger.warning(
                f"Cooldown active for {correlation_id} ({remaining.total_seconds():.0f}s left), "
                f"scheduling suppressed"
            )
            return ScheduleOutcome(status=TriggerStatus.COOLDOWN_ACTIVE, retry_after=remaining)

        payload = {**payload, "correlationId": correlation_id}
        superseded_job_id = None

        # Lookup, supersede and insert must not interleave with a concurrent
        # trigger for the same id, or both would insert.
        with self._store.exclusive():
            existing = self._store.find_active_job_by_correlation(job_type, correlation_id)
            if existing is not None:
                if abs(existing.run_at - run_at) <= self._tolerance:
                    logger.info(
                        f"Duplicate suppressed: job {existing.id} already {existing.status} "
                        f"for {correlation_id} at {isoformat_utc(existing.run_at)}"
                    )
                    return ScheduleOutcome(
                        status=TriggerStatus.ALREADY_SCHEDULED,
                        job_id=existing.id,
                        run_at=existing.run_at,
                    )

                cancelled = self._store.mark_job(
                    existing.id,
                    status=JobStatus.CANCELLED,
                    last_error=f"superseded by new schedule (runAt={isoformat_utc(run_at)})",
                    result={"supersededBy": {"runAt": isoformat_utc(run_at)}},
                )
                if cancelled:
                    superseded_job_id = existing.id
                    logger.info(
                        f"Superseding job {existing.id}: "
                        f"{isoformat_utc(existing.run_at)} → {isoformat_utc(run_at)}"
                    )
                else:
                    # Most likely already picked up by the executor; the new job
                    # still reflects the latest schedule.
                    logger.warning(f"Could not cancel job {existing.id} ({existing.status}) while superseding")

            job_id = self._store.insert_job(job_type, run_at, payload, correlation_id=correlation_id)

        logger.info(f"Scheduled {getattr(job_type, 'value', job_type)} job {job_id} for {correlation_id} at {isoformat_utc(run_at)}")
        return ScheduleOutcome(
            status=TriggerStatus.SCHEDULED,
            job_id=job_id,
            run_at=run_at,
            superseded_job_id=superseded_job_id,
        )
