"""
Tests for DedupIndex: idempotent scheduling, supersede, cooldown.
"""

import threading
import time
from datetime import timedelta

from models.enums import JobStatus, JobType, TriggerStatus
from scheduler.dedup import DedupIndex, cooldown_key
from tests.fakes import T0

CREATE = JobType.CREATE_FROM_CANDIDATE


def _active_rows(store, correlation_id):
    jobs, _ = store.list_jobs(limit=100)
    return [j for j in jobs if j.correlation_id == correlation_id and j.status in ("pending", "running")]


def test_first_schedule_inserts_job(store, dedup):
    run_at = T0 + timedelta(days=3)

    outcome = dedup.schedule(CREATE, "C1", run_at, {"firstName": "A"}, T0)

    assert outcome.status == TriggerStatus.SCHEDULED
    job = store.get_job(outcome.job_id)
    assert job.run_at == run_at
    assert job.payload["correlationId"] == "C1"
    assert job.correlation_id == "C1"


def test_same_run_at_twice_is_idempotent(store, dedup):
    run_at = T0 + timedelta(days=3)
    first = dedup.schedule(CREATE, "C1", run_at, {}, T0)

    second = dedup.schedule(CREATE, "C1", run_at, {}, T0 + timedelta(seconds=5))

    assert second.status == TriggerStatus.ALREADY_SCHEDULED
    assert second.job_id == first.job_id
    assert len(_active_rows(store, "C1")) == 1
    assert store.list_jobs()[1] == 1


def test_two_triggers_ten_seconds_apart_with_runs_thirty_seconds_apart(store, dedup, clock):
    """C1 arrives twice 10 s apart; computed run_at values differ by 30 s → already_scheduled."""
    first = dedup.schedule(CREATE, "C1", clock.now + timedelta(minutes=2), {}, clock.now)
    clock.advance(seconds=10)

    second = dedup.schedule(CREATE, "C1", clock.now + timedelta(minutes=2, seconds=20), {}, clock.now)

    assert second.status == TriggerStatus.ALREADY_SCHEDULED
    assert second.job_id == first.job_id
    assert second.run_at == first.run_at


def test_materially_different_run_at_supersedes(store, dedup):
    first = dedup.schedule(CREATE, "C1", T0 + timedelta(days=3), {}, T0)
    new_run_at = T0 + timedelta(days=10)

    second = dedup.schedule(CREATE, "C1", new_run_at, {}, T0)

    assert second.status == TriggerStatus.SCHEDULED
    assert second.superseded_job_id == first.job_id
    old = store.get_job(first.job_id)
    assert old.status == JobStatus.CANCELLED.value
    assert "superseded" in old.last_error
    assert old.result["supersededBy"]["runAt"].startswith(new_run_at.date().isoformat())
    active = _active_rows(store, "C1")
    assert [j.id for j in active] == [second.job_id]
    assert store.list_jobs()[1] == 2


def test_tolerance_boundary(store, dedup):
    """Exactly the tolerance apart still counts as the same schedule."""
    first = dedup.schedule(CREATE, "C1", T0 + timedelta(hours=1), {}, T0)
    same = dedup.schedule(CREATE, "C1", T0 + timedelta(hours=1, seconds=60), {}, T0)
    assert same.status == TriggerStatus.ALREADY_SCHEDULED

    moved = dedup.schedule(CREATE, "C1", T0 + timedelta(hours=1, seconds=61), {}, T0)
    assert moved.status == TriggerStatus.SCHEDULED
    assert moved.superseded_job_id == first.job_id


def test_running_job_cannot_be_superseded_but_new_job_is_inserted(store, dedup):
    first = dedup.schedule(CREATE, "C1", T0, {}, T0)
    store.mark_job(first.job_id, status=JobStatus.RUNNING, attempts=1)

    second = dedup.schedule(CREATE, "C1", T0 + timedelta(days=2), {}, T0)

    assert second.status == TriggerStatus.SCHEDULED
    assert second.superseded_job_id is None
    assert store.get_job(first.job_id).status == JobStatus.RUNNING.value


def test_concurrent_duplicate_triggers_schedule_once(store, dedup, monkeypatch):
    """Two echoes racing in separate threads end up with one pending job."""
    lookup = store.find_active_job_by_correlation

    def slow_lookup(job_type, correlation_id):
        found = lookup(job_type, correlation_id)
        time.sleep(0.05)   # widen the gap between lookup and insert
        return found

    monkeypatch.setattr(store, "find_active_job_by_correlation", slow_lookup)
    # A second index over the same store, as another request handler would have.
    other = DedupIndex(store, tolerance=timedelta(seconds=60), cooldown=timedelta(minutes=3))
    run_at = T0 + timedelta(days=3)
    start = threading.Barrier(2)
    outcomes = []

    def trigger(index):
        start.wait(timeout=5)
        outcomes.append(index.schedule(CREATE, "C1", run_at, {}, T0))

    threads = [threading.Thread(target=trigger, args=(index,)) for index in (dedup, other)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(o.status.value for o in outcomes) == ["already_scheduled", "scheduled"]
    assert len(_active_rows(store, "C1")) == 1
    assert store.list_jobs()[1] == 1


def test_other_job_type_does_not_dedup(store, dedup):
    dedup.schedule(JobType.DISABLE_USER, "1042", T0 + timedelta(days=1), {}, T0)
    outcome = dedup.schedule(JobType.DELETE_USER, "1042", T0 + timedelta(days=1), {}, T0)
    assert outcome.status == TriggerStatus.SCHEDULED


def test_cooldown_suppresses_scheduling(store, dedup, clock):
    dedup.set_cooldown("C1", clock.now)
    clock.advance(minutes=1)

    outcome = dedup.schedule(CREATE, "C1", clock.now + timedelta(days=3), {}, clock.now)

    assert outcome.status == TriggerStatus.COOLDOWN_ACTIVE
    assert outcome.job_id is None
    assert outcome.retry_after == timedelta(minutes=2)
    assert store.list_jobs()[1] == 0


def test_cooldown_expires(store, dedup, clock):
    dedup.set_cooldown("C1", clock.now)
    clock.advance(minutes=3)

    assert dedup.cooldown_remaining("C1", clock.now) is None
    outcome = dedup.schedule(CREATE, "C1", clock.now + timedelta(days=3), {}, clock.now)
    assert outcome.status == TriggerStatus.SCHEDULED


def test_cooldown_marker_format(store, dedup):
    until = dedup.set_cooldown("C1", T0)
    assert store.get_kv(cooldown_key("C1")) == "2026-03-10T06:03:00Z"
    assert until == T0 + timedelta(minutes=3)


def test_unreadable_cooldown_marker_is_ignored(store, dedup):
    store.set_kv(cooldown_key("C1"), "not-a-date")
    assert dedup.cooldown_remaining("C1", T0) is None
