"""
Tests for JobExecutor.

Handlers are small stand-ins registered under the real job type names, so
every state transition the executor makes can be checked on the stored row.
"""

from jobs.base import AbstractJobHandler
from jobs.errors import NotFoundError, RecoverableError
from jobs.registry import JobRegistry
from models.enums import JobStatus, JobType
from tests.fakes import T0
from worker.executor import JobExecutor
from worker.retry import RetryHandler


class StubHandler(AbstractJobHandler):

    def __init__(self, job_type, outcome):
        self._job_type = job_type
        self._outcome = outcome
        self.payloads = []

    @property
    def job_type(self):
        return self._job_type

    def run(self, payload):
        self.payloads.append(payload)
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome


def _executor(store, clock, notifier, handler, max_attempts=3):
    retry = RetryHandler(
        store,
        max_attempts=max_attempts,
        backoff_base=30,
        backoff_multiplier=2.0,
        backoff_cap=600,
        notifier=notifier,
        clock=clock,
    )
    return JobExecutor(store, JobRegistry([handler]), retry, notifier=notifier, clock=clock)


def _insert(store, job_type=JobType.DISABLE_USER):
    job_id = store.insert_job(job_type, T0, {"businessId": "1042"}, correlation_id="1042")
    return store.get_job(job_id)


def test_successful_job_is_done_with_result(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, {"action": "disabled", "principalId": "p-1"})
    job = _insert(store)

    outcome = _executor(store, clock, notifier, handler).execute(job)

    assert outcome["status"] == "done"
    after = store.get_job(job.id)
    assert after.status == JobStatus.DONE.value
    assert after.attempts == 1
    assert after.result["action"] == "disabled"
    assert "executionTimeSec" in after.result
    assert handler.payloads == [{"businessId": "1042"}]
    assert len(notifier.successes) == 1
    assert "1042" in notifier.successes[0][0]


def test_failed_steps_are_mentioned_in_success_notification(store, clock, notifier):
    handler = StubHandler(
        JobType.DISABLE_USER.value,
        {"action": "disabled", "failedSteps": ["revoke sessions"]},
    )
    job = _insert(store)

    _executor(store, clock, notifier, handler).execute(job)

    assert store.get_job(job.id).status == JobStatus.DONE.value
    assert "revoke sessions" in notifier.successes[0][1]


def test_unknown_job_type_fails_without_running(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, {})
    job_id = store.insert_job("mysteryJob", T0, {}, correlation_id="X1")

    outcome = _executor(store, clock, notifier, handler).execute(store.get_job(job_id))

    assert outcome["status"] == "failed"
    after = store.get_job(job_id)
    assert after.status == JobStatus.FAILED.value
    assert after.attempts == 0
    assert "Unknown job type" in after.last_error
    assert handler.payloads == []
    assert len(notifier.failures) == 1


def test_recoverable_failure_is_rescheduled(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, RecoverableError("HTTP 503"))
    job = _insert(store)

    outcome = _executor(store, clock, notifier, handler).execute(job)

    assert outcome["status"] == "pending"
    after = store.get_job(job.id)
    assert after.status == JobStatus.PENDING.value
    assert after.attempts == 1
    assert after.run_at > clock.now
    assert "HTTP 503" in after.last_error


def test_retry_then_success_clears_last_error(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, RecoverableError("HTTP 503"))
    executor = _executor(store, clock, notifier, handler)
    job = _insert(store)
    executor.execute(job)

    handler._outcome = {"action": "disabled"}
    executor.execute(store.get_job(job.id))

    after = store.get_job(job.id)
    assert after.status == JobStatus.DONE.value
    assert after.attempts == 2
    assert after.last_error is None


def test_fatal_failure_is_final(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, NotFoundError("no principal for businessId 1042"))
    job = _insert(store)

    outcome = _executor(store, clock, notifier, handler, max_attempts=5).execute(job)

    assert outcome["status"] == "failed"
    assert store.get_job(job.id).status == JobStatus.FAILED.value
    assert len(notifier.failures) == 1


def test_attempts_are_exhausted(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, RecoverableError("timeout"))
    executor = _executor(store, clock, notifier, handler, max_attempts=2)
    job = _insert(store)

    executor.execute(job)
    executor.execute(store.get_job(job.id))

    after = store.get_job(job.id)
    assert after.status == JobStatus.FAILED.value
    assert after.attempts == 2


def test_cancelled_job_is_skipped(store, clock, notifier):
    handler = StubHandler(JobType.DISABLE_USER.value, {"action": "disabled"})
    job = _insert(store)
    store.mark_job(job.id, status=JobStatus.CANCELLED)

    outcome = _executor(store, clock, notifier, handler).execute(job)

    assert outcome["status"] == "skipped"
    assert handler.payloads == []
    assert store.get_job(job.id).status == JobStatus.CANCELLED.value


def test_execute_never_raises(store, clock, notifier):
    class ExplodingRetry:
        def handle_failure(self, job, error):
            raise RuntimeError("retry bookkeeping broke")

    handler = StubHandler(JobType.DISABLE_USER.value, ValueError("boom"))
    executor = JobExecutor(store, JobRegistry([handler]), ExplodingRetry(), notifier=notifier, clock=clock)

    outcome = executor.execute(_insert(store))

    assert outcome["status"] == "error"
    assert "retry bookkeeping broke" in outcome["error"]
