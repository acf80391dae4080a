"""
Inbound trigger handling — what a webhook turns into.

    schedule_prehire(candidate)   → createFromCandidate job at (joinDate − N days) hh:mm
    offboard(employee, action)    → disableUser / deleteUser job at exitDate hh:mm,
                                    or run it right now if that instant has passed
    update_profile(fields)        → synchronous directory patch, no job
    add_type_alias(fields)        → synchronous otherMails append, no job

Callers only ever get an acknowledgement (scheduled / already_scheduled /
cooldown_active / immediate / updated / unchanged). How a scheduled job
eventually ends is reported through the notifier, not through the original
request.

Bad input raises ValueError. Immediate actions that fail re-raise the
handler's JobError so the HTTP layer can pick a status code.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from clients.directory import DirectoryClient
from clients.hr import HRClient
from clients.notifier import Notifier, safe_notify
from jobs.create_from_candidate import employee_type_prefix, mail_nickname
from jobs.errors import JobError, NotFoundError, RecoverableError, format_error
from jobs.identity import find_principal
from jobs.registry import JobRegistry
from jobs.steps import BestEffortStep, run_best_effort, summarize
from models.enums import JobStatus, JobType, TriggerStatus
from models.timestamps import isoformat_utc, utcnow
from scheduler.dedup import DedupIndex, ScheduleOutcome
from scheduler.policy import compute_exit_instant, compute_run_at, is_due, parse_business_date
from store.job_store import JobStore

logger = logging.getLogger(__name__)

OFFBOARD_ACTIONS = {
    "disable": JobType.DISABLE_USER,
    "delete": JobType.DELETE_USER,
}

_TYPE_PREFIX = re.compile(r"^(i-|c-)", re.IGNORECASE)

# Profile fields copied verbatim from an edit webhook into patch_principal()
_PROFILE_FIELDS = (
    "firstName", "lastName", "businessId", "employeeType", "department", "jobTitle",
    "company", "country", "city", "mobilePhone", "officeLocation",
)


@dataclass(frozen=True)
class TriggerConfig:
    zone: str = "Asia/Kolkata"
    prehire_hour: int = 14
    prehire_minute: int = 45
    prehire_offset_days: int = 5
    offboard_hour: int = 14
    offboard_minute: int = 20
    quick_fallback: timedelta = timedelta(minutes=2)
    default_domain: str = "example.com"
    provisional_email_update: bool = False
    official_email_field: str = "Other_Email"


@dataclass
class TriggerResult:
    status: TriggerStatus
    job_id: Optional[str] = None
    run_at: Optional[datetime] = None
    reason: Optional[str] = None
    retry_after_seconds: Optional[float] = None
    superseded_job_id: Optional[str] = None
    result: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "job_id": self.job_id,
            "run_at": isoformat_utc(self.run_at),
            "reason": self.reason,
            "retry_after_seconds": self.retry_after_seconds,
            "superseded_job_id": self.superseded_job_id,
            "result": self.result,
        }


def type_alias(principal_name: str, employee_type: Optional[str]) -> Optional[str]:
    """Address `principal_name` takes under `employee_type`, or None when that is the name itself."""
    alias = employee_type_prefix(employee_type) + _TYPE_PREFIX.sub("", principal_name)
    return None if alias.lower() == principal_name.lower() else alias


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _from_outcome(outcome: ScheduleOutcome, reason: Optional[str]) -> TriggerResult:
    retry_after = outcome.retry_after.total_seconds() if outcome.retry_after is not None else None
    return TriggerResult(
        status=outcome.status,
        job_id=outcome.job_id,
        run_at=outcome.run_at,
        reason="cooldown" if outcome.status == TriggerStatus.COOLDOWN_ACTIVE else reason,
        retry_after_seconds=retry_after,
        superseded_job_id=outcome.superseded_job_id,
    )


class TriggerService:

    def __init__(
        self,
        store: JobStore,
        dedup: DedupIndex,
        registry: JobRegistry,
        directory: DirectoryClient,
        hr: Optional[HRClient] = None,
        notifier: Optional[Notifier] = None,
        config: TriggerConfig = TriggerConfig(),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._dedup = dedup
        self._registry = registry
        self._directory = directory
        self._hr = hr
        self._notifier = notifier
        self._config = config
        self._clock = clock

    # ── Pre-hire ────────────────────────────────────────────────

    def schedule_prehire(self, candidate: dict) -> TriggerResult:
        correlation_id = _clean(candidate.get("correlationId"))
        first_name = _clean(candidate.get("firstName"))
        last_name = _clean(candidate.get("lastName"))
        if not (correlation_id and first_name and last_name):
            raise ValueError("correlationId, firstName and lastName are required")

        cfg = self._config
        now = self._clock()
        decision = compute_run_at(
            candidate.get("joinDate"),
            cfg.prehire_hour,
            cfg.prehire_minute,
            cfg.prehire_offset_days,
            cfg.zone,
            now,
            cfg.quick_fallback,
        )
        logger.info(
            f"[prehire {correlation_id}] decision={decision.reason} runAt={isoformat_utc(decision.run_at)}"
        )

        payload = {
            "firstName": first_name,
            "lastName": last_name,
            "email": _clean(candidate.get("email")),
            "businessId": _clean(candidate.get("businessId")),
            "joinDate": _clean(candidate.get("joinDate")),
            "employeeType": _clean(candidate.get("employeeType")),
            "domain": _clean(candidate.get("domain")) or cfg.default_domain,
            "recordId": _clean(candidate.get("recordId")),
        }
        payload = {k: v for k, v in payload.items() if v is not None}

        outcome = self._dedup.schedule(
            JobType.CREATE_FROM_CANDIDATE, correlation_id, decision.run_at, payload, now
        )
        result = _from_outcome(outcome, decision.reason)

        if outcome.status == TriggerStatus.SCHEDULED:
            safe_notify(
                self._notifier,
                True,
                "Pre-hire scheduled",
                f"candidate={correlation_id} runAt={isoformat_utc(outcome.run_at)} reason={decision.reason}",
            )
            if cfg.provisional_email_update:
                result.result["provisionalEmail"] = self._write_provisional_email(correlation_id, payload)
        return result

    def _write_provisional_email(self, correlation_id: str, payload: dict) -> Optional[str]:
        """Best-effort: tell HR the official e-mail the account will most likely get."""
        if self._hr is None:
            return None
        local = employee_type_prefix(payload.get("employeeType")) + mail_nickname(
            payload["firstName"], payload["lastName"]
        )
        provisional = f"{local}@{payload['domain']}"
        record_id = payload.get("recordId") or correlation_id
        try:
            self._hr.update_record(record_id, {self._config.official_email_field: provisional})
        except Exception as e:
            logger.warning(f"[prehire {correlation_id}] provisional e-mail not written: {format_error(e)}")
            return None
        logger.info(f"[prehire {correlation_id}] provisional e-mail written to HR")
        return provisional

    # ── Offboarding ─────────────────────────────────────────────

    def offboard(self, employee: dict, action: str = "disable") -> TriggerResult:
        job_type = OFFBOARD_ACTIONS.get(str(action or "").lower())
        if job_type is None:
            raise ValueError(f"unknown offboarding action {action!r}, expected one of {sorted(OFFBOARD_ACTIONS)}")
        business_id = _clean(employee.get("businessId"))
        if not business_id:
            raise ValueError("businessId is required")

        cfg = self._config
        now = self._clock()
        remaining = self._dedup.cooldown_remaining(business_id, now)
        if remaining is not None:
            logger.warning(f"[offboard {business_id}] cooldown active, ignored")
            return TriggerResult(
                status=TriggerStatus.COOLDOWN_ACTIVE,
                reason="cooldown",
                retry_after_seconds=remaining.total_seconds(),
            )

        payload = {
            "businessId": business_id,
            "email": _clean(employee.get("email")),
            "principalHint": _clean(employee.get("principalHint")),
            "exitDate": _clean(employee.get("exitDate")),
        }
        payload = {k: v for k, v in payload.items() if v is not None}

        instant = compute_exit_instant(employee.get("exitDate"), cfg.offboard_hour, cfg.offboard_minute, cfg.zone)
        if is_due(instant, now):
            return self._offboard_now(job_type, business_id, payload, now)

        outcome = self._dedup.schedule(job_type, business_id, instant, payload, now)
        if outcome.status == TriggerStatus.SCHEDULED:
            safe_notify(
                self._notifier,
                True,
                f"Offboarding ({action}) scheduled",
                f"businessId={business_id} runAt={isoformat_utc(outcome.run_at)}",
            )
        return _from_outcome(outcome, "exit-date")

    def _offboard_now(self, job_type: JobType, business_id: str, payload: dict, now: datetime) -> TriggerResult:
        reason = "no-exit-date" if "exitDate" not in payload else "exit-date-passed"
        logger.info(f"[offboard {business_id}] {job_type.value} runs immediately ({reason})")

        # A job still waiting for the old exit date would repeat the action later
        stale = self._store.find_active_job_by_correlation(job_type, business_id)
        if stale is not None and stale.status == JobStatus.PENDING.value:
            self._store.mark_job(
                stale.id,
                status=JobStatus.CANCELLED,
                last_error=f"superseded by immediate offboarding at {isoformat_utc(now)}",
                result={"supersededBy": {"immediate": isoformat_utc(now)}},
            )

        handler = self._registry.get(job_type.value)
        try:
            outcome = handler.run({**payload, "correlationId": business_id})
        except JobError as e:
            safe_notify(self._notifier, False, f"Offboarding failed for {business_id}", format_error(e))
            raise
        except Exception as e:
            safe_notify(self._notifier, False, f"Offboarding failed for {business_id}", format_error(e))
            raise RecoverableError(f"{job_type.value} failed: {e}") from e

        safe_notify(
            self._notifier,
            True,
            f"Offboarding done for {business_id}",
            f"action={outcome.get('action')} principal={outcome.get('principalId')}",
        )
        return TriggerResult(
            status=TriggerStatus.IMMEDIATE,
            reason=reason,
            superseded_job_id=stale.id if stale is not None and stale.status == JobStatus.PENDING.value else None,
            result=outcome,
        )

    # ── Profile edits ───────────────────────────────────────────

    def update_profile(self, fields: dict) -> TriggerResult:
        principal_hint = _clean(fields.get("principalHint"))
        email = _clean(fields.get("email"))
        business_id = _clean(fields.get("businessId"))
        if not (principal_hint or email or business_id):
            raise ValueError("one of principalHint, email or businessId is required")

        resolution = find_principal(self._directory, principal_hint, email, business_id)
        if resolution is None:
            error = NotFoundError("no directory principal matches the given identifiers")
            safe_notify(self._notifier, False, "Profile update failed", format_error(error))
            raise error
        principal = resolution.principal

        patch = {key: _clean(fields.get(key)) for key in _PROFILE_FIELDS}
        patch = {k: v for k, v in patch.items() if v is not None}
        if "firstName" in patch and "lastName" in patch:
            patch["displayName"] = f"{patch['firstName']} {patch['lastName']}"
        hire_date = parse_business_date(fields.get("joinDate"), self._config.zone)
        if hire_date is not None:
            patch["hireDate"] = f"{hire_date.isoformat()}T00:00:00Z"

        self._directory.patch_principal(principal.id, patch)
        logger.info(f"Patched principal {principal.id} (found by {resolution.found_by}): {sorted(patch)}")

        steps = []
        manager_id = _clean(fields.get("managerBusinessId"))
        if manager_id:
            steps.append(BestEffortStep("set manager", lambda: self._set_manager(principal.id, manager_id)))
        outcomes = run_best_effort(steps, context=f"[update {principal.id}]")

        safe_notify(self._notifier, True, "Profile updated", f"principal={principal.id} fields={sorted(patch)}")
        return TriggerResult(
            status=TriggerStatus.UPDATED,
            reason=f"found by {resolution.found_by}",
            result={
                "principalId": principal.id,
                "foundBy": resolution.found_by,
                "fields": sorted(patch),
                **summarize(outcomes),
            },
        )

    def _set_manager(self, principal_id: str, manager_business_id: str) -> str:
        manager = self._directory.find_by_business_id(manager_business_id)
        if manager is None:
            raise NotFoundError(f"manager with businessId {manager_business_id} not found")
        self._directory.set_manager(principal_id, manager.id)
        return manager.id

    # ── Employment-type alias ───────────────────────────────────

    def add_type_alias(self, fields: dict) -> TriggerResult:
        """
        Give the principal the address that matches its new employment type
        (i-/c- prefixed for interns/contractors, bare for everyone else) as
        an extra entry in its secondary e-mails.
        """
        business_id = _clean(fields.get("businessId"))
        employee_type = _clean(fields.get("employeeType"))
        if not (business_id and employee_type):
            raise ValueError("businessId and employeeType are required")

        principal = self._directory.find_by_business_id(business_id)
        if principal is None:
            error = NotFoundError(f"no directory principal with businessId {business_id}")
            safe_notify(self._notifier, False, "Employment-type alias failed", format_error(error))
            raise error

        alias = type_alias(principal.principal_name, employee_type)
        if alias is None:
            logger.info(f"[type {business_id}] principal name already fits {employee_type!r}")
            return TriggerResult(status=TriggerStatus.UNCHANGED, reason="no change needed")

        current = list(principal.other_emails)
        if alias.lower() in (e.lower() for e in current):
            logger.info(f"[type {business_id}] alias already present on {principal.id}")
            return TriggerResult(
                status=TriggerStatus.UNCHANGED,
                reason="alias already present",
                result={"principalId": principal.id, "alias": alias},
            )

        self._directory.set_other_emails(principal.id, [*current, alias])
        logger.info(f"[type {business_id}] alias added to {principal.id}")
        safe_notify(self._notifier, True, "Employment-type alias added", f"businessId={business_id} alias={alias}")
        return TriggerResult(
            status=TriggerStatus.UPDATED,
            reason="alias added",
            result={"principalId": principal.id, "alias": alias},
        )
