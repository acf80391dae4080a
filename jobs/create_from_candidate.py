"""
createFromCandidate — provision a directory account for an upcoming hire.

Idempotent by construction: the handler first looks for a principal that
already carries the candidate's business id (or e-mail). Retries after a
crash, or a duplicate job that slipped past dedup, end as "already_exists"
instead of a second account.

Primary mutation: create_principal(). Everything after it (hire date, HR
write-back, cooldown) is best-effort and recorded in result["steps"].

Principal names are first.last@domain, lower-cased and stripped to
[a-z0-9.], prefixed "c-" for contractors and "i-" for interns, with 1, 2, ...
appended until the name is free.
"""

import logging
import re
from typing import Callable, Optional

from clients.directory import DirectoryClient, NewPrincipal
from clients.hr import HRClient
from jobs.base import AbstractJobHandler
from jobs.errors import PreconditionError
from jobs.steps import BestEffortStep, cooldown_step, run_best_effort, summarize
from models.enums import JobType
from models.timestamps import utcnow
from scheduler.dedup import DedupIndex
from scheduler.policy import parse_business_date
from services.employee_id import BusinessIdAllocator

logger = logging.getLogger(__name__)

MAX_NAME_SUFFIX = 500


def mail_nickname(first_name: str, last_name: str) -> str:
    raw = f"{(first_name or '').strip().lower()}.{(last_name or '').strip().lower()}"
    nickname = re.sub(r"[^a-z0-9.]", "", raw)
    return re.sub(r"\.+", ".", nickname).strip(".")


def employee_type_prefix(employee_type: Optional[str]) -> str:
    kind = str(employee_type or "").lower()
    if "contractor" in kind:
        return "c-"
    if "intern" in kind:
        return "i-"
    return ""


def unique_principal_name(directory: DirectoryClient, base: str, domain: str) -> tuple[str, str]:
    """First free (principal_name, mail_nickname) for `base` under `domain`."""
    for i in range(MAX_NAME_SUFFIX):
        local = base if i == 0 else f"{base}{i}"
        principal_name = f"{local}@{domain}"
        if directory.principal_name_available(principal_name, local):
            return principal_name, local
    raise PreconditionError(f"no free principal name for '{base}' after {MAX_NAME_SUFFIX} tries")


class CreateFromCandidateJob(AbstractJobHandler):

    def __init__(
        self,
        directory: DirectoryClient,
        hr: Optional[HRClient],
        allocator: BusinessIdAllocator,
        dedup: DedupIndex,
        default_domain: str,
        official_email_field: str = "Other_Email",
        business_id_field: str = "Employee_ID",
        zone: str = "Asia/Kolkata",
        clock: Callable = utcnow,
    ):
        self._zone = zone
        self._directory = directory
        self._hr = hr
        self._allocator = allocator
        self._dedup = dedup
        self._default_domain = default_domain
        self._official_email_field = official_email_field
        self._business_id_field = business_id_field
        self._clock = clock

    @property
    def job_type(self) -> str:
        return JobType.CREATE_FROM_CANDIDATE.value

    def run(self, payload: dict) -> dict:
        correlation_id = str(payload.get("correlationId") or "").strip()
        first_name = str(payload.get("firstName") or "").strip()
        last_name = str(payload.get("lastName") or "").strip()
        if not (correlation_id and first_name and last_name):
            raise PreconditionError("createFromCandidate needs correlationId, firstName and lastName")

        email = str(payload.get("email") or "").strip() or None
        business_id = str(payload.get("businessId") or "").strip() or None

        existing = self._directory.find_by_business_id(business_id) if business_id else None
        if existing is None and email:
            existing = self._directory.find_by_email(email)
        if existing is not None:
            logger.info(f"Candidate {correlation_id} already has principal {existing.id}, nothing to create")
            outcomes = run_best_effort(
                [cooldown_step(self._dedup, correlation_id, self._clock)],
                context=f"[create {correlation_id}]",
            )
            return {
                "action": "already_exists",
                "principalId": existing.id,
                "principalName": existing.principal_name,
                "businessId": existing.business_id,
                **summarize(outcomes),
            }

        base = mail_nickname(first_name, last_name)
        if not base:
            raise PreconditionError(f"cannot derive a principal name from '{first_name} {last_name}'")
        if business_id is None:
            business_id = self._allocator.allocate()

        domain = str(payload.get("domain") or "").strip() or self._default_domain
        principal_name, nickname = unique_principal_name(
            self._directory, employee_type_prefix(payload.get("employeeType")) + base, domain
        )

        principal = self._directory.create_principal(NewPrincipal(
            principal_name=principal_name,
            mail_nickname=nickname,
            first_name=first_name,
            last_name=last_name,
            business_id=business_id,
            email=email,
            employee_type=payload.get("employeeType"),
        ))

        steps = []
        hire_date = parse_business_date(payload.get("joinDate"), self._zone)
        if hire_date is not None:
            steps.append(BestEffortStep(
                "set hire date",
                lambda: self._directory.patch_principal(
                    principal.id, {"hireDate": f"{hire_date.isoformat()}T00:00:00Z"}
                ),
            ))
        if self._hr is not None:
            record_id = payload.get("recordId") or correlation_id
            steps.append(BestEffortStep(
                "write back to HR",
                lambda: self._hr.update_record(record_id, {
                    self._official_email_field: principal_name,
                    self._business_id_field: business_id,
                }),
            ))
        steps.append(cooldown_step(self._dedup, correlation_id, self._clock))

        outcomes = run_best_effort(steps, context=f"[create {correlation_id}]")
        return {
            "action": "created",
            "principalId": principal.id,
            "principalName": principal_name,
            "businessId": business_id,
            **summarize(outcomes),
        }
