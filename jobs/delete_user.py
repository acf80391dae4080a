"""
deleteUser — offboarding by deleting the account.

Sessions are revoked first (best-effort), then the principal is deleted.
Deleted principals sit in the directory's recycle bin for a while; checking
that it landed there is recorded as a final step.
"""

import logging
from typing import Callable

from clients.directory import DirectoryClient
from jobs.base import AbstractJobHandler
from jobs.errors import RecoverableError
from jobs.identity import resolve_principal
from jobs.steps import BestEffortStep, cooldown_step, run_best_effort, summarize
from models.enums import JobType
from models.timestamps import utcnow
from scheduler.dedup import DedupIndex

logger = logging.getLogger(__name__)


class DeleteUserJob(AbstractJobHandler):

    def __init__(self, directory: DirectoryClient, dedup: DedupIndex, clock: Callable = utcnow):
        self._directory = directory
        self._dedup = dedup
        self._clock = clock

    @property
    def job_type(self) -> str:
        return JobType.DELETE_USER.value

    def _verify_deleted(self, principal_id: str) -> str:
        if not self._directory.is_in_deleted_items(principal_id):
            raise RecoverableError(f"principal {principal_id} not found in deleted items")
        return "in deleted items"

    def run(self, payload: dict) -> dict:
        resolution = resolve_principal(
            self._directory,
            business_id=payload.get("businessId"),
            email=payload.get("email"),
            principal_hint=payload.get("principalHint"),
        )
        principal = resolution.principal
        correlation_id = str(payload.get("correlationId") or payload.get("businessId") or principal.id)
        context = f"[delete {principal.id}]"

        before = run_best_effort(
            [BestEffortStep("revoke sessions", lambda: self._directory.revoke_sessions(principal.id))],
            context=context,
        )

        self._directory.delete_principal(principal.id)
        logger.info(f"Deleted principal {principal.id} (found by {resolution.found_by})")

        after = run_best_effort(
            [
                BestEffortStep("verify deleted", lambda: self._verify_deleted(principal.id)),
                cooldown_step(self._dedup, correlation_id, self._clock),
            ],
            context=context,
        )
        return {
            "action": "deleted",
            "principalId": principal.id,
            "principalName": principal.principal_name,
            "foundBy": resolution.found_by,
            **summarize(before + after),
        }
