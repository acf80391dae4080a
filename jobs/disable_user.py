"""
disableUser — offboarding by disabling the account.

Primary mutation: accountEnabled = false. Once that succeeds the job is a
success; revoking sessions, dropping group memberships and removing the
manager link are cleanup steps whose failures are recorded, not raised.
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


def remove_all_groups(directory: DirectoryClient, principal_id: str) -> str:
    """Remove `principal_id` from every group; raise if any removal failed."""
    group_ids = directory.list_group_ids(principal_id)
    failed = []
    for group_id in group_ids:
        try:
            directory.remove_group_member(group_id, principal_id)
        except Exception as e:
            logger.warning(f"Could not remove {principal_id} from group {group_id}: {e}")
            failed.append(group_id)
    if failed:
        raise RecoverableError(
            f"removed {len(group_ids) - len(failed)} of {len(group_ids)} group memberships",
            detail={"failedGroups": failed},
        )
    return f"removed {len(group_ids)} group memberships"


class DisableUserJob(AbstractJobHandler):

    def __init__(self, directory: DirectoryClient, dedup: DedupIndex, clock: Callable = utcnow):
        self._directory = directory
        self._dedup = dedup
        self._clock = clock

    @property
    def job_type(self) -> str:
        return JobType.DISABLE_USER.value

    def run(self, payload: dict) -> dict:
        resolution = resolve_principal(
            self._directory,
            business_id=payload.get("businessId"),
            email=payload.get("email"),
            principal_hint=payload.get("principalHint"),
        )
        principal = resolution.principal
        correlation_id = str(payload.get("correlationId") or payload.get("businessId") or principal.id)

        self._directory.disable_principal(principal.id)
        logger.info(f"Disabled principal {principal.id} (found by {resolution.found_by})")

        directory = self._directory
        outcomes = run_best_effort(
            [
                BestEffortStep("revoke sessions", lambda: directory.revoke_sessions(principal.id)),
                BestEffortStep("remove group memberships", lambda: remove_all_groups(directory, principal.id)),
                BestEffortStep("remove manager", lambda: directory.remove_manager(principal.id)),
                cooldown_step(self._dedup, correlation_id, self._clock),
            ],
            context=f"[disable {principal.id}]",
        )
        return {
            "action": "disabled",
            "principalId": principal.id,
            "principalName": principal.principal_name,
            "foundBy": resolution.found_by,
            **summarize(outcomes),
        }
