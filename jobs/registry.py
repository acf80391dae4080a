"""
Job handler registry — maps job_type strings to handler instances.

The executor reads job_type from the row ("createFromCandidate",
"disableUser", "deleteUser") and needs the handler that executes it. Handlers
depend on the directory/HR clients and the dedup index, so the registry is
built once at startup by build_registry() and passed to the executor, rather
than living in a module-level dict.
"""

from typing import Callable, Iterable, Optional

from clients.directory import DirectoryClient
from clients.hr import HRClient
from jobs.base import AbstractJobHandler
from jobs.create_from_candidate import CreateFromCandidateJob
from jobs.delete_user import DeleteUserJob
from jobs.disable_user import DisableUserJob
from models.timestamps import utcnow
from scheduler.dedup import DedupIndex
from services.employee_id import BusinessIdAllocator


class UnknownJobTypeError(LookupError):
    pass


class JobRegistry:

    def __init__(self, handlers: Iterable[AbstractJobHandler] = ()):
        self._handlers: dict[str, AbstractJobHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: AbstractJobHandler) -> None:
        self._handlers[handler.job_type] = handler

    def get(self, job_type: str) -> AbstractJobHandler:
        """Look up a handler by job_type string. Raises UnknownJobTypeError if unknown."""
        handler = self._handlers.get(job_type)
        if handler is None:
            raise UnknownJobTypeError(
                f"Unknown job type: '{job_type}'. Available: {sorted(self._handlers)}"
            )
        return handler

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers

    @property
    def job_types(self) -> list[str]:
        return sorted(self._handlers)


def build_registry(
    directory: DirectoryClient,
    hr: Optional[HRClient],
    dedup: DedupIndex,
    allocator: BusinessIdAllocator,
    default_domain: str,
    official_email_field: str = "Other_Email",
    business_id_field: str = "Employee_ID",
    zone: str = "Asia/Kolkata",
    clock: Callable = utcnow,
) -> JobRegistry:
    return JobRegistry([
        CreateFromCandidateJob(
            directory,
            hr,
            allocator,
            dedup,
            default_domain,
            official_email_field=official_email_field,
            business_id_field=business_id_field,
            zone=zone,
            clock=clock,
        ),
        DisableUserJob(directory, dedup, clock=clock),
        DeleteUserJob(directory, dedup, clock=clock),
    ])
