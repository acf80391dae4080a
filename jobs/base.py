"""
Abstract base class for job handlers.

Each job type (createFromCandidate, disableUser, deleteUser) implements this
interface. The executor calls handler.run(payload) without knowing which type
it is — it looks up the handler from the registry by job_type string.

To add a new job type:
1. Add it to JobType in models/enums.py
2. Create a class that inherits AbstractJobHandler
3. Implement run() and job_type
4. Add it to build_registry() in jobs/registry.py
"""

from abc import ABC, abstractmethod


class AbstractJobHandler(ABC):

    @abstractmethod
    def run(self, payload: dict) -> dict:
        """
        Execute the job.

        Args:
            payload: job-specific parameters from the jobs.payload JSON column.
                     Each job type expects different keys in here.

        Returns:
            dict with results — stored in the jobs.result column.

        Raises:
            RecoverableError → retried with backoff until attempts run out.
            FatalError (NotFoundError, PreconditionError) → failed immediately.
            Anything else → treated as recoverable.
        """
        ...

    @property
    @abstractmethod
    def job_type(self) -> str:
        """Unique identifier matching the JobType enum (e.g., 'disableUser')."""
        ...
