"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("pending", not "JobStatus.PENDING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
- Typos become immediate errors instead of silent bugs

The job state machine also lives here, next to the statuses it constrains:

    pending ──► running ──► done
       │           ├──────► pending   (retry with backoff)
       │           └──────► failed
       ├──► cancelled                 (superseded by a new schedule)
       └──► failed                    (unknown job type, never dispatched)
"""

import enum


class JobStatus(str, enum.Enum):
    PENDING = "pending"        # waiting for run_at, or waiting for a retry
    RUNNING = "running"        # executor is working on it
    DONE = "done"              # handler finished, result recorded
    FAILED = "failed"          # fatal error or attempts exhausted
    CANCELLED = "cancelled"    # superseded by a newer schedule for the same correlation id

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING})

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.DONE, JobStatus.PENDING, JobStatus.FAILED}),
    JobStatus.DONE: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """True if a job in `current` status may move to `target`."""
    try:
        return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]
    except ValueError:
        return False


class JobType(str, enum.Enum):
    CREATE_FROM_CANDIDATE = "createFromCandidate"  # pre-hire provisioning of a directory principal
    DISABLE_USER = "disableUser"                   # offboarding: disable + cleanup
    DELETE_USER = "deleteUser"                     # offboarding: hard delete


class TriggerStatus(str, enum.Enum):
    """Acknowledgement returned to whoever fired an inbound trigger."""
    SCHEDULED = "scheduled"
    ALREADY_SCHEDULED = "already_scheduled"
    COOLDOWN_ACTIVE = "cooldown_active"
    IMMEDIATE = "immediate"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
