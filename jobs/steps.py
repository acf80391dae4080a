"""
Best-effort sub-steps that follow a handler's primary mutation.

Once an account is disabled, revoking its sessions or pulling it out of groups
is cleanup: useful, but a failure there must not turn a successful offboarding
into a failed (and then retried) job. Each step runs independently, in order,
and its outcome is recorded so the job's result shows exactly what happened.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from jobs.errors import format_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BestEffortStep:
    name: str
    action: Callable[[], Any]


@dataclass(frozen=True)
class StepOutcome:
    name: str
    ok: bool
    detail: Optional[str] = None

    def as_dict(self) -> dict:
        out = {"name": self.name, "ok": self.ok}
        if self.detail is not None:
            out["detail"] = self.detail
        return out


def run_best_effort(steps: list[BestEffortStep], context: str = "") -> list[StepOutcome]:
    """Run every step, never raising. A step's return value, if any, becomes its detail."""
    outcomes: list[StepOutcome] = []
    for step in steps:
        try:
            value = step.action()
        except Exception as e:
            detail = format_error(e)
            logger.warning(f"{context} step '{step.name}' failed: {detail}")
            outcomes.append(StepOutcome(step.name, ok=False, detail=detail))
            continue
        detail = None if value is None else str(value)
        logger.info(f"{context} step '{step.name}' ok")
        outcomes.append(StepOutcome(step.name, ok=True, detail=detail))
    return outcomes


def cooldown_step(dedup, correlation_id: str, clock: Callable) -> BestEffortStep:
    """Step that starts the echo cooldown for `correlation_id` (dedup: DedupIndex)."""
    return BestEffortStep(
        "set cooldown",
        lambda: dedup.set_cooldown(correlation_id, clock()).isoformat(),
    )


def summarize(outcomes: list[StepOutcome]) -> dict:
    """Shape stored under result["steps"] plus a flat list of failed step names."""
    return {
        "steps": [o.as_dict() for o in outcomes],
        "failedSteps": [o.name for o in outcomes if not o.ok],
    }
