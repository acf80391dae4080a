"""
Webhook endpoints — the inbound side of the sync.

POST /api/webhooks/candidate     → schedule pre-hire provisioning (createFromCandidate)
POST /api/webhooks/employee      → patch the directory profile right away
POST /api/webhooks/offboard      → schedule (or immediately run) disable/delete
POST /api/webhooks/employee-type → add the i-/c-/bare alias for a new employment type

Every response is an acknowledgement only. A scheduled job's outcome goes to
the notifier; poll GET /jobs/{id} for its state.

Error mapping:
    ValueError          → 400  (missing identifiers, unknown action)
    NotFoundError       → 404  (immediate action: no such principal)
    PreconditionError   → 409  (immediate action: identifiers disagree)
    other JobError      → 502  (directory/HR failed during an immediate action)
    StoreError          → 503
"""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_triggers
from api.schemas.webhook import (
    CandidateWebhook,
    EmployeeTypeWebhook,
    EmployeeWebhook,
    OffboardWebhook,
    TriggerResponse,
)
from jobs.errors import JobError, NotFoundError, PreconditionError, format_error
from services.triggers import TriggerResult, TriggerService
from store.errors import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _acknowledge(action: Callable[[], TriggerResult]) -> TriggerResponse:
    try:
        result = action()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=format_error(e))
    except PreconditionError as e:
        raise HTTPException(status_code=409, detail=format_error(e))
    except JobError as e:
        raise HTTPException(status_code=502, detail=format_error(e))
    except StoreError as e:
        logger.error(f"Store error while handling webhook: {e}")
        raise HTTPException(status_code=503, detail="job store unavailable")
    return TriggerResponse(**result.as_dict())


@router.post("/candidate", response_model=TriggerResponse)
def candidate_webhook(
    body: CandidateWebhook,
    triggers: TriggerService = Depends(get_triggers),
) -> TriggerResponse:
    """Compute the pre-hire run time and schedule account creation (deduplicated)."""
    return _acknowledge(lambda: triggers.schedule_prehire(body.to_trigger()))


@router.post("/employee", response_model=TriggerResponse)
def employee_webhook(
    body: EmployeeWebhook,
    triggers: TriggerService = Depends(get_triggers),
) -> TriggerResponse:
    return _acknowledge(lambda: triggers.update_profile(body.to_trigger()))


@router.post("/offboard", response_model=TriggerResponse)
def offboard_webhook(
    body: OffboardWebhook,
    triggers: TriggerService = Depends(get_triggers),
) -> TriggerResponse:
    """
    Exit date in the future → a disableUser/deleteUser job at exit date hh:mm.
    Exit date passed (or missing) → the action runs during this request.
    """
    trigger = body.to_trigger()
    return _acknowledge(lambda: triggers.offboard(trigger, action=trigger["action"]))


@router.post("/employee-type", response_model=TriggerResponse)
def employee_type_webhook(
    body: EmployeeTypeWebhook,
    triggers: TriggerService = Depends(get_triggers),
) -> TriggerResponse:
    return _acknowledge(lambda: triggers.add_type_alias(body.to_trigger()))
