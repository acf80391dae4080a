"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- JobResponse: one job (GET /jobs/{id})
- JobListResponse: paginated list of jobs
- JobStats: counts per status

Jobs are created by webhooks, never through /jobs, so there is no create schema.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class JobResponse(BaseModel):
    """Response body for a single job."""

    id: str
    job_type: str
    correlation_id: Optional[str] = None
    status: str
    run_at: datetime
    attempts: int
    payload: dict
    result: Optional[dict] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # from_attributes=True lets Pydantic read JobRecord attributes directly
    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int       # total matching jobs (ignoring pagination)
    page: int        # current page number
    page_size: int   # jobs per page


class JobStats(BaseModel):
    """Aggregate job statistics — returned by GET /jobs/stats."""

    total_jobs: int
    pending: int
    running: int
    done: int
    failed: int
    cancelled: int
