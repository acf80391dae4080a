"""
Job inspection endpoints.

GET  /jobs/          → List jobs with filtering + pagination
GET  /jobs/stats     → Counts per status
GET  /jobs/{job_id}  → Get a single job by ID

Read-only on purpose: jobs are created by webhooks and moved through their
states by the executor. The API never changes a job.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_store
from api.schemas.job import JobResponse, JobListResponse, JobStats
from models.enums import JobStatus, JobType
from store.job_store import JobStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/", response_model=JobListResponse)
def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    job_type: Optional[JobType] = Query(None, description="Filter by job type"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page"),
    store: JobStore = Depends(get_store),
) -> JobListResponse:
    """
    List jobs, newest first.

    Pagination works with OFFSET/LIMIT:
    - page=1, page_size=20 → rows 0-19
    - page=2, page_size=20 → rows 20-39
    """
    offset = (page - 1) * page_size
    records, total = store.list_jobs(status=status, job_type=job_type, limit=page_size, offset=offset)
    return JobListResponse(
        jobs=[JobResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=JobStats)
def get_job_stats(store: JobStore = Depends(get_store)) -> JobStats:
    counts = store.count_by_status()
    return JobStats(total_jobs=sum(counts.values()), **counts)


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, store: JobStore = Depends(get_store)) -> JobResponse:
    """Get a single job by its id."""
    record = store.get_job(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(record)
