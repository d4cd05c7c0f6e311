"""
Job router — schedule, list and inspect bulk-message jobs.

POST /jobs
GET  /jobs
GET  /jobs/{job_id}
POST /jobs/{job_id}/run
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, status

from mailspine.api.deps import Service, Store
from mailspine.api.schemas import (
    CreateJobBody,
    JobCreatedSchema,
    JobDetailSchema,
    JobSchema,
    JobTriggeredSchema,
)
from mailspine.ops import jobs as job_ops

router = APIRouter(prefix="/jobs")


@router.post("", response_model=JobCreatedSchema, status_code=status.HTTP_201_CREATED)
def create_job(body: CreateJobBody, store: Store):
    """Schedule a job.

    Subject and body are trimmed and required. ``scheduled_at`` may be an
    RFC 3339 timestamp or unix seconds; when omitted the job is due now.

    Example:
        POST /api/v1/jobs
        {"subject": "Hello", "body": "World", "scheduled_at": "2026-01-01T09:00:00Z"}

        Response (201):
        {"id": "8c1f...", "scheduled_at": "2026-01-01T09:00:00+00:00", "status": "pending"}
    """
    job = job_ops.schedule_job(store, body.subject, body.body, body.scheduled_at)
    return JobCreatedSchema(id=job.id, scheduled_at=job.scheduled_at.isoformat(), status=job.status.value)


@router.get("", response_model=list[JobSchema])
def list_jobs(store: Store):
    """All jobs, newest first."""
    return [JobSchema(**job.to_dict()) for job in job_ops.list_jobs(store)]


@router.get("/{job_id}", response_model=JobDetailSchema)
def get_job(
    store: Store,
    job_id: str = Path(..., description="Job ID"),
    include_sends: bool = Query(False, description="Include per-recipient Send rows"),
):
    """Job details with Send status counts.

    Raises:
        404 NOT_FOUND: Job with specified ID does not exist.
    """
    detail = job_ops.get_job_detail(store, job_id, include_sends=include_sends)
    return JobDetailSchema(**detail.to_dict())


@router.post("/{job_id}/run", response_model=JobTriggeredSchema, status_code=status.HTTP_202_ACCEPTED)
def run_job(service: Service, job_id: str = Path(..., description="Job ID")):
    """Dispatch a pending job now instead of waiting for its due time.

    Raises:
        404 NOT_FOUND: Unknown job.
        409 CONFLICT: The job is no longer pending.
    """
    service.trigger(job_id)
    return JobTriggeredSchema(id=job_id)
