"""
Job management API endpoints.

Provides operator endpoints for scheduling, monitoring, retrying and canceling
deferred jobs.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query

from eventjobs.v1.core.context import AppContext, ContextDep
from eventjobs.v1.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    create_success_response,
)
from eventjobs.v1.infra.jobs.models import JobStatus
from eventjobs.v1.infra.jobs.schemas import (
    JobActionRequest,
    JobActionResponse,
    JobCreate,
    JobListResponse,
    JobResponse,
    ReminderCreate,
)
from eventjobs.v1.infra.jobs.service import JobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=dict)
async def schedule_job(
    job_create: JobCreate, context: AppContext = ContextDep
) -> dict[str, Any]:
    """Schedule a new job."""

    try:
        result = await context.job_service.schedule(job_create)
    except ValueError as e:
        raise ValidationError(str(e), details={"type": job_create.type.value})

    logger.info(
        "Job scheduled via API",
        extra={
            "job_id": str(result.job_id),
            "type": job_create.type.value,
            "deduplicated": result.deduplicated,
        },
    )

    return create_success_response(data=result.model_dump(mode="json"))


@router.post("/reminders", response_model=dict)
async def schedule_reminder(
    reminder: ReminderCreate, context: AppContext = ContextDep
) -> dict[str, Any]:
    """Schedule a send_reminder job."""

    try:
        result = await context.job_service.schedule_reminder(
            reminder.kind,
            reminder.recipient_id,
            reminder.scheduled_for,
            reminder.data,
            priority=reminder.priority,
            dedupe_key=reminder.dedupe_key,
        )
    except ValueError as e:
        raise ValidationError(str(e), details={"kind": reminder.kind.value})

    return create_success_response(data=result.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    context: AppContext = ContextDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""

    jobs, total = await context.job_service.list_jobs(
        status=status, job_type=type, limit=limit, offset=offset
    )

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(context: AppContext = ContextDep) -> dict[str, Any]:
    """Get job queue statistics."""

    stats = await context.job_service.get_job_stats()
    return create_success_response(data=stats.model_dump(mode="json"))


@router.post("/batch/retry", response_model=dict)
async def retry_jobs_batch(
    request: JobActionRequest, context: AppContext = ContextDep
) -> dict[str, Any]:
    """Retry multiple jobs in batch."""

    success_ids = []
    failed_ids = []
    errors = {}

    for job_id in request.job_ids:
        if await context.job_service.retry_job(job_id):
            success_ids.append(job_id)
        else:
            failed_ids.append(job_id)
            errors[str(job_id)] = "Job not found or not eligible for retry"

    logger.info(
        "Batch job retry via API",
        extra={"success_count": len(success_ids), "failed_count": len(failed_ids)},
    )

    response = JobActionResponse(
        success_ids=success_ids, failed_ids=failed_ids, errors=errors
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.post("/batch/cancel", response_model=dict)
async def cancel_jobs_batch(
    request: JobActionRequest, context: AppContext = ContextDep
) -> dict[str, Any]:
    """Cancel multiple jobs in batch."""

    success_ids = []
    failed_ids = []
    errors = {}

    for job_id in request.job_ids:
        if await context.job_service.cancel_job(job_id):
            success_ids.append(job_id)
        else:
            failed_ids.append(job_id)
            errors[str(job_id)] = "Job not found or not eligible for cancellation"

    logger.info(
        "Batch job cancel via API",
        extra={"success_count": len(success_ids), "failed_count": len(failed_ids)},
    )

    response = JobActionResponse(
        success_ids=success_ids, failed_ids=failed_ids, errors=errors
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{job_id}", response_model=dict)
async def get_job(job_id: UUID, context: AppContext = ContextDep) -> dict[str, Any]:
    """Get a specific job by ID."""

    job = await context.job_service.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found", details={"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


async def _raise_not_actionable(service: JobService, job_id: UUID, status: JobStatus, action: str):
    job = await service.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found", details={"job_id": str(job_id)})
    raise ConflictError(
        f"Job is {job.status}, only {status.value} jobs can be {action}",
        details={"job_id": str(job_id), "status": job.status},
    )


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(job_id: UUID, context: AppContext = ContextDep) -> dict[str, Any]:
    """Retry a failed job."""

    if not await context.job_service.retry_job(job_id):
        await _raise_not_actionable(context.job_service, job_id, JobStatus.FAILED, "retried")

    logger.info("Job retried via API", extra={"job_id": str(job_id)})
    return create_success_response(data={"success": True, "job_id": str(job_id)})


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(job_id: UUID, context: AppContext = ContextDep) -> dict[str, Any]:
    """Cancel a pending job."""

    if not await context.job_service.cancel_job(job_id):
        await _raise_not_actionable(context.job_service, job_id, JobStatus.PENDING, "canceled")

    logger.info("Job canceled via API", extra={"job_id": str(job_id)})
    return create_success_response(data={"success": True, "job_id": str(job_id)})
