"""
Job service for scheduling and managing deferred jobs.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, select, update

from eventjobs.config.settings import Settings
from eventjobs.infra.database import Database
from eventjobs.v1.core.timeutils import Clock, ensure_utc, utc_now
from eventjobs.v1.infra.jobs.models import ACTIVE_STATUSES, JobStatus, ScheduledJob
from eventjobs.v1.infra.jobs.schemas import (
    JOB_PAYLOAD_MODELS,
    JobCreate,
    JobScheduleResult,
    JobStatsResponse,
    JobType,
    ReminderKind,
)

logger = logging.getLogger(__name__)

CANCELED_ERROR = "Canceled"


def normalize_payload(job_type: JobType | str, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Validate a payload against its job type and return the stored JSON form.

    Raises:
        ValueError: unknown job type or invalid payload
    """
    job_type = JobType(job_type)
    model = JOB_PAYLOAD_MODELS[job_type]
    try:
        validated = model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValueError(f"Invalid payload for {job_type.value}: {e}") from e
    return validated.model_dump(mode="json", exclude_none=True)


class JobService:
    """Service for scheduling and operating on deferred jobs."""

    def __init__(self, database: Database, settings: Settings, clock: Clock = utc_now):
        self.database = database
        self.settings = settings
        self._clock = clock

    async def schedule(self, job_create: JobCreate) -> JobScheduleResult:
        """
        Schedule a job, returning the active duplicate when the dedupe key matches.

        Args:
            job_create: Job type, payload, due time, priority and retry budget

        Returns:
            Schedule result with job_id and deduplication info

        Raises:
            ValueError: invalid payload for the job type
        """
        payload = normalize_payload(job_create.type, job_create.payload)
        now = self._clock()
        scheduled_for = (
            ensure_utc(job_create.scheduled_for) if job_create.scheduled_for else now
        )
        max_retries = job_create.max_retries or self.settings.job_default_max_retries

        async with self.database.session() as session:
            if job_create.dedupe_key:
                existing = await session.execute(
                    select(ScheduledJob)
                    .where(
                        and_(
                            ScheduledJob.dedupe_key == job_create.dedupe_key,
                            ScheduledJob.status.in_(ACTIVE_STATUSES),
                        )
                    )
                    .limit(1)
                )
                existing_job = existing.scalar_one_or_none()
                if existing_job:
                    logger.info(
                        "Job deduplicated",
                        extra={
                            "job_id": str(existing_job.id),
                            "dedupe_key": job_create.dedupe_key,
                            "type": job_create.type.value,
                        },
                    )
                    return JobScheduleResult(
                        job_id=existing_job.id,
                        status=existing_job.status,
                        deduplicated=True,
                    )

            job = ScheduledJob(
                id=uuid.uuid4(),
                type=job_create.type.value,
                payload=payload,
                scheduled_for=scheduled_for,
                priority=job_create.priority,
                status=JobStatus.PENDING.value,
                retry_count=0,
                max_retries=max_retries,
                dedupe_key=job_create.dedupe_key,
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            await session.commit()

        logger.info(
            "Job scheduled",
            extra={
                "job_id": str(job.id),
                "type": job.type,
                "priority": job.priority,
                "scheduled_for": scheduled_for.isoformat(),
                "dedupe_key": job_create.dedupe_key,
            },
        )

        return JobScheduleResult(job_id=job.id, status=job.status)

    async def schedule_reminder(
        self,
        kind: ReminderKind | str,
        recipient_id: str | None,
        scheduled_for: datetime,
        data: dict[str, Any] | None = None,
        priority: int = 0,
        dedupe_key: str | None = None,
    ) -> JobScheduleResult:
        """Schedule a send_reminder job of the given kind."""
        kind = ReminderKind(kind)
        payload = {"reminder_type": kind.value, "recipient_id": recipient_id}
        payload.update(data or {})

        return await self.schedule(
            JobCreate(
                type=JobType.SEND_REMINDER,
                payload=payload,
                scheduled_for=scheduled_for,
                priority=priority,
                dedupe_key=dedupe_key,
            )
        )

    async def get_job(self, job_id: UUID) -> ScheduledJob | None:
        async with self.database.session() as session:
            return await session.get(ScheduledJob, job_id)

    async def list_jobs(
        self,
        status: list[JobStatus] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ScheduledJob], int]:
        """Newest-first page of jobs with the total matching count."""
        base_query = select(ScheduledJob)
        if status:
            base_query = base_query.where(
                ScheduledJob.status.in_([JobStatus(s).value for s in status])
            )
        if job_type:
            base_query = base_query.where(ScheduledJob.type == job_type)

        async with self.database.session() as session:
            total_result = await session.execute(
                select(func.count()).select_from(base_query.subquery())
            )
            total = total_result.scalar() or 0

            result = await session.execute(
                base_query.order_by(ScheduledJob.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), total

    async def get_job_stats(self) -> JobStatsResponse:
        """Get job statistics."""
        now = self._clock()

        async with self.database.session() as session:
            # Jobs by status
            status_result = await session.execute(
                select(ScheduledJob.status, func.count(ScheduledJob.id)).group_by(
                    ScheduledJob.status
                )
            )
            by_status = dict(status_result.all())

            # Jobs by type
            type_result = await session.execute(
                select(ScheduledJob.type, func.count(ScheduledJob.id)).group_by(
                    ScheduledJob.type
                )
            )
            by_type = dict(type_result.all())

            due_result = await session.execute(
                select(func.count(ScheduledJob.id)).where(
                    and_(
                        ScheduledJob.status == JobStatus.PENDING.value,
                        ScheduledJob.scheduled_for <= now,
                    )
                )
            )
            due_now = due_result.scalar() or 0

            # Failed jobs in last hour
            failed_recent_result = await session.execute(
                select(func.count(ScheduledJob.id)).where(
                    and_(
                        ScheduledJob.status == JobStatus.FAILED.value,
                        ScheduledJob.updated_at >= now - timedelta(hours=1),
                    )
                )
            )
            failed_last_hour = failed_recent_result.scalar() or 0

        queue_depth = by_status.get(JobStatus.PENDING.value, 0) + by_status.get(
            JobStatus.PROCESSING.value, 0
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            due_now=due_now,
            failed_last_hour=failed_last_hour,
        )

    async def count_stuck_jobs(self) -> int:
        """Processing claims older than the visibility timeout."""
        cutoff = self._clock() - timedelta(seconds=self.settings.job_visibility_timeout_s)
        async with self.database.session() as session:
            result = await session.execute(
                select(func.count(ScheduledJob.id)).where(
                    and_(
                        ScheduledJob.status == JobStatus.PROCESSING.value,
                        ScheduledJob.locked_at < cutoff,
                    )
                )
            )
            return result.scalar() or 0

    async def retry_job(self, job_id: UUID) -> bool:
        """Retry a failed job: back to pending, due now, with a fresh retry budget."""
        now = self._clock()
        async with self.database.session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.id == job_id,
                        ScheduledJob.status == JobStatus.FAILED.value,
                    )
                )
                .values(
                    status=JobStatus.PENDING.value,
                    retry_count=0,
                    scheduled_for=now,
                    locked_at=None,
                    locked_by=None,
                    updated_at=now,
                )
            )
            await session.commit()

        success = result.rowcount > 0
        if success:
            logger.info("Job retried", extra={"job_id": str(job_id)})

        return success

    async def cancel_job(self, job_id: UUID) -> bool:
        """Cancel a pending job by failing it with a ``Canceled`` error."""
        async with self.database.session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.id == job_id,
                        ScheduledJob.status == JobStatus.PENDING.value,
                    )
                )
                .values(
                    status=JobStatus.FAILED.value,
                    last_error=CANCELED_ERROR,
                    updated_at=self._clock(),
                )
            )
            await session.commit()

        success = result.rowcount > 0
        if success:
            logger.info("Job canceled", extra={"job_id": str(job_id)})

        return success

    async def cancel_by_dedupe_key(self, dedupe_key: str) -> int:
        """Cancel every pending job carrying the key. Returns the number canceled."""
        async with self.database.session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.dedupe_key == dedupe_key,
                        ScheduledJob.status == JobStatus.PENDING.value,
                    )
                )
                .values(
                    status=JobStatus.FAILED.value,
                    last_error=CANCELED_ERROR,
                    updated_at=self._clock(),
                )
            )
            await session.commit()

        canceled = result.rowcount
        if canceled:
            logger.info(
                "Jobs canceled by dedupe key",
                extra={"dedupe_key": dedupe_key, "canceled_count": canceled},
            )

        return canceled
