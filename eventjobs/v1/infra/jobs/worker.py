"""
Database-backed job worker: timer-driven poll loop with atomic claims,
per-handler deadlines, exponential backoff and stale-claim recovery.
"""

import asyncio
import contextlib
import os
import socket
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, select, update

from eventjobs.config.logging import get_logger
from eventjobs.config.settings import Settings
from eventjobs.infra.database import Database
from eventjobs.v1.core.registries import JobRegistry
from eventjobs.v1.core.timeutils import Clock, utc_now
from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.schemas import EventType
from eventjobs.v1.infra.jobs.models import JobStatus, ScheduledJob

logger = get_logger(__name__)


def retry_delay(attempt: int) -> timedelta:
    """Backoff before the given retry: 2^attempt minutes."""
    return timedelta(minutes=2**attempt)


class JobWorker:
    """
    Polls the job store and executes due jobs one at a time.

    Features:
    - Conditional UPDATE claims so concurrent instances never run a job twice
    - Visibility timeout for recovering claims left behind by a crashed worker
    - Exponential backoff for retries, terminal failure published as job.failed
    - Graceful shutdown that lets the job in flight finish
    """

    def __init__(
        self,
        database: Database,
        registry: JobRegistry,
        settings: Settings,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
    ):
        self.database = database
        self.registry = registry
        self.settings = settings
        self.event_bus = event_bus
        self._clock = clock
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.current_job_id: UUID | None = None
        self._task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_processing(self, interval_ms: int | None = None) -> None:
        """Start the poll loop. Calling it while running is a no-op."""
        if self.is_running:
            logger.debug("Job worker already running", worker_id=self.worker_id)
            return

        interval_ms = interval_ms or self.settings.job_poll_interval_ms
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(
            self._poll_loop(interval_ms / 1000), name=f"job-worker-{self.worker_id}"
        )
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            poll_interval_ms=interval_ms,
            batch_size=self.settings.job_batch_size,
        )

    async def stop_processing(self) -> None:
        """Stop the poll loop, waiting for the job in flight to finish."""
        if not self.is_running:
            return

        logger.info("Stopping job worker", worker_id=self.worker_id)
        self._stop.set()

        timeout = self.settings.job_shutdown_timeout_s
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Worker stopped with a job in flight",
                worker_id=self.worker_id,
                job_id=str(self.current_job_id) if self.current_job_id else None,
                timeout_s=timeout,
            )
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        finally:
            self._task = None

    def _stopping(self) -> bool:
        return self._stop is not None and self._stop.is_set()

    async def _poll_loop(self, interval_s: float) -> None:
        while not self._stopping():
            try:
                await self.process_due_jobs()
            except Exception:
                logger.exception("Error in job poll cycle", worker_id=self.worker_id)

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=interval_s)

        logger.info("Job worker stopped", worker_id=self.worker_id)

    async def process_due_jobs(self) -> int:
        """
        Run one poll cycle.

        Returns:
            Number of jobs this worker claimed and executed
        """
        now = self._clock()
        await self.recover_stuck_jobs(now)

        async with self.database.session() as session:
            result = await session.execute(
                select(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.status == JobStatus.PENDING.value,
                        ScheduledJob.scheduled_for <= now,
                    )
                )
                .order_by(
                    ScheduledJob.priority.desc(),
                    ScheduledJob.scheduled_for,
                    ScheduledJob.created_at,
                )
                .limit(self.settings.job_batch_size)
            )
            due_jobs = list(result.scalars().all())

        if not due_jobs:
            return 0

        logger.info("Processing due jobs", worker_id=self.worker_id, job_count=len(due_jobs))

        processed = 0
        for job in due_jobs:
            if self._stopping():
                break
            if not await self._claim_job(job.id):
                logger.debug("Job claimed by another worker", job_id=str(job.id))
                continue
            await self._run_job(job)
            processed += 1

        return processed

    async def recover_stuck_jobs(self, now: datetime | None = None) -> int:
        """Return expired processing claims to pending without touching retry_count."""
        now = now or self._clock()
        timeout_seconds = self.settings.job_visibility_timeout_s
        cutoff = now - timedelta(seconds=timeout_seconds)

        async with self.database.session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.status == JobStatus.PROCESSING.value,
                        ScheduledJob.locked_at < cutoff,
                    )
                )
                .values(
                    status=JobStatus.PENDING.value,
                    locked_at=None,
                    locked_by=None,
                    last_error=f"Claim expired after {timeout_seconds}s",
                    updated_at=now,
                )
            )
            await session.commit()

        recovered = result.rowcount
        if recovered:
            logger.warning(
                "Recovered stuck jobs",
                stuck_job_count=recovered,
                timeout_seconds=timeout_seconds,
            )
        return recovered

    async def _claim_job(self, job_id: UUID) -> bool:
        now = self._clock()
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
                    status=JobStatus.PROCESSING.value,
                    locked_at=now,
                    locked_by=self.worker_id,
                    updated_at=now,
                )
            )
            await session.commit()
        return result.rowcount == 1

    async def _run_job(self, job: ScheduledJob) -> None:
        """Dispatch a claimed job and record its outcome."""
        job_logger = logger.bind(job_id=str(job.id), job_type=job.type)

        try:
            handler = self.registry.get(job.type)
        except KeyError:
            await self._mark_failed(
                job, f"Unknown job type: {job.type}", retry_count=job.retry_count
            )
            return

        try:
            payload = handler.payload_model.model_validate(job.payload)
        except PydanticValidationError as e:
            await self._mark_failed(
                job, f"Invalid payload for {job.type}: {e}", retry_count=job.retry_count
            )
            return

        timeout = handler.timeout_s or self.settings.job_handler_timeout_s
        self.current_job_id = job.id
        job_logger.info("Processing job started", retry_count=job.retry_count)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                result = await handler.handle(payload)
        except asyncio.CancelledError:
            job_logger.info("Job processing cancelled, releasing claim")
            await self._release_claim(job.id)
            raise
        except TimeoutError as e:
            if deadline.expired():
                job_logger.warning("Job handler timed out", timeout_s=timeout)
                await self._handle_failure(job, f"Job timed out after {timeout}s")
            else:
                # Raised by the handler itself, e.g. a socket timeout
                job_logger.exception("Job processing failed", error=str(e))
                await self._handle_failure(job, str(e) or e.__class__.__name__)
        except Exception as e:
            job_logger.exception("Job processing failed", error=str(e))
            await self._handle_failure(job, str(e) or e.__class__.__name__)
        else:
            await self._mark_completed(job.id, result)
            job_logger.info("Processing job completed successfully")
        finally:
            self.current_job_id = None

    async def _handle_failure(self, job: ScheduledJob, error: str) -> None:
        """Schedule a retry with backoff, or fail the job once retries are exhausted."""
        attempt = job.retry_count + 1
        if attempt >= job.max_retries:
            await self._mark_failed(job, error, retry_count=attempt)
            return

        now = self._clock()
        next_run_at = now + retry_delay(attempt)
        async with self.database.session() as session:
            await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job.id)
                .values(
                    status=JobStatus.PENDING.value,
                    retry_count=attempt,
                    scheduled_for=next_run_at,
                    last_error=error,
                    locked_at=None,
                    locked_by=None,
                    updated_at=now,
                )
            )
            await session.commit()

        logger.info(
            "Job scheduled for retry",
            job_id=str(job.id),
            job_type=job.type,
            retry_count=attempt,
            max_retries=job.max_retries,
            next_run_at=next_run_at.isoformat(),
        )

    async def _mark_completed(self, job_id: UUID, result: Any) -> None:
        now = self._clock()
        async with self.database.session() as session:
            await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job_id)
                .values(
                    status=JobStatus.COMPLETED.value,
                    completed_at=now,
                    result=result if isinstance(result, dict) else None,
                    locked_at=None,
                    locked_by=None,
                    updated_at=now,
                )
            )
            await session.commit()

    async def _mark_failed(self, job: ScheduledJob, error: str, retry_count: int) -> None:
        """Terminal failure: persist the error and publish a job.failed event."""
        async with self.database.session() as session:
            await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job.id)
                .values(
                    status=JobStatus.FAILED.value,
                    retry_count=retry_count,
                    last_error=error,
                    locked_at=None,
                    locked_by=None,
                    updated_at=self._clock(),
                )
            )
            await session.commit()

        logger.error(
            "Job failed permanently",
            job_id=str(job.id),
            job_type=job.type,
            retry_count=retry_count,
            max_retries=job.max_retries,
            last_error=error,
        )

        if self.event_bus is None:
            return
        try:
            await self.event_bus.emit(
                EventType.JOB_FAILED,
                {
                    "job_id": str(job.id),
                    "job_type": job.type,
                    "retry_count": retry_count,
                    "max_retries": job.max_retries,
                    "last_error": error,
                },
            )
        except Exception:
            logger.exception("Failed to publish job.failed event", job_id=str(job.id))

    async def _release_claim(self, job_id: UUID) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(ScheduledJob)
                .where(
                    and_(
                        ScheduledJob.id == job_id,
                        ScheduledJob.status == JobStatus.PROCESSING.value,
                    )
                )
                .values(
                    status=JobStatus.PENDING.value,
                    locked_at=None,
                    locked_by=None,
                    updated_at=self._clock(),
                )
            )
            await session.commit()
