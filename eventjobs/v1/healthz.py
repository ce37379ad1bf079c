from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from eventjobs.config.logging import get_logger
from eventjobs.infra.database import get_session
from eventjobs.v1.core.context import AppContext, ContextDep
from eventjobs.v1.core.exceptions import create_success_response
from eventjobs.v1.infra.jobs.models import JobStatus

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue and worker health status."""

    worker_running: bool
    pending: int = 0
    due_now: int = 0
    processing: int = 0
    failed: int = 0
    stuck_jobs_count: int = 0
    registered_handlers: list[str] = []


class EventHealth(BaseModel):
    """Event bus health status."""

    backlog_size: int


@router.get("/healthz", response_model=dict)
async def health_check(
    context: AppContext = ContextDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database, job queue and event backlog status."""

    settings = context.settings
    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)
    overall_ok = db_health.connected

    queue_health = None
    event_health = None
    if db_health.connected:
        try:
            queue_health = await _check_queue_health(context)
            event_health = EventHealth(
                backlog_size=await context.event_store.count_unprocessed()
            )
        except Exception:
            # Queue health failure doesn't fail overall health
            logger.exception("Queue health check failed")

    health_data = {
        "ok": overall_ok,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
        "events": event_health.model_dump() if event_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        # Simple query to test database connectivity
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_queue_health(context: AppContext) -> QueueHealth:
    """Summarize queue depth, stuck claims and worker state."""
    stats = await context.job_service.get_job_stats()

    return QueueHealth(
        worker_running=context.worker.is_running,
        pending=stats.by_status.get(JobStatus.PENDING.value, 0),
        due_now=stats.due_now,
        processing=stats.by_status.get(JobStatus.PROCESSING.value, 0),
        failed=stats.by_status.get(JobStatus.FAILED.value, 0),
        stuck_jobs_count=await context.job_service.count_stuck_jobs(),
        registered_handlers=context.job_registry.list(),
    )
