from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventjobs.config.logging import get_logger, setup_logging
from eventjobs.config.settings import Settings, settings as default_settings
from eventjobs.v1.core.context import build_context
from eventjobs.v1.core.exceptions import (
    EventJobsException,
    RequestContextMiddleware,
    event_jobs_exception_handler,
    general_exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
)
from eventjobs.v1.healthz import router as health_router
from eventjobs.v1.infra.events.routes import router as events_router
from eventjobs.v1.infra.events.triggers import EntityDirectory
from eventjobs.v1.infra.jobs.handlers import JobCollaborators
from eventjobs.v1.infra.jobs.routes import router as jobs_router

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    collaborators: JobCollaborators | None = None,
    directory: EntityDirectory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        context = build_context(settings, collaborators=collaborators, directory=directory)
        app.state.context = context

        if settings.database_create_tables:
            await context.database.create_all()

        if settings.event_backlog_on_startup:
            redelivered = await context.event_bus.process_backlog()
            logger.info("Startup event backlog replayed", redelivered=redelivered)

        if settings.job_worker_enabled:
            context.worker.start_processing()

        try:
            yield
        finally:
            await context.worker.stop_processing()
            await context.database.close()

    # Create FastAPI app with API versioning from day 1
    app = FastAPI(
        title=settings.app_name,
        description="Event bus and deferred job queue",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(EventJobsException, event_jobs_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(events_router, prefix="/v1")
    app.include_router(jobs_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "eventjobs.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
