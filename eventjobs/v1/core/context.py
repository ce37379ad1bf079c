"""
Application context: the single set of event and job components a process uses.

Built once at startup and stored on ``app.state.context``; route handlers get it
through the ``ContextDep`` dependency.
"""

from dataclasses import dataclass, replace

from fastapi import Depends, Request

from eventjobs.config.settings import Settings
from eventjobs.infra.database import Database
from eventjobs.v1.core.registries import JobRegistry
from eventjobs.v1.core.timeutils import Clock, utc_now
from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.listeners import EventListeners
from eventjobs.v1.infra.events.store import EventStore
from eventjobs.v1.infra.events.triggers import EntityDirectory, InMemoryDirectory, TriggerAdapters
from eventjobs.v1.infra.jobs.handlers import JobCollaborators
from eventjobs.v1.infra.jobs.registry_init import build_job_registry
from eventjobs.v1.infra.jobs.service import JobService
from eventjobs.v1.infra.jobs.worker import JobWorker
from eventjobs.v1.notifications.service import NotificationService


@dataclass
class AppContext:
    settings: Settings
    database: Database
    event_store: EventStore
    event_bus: EventBus
    job_service: JobService
    job_registry: JobRegistry
    worker: JobWorker
    triggers: TriggerAdapters
    notifications: NotificationService


def build_context(
    settings: Settings,
    database: Database | None = None,
    collaborators: JobCollaborators | None = None,
    directory: EntityDirectory | None = None,
    clock: Clock = utc_now,
) -> AppContext:
    """
    Wire the bus, listeners, job service, registry and worker together.

    The built-in notification service fills in the notification collaborator
    when the caller does not supply one.
    """
    database = database or Database(settings)
    notifications = NotificationService(database, clock=clock)

    collaborators = collaborators or JobCollaborators()
    if collaborators.notifications is None:
        collaborators = replace(collaborators, notifications=notifications)

    event_store = EventStore(database)
    event_bus = EventBus(
        event_store, backlog_batch_size=settings.event_backlog_batch_size, clock=clock
    )
    job_service = JobService(database, settings, clock=clock)
    EventListeners(job_service, clock=clock).register(event_bus)

    job_registry = build_job_registry(
        collaborators, visibility_timeout_s=settings.job_visibility_timeout_s
    )
    worker = JobWorker(database, job_registry, settings, event_bus=event_bus, clock=clock)

    return AppContext(
        settings=settings,
        database=database,
        event_store=event_store,
        event_bus=event_bus,
        job_service=job_service,
        job_registry=job_registry,
        worker=worker,
        triggers=TriggerAdapters(event_bus, directory or InMemoryDirectory(), clock=clock),
        notifications=notifications,
    )


def get_context(request: Request) -> AppContext:
    """Dependency injection function for the application context."""
    return request.app.state.context


# Convenience type alias for dependency injection
ContextDep = Depends(get_context)
