from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from eventjobs.config.settings import Settings
from eventjobs.infra.database import Database
from eventjobs.main import create_app
from eventjobs.v1.core.registries import JobRegistry
from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.listeners import EventListeners
from eventjobs.v1.infra.events.store import EventStore
from eventjobs.v1.infra.jobs.handlers import JobCollaborators
from eventjobs.v1.infra.jobs.registry_init import build_job_registry
from eventjobs.v1.infra.jobs.service import JobService
from eventjobs.v1.infra.jobs.worker import JobWorker
from eventjobs.v1.notifications.service import NotificationService

# Import models to ensure they're registered
from eventjobs.v1.infra.events import models as event_models  # noqa: F401
from eventjobs.v1.infra.jobs import models as job_models  # noqa: F401
from eventjobs.v1.notifications import models as notification_models  # noqa: F401

START = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class FakeClock:
    """Controllable UTC clock injected into the bus, job service and worker."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        environment="test",
        debug=False,
        database_create_tables=True,
        job_worker_enabled=False,
        event_backlog_on_startup=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Database with all tables created."""
    db = Database(test_settings)
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def event_store(database) -> EventStore:
    return EventStore(database)


@pytest.fixture
def bus(event_store, clock) -> EventBus:
    """Bus with no listeners subscribed."""
    return EventBus(event_store, clock=clock)


@pytest.fixture
def job_service(database, test_settings, clock) -> JobService:
    return JobService(database, test_settings, clock=clock)


@pytest.fixture
def wired_bus(bus, job_service, clock) -> EventBus:
    """Bus with the standard listeners subscribed."""
    EventListeners(job_service, clock=clock).register(bus)
    return bus


@pytest.fixture
def notifications(database, clock) -> NotificationService:
    return NotificationService(database, clock=clock)


@pytest.fixture
def job_registry(notifications) -> JobRegistry:
    """Registry with the notification handlers only."""
    return build_job_registry(JobCollaborators(notifications=notifications))


@pytest.fixture
def worker(database, job_registry, test_settings, bus, clock) -> JobWorker:
    return JobWorker(database, job_registry, test_settings, event_bus=bus, clock=clock)


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client; entering it runs the lifespan (tables, context)."""
    with TestClient(app) as test_client:
        yield test_client
