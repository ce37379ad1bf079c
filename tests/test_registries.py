from unittest.mock import AsyncMock

import pytest

from eventjobs.v1.core.registries import JobRegistry, Registry
from eventjobs.v1.infra.jobs.handlers import (
    JobCollaborators,
    ReleaseBalanceHandler,
    SendNotificationHandler,
    SendReminderHandler,
)
from eventjobs.v1.infra.jobs.registry_init import build_job_registry
from eventjobs.v1.infra.jobs.schemas import JobType


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    assert registry.list() == []

    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]

    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_enum_and_string_keys_match():
    """Job types read back from the database as strings resolve to enum registrations."""
    registry = JobRegistry()
    registry.register(JobType.RELEASE_BALANCE, "handler")

    assert registry.get("release_balance") == "handler"
    assert "release_balance" in registry
    assert JobType.RELEASE_BALANCE in registry
    assert registry.list() == ["release_balance"]


def test_registry_freeze():
    """Test that frozen registries reject new registrations."""
    registry = Registry[str]("Test")
    registry.register("before", "value")
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("after", "value")
    assert registry.get("before") == "value"


def test_build_registry_with_no_collaborators():
    """Nothing is registered without collaborators, so every type fails as unknown."""
    registry = build_job_registry(JobCollaborators())

    assert registry.list() == []
    assert registry.is_frozen()


def test_build_registry_registers_available_handlers():
    collaborators = JobCollaborators(notifications=AsyncMock(), balance=AsyncMock())
    registry = build_job_registry(collaborators)

    assert set(registry.list()) == {
        JobType.SEND_REMINDER.value,
        JobType.SEND_NOTIFICATION.value,
        JobType.RELEASE_BALANCE.value,
    }
    assert isinstance(registry.get(JobType.SEND_REMINDER), SendReminderHandler)
    assert isinstance(registry.get(JobType.SEND_NOTIFICATION), SendNotificationHandler)
    assert isinstance(registry.get(JobType.RELEASE_BALANCE), ReleaseBalanceHandler)
    assert JobType.PROCESS_LATE_FEE not in registry


def test_build_registry_rejects_deadline_past_visibility_timeout():
    """A running job must never look stale to another worker."""
    collaborators = JobCollaborators(webhooks=AsyncMock())

    with pytest.raises(ValueError, match="process_webhook has timeout_s=60.0"):
        build_job_registry(collaborators, visibility_timeout_s=60)

    registry = build_job_registry(collaborators, visibility_timeout_s=61)
    assert registry.list() == [JobType.PROCESS_WEBHOOK.value]
