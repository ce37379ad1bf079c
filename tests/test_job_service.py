"""Tests for job scheduling, deduplication and operator actions."""

from datetime import timedelta
from uuid import uuid4

import pytest

from eventjobs.v1.core.timeutils import ensure_utc
from eventjobs.v1.infra.jobs.models import JobStatus
from eventjobs.v1.infra.jobs.schemas import JobCreate, JobType, ReminderKind
from eventjobs.v1.infra.jobs.service import CANCELED_ERROR, normalize_payload


async def test_schedule_defaults(job_service, clock):
    result = await job_service.schedule(
        JobCreate(type=JobType.CLEANUP_DOCUMENTS, payload={"documentId": "doc-1"})
    )

    assert result.status == JobStatus.PENDING.value
    assert result.deduplicated is False

    job = await job_service.get_job(result.job_id)
    assert job.payload == {"document_id": "doc-1"}
    assert ensure_utc(job.scheduled_for) == clock.now
    assert job.priority == 0
    assert job.retry_count == 0
    assert job.max_retries == 3


async def test_schedule_rejects_invalid_payload(job_service):
    with pytest.raises(ValueError, match="Invalid payload for release_balance"):
        await job_service.schedule(JobCreate(type=JobType.RELEASE_BALANCE, payload={}))


def test_normalize_payload_keeps_reminder_extras():
    payload = normalize_payload(
        JobType.SEND_REMINDER,
        {"reminderType": "rent", "recipientId": "tenant-1", "lease_id": "lease-1"},
    )

    assert payload == {"reminder_type": "rent", "recipient_id": "tenant-1", "lease_id": "lease-1"}


def test_normalize_payload_snake_cases_reminder_extras():
    payload = normalize_payload(
        JobType.SEND_REMINDER,
        {"reminderType": "rent", "recipientId": "t1", "daysUntilDue": 3, "tenantName": "Dana"},
    )

    assert payload == {
        "reminder_type": "rent",
        "recipient_id": "t1",
        "days_until_due": 3,
        "tenant_name": "Dana",
    }


def test_send_notification_requires_a_recipient():
    with pytest.raises(ValueError, match="requires userId or to"):
        normalize_payload(JobType.SEND_NOTIFICATION, {"title": "Hello"})


async def test_dedupe_key_returns_active_job(job_service):
    job = JobCreate(
        type=JobType.RELEASE_BALANCE,
        payload={"transaction_id": "tx-1"},
        dedupe_key="release_balance:tx-1",
    )

    first = await job_service.schedule(job)
    second = await job_service.schedule(job)

    assert second.deduplicated is True
    assert second.job_id == first.job_id
    _, total = await job_service.list_jobs()
    assert total == 1


async def test_dedupe_key_ignores_finished_jobs(job_service):
    job = JobCreate(
        type=JobType.RELEASE_BALANCE,
        payload={"transaction_id": "tx-1"},
        dedupe_key="release_balance:tx-1",
    )
    first = await job_service.schedule(job)
    assert await job_service.cancel_job(first.job_id)

    second = await job_service.schedule(job)

    assert second.deduplicated is False
    assert second.job_id != first.job_id


async def test_schedule_reminder(job_service, clock):
    when = clock.now + timedelta(days=1)
    result = await job_service.schedule_reminder(
        ReminderKind.INVOICE, "cust-1", when, {"invoice_id": "inv-1"}, priority=4
    )

    job = await job_service.get_job(result.job_id)
    assert job.type == JobType.SEND_REMINDER.value
    assert job.payload == {"reminder_type": "invoice", "recipient_id": "cust-1", "invoice_id": "inv-1"}
    assert ensure_utc(job.scheduled_for) == when
    assert job.priority == 4


async def test_cancel_only_pending(job_service):
    result = await job_service.schedule(
        JobCreate(type=JobType.CLEANUP_DOCUMENTS, payload={})
    )

    assert await job_service.cancel_job(result.job_id) is True
    job = await job_service.get_job(result.job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.last_error == CANCELED_ERROR

    assert await job_service.cancel_job(result.job_id) is False
    assert await job_service.cancel_job(uuid4()) is False


async def test_retry_resets_failed_job(job_service, clock):
    result = await job_service.schedule(
        JobCreate(
            type=JobType.CLEANUP_DOCUMENTS,
            payload={},
            scheduled_for=clock.now + timedelta(days=3),
        )
    )
    await job_service.cancel_job(result.job_id)
    clock.advance(minutes=5)

    assert await job_service.retry_job(result.job_id) is True

    job = await job_service.get_job(result.job_id)
    assert job.status == JobStatus.PENDING.value
    assert job.retry_count == 0
    assert ensure_utc(job.scheduled_for) == clock.now

    # Only failed jobs can be retried
    assert await job_service.retry_job(result.job_id) is False


async def test_cancel_by_dedupe_key(job_service):
    for _ in range(2):
        await job_service.schedule(
            JobCreate(type=JobType.CLEANUP_DOCUMENTS, payload={}, dedupe_key="cleanup:x")
        )

    assert await job_service.cancel_by_dedupe_key("cleanup:x") == 1
    assert await job_service.cancel_by_dedupe_key("cleanup:x") == 0
    assert await job_service.cancel_by_dedupe_key("unknown") == 0


async def test_list_jobs_filters(job_service):
    await job_service.schedule(JobCreate(type=JobType.CLEANUP_DOCUMENTS, payload={}))
    canceled = await job_service.schedule(
        JobCreate(type=JobType.RELEASE_BALANCE, payload={"transaction_id": "tx"})
    )
    await job_service.cancel_job(canceled.job_id)

    jobs, total = await job_service.list_jobs(status=[JobStatus.FAILED])
    assert total == 1
    assert jobs[0].id == canceled.job_id

    jobs, total = await job_service.list_jobs(job_type="cleanup_documents")
    assert total == 1

    jobs, total = await job_service.list_jobs(limit=1)
    assert total == 2
    assert len(jobs) == 1


async def test_job_stats(job_service, clock):
    await job_service.schedule(JobCreate(type=JobType.CLEANUP_DOCUMENTS, payload={}))
    await job_service.schedule(
        JobCreate(
            type=JobType.CLEANUP_DOCUMENTS,
            payload={},
            scheduled_for=clock.now + timedelta(hours=1),
        )
    )
    canceled = await job_service.schedule(
        JobCreate(type=JobType.RELEASE_BALANCE, payload={"transaction_id": "tx"})
    )
    await job_service.cancel_job(canceled.job_id)

    stats = await job_service.get_job_stats()

    assert stats.total_jobs == 3
    assert stats.by_status == {"pending": 2, "failed": 1}
    assert stats.by_type == {"cleanup_documents": 2, "release_balance": 1}
    assert stats.queue_depth == 2
    assert stats.due_now == 1
    assert stats.failed_last_hour == 1
