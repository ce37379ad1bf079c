"""Tests for event listeners: every delivered event schedules the right jobs."""

from datetime import UTC, date, datetime, time, timedelta

from eventjobs.v1.core.timeutils import ensure_utc
from eventjobs.v1.infra.events.schemas import EventType
from eventjobs.v1.infra.jobs.models import JobStatus
from eventjobs.v1.infra.jobs.schemas import JobType


async def _jobs(job_service, job_type: JobType | None = None):
    jobs, _ = await job_service.list_jobs(job_type=job_type.value if job_type else None)
    return sorted(jobs, key=lambda job: ensure_utc(job.scheduled_for))


async def test_every_event_type_has_a_listener(wired_bus):
    for event_type in EventType:
        assert wired_bus.listener_count(event_type) >= 1, event_type


class TestLeaseListeners:
    async def test_tenant_signed_notifies_landlord_and_schedules_reminder(
        self, wired_bus, job_service, clock
    ):
        await wired_bus.emit(
            EventType.LEASE_TENANT_SIGNED,
            {
                "lease_id": "lease-1",
                "tenant_id": "tenant-1",
                "tenant_name": "Dana Tenant",
                "property_id": "prop-1",
                "landlord_id": "ll-1",
                "landlord_user_id": "owner-1",
                "signed_at": clock.now,
            },
        )

        [notification] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert notification.priority == 9
        assert notification.payload["user_id"] == "owner-1"
        assert "Dana Tenant" in notification.payload["message"]

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert reminder.payload["reminder_type"] == "lease_signing"
        assert reminder.dedupe_key == "lease_signing:lease-1"
        assert ensure_utc(reminder.scheduled_for) == clock.now + timedelta(hours=24)

    async def test_tenant_signed_without_landlord_user_schedules_nothing(
        self, wired_bus, job_service, clock
    ):
        await wired_bus.emit(
            EventType.LEASE_TENANT_SIGNED,
            {
                "lease_id": "lease-1",
                "tenant_id": "tenant-1",
                "tenant_name": "Dana Tenant",
                "property_id": "prop-1",
                "landlord_id": "ll-1",
                "signed_at": clock.now,
            },
        )

        assert await _jobs(job_service) == []

    async def test_lease_created_schedules_rent_reminders(self, wired_bus, job_service, clock):
        due = clock.now + timedelta(days=10)
        await wired_bus.emit(
            EventType.LEASE_CREATED,
            {"lease_id": "lease-1", "tenant_id": "tenant-1", "property_id": "prop-1", "rent_due_date": due},
        )

        reminders = await _jobs(job_service, JobType.SEND_REMINDER)
        assert [ensure_utc(job.scheduled_for) for job in reminders] == [
            due - timedelta(days=3),
            due - timedelta(days=1),
        ]
        assert [job.dedupe_key for job in reminders] == ["rent:lease-1:3d", "rent:lease-1:1d"]
        assert all(job.payload["recipient_id"] == "tenant-1" for job in reminders)

    async def test_past_reminder_times_are_skipped(self, wired_bus, job_service, clock):
        due = clock.now + timedelta(days=2)
        await wired_bus.emit(
            EventType.LEASE_CREATED,
            {"lease_id": "lease-2", "tenant_id": "tenant-1", "property_id": "prop-1", "rent_due_date": due},
        )

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert reminder.payload["days_until_due"] == 1

    async def test_replayed_event_does_not_duplicate_reminders(self, wired_bus, job_service, clock):
        payload = {
            "lease_id": "lease-3",
            "tenant_id": "tenant-1",
            "property_id": "prop-1",
            "rent_due_date": clock.now + timedelta(days=10),
        }
        await wired_bus.emit(EventType.LEASE_CREATED, payload)
        await wired_bus.emit(EventType.LEASE_CREATED, payload)

        assert len(await _jobs(job_service, JobType.SEND_REMINDER)) == 2


class TestPaymentListeners:
    async def test_payment_received_schedules_balance_release(self, wired_bus, job_service, clock):
        available = clock.now + timedelta(days=2)
        await wired_bus.emit(
            EventType.PAYMENT_RECEIVED,
            {"transaction_id": "tx-1", "amount": "120.50", "available_at": available},
        )

        [job] = await _jobs(job_service, JobType.RELEASE_BALANCE)
        assert job.payload == {"transaction_id": "tx-1"}
        assert job.priority == 8
        assert ensure_utc(job.scheduled_for) == available

    async def test_pending_then_received_release_once(self, wired_bus, job_service, clock):
        available = clock.now + timedelta(days=2)
        await wired_bus.emit(
            EventType.PAYMENT_PENDING, {"transaction_id": "tx-2", "available_at": available}
        )
        await wired_bus.emit(
            EventType.PAYMENT_RECEIVED,
            {"transaction_id": "tx-2", "amount": 99, "available_at": available},
        )

        assert len(await _jobs(job_service, JobType.RELEASE_BALANCE)) == 1


class TestAppointmentListeners:
    async def test_reschedule_replaces_pending_reminder(self, wired_bus, job_service, clock):
        start = clock.now + timedelta(days=3)
        await wired_bus.emit(
            EventType.APPOINTMENT_CREATED,
            {"appointment_id": "apt-1", "contractor_id": "c-1", "start_time": start},
        )
        new_start = clock.now + timedelta(days=5)
        await wired_bus.emit(
            EventType.APPOINTMENT_UPDATED,
            {
                "appointment_id": "apt-1",
                "contractor_id": "c-1",
                "start_time": new_start,
                "previous_start_time": start,
            },
        )

        original, replacement = await _jobs(job_service, JobType.SEND_REMINDER)
        assert original.status == JobStatus.FAILED.value
        assert original.last_error == "Canceled"
        assert replacement.status == JobStatus.PENDING.value
        assert ensure_utc(replacement.scheduled_for) == new_start - timedelta(hours=24)

    async def test_insurance_verification_reminds_two_weeks_ahead(
        self, wired_bus, job_service, clock
    ):
        expires = clock.now + timedelta(days=60)
        await wired_bus.emit(
            EventType.VERIFICATION_UPLOADED,
            {"verification_type": "insurance", "contractor_id": "c-1", "expires_at": expires},
        )

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert ensure_utc(reminder.scheduled_for) == expires - timedelta(days=14)

    async def test_license_verification_reminds_thirty_days_ahead(
        self, wired_bus, job_service, clock
    ):
        expires = clock.now + timedelta(days=60)
        await wired_bus.emit(
            EventType.VERIFICATION_UPLOADED,
            {"verification_type": "license", "contractor_id": "c-1", "expires_at": expires},
        )

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert ensure_utc(reminder.scheduled_for) == expires - timedelta(days=30)


class TestInvoiceAndMaintenanceListeners:
    async def test_invoice_overdue_schedules_fee_and_alert(self, wired_bus, job_service):
        await wired_bus.emit(
            EventType.INVOICE_OVERDUE, {"invoice_id": "inv-1", "customer_id": "cust-1"}
        )

        [fee] = await _jobs(job_service, JobType.PROCESS_LATE_FEE)
        assert fee.priority == 7
        assert fee.dedupe_key == "late_fee:inv-1"

        [alert] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert alert.payload["type"] == "alert"
        assert alert.priority == 9

    async def test_webhook_failure_backs_off_exponentially(self, wired_bus, job_service, clock):
        await wired_bus.emit(EventType.WEBHOOK_FAILED, {"webhook_id": "wh-1", "retry_count": 2})

        [job] = await _jobs(job_service, JobType.PROCESS_WEBHOOK)
        assert ensure_utc(job.scheduled_for) == clock.now + timedelta(minutes=4)
        assert job.max_retries == 5

    async def test_document_expired_schedules_cleanup(self, wired_bus, job_service):
        await wired_bus.emit(EventType.DOCUMENT_EXPIRED, {"document_id": "doc-1"})

        [job] = await _jobs(job_service, JobType.CLEANUP_DOCUMENTS)
        assert job.payload == {"document_id": "doc-1"}
        assert job.priority == 3


class TestShowingListeners:
    async def test_showing_confirms_and_reminds_visitor(self, wired_bus, job_service, clock):
        showing_day = (clock.now + timedelta(days=3)).date()
        await wired_bus.emit(
            EventType.PROPERTY_SHOWING_SCHEDULED,
            {
                "appointment_id": "show-1",
                "property_id": "prop-1",
                "date": showing_day,
                "start_time": time(14, 30),
                "visitor_name": "Sam Visitor",
                "visitor_email": "sam@example.com",
            },
        )

        [confirmation] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert confirmation.payload["to"] == "sam@example.com"
        assert confirmation.payload["template"] == "showing_confirmation"

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert reminder.payload["recipient_email"] == "sam@example.com"
        assert "recipient_id" not in reminder.payload
        assert ensure_utc(reminder.scheduled_for) == datetime.combine(
            showing_day, time(14, 30), tzinfo=UTC
        ) - timedelta(hours=24)

    async def test_open_house_schedules_reminder_and_starting_alert(
        self, wired_bus, job_service, clock
    ):
        await wired_bus.emit(
            EventType.OPEN_HOUSE_SCHEDULED,
            {
                "open_house_id": "oh-1",
                "agent_id": "agent-1",
                "listing_id": "listing-1",
                "date": date(2026, 3, 10),
                "start_time": time(10, 0),
            },
        )
        starts_at = datetime(2026, 3, 10, 10, 0, tzinfo=UTC)

        [reminder] = await _jobs(job_service, JobType.SEND_REMINDER)
        assert ensure_utc(reminder.scheduled_for) == starts_at - timedelta(hours=24)

        [alert] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert alert.payload["type"] == "open_house_starting"
        assert ensure_utc(alert.scheduled_for) == starts_at - timedelta(hours=1)


class TestWorkOrderListeners:
    async def test_open_bid_work_order_notifies_nobody(self, wired_bus, job_service):
        await wired_bus.emit(
            EventType.WORK_ORDER_CREATED,
            {
                "work_order_id": "wo-1",
                "poster_type": "landlord",
                "poster_id": "poster-1",
                "title": "Fix sink",
                "is_open_bid": True,
            },
        )

        assert await _jobs(job_service) == []

    async def test_assigned_work_order_notifies_contractor(self, wired_bus, job_service):
        await wired_bus.emit(
            EventType.WORK_ORDER_CREATED,
            {
                "work_order_id": "wo-2",
                "poster_type": "landlord",
                "poster_id": "poster-1",
                "title": "Paint fence",
                "contractor_id": "c-9",
            },
        )

        [job] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert job.payload["user_id"] == "c-9"
        assert "Paint fence" in job.payload["message"]

    async def test_bid_received_formats_amount(self, wired_bus, job_service):
        await wired_bus.emit(
            EventType.WORK_ORDER_BID_RECEIVED,
            {
                "bid_id": "bid-1",
                "work_order_id": "wo-1",
                "work_order_title": "Fix sink",
                "work_order_owner_id": "poster-1",
                "contractor_id": "c-2",
                "amount": "1250",
            },
        )

        [job] = await _jobs(job_service, JobType.SEND_NOTIFICATION)
        assert job.payload["user_id"] == "poster-1"
        assert "$1,250.00" in job.payload["message"]
        assert '"Fix sink"' in job.payload["message"]


async def test_job_failed_listener_schedules_nothing(wired_bus, job_service):
    delivered = await wired_bus.emit(
        EventType.JOB_FAILED,
        {"job_id": "j-1", "job_type": "send_reminder", "retry_count": 3, "max_retries": 3},
    )

    assert delivered is True
    assert await _jobs(job_service) == []
