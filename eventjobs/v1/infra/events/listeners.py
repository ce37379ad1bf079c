"""
Event listeners: react to domain events by scheduling follow-up jobs.

Listeners never perform side effects themselves. Anything user-visible
(notifications, reminders, money movement) is scheduled on the job queue so it
gets retries, backoff and an audit trail.
"""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from eventjobs.v1.core.timeutils import Clock, ensure_utc, utc_now
from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.schemas import EventEnvelope, EventType
from eventjobs.v1.infra.jobs.schemas import JobCreate, JobType, ReminderKind
from eventjobs.v1.infra.jobs.service import JobService

logger = logging.getLogger(__name__)

REMINDER_LEAD_TIME = timedelta(hours=24)
STARTING_SOON_LEAD_TIME = timedelta(hours=1)
RENT_REMINDER_DAYS = (3, 1)
INVOICE_REMINDER_DAYS = 3


def _money(amount: Decimal | float | None) -> str:
    return f"${amount:,.2f}" if amount is not None else "an amount"


class EventListeners:
    """Subscribes one listener per event tag and schedules the matching jobs."""

    def __init__(self, job_service: JobService, clock: Clock = utc_now):
        self.jobs = job_service
        self._clock = clock

    def register(self, bus: EventBus) -> None:
        """Subscribe every listener to the bus."""
        subscriptions = {
            EventType.LEASE_TENANT_SIGNED: self.on_lease_tenant_signed,
            EventType.LEASE_CREATED: self.on_lease_created,
            EventType.PAYMENT_RECEIVED: self.on_balance_available,
            EventType.PAYMENT_PENDING: self.on_balance_available,
            EventType.BALANCE_PENDING_RELEASE: self.on_balance_available,
            EventType.APPOINTMENT_CREATED: self.on_appointment_created,
            EventType.APPOINTMENT_UPDATED: self.on_appointment_updated,
            EventType.VERIFICATION_UPLOADED: self.on_verification_uploaded,
            EventType.VERIFICATION_EXPIRING_SOON: self.on_verification_expiring,
            EventType.RENT_DUE_SOON: self.on_rent_due_soon,
            EventType.INVOICE_CREATED: self.on_invoice_created,
            EventType.INVOICE_OVERDUE: self.on_invoice_overdue,
            EventType.DOCUMENT_EXPIRED: self.on_document_expired,
            EventType.WEBHOOK_FAILED: self.on_webhook_failed,
            EventType.PROPERTY_SHOWING_SCHEDULED: self.on_showing_scheduled,
            EventType.OPEN_HOUSE_SCHEDULED: self.on_open_house_scheduled,
            EventType.OPEN_HOUSE_STARTING_SOON: self.on_open_house_starting_soon,
            EventType.WORK_ORDER_CREATED: self.on_work_order_created,
            EventType.WORK_ORDER_BID_RECEIVED: self.on_bid_received,
            EventType.WORK_ORDER_BID_ACCEPTED: self.on_bid_accepted,
            EventType.CONTRACTOR_LEAD_MATCHED: self.on_lead_matched,
            EventType.JOB_FAILED: self.on_job_failed,
        }
        for event_type, listener in subscriptions.items():
            bus.subscribe(event_type, listener)

        logger.info(
            "Event listeners registered", extra={"event_types": len(subscriptions)}
        )

    async def _notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        priority: int,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        landlord_id: str | None = None,
        scheduled_for: datetime | None = None,
    ) -> None:
        payload = {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "action_url": action_url,
            "metadata": metadata or {},
            "landlord_id": landlord_id,
        }
        await self.jobs.schedule(
            JobCreate(
                type=JobType.SEND_NOTIFICATION,
                payload=payload,
                scheduled_for=scheduled_for or self._clock(),
                priority=priority,
            )
        )

    async def _remind_if_future(
        self,
        kind: ReminderKind,
        recipient_id: str | None,
        when: datetime,
        data: dict[str, Any],
        priority: int = 0,
        dedupe_key: str | None = None,
    ) -> bool:
        when = ensure_utc(when)
        if when <= self._clock():
            logger.debug(
                "Reminder time already passed, not scheduling",
                extra={"reminder_type": kind.value, "scheduled_for": when.isoformat()},
            )
            return False

        await self.jobs.schedule_reminder(
            kind, recipient_id, when, data, priority=priority, dedupe_key=dedupe_key
        )
        return True

    # Leases

    async def on_lease_tenant_signed(self, event: EventEnvelope) -> None:
        """Tenant signed: notify the landlord now and remind them in 24 hours."""
        data = event.data
        if not data.landlord_user_id:
            logger.warning(
                "Signed lease has no landlord user to notify",
                extra={"lease_id": data.lease_id},
            )
            return

        await self._notify(
            user_id=data.landlord_user_id,
            type="reminder",
            title="Lease Awaiting Your Signature",
            message=(
                f"{data.tenant_name} has signed the lease. Please review and sign "
                "to complete the agreement."
            ),
            priority=9,
            action_url=f"/admin/products/{data.property_id}/details",
            metadata={"lease_id": data.lease_id, "property_id": data.property_id},
            landlord_id=data.landlord_id,
        )
        await self.jobs.schedule_reminder(
            ReminderKind.LEASE_SIGNING,
            data.landlord_user_id,
            self._clock() + REMINDER_LEAD_TIME,
            {
                "lease_id": data.lease_id,
                "tenant_name": data.tenant_name,
                "property_id": data.property_id,
            },
            dedupe_key=f"lease_signing:{data.lease_id}",
        )

    async def on_lease_created(self, event: EventEnvelope) -> None:
        """Rent reminders 3 days and 1 day before the due date."""
        data = event.data
        for days in RENT_REMINDER_DAYS:
            await self._remind_if_future(
                ReminderKind.RENT,
                data.tenant_id,
                data.rent_due_date - timedelta(days=days),
                {"lease_id": data.lease_id, "days_until_due": days},
                dedupe_key=f"rent:{data.lease_id}:{days}d",
            )

    async def on_rent_due_soon(self, event: EventEnvelope) -> None:
        data = event.data
        await self.jobs.schedule_reminder(
            ReminderKind.RENT,
            data.tenant_id,
            self._clock(),
            {
                "lease_id": data.lease_id,
                "due_date": data.due_date.isoformat(),
                "amount": str(data.amount) if data.amount is not None else None,
            },
        )

    # Payments

    async def on_balance_available(self, event: EventEnvelope) -> None:
        """Release the landlord balance once the provider makes funds available."""
        data = event.data
        result = await self.jobs.schedule(
            JobCreate(
                type=JobType.RELEASE_BALANCE,
                payload={"transaction_id": data.transaction_id},
                scheduled_for=data.available_at,
                priority=8,
                dedupe_key=f"release_balance:{data.transaction_id}",
            )
        )
        if result.deduplicated:
            logger.debug(
                "Balance release already scheduled",
                extra={"transaction_id": data.transaction_id},
            )

    # Appointments and verifications

    async def on_appointment_created(self, event: EventEnvelope) -> None:
        data = event.data
        await self._remind_if_future(
            ReminderKind.APPOINTMENT,
            data.contractor_id,
            data.start_time - REMINDER_LEAD_TIME,
            {"appointment_id": data.appointment_id},
            dedupe_key=f"appointment:{data.appointment_id}",
        )

    async def on_appointment_updated(self, event: EventEnvelope) -> None:
        """Start time moved: cancel the pending reminder and schedule a new one."""
        data = event.data
        if data.previous_start_time is not None and ensure_utc(
            data.previous_start_time
        ) == ensure_utc(data.start_time):
            return

        dedupe_key = f"appointment:{data.appointment_id}"
        canceled = await self.jobs.cancel_by_dedupe_key(dedupe_key)
        logger.info(
            "Rescheduling appointment reminder",
            extra={"appointment_id": data.appointment_id, "canceled": canceled},
        )
        await self._remind_if_future(
            ReminderKind.APPOINTMENT,
            data.contractor_id,
            data.start_time - REMINDER_LEAD_TIME,
            {"appointment_id": data.appointment_id},
            dedupe_key=dedupe_key,
        )

    async def on_verification_uploaded(self, event: EventEnvelope) -> None:
        """Insurance is reminded 14 days before expiry, other documents 30 days."""
        data = event.data
        if data.expires_at is None:
            return

        reminder_days = 14 if data.verification_type == "insurance" else 30
        await self._remind_if_future(
            ReminderKind.VERIFICATION,
            data.contractor_id,
            data.expires_at - timedelta(days=reminder_days),
            {
                "verification_type": data.verification_type,
                "expires_at": data.expires_at.isoformat(),
            },
        )

    async def on_verification_expiring(self, event: EventEnvelope) -> None:
        data = event.data
        await self.jobs.schedule_reminder(
            ReminderKind.VERIFICATION,
            data.contractor_id,
            self._clock(),
            {
                "verification_type": data.verification_type,
                "expires_at": data.expires_at.isoformat(),
                "days_until_expiration": data.days_until_expiration,
            },
        )

    # Invoices

    async def on_invoice_created(self, event: EventEnvelope) -> None:
        data = event.data
        await self._remind_if_future(
            ReminderKind.INVOICE,
            data.customer_id,
            data.due_date - timedelta(days=INVOICE_REMINDER_DAYS),
            {"invoice_id": data.invoice_id, "days_until_due": INVOICE_REMINDER_DAYS},
            dedupe_key=f"invoice:{data.invoice_id}",
        )

    async def on_invoice_overdue(self, event: EventEnvelope) -> None:
        """Apply the late fee and tell the customer."""
        data = event.data
        await self.jobs.schedule(
            JobCreate(
                type=JobType.PROCESS_LATE_FEE,
                payload={"invoice_id": data.invoice_id},
                scheduled_for=self._clock(),
                priority=7,
                dedupe_key=f"late_fee:{data.invoice_id}",
            )
        )
        await self._notify(
            user_id=data.customer_id,
            type="alert",
            title="Invoice Overdue",
            message="Your invoice is overdue. Please make payment to avoid additional fees.",
            priority=9,
            action_url=f"/invoices/{data.invoice_id}",
        )

    # Documents and webhooks

    async def on_document_expired(self, event: EventEnvelope) -> None:
        await self.jobs.schedule(
            JobCreate(
                type=JobType.CLEANUP_DOCUMENTS,
                payload={"document_id": event.data.document_id},
                scheduled_for=self._clock(),
                priority=3,
            )
        )

    async def on_webhook_failed(self, event: EventEnvelope) -> None:
        """Redeliver after 2^retry_count minutes."""
        data = event.data
        await self.jobs.schedule(
            JobCreate(
                type=JobType.PROCESS_WEBHOOK,
                payload={"webhook_id": data.webhook_id},
                scheduled_for=self._clock() + timedelta(minutes=2**data.retry_count),
                priority=5,
                max_retries=5,
            )
        )

    # Showings and open houses

    async def on_showing_scheduled(self, event: EventEnvelope) -> None:
        """Confirm to the visitor now and remind them a day before."""
        data = event.data
        showing_at = datetime.combine(data.date, data.start_time, tzinfo=UTC)

        await self.jobs.schedule(
            JobCreate(
                type=JobType.SEND_NOTIFICATION,
                payload={
                    "type": "email",
                    "to": data.visitor_email,
                    "subject": "Property Showing Confirmed",
                    "template": "showing_confirmation",
                    "data": {
                        "visitor_name": data.visitor_name,
                        "date": data.date.isoformat(),
                        "start_time": data.start_time.isoformat(),
                        "property_id": data.property_id,
                        "property_name": data.property_name,
                    },
                },
                scheduled_for=self._clock(),
                priority=9,
            )
        )
        await self._remind_if_future(
            ReminderKind.PROPERTY_SHOWING,
            None,
            showing_at - REMINDER_LEAD_TIME,
            {
                "recipient_email": data.visitor_email,
                "appointment_id": data.appointment_id,
                "showing_date_time": showing_at.isoformat(),
            },
            priority=7,
            dedupe_key=f"property_showing:{data.appointment_id}",
        )

    async def on_open_house_scheduled(self, event: EventEnvelope) -> None:
        """Remind the agent a day before and alert them an hour before."""
        data = event.data
        starts_at = datetime.combine(data.date, data.start_time, tzinfo=UTC)

        await self._remind_if_future(
            ReminderKind.OPEN_HOUSE,
            data.agent_id,
            starts_at - REMINDER_LEAD_TIME,
            {
                "open_house_id": data.open_house_id,
                "listing_id": data.listing_id,
                "date": data.date.isoformat(),
                "start_time": data.start_time.isoformat(),
                "end_time": data.end_time.isoformat() if data.end_time else None,
            },
            dedupe_key=f"open_house:{data.open_house_id}",
        )

        starting_soon_at = starts_at - STARTING_SOON_LEAD_TIME
        if starting_soon_at > self._clock():
            await self._notify(
                user_id=data.agent_id,
                type="open_house_starting",
                title="Open House Starting Soon",
                message="Your open house starts in 1 hour. Make sure everything is ready!",
                priority=8,
                action_url=f"/agent/open-houses/{data.open_house_id}",
                metadata={"open_house_id": data.open_house_id},
                scheduled_for=starting_soon_at,
            )

    async def on_open_house_starting_soon(self, event: EventEnvelope) -> None:
        data = event.data
        await self._notify(
            user_id=data.agent_id,
            type="alert",
            title="Open House Starting Soon",
            message="Your open house starts in 1 hour. Make sure everything is ready!",
            priority=9,
            action_url=f"/agent/open-houses/{data.open_house_id}",
        )

    # Work orders and leads

    async def on_work_order_created(self, event: EventEnvelope) -> None:
        """Directly assigned work orders notify the contractor; open bids do not."""
        data = event.data
        if data.is_open_bid or not data.contractor_id:
            logger.info(
                "Open work order posted, no direct notification",
                extra={"work_order_id": data.work_order_id, "category": data.category},
            )
            return

        await self._notify(
            user_id=data.contractor_id,
            type="work_order",
            title="New Work Order Assigned",
            message=f"You have been assigned a new job: {data.title}",
            priority=9,
            action_url=f"/contractor/work-orders/{data.work_order_id}",
        )

    async def on_bid_received(self, event: EventEnvelope) -> None:
        data = event.data
        target = f'"{data.work_order_title}"' if data.work_order_title else "your work order"
        await self._notify(
            user_id=data.work_order_owner_id,
            type="bid",
            title="New Bid Received",
            message=f"A contractor has submitted a bid of {_money(data.amount)} for {target}",
            priority=8,
            action_url=f"/work-orders/{data.work_order_id}",
            metadata={"bid_id": data.bid_id, "contractor_id": data.contractor_id},
        )

    async def on_bid_accepted(self, event: EventEnvelope) -> None:
        data = event.data
        await self._notify(
            user_id=data.contractor_id,
            type="success",
            title="Bid Accepted!",
            message=f"Your bid of {_money(data.amount)} has been accepted. Time to get to work!",
            priority=9,
            action_url=f"/contractor/work-orders/{data.work_order_id}",
            metadata={"bid_id": data.bid_id},
        )

    async def on_lead_matched(self, event: EventEnvelope) -> None:
        data = event.data
        await self._notify(
            user_id=data.contractor_id,
            type="lead",
            title="New Lead Available",
            message=(
                f"A new {data.service_type} lead (score: {data.lead_score}) is "
                "waiting for your response"
            ),
            priority=8,
            action_url=f"/contractor/leads/{data.match_id}",
            metadata={"lead_id": data.lead_id},
        )

    # Operator alerts

    def on_job_failed(self, event: EventEnvelope) -> None:
        data = event.data
        logger.error(
            "Job failed permanently",
            extra={
                "job_id": data.job_id,
                "job_type": data.job_type,
                "retry_count": data.retry_count,
                "max_retries": data.max_retries,
                "last_error": data.last_error,
            },
        )
