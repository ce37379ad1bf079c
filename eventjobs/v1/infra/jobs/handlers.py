"""
Job handlers for the deferred job queue.

Each handler implements the JobHandler protocol: it declares the payload model
the worker validates stored payloads into, an optional per-handler deadline,
and delegates the actual side effect to an external collaborator. Raising from
handle() drives the retry state machine.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol
from uuid import UUID

from eventjobs.v1.infra.jobs.schemas import (
    CheckExpirationsPayload,
    CleanupDocumentsPayload,
    ProcessLateFeePayload,
    ProcessWebhookPayload,
    ReleaseBalancePayload,
    ReminderKind,
    SendNotificationPayload,
    SendReminderPayload,
)

logger = logging.getLogger(__name__)


# Collaborators


class NotificationCreator(Protocol):
    async def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        landlord_id: str | None = None,
    ) -> UUID: ...


class EmailSender(Protocol):
    async def send_email(
        self,
        to: str,
        subject: str,
        template: str | None = None,
        data: dict[str, Any] | None = None,
        body: str | None = None,
    ) -> dict[str, Any] | None: ...


class ReminderSender(Protocol):
    async def send(self, payload: SendReminderPayload) -> dict[str, Any] | None: ...


class BalanceReleaseService(Protocol):
    async def release(self, transaction_id: str) -> dict[str, Any] | None: ...


class LateFeeService(Protocol):
    async def apply_late_fee(self, invoice_id: str) -> dict[str, Any] | None: ...


class ExpirationChecker(Protocol):
    async def check_expirations(self, lookahead_days: int) -> dict[str, Any] | None: ...


class WebhookRedeliveryService(Protocol):
    async def redeliver(self, webhook_id: str) -> dict[str, Any] | None: ...


class DocumentCleanupService(Protocol):
    async def cleanup(self, document_id: str | None) -> dict[str, Any] | None: ...


@dataclass
class JobCollaborators:
    """External services job handlers delegate to. Missing ones leave their job type unregistered."""

    notifications: NotificationCreator | None = None
    email: EmailSender | None = None
    reminder_senders: dict[ReminderKind, ReminderSender] = field(default_factory=dict)
    balance: BalanceReleaseService | None = None
    late_fees: LateFeeService | None = None
    expirations: ExpirationChecker | None = None
    webhooks: WebhookRedeliveryService | None = None
    documents: DocumentCleanupService | None = None


def _as_result(value: Any, **defaults: Any) -> dict[str, Any]:
    result = dict(defaults)
    if isinstance(value, dict):
        result.update(value)
    return result


# Reminders

REMINDER_TEMPLATES: dict[ReminderKind, tuple[str, str]] = {
    ReminderKind.RENT: ("Rent Due Soon", "Your rent payment is due soon."),
    ReminderKind.APPOINTMENT: (
        "Upcoming Appointment",
        "You have an appointment scheduled in the next 24 hours.",
    ),
    ReminderKind.LEASE_SIGNING: (
        "Lease Awaiting Your Signature",
        "A tenant has signed a lease that still needs your signature.",
    ),
    ReminderKind.VERIFICATION: (
        "Verification Expiring",
        "One of your verification documents is about to expire.",
    ),
    ReminderKind.INVOICE: ("Invoice Due Soon", "You have an invoice due soon."),
    ReminderKind.OPEN_HOUSE: (
        "Open House Tomorrow",
        "Your open house is scheduled for tomorrow.",
    ),
    ReminderKind.PROPERTY_SHOWING: (
        "Property Showing Tomorrow",
        "Your property showing is scheduled for tomorrow.",
    ),
}


def reminder_message(payload: SendReminderPayload) -> tuple[str, str]:
    """Title and message for a reminder, using kind-specific fields when present."""
    title, message = REMINDER_TEMPLATES[payload.reminder_type]
    extra = payload.model_extra or {}

    days = extra.get("days_until_due")
    if payload.reminder_type == ReminderKind.RENT and days:
        message = f"Your rent payment is due in {days} day{'s' if days != 1 else ''}."
    elif payload.reminder_type == ReminderKind.INVOICE and days:
        message = f"Your invoice is due in {days} day{'s' if days != 1 else ''}."
    elif payload.reminder_type == ReminderKind.LEASE_SIGNING and extra.get("tenant_name"):
        message = (
            f"{extra['tenant_name']} signed the lease and is waiting for your "
            "signature."
        )
    elif payload.reminder_type == ReminderKind.VERIFICATION and extra.get(
        "verification_type"
    ):
        message = (
            f"Your {extra['verification_type']} verification expires on "
            f"{extra.get('expires_at', 'an upcoming date')}."
        )

    return title, message


class InAppReminderSender:
    """Default reminder sender: in-app notification, or email for address-only recipients."""

    def __init__(self, notifications: NotificationCreator, email: EmailSender | None = None):
        self.notifications = notifications
        self.email = email

    async def send(self, payload: SendReminderPayload) -> dict[str, Any] | None:
        title, message = reminder_message(payload)
        extra = payload.model_extra or {}

        if payload.recipient_id:
            notification_id = await self.notifications.create_notification(
                user_id=payload.recipient_id,
                type="reminder",
                title=title,
                message=message,
                metadata={"reminder_type": payload.reminder_type.value, **extra},
            )
            return {"status": "sent", "channel": "in_app", "notification_id": str(notification_id)}

        recipient_email = extra.get("recipient_email")
        if recipient_email and self.email is not None:
            await self.email.send_email(
                to=recipient_email,
                subject=title,
                template=f"{payload.reminder_type.value}_reminder",
                data=extra,
                body=message,
            )
            return {"status": "sent", "channel": "email"}

        logger.warning(
            "Reminder has no deliverable recipient",
            extra={"reminder_type": payload.reminder_type.value},
        )
        return {"status": "skipped", "reason": "no_recipient"}


class SendReminderHandler:
    """
    Job handler for send_reminder jobs.

    Payload expected:
    {
        "reminderType": "rent",
        "recipientId": "user-id",   # optional
        ...                         # kind-specific fields
    }
    """

    payload_model: ClassVar = SendReminderPayload
    timeout_s: ClassVar[float | None] = None

    def __init__(
        self,
        default_sender: ReminderSender,
        senders: dict[ReminderKind, ReminderSender] | None = None,
    ):
        self.default_sender = default_sender
        self.senders = senders or {}

    async def handle(self, payload: SendReminderPayload) -> dict[str, Any] | None:
        sender = self.senders.get(payload.reminder_type, self.default_sender)
        result = await sender.send(payload)

        logger.info(
            "Reminder processed",
            extra={
                "reminder_type": payload.reminder_type.value,
                "recipient_id": payload.recipient_id,
            },
        )
        return _as_result(result, status="sent", reminder_type=payload.reminder_type.value)


class SendNotificationHandler:
    """Job handler for send_notification jobs (in-app by user, or email by address)."""

    payload_model: ClassVar = SendNotificationPayload
    timeout_s: ClassVar[float | None] = None

    def __init__(self, notifications: NotificationCreator, email: EmailSender | None = None):
        self.notifications = notifications
        self.email = email

    async def handle(self, payload: SendNotificationPayload) -> dict[str, Any] | None:
        if payload.user_id:
            notification_id = await self.notifications.create_notification(
                user_id=payload.user_id,
                type=payload.type,
                title=payload.title or payload.subject or "Notification",
                message=payload.message or "",
                action_url=payload.action_url,
                metadata=payload.metadata or payload.data,
                landlord_id=payload.landlord_id,
            )
            return {"status": "sent", "channel": "in_app", "notification_id": str(notification_id)}

        if self.email is None:
            raise RuntimeError(
                f"No email sender configured, cannot notify {payload.to}"
            )

        result = await self.email.send_email(
            to=payload.to,
            subject=payload.subject or payload.title or "Notification",
            template=payload.template,
            data=payload.data,
            body=payload.message,
        )
        return _as_result(result, status="sent", channel="email")


# Money and maintenance


class ReleaseBalanceHandler:
    payload_model: ClassVar = ReleaseBalancePayload
    timeout_s: ClassVar[float | None] = None

    def __init__(self, service: BalanceReleaseService):
        self.service = service

    async def handle(self, payload: ReleaseBalancePayload) -> dict[str, Any] | None:
        result = await self.service.release(payload.transaction_id)
        logger.info("Balance released", extra={"transaction_id": payload.transaction_id})
        return _as_result(result, status="completed", transaction_id=payload.transaction_id)


class ProcessLateFeeHandler:
    payload_model: ClassVar = ProcessLateFeePayload
    timeout_s: ClassVar[float | None] = None

    def __init__(self, service: LateFeeService):
        self.service = service

    async def handle(self, payload: ProcessLateFeePayload) -> dict[str, Any] | None:
        result = await self.service.apply_late_fee(payload.invoice_id)
        logger.info("Late fee processed", extra={"invoice_id": payload.invoice_id})
        return _as_result(result, status="completed", invoice_id=payload.invoice_id)


class CheckExpirationsHandler:
    """Scans for verifications expiring within the lookahead window."""

    payload_model: ClassVar = CheckExpirationsPayload
    timeout_s: ClassVar[float | None] = None

    def __init__(self, checker: ExpirationChecker):
        self.checker = checker

    async def handle(self, payload: CheckExpirationsPayload) -> dict[str, Any] | None:
        result = await self.checker.check_expirations(payload.lookahead_days)
        return _as_result(result, status="completed", lookahead_days=payload.lookahead_days)


class ProcessWebhookHandler:
    payload_model: ClassVar = ProcessWebhookPayload
    timeout_s: ClassVar[float | None] = 60.0

    def __init__(self, service: WebhookRedeliveryService):
        self.service = service

    async def handle(self, payload: ProcessWebhookPayload) -> dict[str, Any] | None:
        result = await self.service.redeliver(payload.webhook_id)
        logger.info("Webhook redelivered", extra={"webhook_id": payload.webhook_id})
        return _as_result(result, status="completed", webhook_id=payload.webhook_id)


class CleanupDocumentsHandler:
    payload_model: ClassVar = CleanupDocumentsPayload
    timeout_s: ClassVar[float | None] = None

    def __init__(self, service: DocumentCleanupService):
        self.service = service

    async def handle(self, payload: CleanupDocumentsPayload) -> dict[str, Any] | None:
        result = await self.service.cleanup(payload.document_id)
        return _as_result(result, status="completed", document_id=payload.document_id)
