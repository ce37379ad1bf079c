"""Tests for job handlers and their collaborators."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from eventjobs.v1.infra.jobs.handlers import (
    InAppReminderSender,
    ProcessLateFeeHandler,
    ProcessWebhookHandler,
    ReleaseBalanceHandler,
    SendNotificationHandler,
    SendReminderHandler,
    reminder_message,
)
from eventjobs.v1.infra.jobs.schemas import (
    ProcessLateFeePayload,
    ProcessWebhookPayload,
    ReleaseBalancePayload,
    ReminderKind,
    SendNotificationPayload,
    SendReminderPayload,
)


@pytest.fixture
def notification_creator():
    creator = AsyncMock()
    creator.create_notification.return_value = uuid4()
    return creator


@pytest.fixture
def email_sender():
    sender = AsyncMock()
    sender.send_email.return_value = {"message_id": "m-1"}
    return sender


class TestReminderMessages:
    def test_rent_days_are_pluralized(self):
        one = SendReminderPayload(reminder_type="rent", days_until_due=1)
        three = SendReminderPayload(reminder_type="rent", days_until_due=3)

        assert reminder_message(one) == ("Rent Due Soon", "Your rent payment is due in 1 day.")
        assert reminder_message(three)[1] == "Your rent payment is due in 3 days."

    def test_lease_signing_mentions_tenant(self):
        payload = SendReminderPayload(reminder_type="lease_signing", tenant_name="Dana")

        assert reminder_message(payload)[1] == (
            "Dana signed the lease and is waiting for your signature."
        )

    def test_every_kind_has_a_template(self):
        for kind in ReminderKind:
            title, message = reminder_message(SendReminderPayload(reminder_type=kind))
            assert title and message

    def test_camel_case_extras_reach_the_template(self):
        payload = SendReminderPayload.model_validate(
            {"reminderType": "rent", "recipientId": "t1", "daysUntilDue": 3}
        )

        assert reminder_message(payload)[1] == "Your rent payment is due in 3 days."


class TestInAppReminderSender:
    async def test_recipient_gets_in_app_notification(self, notification_creator):
        sender = InAppReminderSender(notification_creator)
        payload = SendReminderPayload(
            reminder_type="invoice", recipient_id="cust-1", invoice_id="inv-1"
        )

        result = await sender.send(payload)

        assert result["channel"] == "in_app"
        kwargs = notification_creator.create_notification.await_args.kwargs
        assert kwargs["user_id"] == "cust-1"
        assert kwargs["type"] == "reminder"
        assert kwargs["metadata"] == {"reminder_type": "invoice", "invoice_id": "inv-1"}

    async def test_email_only_recipient(self, notification_creator, email_sender):
        sender = InAppReminderSender(notification_creator, email_sender)
        payload = SendReminderPayload(
            reminder_type="property_showing", recipient_email="sam@example.com"
        )

        result = await sender.send(payload)

        assert result == {"status": "sent", "channel": "email"}
        kwargs = email_sender.send_email.await_args.kwargs
        assert kwargs["to"] == "sam@example.com"
        assert kwargs["template"] == "property_showing_reminder"
        notification_creator.create_notification.assert_not_awaited()

    async def test_no_recipient_is_skipped(self, notification_creator):
        sender = InAppReminderSender(notification_creator)

        result = await sender.send(SendReminderPayload(reminder_type="open_house"))

        assert result == {"status": "skipped", "reason": "no_recipient"}


class TestSendReminderHandler:
    async def test_kind_specific_sender_takes_precedence(self):
        default_sender = AsyncMock()
        rent_sender = AsyncMock()
        rent_sender.send.return_value = {"provider": "sms"}
        handler = SendReminderHandler(default_sender, {ReminderKind.RENT: rent_sender})

        result = await handler.handle(SendReminderPayload(reminder_type="rent", recipient_id="t"))

        assert result == {"status": "sent", "reminder_type": "rent", "provider": "sms"}
        default_sender.send.assert_not_awaited()

    async def test_sender_failure_propagates(self):
        default_sender = AsyncMock()
        default_sender.send.side_effect = ConnectionError("push gateway down")
        handler = SendReminderHandler(default_sender)

        with pytest.raises(ConnectionError):
            await handler.handle(SendReminderPayload(reminder_type="rent", recipient_id="t"))


class TestSendNotificationHandler:
    async def test_user_notification(self, notification_creator):
        handler = SendNotificationHandler(notification_creator)
        payload = SendNotificationPayload(
            user_id="owner-1",
            type="alert",
            title="Invoice Overdue",
            message="Please pay",
            landlord_id="ll-1",
        )

        result = await handler.handle(payload)

        assert result["channel"] == "in_app"
        kwargs = notification_creator.create_notification.await_args.kwargs
        assert kwargs["title"] == "Invoice Overdue"
        assert kwargs["landlord_id"] == "ll-1"

    async def test_email_notification(self, notification_creator, email_sender):
        handler = SendNotificationHandler(notification_creator, email_sender)
        payload = SendNotificationPayload(
            type="email",
            to="sam@example.com",
            subject="Property Showing Confirmed",
            template="showing_confirmation",
            data={"visitor_name": "Sam"},
        )

        result = await handler.handle(payload)

        assert result == {"status": "sent", "channel": "email", "message_id": "m-1"}
        kwargs = email_sender.send_email.await_args.kwargs
        assert kwargs["subject"] == "Property Showing Confirmed"
        assert kwargs["data"] == {"visitor_name": "Sam"}

    async def test_email_without_sender_raises(self, notification_creator):
        handler = SendNotificationHandler(notification_creator)

        with pytest.raises(RuntimeError, match="No email sender configured"):
            await handler.handle(SendNotificationPayload(to="sam@example.com"))


class TestServiceHandlers:
    async def test_release_balance(self):
        service = AsyncMock()
        service.release.return_value = None

        result = await ReleaseBalanceHandler(service).handle(
            ReleaseBalancePayload(transaction_id="tx-1")
        )

        service.release.assert_awaited_once_with("tx-1")
        assert result == {"status": "completed", "transaction_id": "tx-1"}

    async def test_late_fee(self):
        service = AsyncMock()
        service.apply_late_fee.return_value = {"fee": "25.00"}

        result = await ProcessLateFeeHandler(service).handle(
            ProcessLateFeePayload(invoice_id="inv-1")
        )

        assert result == {"status": "completed", "invoice_id": "inv-1", "fee": "25.00"}

    def test_webhook_handler_has_its_own_deadline(self):
        assert ProcessWebhookHandler.timeout_s == 60.0
        assert ProcessWebhookHandler.payload_model is ProcessWebhookPayload
