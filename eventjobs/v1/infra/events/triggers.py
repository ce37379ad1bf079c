"""
Trigger adapters: turn domain mutations into events.

Route handlers and repositories that create or update domain records call the
matching adapter with plain mappings of the record's columns (``before`` and
``after`` snapshots for updates). An adapter checks whether the change is a
qualifying transition, joins in the related names a listener will need, and
emits exactly one event. Adapters never call job handlers directly.
"""

import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from eventjobs.v1.core.timeutils import Clock, utc_now
from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.schemas import EventType

logger = logging.getLogger(__name__)

Snapshot = Mapping[str, Any]


def became_set(before: Snapshot, after: Snapshot, field: str) -> bool:
    """True when ``field`` goes from empty to a value."""
    return before.get(field) is None and after.get(field) is not None


def changed_to(before: Snapshot, after: Snapshot, field: str, value: Any) -> bool:
    """True when ``field`` moves to ``value`` from anything else."""
    return before.get(field) != value and after.get(field) == value


def changed(before: Snapshot, after: Snapshot, field: str) -> bool:
    return before.get(field) != after.get(field)


def _never_fails_mutation(
    adapter: Callable[..., Awaitable[bool]],
) -> Callable[..., Awaitable[bool]]:
    """
    A notification problem must never fail the mutation that caused it.

    Snapshots missing a column (KeyError) or producing a payload the event
    schema rejects (ValueError) are logged and reported as not emitted.
    """

    @functools.wraps(adapter)
    async def wrapper(self, *args: Snapshot) -> bool:
        try:
            return await adapter(self, *args)
        except (KeyError, ValueError):
            logger.exception(
                "Trigger could not describe the change, no event emitted",
                extra={"trigger": adapter.__name__},
            )
            return False

    return wrapper

class EntityDirectory(Protocol):
    """Read-only lookups of records related to the entity that changed."""

    async def get_user(self, user_id: str) -> Snapshot | None: ...

    async def get_property(self, property_id: str) -> Snapshot | None: ...

    async def get_landlord(self, landlord_id: str) -> Snapshot | None: ...

    async def get_work_order(self, work_order_id: str) -> Snapshot | None: ...


class InMemoryDirectory:
    """Dictionary-backed EntityDirectory for local runs and tests."""

    def __init__(
        self,
        users: dict[str, Snapshot] | None = None,
        properties: dict[str, Snapshot] | None = None,
        landlords: dict[str, Snapshot] | None = None,
        work_orders: dict[str, Snapshot] | None = None,
    ):
        self.users = users or {}
        self.properties = properties or {}
        self.landlords = landlords or {}
        self.work_orders = work_orders or {}

    async def get_user(self, user_id: str) -> Snapshot | None:
        return self.users.get(user_id)

    async def get_property(self, property_id: str) -> Snapshot | None:
        return self.properties.get(property_id)

    async def get_landlord(self, landlord_id: str) -> Snapshot | None:
        return self.landlords.get(landlord_id)

    async def get_work_order(self, work_order_id: str) -> Snapshot | None:
        return self.work_orders.get(work_order_id)


class TriggerAdapters:
    """
    One coroutine per domain mutation. Each returns True when an event was
    emitted and False when the change did not qualify or could not be
    described.
    """

    def __init__(self, bus: EventBus, directory: EntityDirectory, clock: Clock = utc_now):
        self.bus = bus
        self.directory = directory
        self._clock = clock

    async def _emit(self, event_type: EventType, payload: dict[str, Any], **routing) -> bool:
        await self.bus.emit(event_type, payload, **routing)
        return True

    # Leases

    @_never_fails_mutation
    async def lease_created(self, lease: Snapshot) -> bool:
        rent_due_date = lease.get("rent_due_date") or lease.get("start_date")
        if rent_due_date is None:
            logger.warning(
                "Lease has no rent due date, skipping lease.created",
                extra={"lease_id": lease.get("id")},
            )
            return False

        return await self._emit(
            EventType.LEASE_CREATED,
            {
                "lease_id": lease["id"],
                "tenant_id": lease["tenant_id"],
                "property_id": lease["property_id"],
                "landlord_id": lease.get("landlord_id"),
                "rent_due_date": rent_due_date,
                "rent_amount": lease.get("rent_amount"),
            },
            user_id=lease["tenant_id"],
            landlord_id=lease.get("landlord_id"),
        )

    @_never_fails_mutation
    async def lease_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not became_set(before, after, "tenant_signed_at"):
            return False

        tenant = await self.directory.get_user(after["tenant_id"]) or {}
        prop = await self.directory.get_property(after["property_id"]) or {}
        landlord_id = after.get("landlord_id") or prop.get("landlord_id")
        if landlord_id is None:
            logger.warning(
                "Signed lease has no landlord, skipping lease.tenant_signed",
                extra={"lease_id": after.get("id")},
            )
            return False
        landlord = await self.directory.get_landlord(landlord_id) or {}

        return await self._emit(
            EventType.LEASE_TENANT_SIGNED,
            {
                "lease_id": after["id"],
                "tenant_id": after["tenant_id"],
                "tenant_name": tenant.get("name") or "Tenant",
                "property_id": after["property_id"],
                "property_name": prop.get("name"),
                "landlord_id": landlord_id,
                "landlord_user_id": landlord.get("owner_user_id"),
                "signed_at": after["tenant_signed_at"],
            },
            user_id=landlord.get("owner_user_id"),
            landlord_id=landlord_id,
        )

    # Payments

    @_never_fails_mutation
    async def payment_created(self, payment: Snapshot) -> bool:
        if payment.get("status") != "pending":
            return False

        return await self._emit(
            EventType.PAYMENT_PENDING,
            {
                "transaction_id": payment["id"],
                "available_at": payment.get("available_at") or self._clock(),
                "amount": payment.get("amount"),
                "landlord_id": payment.get("landlord_id"),
            },
            landlord_id=payment.get("landlord_id"),
        )

    @_never_fails_mutation
    async def payment_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed_to(before, after, "status", "completed"):
            return False

        return await self._emit(
            EventType.PAYMENT_RECEIVED,
            {
                "transaction_id": after["id"],
                "amount": after["amount"],
                "available_at": after.get("available_at") or self._clock(),
                "landlord_id": after.get("landlord_id"),
                "tenant_id": after.get("tenant_id"),
                "lease_id": after.get("lease_id"),
            },
            user_id=after.get("tenant_id"),
            landlord_id=after.get("landlord_id"),
        )

    # Contractor scheduling

    @_never_fails_mutation
    async def appointment_created(self, appointment: Snapshot) -> bool:
        return await self._emit(
            EventType.APPOINTMENT_CREATED,
            {
                "appointment_id": appointment["id"],
                "contractor_id": appointment["contractor_id"],
                "customer_id": appointment.get("customer_id"),
                "start_time": appointment["start_time"],
            },
            user_id=appointment["contractor_id"],
        )

    @_never_fails_mutation
    async def appointment_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed(before, after, "start_time"):
            return False

        return await self._emit(
            EventType.APPOINTMENT_UPDATED,
            {
                "appointment_id": after["id"],
                "contractor_id": after["contractor_id"],
                "start_time": after["start_time"],
                "previous_start_time": before.get("start_time"),
            },
            user_id=after["contractor_id"],
        )

    @_never_fails_mutation
    async def verification_uploaded(self, document: Snapshot) -> bool:
        return await self._emit(
            EventType.VERIFICATION_UPLOADED,
            {
                "verification_id": document.get("id"),
                "verification_type": document.get("verification_type")
                or document["type"],
                "contractor_id": document["contractor_id"],
                "expires_at": document.get("expires_at"),
            },
            user_id=document["contractor_id"],
        )

    # Invoices

    @_never_fails_mutation
    async def invoice_created(self, invoice: Snapshot) -> bool:
        return await self._emit(
            EventType.INVOICE_CREATED,
            {
                "invoice_id": invoice["id"],
                "customer_id": invoice["customer_id"],
                "contractor_id": invoice.get("contractor_id"),
                "due_date": invoice["due_date"],
                "amount": invoice.get("amount"),
            },
            user_id=invoice["customer_id"],
        )

    @_never_fails_mutation
    async def invoice_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed_to(before, after, "status", "overdue"):
            return False

        return await self._emit(
            EventType.INVOICE_OVERDUE,
            {
                "invoice_id": after["id"],
                "customer_id": after["customer_id"],
                "amount": after.get("amount"),
            },
            user_id=after["customer_id"],
        )

    # Documents and webhooks

    @_never_fails_mutation
    async def document_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed_to(before, after, "status", "expired"):
            return False

        return await self._emit(
            EventType.DOCUMENT_EXPIRED,
            {"document_id": after["id"]},
            landlord_id=after.get("landlord_id"),
        )

    @_never_fails_mutation
    async def webhook_delivery_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed_to(before, after, "status", "failed"):
            return False

        return await self._emit(
            EventType.WEBHOOK_FAILED,
            {
                "webhook_id": after["id"],
                "retry_count": after.get("retry_count") or 0,
            },
        )

    # Showings and open houses

    @_never_fails_mutation
    async def showing_scheduled(self, showing: Snapshot) -> bool:
        prop = await self.directory.get_property(showing["property_id"]) or {}

        return await self._emit(
            EventType.PROPERTY_SHOWING_SCHEDULED,
            {
                "appointment_id": showing["id"],
                "property_id": showing["property_id"],
                "property_name": prop.get("name"),
                "date": showing["date"],
                "start_time": showing["start_time"],
                "visitor_name": showing["visitor_name"],
                "visitor_email": showing["visitor_email"],
            },
            landlord_id=prop.get("landlord_id"),
        )

    @_never_fails_mutation
    async def open_house_created(self, open_house: Snapshot) -> bool:
        return await self._emit(
            EventType.OPEN_HOUSE_SCHEDULED,
            {
                "open_house_id": open_house["id"],
                "agent_id": open_house["agent_id"],
                "listing_id": open_house["listing_id"],
                "date": open_house["date"],
                "start_time": open_house["start_time"],
                "end_time": open_house.get("end_time"),
            },
            user_id=open_house["agent_id"],
        )

    # Work orders and leads

    @_never_fails_mutation
    async def work_order_created(self, work_order: Snapshot) -> bool:
        return await self._emit(
            EventType.WORK_ORDER_CREATED,
            {
                "work_order_id": work_order["id"],
                "poster_type": work_order["poster_type"],
                "poster_id": work_order["poster_id"],
                "title": work_order["title"],
                "category": work_order.get("category"),
                "is_open_bid": bool(work_order.get("is_open_bid")),
                "contractor_id": work_order.get("contractor_id"),
            },
            user_id=work_order["poster_id"],
        )

    @_never_fails_mutation
    async def bid_created(self, bid: Snapshot) -> bool:
        work_order = await self.directory.get_work_order(bid["work_order_id"])
        if work_order is None:
            logger.warning(
                "Bid references unknown work order, skipping bid_received",
                extra={"bid_id": bid.get("id"), "work_order_id": bid["work_order_id"]},
            )
            return False

        owner_id = work_order.get("owner_id") or work_order["poster_id"]
        return await self._emit(
            EventType.WORK_ORDER_BID_RECEIVED,
            {
                "bid_id": bid["id"],
                "work_order_id": bid["work_order_id"],
                "work_order_title": work_order.get("title"),
                "work_order_owner_id": owner_id,
                "contractor_id": bid["contractor_id"],
                "amount": bid["amount"],
            },
            user_id=owner_id,
        )

    @_never_fails_mutation
    async def bid_updated(self, before: Snapshot, after: Snapshot) -> bool:
        if not changed_to(before, after, "status", "accepted"):
            return False

        work_order = await self.directory.get_work_order(after["work_order_id"]) or {}
        return await self._emit(
            EventType.WORK_ORDER_BID_ACCEPTED,
            {
                "bid_id": after["id"],
                "work_order_id": after["work_order_id"],
                "work_order_title": work_order.get("title"),
                "contractor_id": after["contractor_id"],
                "amount": after["amount"],
            },
            user_id=after["contractor_id"],
        )

    @_never_fails_mutation
    async def lead_matched(self, match: Snapshot) -> bool:
        return await self._emit(
            EventType.CONTRACTOR_LEAD_MATCHED,
            {
                "match_id": match["id"],
                "lead_id": match["lead_id"],
                "contractor_id": match["contractor_id"],
                "service_type": match["service_type"],
                "lead_score": match.get("lead_score") or 0,
            },
            user_id=match["contractor_id"],
        )
