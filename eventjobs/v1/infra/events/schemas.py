"""
Event types, typed payloads and API schemas.

Every event tag maps to exactly one payload model. Payloads are
self-contained: they carry every identifier and denormalized name a listener
or a later job needs, so nothing has to be re-queried at consumption time.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from eventjobs.v1.core.timeutils import ensure_utc


class EventType(str, Enum):
    """Event tags emitted by trigger adapters and the job queue."""

    LEASE_CREATED = "lease.created"
    LEASE_TENANT_SIGNED = "lease.tenant_signed"
    PAYMENT_RECEIVED = "payment.received"
    PAYMENT_PENDING = "payment.pending"
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_UPDATED = "appointment.updated"
    VERIFICATION_UPLOADED = "verification.uploaded"
    VERIFICATION_EXPIRING_SOON = "verification.expiring_soon"
    RENT_DUE_SOON = "rent.due_soon"
    INVOICE_CREATED = "invoice.created"
    INVOICE_OVERDUE = "invoice.overdue"
    BALANCE_PENDING_RELEASE = "balance.pending_release"
    DOCUMENT_EXPIRED = "document.expired"
    WEBHOOK_FAILED = "webhook.failed"
    PROPERTY_SHOWING_SCHEDULED = "property.showing_scheduled"
    OPEN_HOUSE_SCHEDULED = "open_house.scheduled"
    OPEN_HOUSE_STARTING_SOON = "open_house.starting_soon"
    WORK_ORDER_CREATED = "work_order.created"
    WORK_ORDER_BID_RECEIVED = "work_order.bid_received"
    WORK_ORDER_BID_ACCEPTED = "work_order.bid_accepted"
    CONTRACTOR_LEAD_MATCHED = "contractor.lead_matched"
    JOB_FAILED = "job.failed"


class EventPayload(BaseModel):
    """Base class for event payloads (accepts camelCase or snake_case keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class LeaseCreatedPayload(EventPayload):
    lease_id: str
    tenant_id: str
    property_id: str
    landlord_id: str | None = None
    rent_due_date: datetime
    rent_amount: Decimal | None = None


class LeaseTenantSignedPayload(EventPayload):
    lease_id: str
    tenant_id: str
    tenant_name: str
    property_id: str
    property_name: str | None = None
    landlord_id: str
    landlord_user_id: str | None = None
    signed_at: datetime


class PaymentReceivedPayload(EventPayload):
    transaction_id: str
    amount: Decimal
    available_at: datetime
    landlord_id: str | None = None
    tenant_id: str | None = None
    lease_id: str | None = None


class PaymentPendingPayload(EventPayload):
    transaction_id: str
    available_at: datetime
    amount: Decimal | None = None
    landlord_id: str | None = None


class AppointmentCreatedPayload(EventPayload):
    appointment_id: str
    contractor_id: str
    customer_id: str | None = None
    start_time: datetime


class AppointmentUpdatedPayload(EventPayload):
    appointment_id: str
    contractor_id: str
    start_time: datetime
    previous_start_time: datetime | None = None


class VerificationUploadedPayload(EventPayload):
    verification_id: str | None = None
    verification_type: str
    contractor_id: str
    expires_at: datetime | None = None


class VerificationExpiringSoonPayload(EventPayload):
    contractor_id: str
    verification_type: str
    expires_at: datetime
    days_until_expiration: int


class RentDueSoonPayload(EventPayload):
    tenant_id: str
    lease_id: str
    due_date: datetime
    amount: Decimal | None = None


class InvoiceCreatedPayload(EventPayload):
    invoice_id: str
    customer_id: str
    contractor_id: str | None = None
    due_date: datetime
    amount: Decimal | None = None


class InvoiceOverduePayload(EventPayload):
    invoice_id: str
    customer_id: str
    amount: Decimal | None = None


class BalancePendingReleasePayload(EventPayload):
    transaction_id: str
    available_at: datetime


class DocumentExpiredPayload(EventPayload):
    document_id: str


class WebhookFailedPayload(EventPayload):
    webhook_id: str
    retry_count: int = Field(default=0, ge=0)


class PropertyShowingScheduledPayload(EventPayload):
    appointment_id: str
    property_id: str
    property_name: str | None = None
    date: date
    start_time: time
    visitor_name: str
    visitor_email: str


class OpenHouseScheduledPayload(EventPayload):
    open_house_id: str
    agent_id: str
    listing_id: str
    date: date
    start_time: time
    end_time: time | None = None


class OpenHouseStartingSoonPayload(EventPayload):
    open_house_id: str
    agent_id: str


class WorkOrderCreatedPayload(EventPayload):
    work_order_id: str
    poster_type: str
    poster_id: str
    title: str
    category: str | None = None
    is_open_bid: bool = False
    contractor_id: str | None = None


class WorkOrderBidReceivedPayload(EventPayload):
    bid_id: str
    work_order_id: str
    work_order_title: str | None = None
    work_order_owner_id: str
    contractor_id: str
    amount: Decimal


class WorkOrderBidAcceptedPayload(EventPayload):
    bid_id: str
    work_order_id: str
    work_order_title: str | None = None
    contractor_id: str
    amount: Decimal


class ContractorLeadMatchedPayload(EventPayload):
    match_id: str
    lead_id: str
    contractor_id: str
    service_type: str
    lead_score: int | float


class JobFailedPayload(EventPayload):
    job_id: str
    job_type: str
    retry_count: int
    max_retries: int
    last_error: str | None = None


EVENT_PAYLOAD_MODELS: dict[EventType, type[EventPayload]] = {
    EventType.LEASE_CREATED: LeaseCreatedPayload,
    EventType.LEASE_TENANT_SIGNED: LeaseTenantSignedPayload,
    EventType.PAYMENT_RECEIVED: PaymentReceivedPayload,
    EventType.PAYMENT_PENDING: PaymentPendingPayload,
    EventType.APPOINTMENT_CREATED: AppointmentCreatedPayload,
    EventType.APPOINTMENT_UPDATED: AppointmentUpdatedPayload,
    EventType.VERIFICATION_UPLOADED: VerificationUploadedPayload,
    EventType.VERIFICATION_EXPIRING_SOON: VerificationExpiringSoonPayload,
    EventType.RENT_DUE_SOON: RentDueSoonPayload,
    EventType.INVOICE_CREATED: InvoiceCreatedPayload,
    EventType.INVOICE_OVERDUE: InvoiceOverduePayload,
    EventType.BALANCE_PENDING_RELEASE: BalancePendingReleasePayload,
    EventType.DOCUMENT_EXPIRED: DocumentExpiredPayload,
    EventType.WEBHOOK_FAILED: WebhookFailedPayload,
    EventType.PROPERTY_SHOWING_SCHEDULED: PropertyShowingScheduledPayload,
    EventType.OPEN_HOUSE_SCHEDULED: OpenHouseScheduledPayload,
    EventType.OPEN_HOUSE_STARTING_SOON: OpenHouseStartingSoonPayload,
    EventType.WORK_ORDER_CREATED: WorkOrderCreatedPayload,
    EventType.WORK_ORDER_BID_RECEIVED: WorkOrderBidReceivedPayload,
    EventType.WORK_ORDER_BID_ACCEPTED: WorkOrderBidAcceptedPayload,
    EventType.CONTRACTOR_LEAD_MATCHED: ContractorLeadMatchedPayload,
    EventType.JOB_FAILED: JobFailedPayload,
}


def parse_event_payload(
    event_type: EventType | str, payload: EventPayload | dict[str, Any]
) -> tuple[EventType, EventPayload]:
    """
    Resolve an event tag and validate its payload.

    Raises:
        ValueError: unknown tag, wrong payload model, or invalid payload
            (pydantic's ValidationError is a ValueError)
    """
    event_type = EventType(event_type)
    model = EVENT_PAYLOAD_MODELS[event_type]

    if isinstance(payload, EventPayload):
        if not isinstance(payload, model):
            raise ValueError(
                f"Payload {type(payload).__name__} does not match event type "
                f"{event_type.value} (expected {model.__name__})"
            )
        return event_type, payload

    return event_type, model.model_validate(payload)


@dataclass(frozen=True)
class EventEnvelope:
    """What listeners receive for each delivered event."""

    type: EventType
    data: EventPayload
    timestamp: datetime
    id: UUID | None = None
    user_id: str | None = None
    landlord_id: str | None = None


class EventEmitRequest(BaseModel):
    """Schema for emitting an event via API."""

    type: EventType = Field(..., description="Event type tag")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    user_id: str | None = Field(default=None, description="Acting or target user")
    landlord_id: str | None = Field(default=None, description="Landlord scope")


class EventEmitResponse(BaseModel):
    """Schema for emit results."""

    type: EventType
    delivered: bool = Field(..., description="Whether any listener was registered")
    listener_count: int


class EventResponse(BaseModel):
    """Schema for event API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: dict[str, Any]
    processed: bool
    user_id: str | None = None
    landlord_id: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class EventListResponse(BaseModel):
    """Schema for event list API response."""

    events: list[EventResponse]
    total: int
    limit: int
    offset: int


class BacklogResponse(BaseModel):
    """Schema for backlog replay results."""

    delivered: int
    remaining: int
