"""
Job types, typed job payloads and job API schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake

from eventjobs.v1.core.timeutils import ensure_utc


class JobType(str, Enum):
    """Job types the queue knows how to dispatch."""

    SEND_REMINDER = "send_reminder"
    SEND_NOTIFICATION = "send_notification"
    RELEASE_BALANCE = "release_balance"
    PROCESS_LATE_FEE = "process_late_fee"
    CHECK_EXPIRATIONS = "check_expirations"
    PROCESS_WEBHOOK = "process_webhook"
    CLEANUP_DOCUMENTS = "cleanup_documents"


class ReminderKind(str, Enum):
    """Reminder kinds carried by send_reminder jobs."""

    RENT = "rent"
    APPOINTMENT = "appointment"
    LEASE_SIGNING = "lease_signing"
    VERIFICATION = "verification"
    INVOICE = "invoice"
    OPEN_HOUSE = "open_house"
    PROPERTY_SHOWING = "property_showing"


class JobPayload(BaseModel):
    """Base class for job payloads (accepts camelCase or snake_case keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class SendReminderPayload(JobPayload):
    """Reminder payload; kind-specific fields ride along as extras."""

    model_config = ConfigDict(extra="allow")

    reminder_type: ReminderKind
    recipient_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def snake_case_keys(cls, data: Any) -> Any:
        # Extras are not covered by the alias generator; store them as snake_case too
        if isinstance(data, dict):
            return {
                to_snake(key) if isinstance(key, str) else key: value
                for key, value in data.items()
            }
        return data


class SendNotificationPayload(JobPayload):
    user_id: str | None = None
    to: str | None = None
    type: str = "info"
    title: str | None = None
    message: str | None = None
    subject: str | None = None
    template: str | None = None
    action_url: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    landlord_id: str | None = None

    @model_validator(mode="after")
    def require_recipient(self):
        if not self.user_id and not self.to:
            raise ValueError("send_notification requires userId or to")
        return self


class ReleaseBalancePayload(JobPayload):
    transaction_id: str


class ProcessLateFeePayload(JobPayload):
    invoice_id: str


class CheckExpirationsPayload(JobPayload):
    lookahead_days: int = Field(default=30, ge=1, le=365)


class ProcessWebhookPayload(JobPayload):
    webhook_id: str


class CleanupDocumentsPayload(JobPayload):
    document_id: str | None = None


JOB_PAYLOAD_MODELS: dict[JobType, type[JobPayload]] = {
    JobType.SEND_REMINDER: SendReminderPayload,
    JobType.SEND_NOTIFICATION: SendNotificationPayload,
    JobType.RELEASE_BALANCE: ReleaseBalancePayload,
    JobType.PROCESS_LATE_FEE: ProcessLateFeePayload,
    JobType.CHECK_EXPIRATIONS: CheckExpirationsPayload,
    JobType.PROCESS_WEBHOOK: ProcessWebhookPayload,
    JobType.CLEANUP_DOCUMENTS: CleanupDocumentsPayload,
}


class JobCreate(BaseModel):
    """Schema for scheduling a new job."""

    type: JobType = Field(..., description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    scheduled_for: datetime | None = Field(
        default=None, description="Earliest time to run job (defaults to now)"
    )
    priority: int = Field(default=0, description="Higher runs first among due jobs")
    max_retries: int | None = Field(
        default=None, ge=1, le=25, description="Attempts before terminal failure"
    )
    dedupe_key: str | None = Field(default=None, description="Deduplication key")


class ReminderCreate(BaseModel):
    """Schema for scheduling a reminder via API."""

    kind: ReminderKind = Field(..., description="Reminder kind")
    recipient_id: str | None = Field(default=None, description="Recipient user")
    scheduled_for: datetime = Field(..., description="When to send the reminder")
    data: dict[str, Any] = Field(default_factory=dict, description="Reminder fields")
    priority: int = Field(default=0, description="Higher runs first among due jobs")
    dedupe_key: str | None = Field(default=None, description="Deduplication key")


class JobScheduleResult(BaseModel):
    """Schema for schedule results."""

    job_id: UUID
    status: str
    deduplicated: bool = Field(
        default=False, description="Whether an active job with the key already existed"
    )


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: dict[str, Any]
    scheduled_for: datetime
    priority: int
    status: str
    retry_count: int
    max_retries: int
    last_error: str | None = None
    completed_at: datetime | None = None

    # Worker coordination
    locked_at: datetime | None = None
    locked_by: str | None = None

    result: dict[str, Any] | None = None
    dedupe_key: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator(
        "scheduled_for", "completed_at", "locked_at", "created_at", "updated_at"
    )
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + processing
    due_now: int
    failed_last_hour: int


class JobActionRequest(BaseModel):
    """Schema for job actions (retry, cancel)."""

    job_ids: list[UUID] = Field(..., description="Job IDs to act upon")


class JobActionResponse(BaseModel):
    """Schema for job action responses."""

    success_ids: list[UUID]
    failed_ids: list[UUID]
    errors: dict[str, str]  # job_id -> error message
