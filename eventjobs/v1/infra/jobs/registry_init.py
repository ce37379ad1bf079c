"""
Job registry initialization.

Builds the job registry once at startup from the collaborators the host
application supplies, then freezes it.
"""

import logging

from eventjobs.config.settings import settings as default_settings
from eventjobs.v1.core.registries import JobRegistry
from eventjobs.v1.infra.jobs.handlers import (
    CheckExpirationsHandler,
    CleanupDocumentsHandler,
    InAppReminderSender,
    JobCollaborators,
    ProcessLateFeeHandler,
    ProcessWebhookHandler,
    ReleaseBalanceHandler,
    SendNotificationHandler,
    SendReminderHandler,
)
from eventjobs.v1.infra.jobs.schemas import JobType

logger = logging.getLogger(__name__)


def build_job_registry(
    collaborators: JobCollaborators, visibility_timeout_s: float | None = None
) -> JobRegistry:
    """
    Register a handler for every job type whose collaborator is available.

    A handler deadline must stay below the visibility timeout, otherwise a
    job still running would be recovered and executed a second time.
    """
    if visibility_timeout_s is None:
        visibility_timeout_s = default_settings.job_visibility_timeout_s

    logger.info("Registering job handlers")
    registry = JobRegistry()

    # Notification job handlers
    if collaborators.notifications is not None:
        registry.register(
            JobType.SEND_REMINDER,
            SendReminderHandler(
                InAppReminderSender(collaborators.notifications, collaborators.email),
                collaborators.reminder_senders,
            ),
        )
        registry.register(
            JobType.SEND_NOTIFICATION,
            SendNotificationHandler(collaborators.notifications, collaborators.email),
        )

    # Money job handlers
    if collaborators.balance is not None:
        registry.register(
            JobType.RELEASE_BALANCE, ReleaseBalanceHandler(collaborators.balance)
        )
    if collaborators.late_fees is not None:
        registry.register(
            JobType.PROCESS_LATE_FEE, ProcessLateFeeHandler(collaborators.late_fees)
        )

    # Maintenance job handlers
    if collaborators.expirations is not None:
        registry.register(
            JobType.CHECK_EXPIRATIONS, CheckExpirationsHandler(collaborators.expirations)
        )
    if collaborators.webhooks is not None:
        registry.register(
            JobType.PROCESS_WEBHOOK, ProcessWebhookHandler(collaborators.webhooks)
        )
    if collaborators.documents is not None:
        registry.register(
            JobType.CLEANUP_DOCUMENTS, CleanupDocumentsHandler(collaborators.documents)
        )

    for job_type in registry.list():
        timeout_s = registry.get(job_type).timeout_s
        if timeout_s is not None and timeout_s >= visibility_timeout_s:
            raise ValueError(
                f"Handler for {job_type} has timeout_s={timeout_s}, which must be "
                f"less than the job visibility timeout ({visibility_timeout_s}s)"
            )

    registry.freeze()

    missing = [t.value for t in JobType if t not in registry]
    logger.info(
        "Job handlers registered",
        extra={"registered_handlers": registry.list(), "unregistered_types": missing},
    )
    return registry
