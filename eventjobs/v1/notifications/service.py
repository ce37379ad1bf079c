"""
Built-in notification creator used by reminder and notification jobs.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from eventjobs.infra.database import Database
from eventjobs.v1.core.timeutils import Clock, utc_now
from eventjobs.v1.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes in-app notifications to the notifications table."""

    def __init__(self, database: Database, clock: Clock = utc_now):
        self.database = database
        self._clock = clock

    async def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        landlord_id: str | None = None,
    ) -> UUID:
        """Create an unread notification and return its id."""
        notification = Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            meta=metadata or {},
            landlord_id=landlord_id,
            is_read=False,
            created_at=self._clock(),
        )

        async with self.database.session() as session:
            session.add(notification)
            await session.commit()

        logger.info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "user_id": user_id,
                "type": type,
            },
        )
        return notification.id

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
