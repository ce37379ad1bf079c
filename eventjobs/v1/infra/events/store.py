"""
Event store: append-only persistence for emitted events.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update

from eventjobs.infra.database import Database
from eventjobs.v1.core.timeutils import ensure_utc, utc_now
from eventjobs.v1.infra.events.models import Event

logger = logging.getLogger(__name__)


class EventStore:
    """Persistence for Event rows; only the processed flag is ever updated."""

    def __init__(self, database: Database):
        self.database = database

    async def append(
        self,
        event_type: str,
        payload: dict[str, Any],
        user_id: str | None = None,
        landlord_id: str | None = None,
        created_at: datetime | None = None,
        event_id: UUID | None = None,
    ) -> UUID:
        """Insert a new unprocessed event and return its id."""
        event = Event(
            id=event_id or uuid4(),
            type=event_type,
            payload=payload,
            processed=False,
            user_id=user_id,
            landlord_id=landlord_id,
            created_at=ensure_utc(created_at) if created_at else utc_now(),
        )

        async with self.database.session() as session:
            session.add(event)
            await session.commit()

        return event.id

    async def mark_processed(self, event_id: UUID) -> bool:
        """Flag an event as delivered. Returns False if it was already flagged."""
        async with self.database.session() as session:
            result = await session.execute(
                update(Event)
                .where(Event.id == event_id, Event.processed.is_(False))
                .values(processed=True)
            )
            await session.commit()

        return result.rowcount > 0

    async def list_unprocessed(
        self, limit: int, created_before: datetime | None = None
    ) -> list[Event]:
        """Oldest-first batch of events still awaiting delivery."""
        query = select(Event).where(Event.processed.is_(False))
        if created_before is not None:
            query = query.where(Event.created_at <= created_before)
        query = query.order_by(Event.created_at, Event.id).limit(limit)

        async with self.database.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_unprocessed(self) -> int:
        async with self.database.session() as session:
            result = await session.execute(
                select(func.count(Event.id)).where(Event.processed.is_(False))
            )
            return result.scalar() or 0

    async def get(self, event_id: UUID) -> Event | None:
        async with self.database.session() as session:
            return await session.get(Event, event_id)

    async def list_events(
        self,
        event_type: str | None = None,
        processed: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        """Newest-first page of events with the total matching count."""
        base_query = select(Event)
        if event_type:
            base_query = base_query.where(Event.type == event_type)
        if processed is not None:
            base_query = base_query.where(Event.processed.is_(processed))

        async with self.database.session() as session:
            total_result = await session.execute(
                select(func.count()).select_from(base_query.subquery())
            )
            total = total_result.scalar() or 0

            result = await session.execute(
                base_query.order_by(Event.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), total
