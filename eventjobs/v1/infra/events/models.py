"""
Event store models.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, TIMESTAMP, Boolean, Index, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from eventjobs.infra.database import Base


class Event(Base):
    """
    Append-only record of an emitted domain event.

    Rows are written before delivery and flagged ``processed`` once the bus
    has attempted delivery to every listener. Unprocessed rows form the
    backlog replayed on startup.
    """

    __tablename__ = "events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(Text, nullable=False, comment="Event type tag")
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Typed payload for the tag"
    )
    processed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Delivery attempted to every listener",
    )
    user_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Acting or target user"
    )
    landlord_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Owning landlord scope"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_events_processed_created_at", "processed", "created_at"),
        Index("ix_events_type_created_at", "type", "created_at"),
    )
