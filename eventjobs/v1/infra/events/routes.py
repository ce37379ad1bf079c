"""
Event API endpoints: emit, browse the event store, replay the backlog.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query

from eventjobs.v1.core.context import AppContext, ContextDep
from eventjobs.v1.core.exceptions import (
    NotFoundError,
    ValidationError,
    create_success_response,
)
from eventjobs.v1.infra.events.schemas import (
    BacklogResponse,
    EventEmitRequest,
    EventEmitResponse,
    EventListResponse,
    EventResponse,
    EventType,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=dict)
async def emit_event(
    request: EventEmitRequest, context: AppContext = ContextDep
) -> dict[str, Any]:
    """Emit an event: persist it and deliver it to listeners."""

    try:
        delivered = await context.event_bus.emit(
            request.type,
            request.payload,
            user_id=request.user_id,
            landlord_id=request.landlord_id,
        )
    except ValueError as e:
        raise ValidationError(str(e), details={"type": request.type.value})

    logger.info(
        "Event emitted via API",
        extra={"event_type": request.type.value, "delivered": delivered},
    )

    response = EventEmitResponse(
        type=request.type,
        delivered=delivered,
        listener_count=context.event_bus.listener_count(request.type),
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_events(
    type: EventType | None = Query(default=None, description="Filter by event type"),
    processed: bool | None = Query(default=None, description="Filter by processed flag"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    context: AppContext = ContextDep,
) -> dict[str, Any]:
    """List stored events, newest first."""

    events, total = await context.event_store.list_events(
        event_type=type.value if type else None,
        processed=processed,
        limit=limit,
        offset=offset,
    )

    response = EventListResponse(
        events=[EventResponse.model_validate(event) for event in events],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.post("/backlog/process", response_model=dict)
async def process_backlog(
    limit: int | None = Query(default=None, ge=1, le=1000, description="Batch size"),
    context: AppContext = ContextDep,
) -> dict[str, Any]:
    """Redeliver events that were persisted but never flagged processed."""

    delivered = await context.event_bus.process_backlog(limit)
    remaining = await context.event_store.count_unprocessed()

    logger.info(
        "Event backlog processed via API",
        extra={"delivered": delivered, "remaining": remaining},
    )

    response = BacklogResponse(delivered=delivered, remaining=remaining)
    return create_success_response(data=response.model_dump())


@router.get("/{event_id}", response_model=dict)
async def get_event(event_id: UUID, context: AppContext = ContextDep) -> dict[str, Any]:
    """Get a stored event by ID."""

    event = await context.event_store.get(event_id)
    if not event:
        raise NotFoundError("Event not found", details={"event_id": str(event_id)})

    return create_success_response(
        data=EventResponse.model_validate(event).model_dump(mode="json")
    )
