"""
In-process event bus with persistent audit trail and backlog replay.

emit() persists the event, then delivers it synchronously to every listener
subscribed to its tag, then flags the row processed. A failing listener is
logged and never affects its siblings or the emitter. Events whose delivery
was interrupted (process crash between persist and flag) stay unprocessed and
are redelivered exactly once by process_backlog(), which claims each row
before handing it to listeners.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from uuid import UUID, uuid4

from eventjobs.config.logging import get_logger
from eventjobs.v1.core.timeutils import Clock, ensure_utc, utc_now
from eventjobs.v1.infra.events.schemas import (
    EventEnvelope,
    EventPayload,
    EventType,
    parse_event_payload,
)
from eventjobs.v1.infra.events.store import EventStore

logger = get_logger(__name__)

EventListener = Callable[[EventEnvelope], Awaitable[None] | None]


class EventBus:
    """Publish/subscribe hub; one instance per process, passed via the app context."""

    def __init__(
        self,
        store: EventStore,
        backlog_batch_size: int = 100,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.backlog_batch_size = backlog_batch_size
        self._clock = clock
        self._listeners: dict[EventType, list[EventListener]] = defaultdict(list)
        self._in_flight: set[UUID] = set()
        self._backlog_lock = asyncio.Lock()

    def subscribe(self, event_type: EventType | str, listener: EventListener) -> None:
        """Register a sync or async listener for an event tag."""
        event_type = EventType(event_type)
        self._listeners[event_type].append(listener)
        logger.debug(
            "Listener subscribed",
            event_type=event_type.value,
            listener=getattr(listener, "__qualname__", repr(listener)),
        )

    def listener_count(self, event_type: EventType | str) -> int:
        return len(self._listeners.get(EventType(event_type), ()))

    async def emit(
        self,
        event_type: EventType | str,
        payload: EventPayload | dict,
        persist: bool = True,
        *,
        user_id: str | None = None,
        landlord_id: str | None = None,
    ) -> bool:
        """
        Persist an event and deliver it to all listeners for its tag.

        Args:
            event_type: Event tag
            payload: Typed payload model, or a mapping validated into it
            persist: Write an Event row first. Only backlog replay passes False.
            user_id: Optional user routing field for the envelope
            landlord_id: Optional landlord routing field for the envelope

        Returns:
            True if at least one listener was registered for the tag

        Raises:
            ValueError: unknown tag or invalid payload
        """
        event_type, data = parse_event_payload(event_type, payload)
        timestamp = self._clock()

        event_id = None
        if persist:
            event_id = uuid4()
            # Registered before the row exists so a concurrent backlog run skips it
            self._in_flight.add(event_id)
            try:
                await self.store.append(
                    event_type.value,
                    data.model_dump(mode="json"),
                    user_id=user_id,
                    landlord_id=landlord_id,
                    created_at=timestamp,
                    event_id=event_id,
                )
            except Exception:
                logger.exception(
                    "Failed to persist event, delivering anyway",
                    event_type=event_type.value,
                )
                self._in_flight.discard(event_id)
                event_id = None

        envelope = EventEnvelope(
            id=event_id,
            type=event_type,
            data=data,
            timestamp=timestamp,
            user_id=user_id,
            landlord_id=landlord_id,
        )
        try:
            delivered = await self._deliver(envelope)
        finally:
            if event_id is not None:
                await self._mark_processed(event_id)
                self._in_flight.discard(event_id)

        return delivered

    async def process_backlog(self, limit: int | None = None) -> int:
        """
        Redeliver persisted events that were never flagged processed.

        Runs are serialised within the process. Each row is claimed by flipping
        its processed flag before delivery, so a row claimed by another
        instance, or still being delivered by a live emit(), is skipped.

        Returns:
            Number of events redelivered to listeners
        """
        async with self._backlog_lock:
            return await self._replay_backlog(limit or self.backlog_batch_size)

    async def _replay_backlog(self, batch_size: int) -> int:
        # Events emitted after this point belong to live emit() calls.
        cutoff = self._clock()
        events = await self.store.list_unprocessed(batch_size, created_before=cutoff)

        if not events:
            logger.debug("Event backlog empty")
            return 0

        logger.info("Processing event backlog", event_count=len(events))

        redelivered = 0
        skipped = 0
        for event in events:
            if event.id in self._in_flight or not await self.store.mark_processed(event.id):
                logger.debug("Backlog event already claimed", event_id=str(event.id))
                skipped += 1
                continue

            try:
                event_type, data = parse_event_payload(event.type, event.payload)
            except ValueError:
                logger.exception(
                    "Dropping unreplayable event from backlog",
                    event_id=str(event.id),
                    event_type=event.type,
                )
                skipped += 1
                continue

            envelope = EventEnvelope(
                id=event.id,
                type=event_type,
                data=data,
                timestamp=ensure_utc(event.created_at),
                user_id=event.user_id,
                landlord_id=event.landlord_id,
            )
            await self._deliver(envelope)
            redelivered += 1

        logger.info("Event backlog processed", redelivered=redelivered, skipped=skipped)
        return redelivered


    async def _deliver(self, envelope: EventEnvelope) -> bool:
        """Invoke every listener for the envelope's tag, isolating failures."""
        listeners = list(self._listeners.get(envelope.type, ()))
        if not listeners:
            logger.info("No listeners for event", event_type=envelope.type.value)
            return False

        for listener in listeners:
            try:
                result = listener(envelope)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Event listener failed",
                    event_type=envelope.type.value,
                    event_id=str(envelope.id) if envelope.id else None,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                )

        logger.info(
            "Event delivered",
            event_type=envelope.type.value,
            event_id=str(envelope.id) if envelope.id else None,
            listener_count=len(listeners),
        )
        return True

    async def _mark_processed(self, event_id: UUID) -> None:
        try:
            await self.store.mark_processed(event_id)
        except Exception:
            logger.exception("Failed to mark event processed", event_id=str(event_id))
