"""Tests for the event bus: delivery, failure isolation, persistence and backlog replay."""

import asyncio

import pytest

from eventjobs.v1.infra.events.bus import EventBus
from eventjobs.v1.infra.events.schemas import (
    DocumentExpiredPayload,
    EventEnvelope,
    EventType,
    WebhookFailedPayload,
)


async def test_emit_delivers_to_every_listener_despite_failures(bus: EventBus):
    """A throwing listener never prevents delivery to the others."""
    received: list[str] = []

    async def first(event: EventEnvelope):
        received.append("first")

    def broken(event: EventEnvelope):
        received.append("broken")
        raise RuntimeError("listener exploded")

    async def broken_async(event: EventEnvelope):
        received.append("broken_async")
        raise ValueError("async listener exploded")

    def last(event: EventEnvelope):
        received.append("last")

    for listener in (first, broken, broken_async, last):
        bus.subscribe(EventType.DOCUMENT_EXPIRED, listener)

    delivered = await bus.emit(EventType.DOCUMENT_EXPIRED, {"document_id": "doc-1"})

    assert delivered is True
    assert received == ["first", "broken", "broken_async", "last"]


async def test_emit_passes_typed_envelope(bus: EventBus, clock):
    envelopes: list[EventEnvelope] = []
    bus.subscribe("webhook.failed", envelopes.append)

    await bus.emit(
        "webhook.failed", {"webhookId": "wh-9", "retryCount": 2}, landlord_id="ll-1"
    )

    assert len(envelopes) == 1
    envelope = envelopes[0]
    assert envelope.type == EventType.WEBHOOK_FAILED
    assert isinstance(envelope.data, WebhookFailedPayload)
    assert envelope.data.webhook_id == "wh-9"
    assert envelope.data.retry_count == 2
    assert envelope.timestamp == clock.now
    assert envelope.landlord_id == "ll-1"
    assert envelope.id is not None


async def test_emit_without_listeners_persists_and_returns_false(bus: EventBus, event_store):
    delivered = await bus.emit(EventType.DOCUMENT_EXPIRED, {"document_id": "doc-2"})

    assert delivered is False
    events, total = await event_store.list_events(event_type="document.expired")
    assert total == 1
    assert events[0].payload == {"document_id": "doc-2"}
    assert events[0].processed is True


async def test_emit_accepts_payload_model(bus: EventBus):
    seen = []
    bus.subscribe(EventType.DOCUMENT_EXPIRED, seen.append)

    await bus.emit(EventType.DOCUMENT_EXPIRED, DocumentExpiredPayload(document_id="d"))

    assert seen[0].data.document_id == "d"


async def test_emit_rejects_mismatched_payload_model(bus: EventBus):
    with pytest.raises(ValueError, match="does not match event type"):
        await bus.emit(EventType.WEBHOOK_FAILED, DocumentExpiredPayload(document_id="d"))


async def test_emit_rejects_invalid_payload(bus: EventBus, event_store):
    with pytest.raises(ValueError):
        await bus.emit(EventType.INVOICE_OVERDUE, {"invoice_id": "inv-1"})

    with pytest.raises(ValueError):
        await bus.emit("not.an.event", {})

    _, total = await event_store.list_events()
    assert total == 0


async def test_emit_without_persist_writes_nothing(bus: EventBus, event_store):
    seen = []
    bus.subscribe(EventType.DOCUMENT_EXPIRED, seen.append)

    await bus.emit(EventType.DOCUMENT_EXPIRED, {"document_id": "d"}, persist=False)

    assert len(seen) == 1
    assert seen[0].id is None
    _, total = await event_store.list_events()
    assert total == 0


async def test_process_backlog_redelivers_exactly_once(bus: EventBus, event_store, clock):
    """Events persisted but never flagged processed are replayed once."""
    await event_store.append("document.expired", {"document_id": "a"}, created_at=clock.now)
    clock.advance(seconds=1)
    await event_store.append("document.expired", {"document_id": "b"}, created_at=clock.now)

    seen: list[str] = []
    bus.subscribe(EventType.DOCUMENT_EXPIRED, lambda event: seen.append(event.data.document_id))

    assert await event_store.count_unprocessed() == 2
    assert await bus.process_backlog() == 2
    assert seen == ["a", "b"]
    assert await event_store.count_unprocessed() == 0

    assert await bus.process_backlog() == 0
    assert seen == ["a", "b"]


async def test_process_backlog_respects_limit(bus: EventBus, event_store, clock):
    for doc in ("a", "b", "c"):
        await event_store.append("document.expired", {"document_id": doc}, created_at=clock.now)
        clock.advance(seconds=1)

    assert await bus.process_backlog(limit=2) == 2
    assert await event_store.count_unprocessed() == 1


async def test_process_backlog_skips_unreplayable_rows(bus: EventBus, event_store, clock):
    """Rows that no longer validate are flagged processed instead of blocking the backlog."""
    await event_store.append("document.expired", {"unexpected": "shape"}, created_at=clock.now)
    await event_store.append("retired.event", {}, created_at=clock.now)

    assert await bus.process_backlog() == 0
    assert await event_store.count_unprocessed() == 0


async def test_mark_processed_only_once(event_store):
    event_id = await event_store.append("document.expired", {"document_id": "x"})

    assert await event_store.mark_processed(event_id) is True
    assert await event_store.mark_processed(event_id) is False


def _gated_listener(calls: list[str], gate: asyncio.Event):
    async def listener(event):
        calls.append(event.data.document_id)
        await gate.wait()

    return listener


async def _release_when_called(calls: list[str], gate: asyncio.Event) -> None:
    while not calls:
        await asyncio.sleep(0.01)
    gate.set()


async def test_backlog_skips_event_still_being_emitted(bus: EventBus, event_store, clock):
    """A live emit() owns its row until delivery finishes."""
    calls: list[str] = []
    gate = asyncio.Event()
    bus.subscribe(EventType.DOCUMENT_EXPIRED, _gated_listener(calls, gate))

    emitting = asyncio.create_task(bus.emit(EventType.DOCUMENT_EXPIRED, {"document_id": "d1"}))
    while not calls:
        await asyncio.sleep(0.01)

    # The row is persisted and unprocessed while the listener is blocked
    assert await event_store.count_unprocessed() == 1
    clock.advance(seconds=1)
    assert await bus.process_backlog() == 0

    gate.set()
    assert await emitting is True
    assert calls == ["d1"]
    assert await event_store.count_unprocessed() == 0


async def test_overlapping_backlog_runs_deliver_once(bus: EventBus, event_store, clock):
    await event_store.append("document.expired", {"document_id": "a"}, created_at=clock.now)
    calls: list[str] = []
    gate = asyncio.Event()
    bus.subscribe(EventType.DOCUMENT_EXPIRED, _gated_listener(calls, gate))

    first, second, _ = await asyncio.gather(
        bus.process_backlog(),
        bus.process_backlog(),
        _release_when_called(calls, gate),
    )

    assert sorted([first, second]) == [0, 1]
    assert calls == ["a"]


async def test_backlog_runs_on_separate_buses_deliver_once(event_store, clock):
    """Rows are claimed in the store, so two processes sharing it cannot both replay."""
    await event_store.append("document.expired", {"document_id": "a"}, created_at=clock.now)
    calls: list[str] = []
    gate = asyncio.Event()
    buses = [EventBus(event_store, clock=clock), EventBus(event_store, clock=clock)]
    for instance in buses:
        instance.subscribe(EventType.DOCUMENT_EXPIRED, _gated_listener(calls, gate))

    results = await asyncio.gather(
        buses[0].process_backlog(),
        buses[1].process_backlog(),
        _release_when_called(calls, gate),
    )

    assert sorted(results[:2]) == [0, 1]
    assert calls == ["a"]
