"""Tests for the event emitter."""

import logging

import pytest

from pagepick.extraction.models import FieldKind, TemplateFieldBoundPayload
from pagepick.signals.emitter import EventEmitter
from pagepick.signals.types import EventType


@pytest.fixture
def tmp_ledger(tmp_path):
    return tmp_path / "session" / "events.jsonl"


@pytest.fixture
def emitter(tmp_ledger):
    return EventEmitter(session_id="session_001", ledger_path=tmp_ledger)


class TestEventEmitter:
    """Test event emission, persistence, and broadcasting."""

    @pytest.mark.asyncio
    async def test_emit_creates_event(self, emitter):
        event = await emitter.emit(EventType.MODE_CHANGED, {"mode": "template"})
        assert event.sequence == 1
        assert event.event_type == EventType.MODE_CHANGED
        assert event.session_id == "session_001"
        assert event.payload["mode"] == "template"

    @pytest.mark.asyncio
    async def test_monotonic_sequence(self, emitter):
        e1 = await emitter.emit(EventType.SELECTION_STARTED)
        e2 = await emitter.emit(EventType.SELECTION_STOPPED)
        e3 = await emitter.emit(EventType.HIGHLIGHTS_CLEARED)
        assert [e1.sequence, e2.sequence, e3.sequence] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_events_are_immutable(self, emitter):
        event = await emitter.emit(EventType.MODE_CHANGED, {"mode": "manual"})
        with pytest.raises(Exception):
            event.payload = {"modified": True}

    @pytest.mark.asyncio
    async def test_model_payloads_are_dumped(self, emitter):
        payload = TemplateFieldBoundPayload(field_kind=FieldKind.PRICE, value="$3", selector="span.p")
        event = await emitter.emit(EventType.TEMPLATE_FIELD_BOUND, payload)
        assert event.payload == {"field_kind": "price", "value": "$3", "selector": "span.p"}

    @pytest.mark.asyncio
    async def test_events_persisted_to_ledger(self, emitter, tmp_ledger):
        await emitter.emit(EventType.SELECTION_STARTED, {"field_kind": "title"})
        await emitter.emit(EventType.BATCH_EXTRACTED, {"records": []})

        loaded = EventEmitter.load_ledger(tmp_ledger)
        assert [e.event_type for e in loaded] == [
            EventType.SELECTION_STARTED,
            EventType.BATCH_EXTRACTED,
        ]

    @pytest.mark.asyncio
    async def test_no_ledger_without_path(self, tmp_path):
        emitter = EventEmitter(session_id="memory_only")
        await emitter.emit(EventType.MODE_CHANGED)
        assert list(tmp_path.iterdir()) == []
        assert len(emitter.events) == 1

    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self, emitter):
        received = []

        def on_event(event):
            received.append(("sync", event.sequence))

        async def on_event_async(event):
            received.append(("async", event.sequence))

        emitter.subscribe(on_event)
        emitter.subscribe(on_event_async)
        await emitter.emit(EventType.MODE_CHANGED)

        assert received == [("sync", 1), ("async", 1)]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, emitter):
        received = []
        callback = received.append
        emitter.subscribe(callback)
        emitter.unsubscribe(callback)
        await emitter.emit(EventType.MODE_CHANGED)
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, emitter, caplog):
        received = []

        def broken(_event):
            raise RuntimeError("subscriber down")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)

        with caplog.at_level(logging.WARNING):
            await emitter.emit(EventType.MODE_CHANGED)

        assert len(received) == 1
        failures = [r for r in caplog.records if getattr(r, "error_code", None) == "EVENT_SUBSCRIBER_FAILURE"]
        assert len(failures) == 1
        assert failures[0].suppressed is True
