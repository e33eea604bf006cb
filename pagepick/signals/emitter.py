"""Event emitter — the host event channel.

Handles emission, optional persistence, and streaming of events to the
host UI (WebSocket clients, the workbench, tests).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel

from pagepick.signals.types import Event, EventType
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class EventEmitter:
    """Emits, persists, and broadcasts events for a single session.

    Events are:
    - Immutable once emitted
    - Assigned monotonic sequence numbers
    - Appended to a JSONL ledger when a ledger path is given
    - Delivered to subscribers in subscription order
    """

    def __init__(self, session_id: str, ledger_path: Path | None = None) -> None:
        self._session_id = session_id
        self._sequence = 0
        self._ledger_path = ledger_path
        self._subscribers: list[Callable[[Event], Any]] = []
        self._events: list[Event] = []
        self._lock = asyncio.Lock()

        if self._ledger_path:
            self._ledger_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def events(self) -> list[Event]:
        """Return all emitted events (read-only copy)."""
        return list(self._events)

    def subscribe(self, callback: Callable[[Event], Any]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Event], Any]) -> None:
        self._subscribers = [s for s in self._subscribers if s is not callback]

    async def emit(
        self,
        event_type: EventType,
        payload: BaseModel | dict[str, Any] | None = None,
    ) -> Event:
        """Emit an event. Pydantic payloads are dumped in JSON mode."""
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")

        async with self._lock:
            self._sequence += 1
            event = Event(
                sequence=self._sequence,
                event_type=event_type,
                timestamp=datetime.now(timezone.utc),
                session_id=self._session_id,
                payload=payload or {},
            )
            self._events.append(event)

        if self._ledger_path:
            self._persist(event)

        await self._broadcast(event)
        return event

    def _persist(self, event: Event) -> None:
        with open(self._ledger_path, "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")

    async def _broadcast(self, event: Event) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                # A failing subscriber must not stop delivery to the others.
                emit_structured_error(
                    logger,
                    code=ErrorCode.EVENT_SUBSCRIBER_FAILURE,
                    message=str(exc),
                    suppressed=True,
                    details={"event_type": event.event_type.value, "sequence": event.sequence},
                )

    @staticmethod
    def load_ledger(ledger_path: Path) -> list[Event]:
        """Load all events from a JSONL ledger file."""
        events = []
        if ledger_path.exists():
            with open(ledger_path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        events.append(Event.model_validate_json(line))
        return events
