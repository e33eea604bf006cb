"""Event type definitions for the host event channel."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All events the extraction controller reports to its host."""

    FIELD_EXTRACTED = "FIELD_EXTRACTED"
    TEMPLATE_FIELD_BOUND = "TEMPLATE_FIELD_BOUND"
    BATCH_EXTRACTED = "BATCH_EXTRACTED"
    SELECTION_STARTED = "SELECTION_STARTED"
    SELECTION_STOPPED = "SELECTION_STOPPED"
    MODE_CHANGED = "MODE_CHANGED"
    HIGHLIGHTS_CLEARED = "HIGHLIGHTS_CLEARED"
    PAGE_LOADED = "PAGE_LOADED"


class Event(BaseModel):
    """An immutable event emitted by one workbench session.

    Events are append-only and cannot be modified after emission.
    """

    sequence: int = Field(description="Monotonic sequence number within the session")
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
