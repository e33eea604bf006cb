"""Extraction controller — the host command channel for one embedded page.

Owns the loaded page, its selection session, the current extraction mode,
and the template bindings made on that page. Every outcome is reported
through the ``EventEmitter``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from bs4 import Tag
from pydantic import ValidationError

from pagepick.config.settings import PagePickConfig
from pagepick.dom.document import PageDocument
from pagepick.dom.highlights import HighlightRegistry
from pagepick.extraction.models import (
    RECORD_FIELD_BY_KIND,
    BatchExtractedPayload,
    ExtractedCandidate,
    ExtractionMode,
    FieldExtractedPayload,
    FieldKind,
    Record,
    TemplateBinding,
    TemplateFieldBoundPayload,
    is_duplicate,
)
from pagepick.extraction.replicator import TemplateReplicator, template_record
from pagepick.selection.session import ClickOutcome, SelectionError, SelectionSession
from pagepick.signals.emitter import EventEmitter
from pagepick.signals.types import EventType
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class PageNotLoadedError(RuntimeError):
    """Raised when a command needs a page and none is loaded."""


class RecordSource(Protocol):
    """An opaque extractor (e.g. an AI service) that returns raw record dicts."""

    async def extract(self, page: PageDocument) -> list[dict[str, Any]]: ...


class ExtractionController:
    """Routes host commands and pointer events to the extraction engine."""

    def __init__(
        self,
        emitter: EventEmitter,
        config: PagePickConfig | None = None,
    ) -> None:
        self.emitter = emitter
        self.config = config or PagePickConfig()
        self.mode = ExtractionMode.MANUAL
        self.registry = HighlightRegistry()
        self.replicator = TemplateReplicator(self.config, self.registry)
        self._page: PageDocument | None = None
        self._session: SelectionSession | None = None
        self._bindings: dict[FieldKind, TemplateBinding] = {}
        self._history: list[Record] = []

    @property
    def page(self) -> PageDocument | None:
        return self._page

    @property
    def session(self) -> SelectionSession | None:
        return self._session

    @property
    def bindings(self) -> list[TemplateBinding]:
        return list(self._bindings.values())

    @property
    def history(self) -> list[Record]:
        return list(self._history)

    def _require_page(self) -> tuple[PageDocument, SelectionSession]:
        if self._page is None or self._session is None:
            raise PageNotLoadedError("No page is loaded")
        return self._page, self._session

    async def load_page(self, page: PageDocument) -> None:
        """Replace the current page; bindings and highlights do not carry over."""
        if self._session is not None:
            self._session.detach()
        if self._page is not None:
            self._page.close()
        self.registry = HighlightRegistry()
        self.replicator.registry = self.registry
        self._bindings.clear()
        self._history.clear()
        self._page = page
        self._session = SelectionSession(page, self.registry, self.config.selection)
        self._session.attach()
        await self.emitter.emit(EventType.PAGE_LOADED, {"url": page.url})

    async def start_selection(self, field_kind: FieldKind | str) -> FieldKind:
        _, session = self._require_page()
        session.start(field_kind)
        kind = session.field_kind
        await self.emitter.emit(
            EventType.SELECTION_STARTED, {"field_kind": kind.value, "mode": self.mode.value}
        )
        return kind

    async def stop_selection(self) -> None:
        _, session = self._require_page()
        was_selecting = session.is_selecting
        session.stop()
        if was_selecting:
            await self.emitter.emit(EventType.SELECTION_STOPPED, {"reason": "cancelled"})

    async def set_mode(self, mode: ExtractionMode | str) -> ExtractionMode:
        try:
            new_mode = ExtractionMode(mode)
        except ValueError as exc:
            raise SelectionError(f"Unknown extraction mode: {mode!r}") from exc
        if new_mode is not self.mode:
            self.mode = new_mode
            await self.emitter.emit(EventType.MODE_CHANGED, {"mode": new_mode.value})
        return new_mode

    async def clear_highlights(self) -> int:
        """Undo every engine mutation and forget template bindings and extraction history."""
        _, session = self._require_page()
        if session.is_selecting:
            await self.stop_selection()
        restored = self.registry.restore_all()
        self._bindings.clear()
        self._history.clear()
        await self.emitter.emit(EventType.HIGHLIGHTS_CLEARED, {"restored": restored})
        return restored

    async def find_similar(self) -> list[Record]:
        """Replicate the template over sibling containers and report the batch."""
        page, _ = self._require_page()
        if self.mode is not ExtractionMode.TEMPLATE:
            logger.info("find_similar ignored outside template mode")
            return []
        if not self._bindings:
            logger.info("find_similar called with no template bindings")
            return []

        records = self.replicator.find_similar(self.bindings, page, self._history)
        if records:
            self._history.append(template_record(self.bindings, page.url))
            self._history.extend(records)
        await self.emitter.emit(EventType.BATCH_EXTRACTED, BatchExtractedPayload(records=records))
        return records

    async def hover(self, element: Tag) -> bool:
        _, session = self._require_page()
        return session.hover(element)

    async def hover_out(self, element: Tag) -> None:
        _, session = self._require_page()
        session.hover_out(element)

    async def click(self, element: Tag) -> ClickOutcome:
        page, session = self._require_page()
        outcome = session.click(element)
        if outcome.candidate is None:
            return outcome

        await self.emitter.emit(EventType.SELECTION_STOPPED, {"reason": "extracted"})
        if self.mode is ExtractionMode.TEMPLATE:
            await self._bind(outcome.candidate)
        else:
            await self._report_field(outcome.candidate, page)
        return outcome

    async def _bind(self, candidate: ExtractedCandidate) -> None:
        self._bindings[candidate.field_kind] = TemplateBinding(
            field_kind=candidate.field_kind,
            element=candidate.source,
            selector=candidate.selector,
            last_value=candidate.raw_value,
        )
        await self.emitter.emit(
            EventType.TEMPLATE_FIELD_BOUND,
            TemplateFieldBoundPayload(
                field_kind=candidate.field_kind,
                value=candidate.raw_value,
                selector=candidate.selector,
            ),
        )

    async def _report_field(self, candidate: ExtractedCandidate, page: PageDocument) -> None:
        self._history.append(
            Record(url=page.url, **{RECORD_FIELD_BY_KIND[candidate.field_kind]: candidate.raw_value})
        )
        await self.emitter.emit(
            EventType.FIELD_EXTRACTED,
            FieldExtractedPayload(
                field_kind=candidate.field_kind,
                value=candidate.raw_value,
                url=page.url,
                timestamp=datetime.now(timezone.utc),
            ),
        )

    async def ingest_external(self, source: RecordSource) -> list[Record]:
        """Run an opaque extractor and report its output like a replicator batch."""
        page, _ = self._require_page()
        try:
            raw_records = await source.extract(page)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.EXTERNAL_SOURCE_FAILED,
                message=str(exc),
                suppressed=False,
                page_url=page.url,
            )
            raise

        generated_at = datetime.now(timezone.utc)
        records: list[Record] = []
        for raw in raw_records:
            try:
                draft = Record.model_validate(
                    {"url": page.url, **raw, "id": None, "verified": False, "created_at": generated_at}
                )
            except ValidationError as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.EXTERNAL_SOURCE_FAILED,
                    message="Discarding malformed external record",
                    suppressed=True,
                    page_url=page.url,
                    details={"errors": exc.errors(include_url=False)},
                )
                continue
            if draft.is_empty:
                continue
            if any(is_duplicate(draft, existing) for existing in (*self._history, *records)):
                continue
            records.append(draft)

        self._history.extend(records)
        await self.emitter.emit(EventType.BATCH_EXTRACTED, BatchExtractedPayload(records=records))
        return records
