"""Workbench — glues the extraction controller to the record store.

Manual picks fill the in-progress item; template batches are saved as new
records. The workbench is what the HTTP routes drive.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from bs4 import Tag
from soupsieve import SelectorSyntaxError

from pagepick.browser.layer import ActionStatus, BrowserLayer
from pagepick.config.settings import PagePickConfig
from pagepick.dom.document import PageDocument
from pagepick.export.formats import ExportResult, export_records, render, resolve_format
from pagepick.extraction.models import RECORD_FIELD_BY_KIND, ExtractionMode, FieldKind, Record
from pagepick.selection.controller import ExtractionController, PageNotLoadedError
from pagepick.signals.emitter import EventEmitter
from pagepick.signals.types import Event, EventType
from pagepick.store.repository import RecordNotFoundError, RecordRepository, create_repository

logger = logging.getLogger(__name__)


class EmptyItemError(ValueError):
    """Raised when finishing an item that has no content."""


class ElementNotFoundError(LookupError):
    """Raised when a pointer event names an element that is not on the page."""


class Workbench:
    """One operator's extraction workspace: a page, a controller, a store."""

    def __init__(
        self,
        config: PagePickConfig | None = None,
        repository: RecordRepository | None = None,
        browser: BrowserLayer | None = None,
        session_id: str = "workbench",
    ) -> None:
        self.config = config or PagePickConfig()
        self.repository = repository or create_repository(self.config.store)
        self.browser = browser
        self.emitter = EventEmitter(session_id)
        self.controller = ExtractionController(self.emitter, self.config)
        self.current_item_id: int | None = None
        self.emitter.subscribe(self._on_event)

    async def _on_event(self, event: Event) -> None:
        if event.event_type is EventType.FIELD_EXTRACTED:
            self.store_field(
                FieldKind(event.payload["field_kind"]),
                event.payload["value"],
                event.payload.get("url", ""),
            )
        elif event.event_type is EventType.BATCH_EXTRACTED:
            for raw in event.payload.get("records", []):
                self.repository.create(Record.model_validate(raw))

    async def load_page(self, url: str, html: str | None = None) -> PageDocument:
        """Load ``html`` as the page at ``url``, or render ``url`` in the browser."""
        if html is not None:
            page = PageDocument.from_html(html, url=url)
        else:
            page = await self._render(url)
        await self.controller.load_page(page)
        return page

    async def _render(self, url: str) -> PageDocument:
        if self.browser is None:
            self.browser = BrowserLayer(self.config.browser)
        if not self.browser.is_started:
            await self.browser.start()
        result = await self.browser.navigate(url)
        if result.status is not ActionStatus.SUCCESS:
            raise PageNotLoadedError(result.detail)
        await self.browser.scroll_to_end()
        page = await self.browser.capture_page()
        if page is None:
            raise PageNotLoadedError(f"Could not capture {url}")
        return page

    async def close(self) -> None:
        if self.browser is not None:
            await self.browser.stop()

    def locate(self, path: list[int] | None = None, selector: str | None = None) -> Tag:
        """Resolve a pointer target by child-index path or CSS selector."""
        page = self.controller.page
        if page is None:
            raise PageNotLoadedError("No page is loaded")
        element: Tag | None = None
        if path is not None:
            element = page.element_at_path(path)
        elif selector:
            try:
                element = page.query_one(selector)
            except (SelectorSyntaxError, ValueError, NotImplementedError) as exc:
                raise ElementNotFoundError(f"Invalid selector {selector!r}: {exc}") from exc
        if element is None:
            raise ElementNotFoundError("No element matches the pointer target")
        return element

    async def new_item(self) -> Record:
        """Start a new manual item and make it the one picks are written into."""
        await self.controller.set_mode(ExtractionMode.MANUAL)
        record = self.repository.create()
        self.current_item_id = record.id
        return record

    def store_field(self, kind: FieldKind, value: str, url: str = "") -> Record:
        """Write a manual pick into the current item, the first empty one, or a new one."""
        attr = RECORD_FIELD_BY_KIND[kind]
        target = self._current_item()
        if target is None:
            target = next((record for record in self.repository.list() if record.is_empty), None)
        if target is None:
            record = self.repository.create({attr: value, "url": url})
        else:
            record = self.repository.update(target.id, {attr: value, "url": url or target.url})
        self.current_item_id = record.id
        logger.info("Stored %s on item %d", kind.value, record.id)
        return record

    def _current_item(self) -> Record | None:
        if self.current_item_id is None:
            return None
        try:
            return self.repository.get(self.current_item_id)
        except RecordNotFoundError:
            self.current_item_id = None
            return None

    def finish_item(self) -> Record:
        record = self._current_item()
        if record is None:
            raise EmptyItemError("No item in progress")
        if record.is_empty:
            raise EmptyItemError("Item has no content yet")
        self.current_item_id = None
        return record

    def verify_all(self) -> int:
        count = 0
        for record in self.repository.list():
            if not record.verified:
                self.repository.update(record.id, {"verified": True})
                count += 1
        return count

    async def clear_all(self) -> int:
        """Delete every record and take the engine's highlights off the page."""
        count = self.repository.clear()
        self.current_item_id = None
        if self.controller.page is not None:
            await self.controller.clear_highlights()
        return count

    def export_text(self, fmt: str = "json") -> str:
        return render(self.repository.list(), resolve_format(Path(f"export.{fmt}"), fmt))

    def export(self, path: Path, fmt: str | None = None) -> ExportResult:
        return export_records(self.repository.list(), path, fmt)

    def statistics(self) -> dict[str, Any]:
        return {
            **self.repository.statistics(),
            "mode": self.controller.mode.value,
            "page_url": self.controller.page.url if self.controller.page else None,
            "current_item_id": self.current_item_id,
        }
