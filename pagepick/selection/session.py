"""Selection session — pick one field by hovering and clicking on the page.

Single-shot: ``start(kind)`` arms the session, the next click produces one
``ExtractedCandidate`` and the session returns to IDLE.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from bs4 import Tag

from pagepick.config.settings import SelectionConfig
from pagepick.dom.document import ENGINE_STYLESHEET_ID, ElementRef, PageDocument
from pagepick.dom.highlights import (
    ENGINE_STYLESHEET,
    HOVER_CLASS,
    OVERLAY_CLASS,
    OVERLAY_ID,
    SELECTED_CLASS,
    SELECTING_BODY_CLASS,
    HighlightRegistry,
)
from pagepick.extraction.models import ExtractedCandidate, FieldKind
from pagepick.extraction.selectors import generate_selector
from pagepick.extraction.values import extract_value
from pagepick.selection.states import SelectionState, can_transition

logger = logging.getLogger(__name__)


class SelectionError(Exception):
    """Raised for commands the session cannot honour."""


@dataclass
class ClickOutcome:
    """What the host must do with a click it forwarded to the session."""

    prevent_default: bool
    candidate: ExtractedCandidate | None = None


def parse_field_kind(value: FieldKind | str) -> FieldKind:
    try:
        return FieldKind(value)
    except ValueError as exc:
        raise SelectionError(f"Unknown field kind: {value!r}") from exc


class SelectionSession:
    """Hover/click state machine bound to one loaded page."""

    def __init__(
        self,
        page: PageDocument,
        registry: HighlightRegistry | None = None,
        config: SelectionConfig | None = None,
    ) -> None:
        self.page = page
        self.registry = registry or HighlightRegistry()
        self.config = config or SelectionConfig()
        self.state = SelectionState.IDLE
        self.field_kind: FieldKind | None = None
        self.attached = False
        self._stylesheet: Tag | None = None
        self._hover: ElementRef | None = None
        self._hint: Tag | None = None
        self._hint_handle: asyncio.TimerHandle | None = None

    @property
    def is_selecting(self) -> bool:
        return self.state is SelectionState.SELECTING

    @property
    def hint_visible(self) -> bool:
        return self._hint is not None

    def _transition(self, target: SelectionState) -> None:
        if not can_transition(self.state, target):
            raise SelectionError(f"Invalid transition: {self.state.value} -> {target.value}")
        logger.debug("Selection %s -> %s", self.state.value, target.value)
        self.state = target

    def attach(self) -> None:
        """Install the engine stylesheet; safe to call repeatedly."""
        if self.attached:
            return
        style = self.page.soup.new_tag("style", id=ENGINE_STYLESHEET_ID)
        style.string = ENGINE_STYLESHEET
        self.page.head.append(style)
        self._stylesheet = style
        self.attached = True

    def detach(self) -> None:
        if not self.attached:
            return
        self.stop()
        if self._stylesheet is not None:
            self._stylesheet.decompose()
            self._stylesheet = None
        self.attached = False

    def start(self, field_kind: FieldKind | str) -> None:
        kind = parse_field_kind(field_kind)
        self.attach()
        if self.is_selecting:
            self.stop()
        self._transition(SelectionState.SELECTING)
        self.field_kind = kind
        self.registry.add_class(self.page.body, SELECTING_BODY_CLASS)
        self._show_hint(kind)
        logger.info("Selecting %s on %s", kind.value, self.page.url or "<page>")

    def stop(self) -> None:
        """Back to IDLE. Permanent highlights stay on the page."""
        self._clear_hover()
        self._hide_hint()
        self.registry.remove_class(self.page.body, SELECTING_BODY_CLASS)
        if self.is_selecting:
            self._transition(SelectionState.IDLE)
        self.field_kind = None

    def hover(self, element: Tag) -> bool:
        """Highlight ``element`` as the click target; returns whether it was highlighted."""
        if not self.is_selecting or self.page.is_page_root(element):
            return False
        if self._hover is not None and self._hover.refers_to(element):
            return True
        self._clear_hover()
        self.registry.add_class(element, HOVER_CLASS)
        self.registry.apply_style(element, self.config.hover_style)
        self._hover = self.page.ref(element)
        return True

    def hover_out(self, element: Tag) -> None:
        if self._hover is not None and self._hover.refers_to(element):
            self._clear_hover()

    def click(self, element: Tag) -> ClickOutcome:
        if not self.is_selecting or self.field_kind is None:
            return ClickOutcome(prevent_default=False)

        kind = self.field_kind
        self._clear_hover()
        self._hide_hint()
        value = extract_value(element, kind, page=self.page)
        selector = generate_selector(element)
        self.registry.add_class(element, SELECTED_CLASS)
        candidate = ExtractedCandidate(
            field_kind=kind,
            raw_value=value,
            source=self.page.ref(element),
            selector=selector,
        )
        self.stop()
        logger.info("Extracted %s via %s", kind.value, selector)
        return ClickOutcome(prevent_default=True, candidate=candidate)

    def _clear_hover(self) -> None:
        if self._hover is None:
            return
        element = self._hover.resolve()
        self._hover = None
        if element is not None:
            self.registry.remove_class(element, HOVER_CLASS)
            self.registry.reset_style(element)

    def _show_hint(self, kind: FieldKind) -> None:
        self._hide_hint()
        node = self.page.soup.new_tag("div", id=OVERLAY_ID, attrs={"class": OVERLAY_CLASS})
        node.string = f"Click on an element to extract its {kind.value}"
        self._hint = self.registry.insert(self.page.body, node)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; selection hint stays until stop()")
            return
        self._hint_handle = loop.call_later(self.config.hint_duration_s, self._hide_hint)

    def _hide_hint(self) -> None:
        if self._hint_handle is not None:
            self._hint_handle.cancel()
            self._hint_handle = None
        hint = self._hint
        self._hint = None
        if hint is not None and not hint.decomposed:
            self.registry.remove_inserted(hint)
