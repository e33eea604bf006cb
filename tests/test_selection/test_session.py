"""Tests for the hover/click selection session."""

from __future__ import annotations

import asyncio

import pytest

from pagepick.config.settings import SelectionConfig
from pagepick.dom.document import ENGINE_STYLESHEET_ID, PageDocument
from pagepick.dom.highlights import (
    HOVER_CLASS,
    OVERLAY_ID,
    SELECTED_CLASS,
    SELECTING_BODY_CLASS,
    HighlightRegistry,
    is_engine_class,
)
from pagepick.extraction.models import FieldKind
from pagepick.selection.session import SelectionError, SelectionSession
from pagepick.selection.states import SelectionState

HTML = (
    "<html><head></head><body>"
    '<div id="card"><img id="pic" src="https://x/a.jpg"><a id="name" alt="Foo">Bar</a>'
    '<span id="cost" style="color: red">Now $12.50 only</span></div>'
    '<div id="plain">text</div>'
    "</body></html>"
)


@pytest.fixture
def page():
    return PageDocument.from_html(HTML, url="https://x/")


@pytest.fixture
def session(page):
    return SelectionSession(page, HighlightRegistry())


def _classes(tag) -> list[str]:
    return list(tag.get("class", []))


class TestLifecycle:
    def test_start_marks_body_and_shows_hint(self, page, session):
        session.start(FieldKind.TITLE)
        assert session.state is SelectionState.SELECTING
        assert session.field_kind is FieldKind.TITLE
        assert SELECTING_BODY_CLASS in _classes(page.body)
        hint = page.find_by_id(OVERLAY_ID)
        assert hint is not None
        assert "title" in hint.get_text()

    def test_attach_is_idempotent(self, page, session):
        session.attach()
        session.start("price")
        session.start("image")
        assert len(page.soup.find_all("style", id=ENGINE_STYLESHEET_ID)) == 1
        assert session.attached

    def test_detach_removes_stylesheet(self, page, session):
        session.start("price")
        session.detach()
        assert page.soup.find("style", id=ENGINE_STYLESHEET_ID) is None
        assert not session.attached
        assert session.state is SelectionState.IDLE

    def test_start_while_selecting_restarts(self, page, session):
        session.start("title")
        session.start("price")
        assert session.field_kind is FieldKind.PRICE
        assert len(page.soup.find_all(id=OVERLAY_ID)) == 1

    def test_unknown_field_kind_rejected(self, session):
        with pytest.raises(SelectionError):
            session.start("colour")
        assert session.state is SelectionState.IDLE

    def test_stop_clears_transient_state(self, page, session):
        session.start("title")
        session.hover(page.find_by_id("plain"))
        session.stop()
        assert session.state is SelectionState.IDLE
        assert page.find_by_id(OVERLAY_ID) is None
        assert SELECTING_BODY_CLASS not in _classes(page.body)
        assert HOVER_CLASS not in _classes(page.find_by_id("plain"))

    def test_stop_when_idle_is_a_no_op(self, session):
        session.stop()
        assert session.state is SelectionState.IDLE


class TestHover:
    def test_hover_highlights_and_moves(self, page, session):
        session.start("title")
        cost, plain = page.find_by_id("cost"), page.find_by_id("plain")

        assert session.hover(cost)
        assert HOVER_CLASS in _classes(cost)
        assert "outline" in cost["style"]

        session.hover(plain)
        assert HOVER_CLASS not in _classes(cost)
        assert cost["style"] == "color: red"
        assert HOVER_CLASS in _classes(plain)

    def test_hover_out_restores(self, page, session):
        session.start("title")
        plain = page.find_by_id("plain")
        session.hover(plain)
        session.hover_out(plain)
        assert "class" not in plain.attrs
        assert "style" not in plain.attrs

    def test_never_highlights_page_root(self, page, session):
        session.start("title")
        assert not session.hover(page.body)
        assert not session.hover(page.root)
        assert HOVER_CLASS not in _classes(page.body)

    def test_hover_ignored_when_idle(self, page, session):
        assert not session.hover(page.find_by_id("plain"))
        assert "class" not in page.find_by_id("plain").attrs


class TestClick:
    def test_click_image(self, page, session):
        session.start("image")
        outcome = session.click(page.find_by_id("pic"))
        assert outcome.prevent_default
        assert outcome.candidate.raw_value == "https://x/a.jpg"
        assert outcome.candidate.selector == "#pic"
        assert outcome.candidate.source.refers_to(page.find_by_id("pic"))

    def test_click_div_without_image(self, page, session):
        session.start("image")
        outcome = session.click(page.find_by_id("plain"))
        assert outcome.candidate.raw_value == ""

    def test_click_title_prefers_alt(self, page, session):
        session.start("title")
        outcome = session.click(page.find_by_id("name"))
        assert outcome.candidate.raw_value == "Foo"

    def test_click_is_single_shot(self, page, session):
        session.start("price")
        cost = page.find_by_id("cost")
        session.hover(cost)
        outcome = session.click(cost)

        assert outcome.candidate.raw_value == "$12.50"
        assert session.state is SelectionState.IDLE
        assert SELECTED_CLASS in _classes(cost)
        assert HOVER_CLASS not in _classes(cost)
        assert page.find_by_id(OVERLAY_ID) is None

        second = session.click(page.find_by_id("plain"))
        assert not second.prevent_default
        assert second.candidate is None

    def test_click_on_body_leaves_hint_text_out(self, page, session):
        session.start("description")
        assert session.hint_visible

        outcome = session.click(page.body)

        assert "Click on an element" not in outcome.candidate.raw_value
        assert outcome.candidate.raw_value.startswith("Bar")
        assert page.find_by_id(OVERLAY_ID) is None

    def test_stop_keeps_permanent_highlights(self, page, session):
        session.start("price")
        session.click(page.find_by_id("cost"))
        session.start("title")
        session.stop()
        assert SELECTED_CLASS in _classes(page.find_by_id("cost"))

    def test_restore_leaves_no_engine_classes(self, page, session):
        session.start("title")
        session.click(page.find_by_id("name"))
        session.registry.restore_all()
        marked = [t for t in page.soup.find_all(True) if any(is_engine_class(c) for c in t.get("class", []))]
        assert marked == []


class TestHint:
    @pytest.mark.asyncio
    async def test_hint_auto_hides_without_cancelling(self, page):
        session = SelectionSession(page, config=SelectionConfig(hint_duration_s=0.5))
        session.start("title")
        assert session.hint_visible

        await asyncio.sleep(0.6)

        assert not session.hint_visible
        assert page.find_by_id(OVERLAY_ID) is None
        assert session.state is SelectionState.SELECTING

    def test_hint_duration_is_bounded(self):
        with pytest.raises(ValueError):
            SelectionConfig(hint_duration_s=10)
