"""Tests for the workbench (controller + record store glue)."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagepick.api.workbench import ElementNotFoundError, EmptyItemError, Workbench
from pagepick.browser.layer import ActionResult, ActionStatus
from pagepick.dom.document import PageDocument
from pagepick.extraction.models import ExtractionMode, FieldKind
from pagepick.selection.controller import PageNotLoadedError
from pagepick.store.repository import InMemoryRecordRepository

CARDS = "".join(
    f'<div class="menu-item"><h3 class="dish">Dish {i}</h3><span class="cost">Rs. {100 + i}</span></div>'
    for i in range(3)
)
HTML = f'<html><head></head><body><section class="menu">{CARDS}</section></body></html>'


@pytest.fixture
def workbench():
    return Workbench(repository=InMemoryRecordRepository())


class _FakeBrowser:
    def __init__(self, page: PageDocument | None, status: ActionStatus = ActionStatus.SUCCESS):
        self.page = page
        self.status = status
        self.is_started = False
        self.scrolled = False
        self.stopped = False

    async def start(self):
        self.is_started = True

    async def stop(self):
        self.stopped = True

    async def navigate(self, url):
        return ActionResult(status=self.status, detail=f"navigate {url}")

    async def scroll_to_end(self):
        self.scrolled = True
        return ActionResult(status=ActionStatus.SUCCESS)

    async def capture_page(self):
        return self.page


class TestManualFlow:
    @pytest.mark.asyncio
    async def test_picks_fill_the_current_item(self, workbench):
        page = await workbench.load_page("https://food.test/", HTML)
        item = await workbench.new_item()

        for kind, selector in (("title", "h3.dish"), ("price", "span.cost")):
            await workbench.controller.start_selection(kind)
            await workbench.controller.click(page.query_one(selector))

        record = workbench.repository.get(item.id)
        assert record.title == "Dish 0"
        assert record.price == "Rs. 100"
        assert record.url == "https://food.test/"
        assert len(workbench.repository.list()) == 1

    @pytest.mark.asyncio
    async def test_pick_without_current_item_uses_first_empty(self, workbench):
        empty = workbench.repository.create()
        workbench.repository.create({"title": "done"})

        record = workbench.store_field(FieldKind.PRICE, "$4", "https://x/")

        assert record.id == empty.id
        assert workbench.current_item_id == empty.id

    def test_pick_creates_item_when_none_empty(self, workbench):
        workbench.repository.create({"title": "done"})
        record = workbench.store_field(FieldKind.DESCRIPTION, "tasty")
        assert record.id == 2
        assert record.description == "tasty"

    def test_generic_pick_goes_to_category(self, workbench):
        record = workbench.store_field(FieldKind.GENERIC, "mains")
        assert record.category == "mains"

    @pytest.mark.asyncio
    async def test_new_item_switches_to_manual(self, workbench):
        await workbench.controller.set_mode("template")
        await workbench.new_item()
        assert workbench.controller.mode is ExtractionMode.MANUAL

    @pytest.mark.asyncio
    async def test_finish_refuses_empty_item(self, workbench):
        await workbench.new_item()
        with pytest.raises(EmptyItemError):
            workbench.finish_item()
        workbench.store_field(FieldKind.TITLE, "Soup")
        assert workbench.finish_item().title == "Soup"
        assert workbench.current_item_id is None

    def test_finish_without_item(self, workbench):
        with pytest.raises(EmptyItemError):
            workbench.finish_item()


class TestTemplateFlow:
    @pytest.mark.asyncio
    async def test_batch_is_saved(self, workbench):
        page = await workbench.load_page("https://food.test/", HTML)
        await workbench.controller.set_mode("template")
        await workbench.controller.start_selection("title")
        await workbench.controller.click(page.query_one("h3.dish"))

        records = await workbench.controller.find_similar()

        assert [r.title for r in records] == ["Dish 1", "Dish 2"]
        stored = workbench.repository.list()
        assert sorted(r.title for r in stored) == ["Dish 1", "Dish 2"]
        assert all(r.id is not None and not r.verified for r in stored)

    @pytest.mark.asyncio
    async def test_verify_all_and_clear_all(self, workbench):
        page = await workbench.load_page("https://food.test/", HTML)
        workbench.repository.create({"title": "a"})
        workbench.repository.create({"title": "b", "verified": True})

        assert workbench.verify_all() == 1
        assert workbench.statistics()["verified"] == 2

        await workbench.controller.start_selection("title")
        await workbench.controller.click(page.query_one("h3.dish"))
        assert await workbench.clear_all() == 3
        assert workbench.repository.list() == []
        assert "extractor-selected" not in page.query_one("h3.dish").get("class", [])

    @pytest.mark.asyncio
    async def test_batch_can_be_extracted_again_after_clear_all(self, workbench):
        page = await workbench.load_page("https://food.test/", HTML)
        await workbench.controller.set_mode("template")
        await workbench.controller.start_selection("title")
        await workbench.controller.click(page.query_one("h3.dish"))
        await workbench.controller.find_similar()
        assert len(workbench.repository.list()) == 2

        await workbench.clear_all()
        await workbench.controller.start_selection("title")
        await workbench.controller.click(page.query_one("h3.dish"))
        records = await workbench.controller.find_similar()

        assert [r.title for r in records] == ["Dish 1", "Dish 2"]
        assert len(workbench.repository.list()) == 2


class TestPages:
    @pytest.mark.asyncio
    async def test_browser_render(self):
        browser = _FakeBrowser(PageDocument.from_html(HTML, url="https://food.test/"))
        workbench = Workbench(repository=InMemoryRecordRepository(), browser=browser)

        page = await workbench.load_page("https://food.test/")

        assert browser.is_started and browser.scrolled
        assert workbench.controller.page is page
        await workbench.close()
        assert browser.stopped

    @pytest.mark.asyncio
    async def test_navigation_failure(self):
        browser = _FakeBrowser(None, status=ActionStatus.FAILURE)
        workbench = Workbench(repository=InMemoryRecordRepository(), browser=browser)
        with pytest.raises(PageNotLoadedError):
            await workbench.load_page("https://down.test/")

    @pytest.mark.asyncio
    async def test_locate_by_path_and_selector(self, workbench):
        page = await workbench.load_page("https://food.test/", HTML)
        dish = page.query_all("h3.dish")[1]
        assert workbench.locate(path=page.path_of(dish)) is dish
        assert workbench.locate(selector="span.cost") is page.query_one("span.cost")
        with pytest.raises(ElementNotFoundError):
            workbench.locate(selector="h3[[")
        with pytest.raises(ElementNotFoundError):
            workbench.locate(path=[9, 9])

    def test_locate_needs_page(self, workbench):
        with pytest.raises(PageNotLoadedError):
            workbench.locate(selector="p")


def test_export_to_file(workbench, tmp_path: Path):
    workbench.repository.create({"title": "x"})
    result = workbench.export(tmp_path / "records.csv")
    assert result.format == "csv"
    assert workbench.export_text("csv").splitlines()[1].startswith('1,"","x"')
