"""Tests for selector generation."""

from __future__ import annotations

from pagepick.dom.document import PageDocument
from pagepick.extraction.selectors import generate_selector, last_segment, stable_classes


def _page(body: str) -> PageDocument:
    return PageDocument.from_html(f"<html><body>{body}</body></html>")


def test_id_wins_over_classes():
    page = _page('<div id="main" class="hero wide">x</div>')
    assert generate_selector(page.find_by_id("main")) == "#main"


def test_class_selector_limited_to_three_tokens():
    page = _page('<span class="a b c d">x</span>')
    assert generate_selector(page.query_one("span")) == "span.a.b.c"


def test_transient_and_engine_classes_are_skipped():
    page = _page('<li class="active item extractor-selected hover">x</li>')
    element = page.query_one("li")
    assert stable_classes(element) == ["item"]
    assert generate_selector(element) == "li.item"


def test_only_transient_classes_falls_back_to_path():
    page = _page("<ul><li>a</li><li class=\"selected\">b</li></ul>")
    element = page.query_all("li")[1]
    assert generate_selector(element) == "ul > li:nth-of-type(2)"


def test_path_stops_below_body_and_limits_depth():
    page = _page("<div><section><article><div><p><em>deep</em></p></div></article></section></div>")
    assert generate_selector(page.query_one("em")) == "article > div > p > em"


def test_path_uses_plain_tag_without_same_tag_siblings():
    page = _page("<main><p>only</p></main>")
    assert generate_selector(page.query_one("p")) == "main > p"


def test_body_child_without_identity():
    page = _page("<p>text</p>")
    assert generate_selector(page.query_one("p")) == "p"


def test_last_segment():
    assert last_segment("ul > li:nth-of-type(2)") == "li:nth-of-type(2)"
    assert last_segment("span.price") == "span.price"
    assert last_segment("") == ""
