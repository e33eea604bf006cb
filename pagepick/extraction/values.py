"""Value extraction — turn a clicked element into a field value.

``extract_value`` never raises. An empty string means "nothing plausible
here" and callers treat it as "field not set".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import Tag

from pagepick.dom.document import PageDocument, parse_style, text_content
from pagepick.extraction.models import FieldKind

logger = logging.getLogger(__name__)

# Primary source first, then common lazy-load attributes.
IMAGE_SOURCE_ATTRIBUTES = ("src", "data-src", "data-lazy", "data-lazy-src", "data-original")

_BACKGROUND_URL_RE = re.compile(r"url\(\s*[\"']?([^\"')]+)[\"']?\s*\)", re.IGNORECASE)

_CURRENCY_PREFIX = r"(?:Rs\.?\s*|PKR\s*|₹\s*|[$€£¥₽₩￥]\s*)"
_CURRENCY_SUFFIX = r"(?:Rs\.?|PKR|₹|[$€£¥₽₩￥])"
_AMOUNT = r"[0-9][0-9,]*(?:\.[0-9]{1,2})?"


@dataclass(frozen=True)
class PricePattern:
    """One currency grammar. Lower ``priority`` is tried first."""

    name: str
    pattern: re.Pattern[str]
    priority: int


PRICE_PATTERNS: tuple[PricePattern, ...] = (
    PricePattern(
        name="currency_prefix",
        pattern=re.compile(_CURRENCY_PREFIX + _AMOUNT, re.IGNORECASE),
        priority=10,
    ),
    PricePattern(
        name="labelled",
        pattern=re.compile(
            r"(?:From|Starting at|Price:)\s*" + _CURRENCY_PREFIX + "?" + _AMOUNT,
            re.IGNORECASE,
        ),
        priority=20,
    ),
    PricePattern(
        name="currency_suffix",
        pattern=re.compile(_AMOUNT + r"\s*" + _CURRENCY_SUFFIX, re.IGNORECASE),
        priority=30,
    ),
)


def match_price(text: str, patterns: tuple[PricePattern, ...] = PRICE_PATTERNS) -> str:
    """Return the first full match of the first pattern that matches, or ``""``."""
    for price_pattern in sorted(patterns, key=lambda p: p.priority):
        match = price_pattern.pattern.search(text)
        if match:
            return match.group(0).strip()
    return ""


def _attr(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


def _image_source(img: Tag, base_url: str) -> str:
    for name in IMAGE_SOURCE_ATTRIBUTES:
        value = _attr(img, name).strip()
        if value:
            return urljoin(base_url, value) if base_url else value
    return ""


def _background_image(tag: Tag, page: PageDocument | None) -> str:
    style = page.computed_style(tag) if page is not None else parse_style(tag.get("style"))
    background = style.get("background-image") or style.get("background") or ""
    if not background or background.strip().lower() == "none":
        return ""
    match = _BACKGROUND_URL_RE.search(background)
    return match.group(1).strip() if match else ""


def _extract_image(tag: Tag, base_url: str, page: PageDocument | None) -> str:
    if tag.name == "img":
        return _image_source(tag, base_url)

    background = _background_image(tag, page)
    if background:
        return urljoin(base_url, background) if base_url else background

    child = tag.find("img")
    if isinstance(child, Tag):
        return _image_source(child, base_url)
    return ""


def _first_non_empty(*values: str) -> str:
    for value in values:
        if value:
            return value
    return ""


def extract_value(
    element: Tag,
    field_kind: FieldKind | str,
    base_url: str = "",
    page: PageDocument | None = None,
) -> str:
    """Best-guess value of ``field_kind`` for ``element``.

    Args:
        element: The element the operator clicked (or its structural match).
        field_kind: Which heuristic to apply; unknown kinds use the generic one.
        base_url: Page URL used to absolutize image sources.
        page: Owning page, used for stylesheet-aware background lookups.

    Returns:
        The extracted display string, or ``""``.
    """
    try:
        kind = FieldKind(field_kind)
    except ValueError:
        kind = FieldKind.GENERIC

    try:
        if kind is FieldKind.IMAGE:
            return _extract_image(element, base_url or (page.url if page else ""), page)

        text = text_content(element).strip()

        if kind is FieldKind.TITLE:
            return _first_non_empty(
                _attr(element, "title"),
                _attr(element, "alt"),
                text,
                _attr(element, "aria-label"),
            )

        if kind is FieldKind.DESCRIPTION:
            return _first_non_empty(
                text,
                _attr(element, "data-description"),
                _attr(element, "aria-description"),
            )

        if kind is FieldKind.PRICE:
            # Unmatched text falls through as-is.
            return match_price(text) or text

        return _first_non_empty(text, _attr(element, "value"))
    except Exception:
        logger.exception("Value extraction failed for <%s> as %s", element.name, kind.value)
        return ""
