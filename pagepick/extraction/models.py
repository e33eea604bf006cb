"""Extraction data models — records, field kinds, and live-page bindings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from pagepick.dom.document import ElementRef

CONTENT_FIELDS = ("title", "description", "image", "price")


class FieldKind(str, Enum):
    """Semantic category of the value pulled out of one element."""

    IMAGE = "image"
    TITLE = "title"
    DESCRIPTION = "description"
    PRICE = "price"
    GENERIC = "generic"


# Generic picks have no dedicated column; they land in the free-form category.
RECORD_FIELD_BY_KIND: dict[FieldKind, str] = {
    FieldKind.IMAGE: "image",
    FieldKind.TITLE: "title",
    FieldKind.DESCRIPTION: "description",
    FieldKind.PRICE: "price",
    FieldKind.GENERIC: "category",
}


class ExtractionMode(str, Enum):
    MANUAL = "manual"
    TEMPLATE = "template"


class ContainerStrategy(str, Enum):
    CLASS_MARKER = "class_marker"
    LAYOUT = "layout"
    FALLBACK = "fallback"


def is_blank(value: str | None) -> bool:
    return not value or not value.strip()


class Record(BaseModel):
    """One extracted item.

    ``id``, ``created_at`` and ``updated_at`` belong to the record store;
    the extraction engine only ever produces drafts without an id.
    """

    id: int | None = None
    url: str = ""
    title: str = ""
    description: str = ""
    image: str = ""
    price: str = ""
    category: str = ""
    verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return all(is_blank(getattr(self, name)) for name in CONTENT_FIELDS)

    def field_value(self, kind: FieldKind) -> str:
        return getattr(self, RECORD_FIELD_BY_KIND[kind])


class RecordPatch(BaseModel):
    """Partial record payload accepted by the record store."""

    url: str | None = None
    title: str | None = None
    description: str | None = None
    image: str | None = None
    price: str | None = None
    category: str | None = None
    verified: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _same_text(left: str, right: str) -> bool:
    return not is_blank(left) and not is_blank(right) and left == right


def is_duplicate(candidate: Record, existing: Record) -> bool:
    """Near-duplicate rule used for batch and session deduplication.

    Titles equal ignoring case and surrounding whitespace, or image URL and
    price both equal. Blank fields never match.
    """
    title_match = (
        not is_blank(candidate.title)
        and not is_blank(existing.title)
        and candidate.title.strip().lower() == existing.title.strip().lower()
    )
    if title_match:
        return True
    return _same_text(candidate.image, existing.image) and _same_text(
        candidate.price, existing.price
    )


@dataclass
class ExtractedCandidate:
    """The value one click produced, before it is folded into a record or template."""

    field_kind: FieldKind
    raw_value: str
    source: ElementRef
    selector: str


@dataclass
class TemplateBinding:
    """A field kind bound to an exemplar element on the current page."""

    field_kind: FieldKind
    element: ElementRef
    selector: str
    last_value: str


@dataclass
class ContainerCandidate:
    """The repeated card/row around an exemplar, and its siblings."""

    root: ElementRef
    siblings: list[ElementRef] = field(default_factory=list)
    selector: str = ""
    matched_class_token: str | None = None
    strategy: ContainerStrategy = ContainerStrategy.FALLBACK


class FieldExtractedPayload(BaseModel):
    field_kind: FieldKind
    value: str
    url: str
    timestamp: datetime


class TemplateFieldBoundPayload(BaseModel):
    field_kind: FieldKind
    value: str
    selector: str


class BatchExtractedPayload(BaseModel):
    records: list[Record] = Field(default_factory=list)
