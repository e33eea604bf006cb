"""Structural similarity — do two elements play the same role in their cards?"""

from __future__ import annotations

from bs4 import Tag

from pagepick.config.settings import SimilarityConfig
from pagepick.dom.document import child_index, class_tokens, element_children, element_parent
from pagepick.dom.highlights import is_engine_class


def _page_classes(tag: Tag) -> set[str]:
    return {token for token in class_tokens(tag) if not is_engine_class(token)}


def class_overlap(first: Tag, second: Tag) -> float | None:
    """Shared tokens over the larger class list; ``None`` if either side has no classes."""
    first_classes = _page_classes(first)
    second_classes = _page_classes(second)
    if not first_classes or not second_classes:
        return None
    shared = first_classes & second_classes
    return len(shared) / max(len(first_classes), len(second_classes))


def position_similarity(first: Tag, second: Tag) -> float | None:
    """``1 - |index delta| / larger sibling count``; ``None`` without parents."""
    first_parent = element_parent(first)
    second_parent = element_parent(second)
    if first_parent is None or second_parent is None:
        return None
    max_children = max(
        len(element_children(first_parent)), len(element_children(second_parent))
    )
    if max_children == 0:
        return None
    return 1 - abs(child_index(first) - child_index(second)) / max_children


def is_similar(
    candidate: Tag,
    exemplar: Tag,
    config: SimilarityConfig | None = None,
) -> bool:
    config = config or SimilarityConfig()

    if candidate is exemplar:
        return True
    if candidate.name != exemplar.name:
        return False

    overlap = class_overlap(candidate, exemplar)
    if overlap is not None and overlap < config.class_overlap_threshold:
        return False

    position = position_similarity(candidate, exemplar)
    if position is None:
        return True
    return position > config.position_similarity_threshold
