"""Selector generation for clicked elements.

Best effort: the result re-locates elements playing the same role, it is
not guaranteed to be unique on the page.
"""

from __future__ import annotations

from bs4 import Tag

from pagepick.dom.document import class_tokens, element_children, element_parent
from pagepick.dom.highlights import is_engine_class

TRANSIENT_CLASSES = frozenset({"active", "hover", "selected", "focus"})
MAX_CLASS_TOKENS = 3
MAX_PATH_DEPTH = 4


def stable_classes(tag: Tag) -> list[str]:
    """Class tokens minus UI-state and engine highlight classes."""
    return [
        token
        for token in class_tokens(tag)
        if token not in TRANSIENT_CLASSES and not is_engine_class(token)
    ]


def _id_selector(tag: Tag) -> str:
    element_id = tag.get("id")
    if isinstance(element_id, str) and element_id.strip():
        return f"#{element_id}"
    return ""


def _class_selector(tag: Tag) -> str:
    classes = stable_classes(tag)[:MAX_CLASS_TOKENS]
    if not classes:
        return ""
    return f"{tag.name}." + ".".join(classes)


def _path_segment(tag: Tag) -> str:
    parent = element_parent(tag)
    if parent is None:
        return tag.name
    same_tag = [child for child in element_children(parent) if child.name == tag.name]
    if len(same_tag) > 1:
        position = next(i for i, child in enumerate(same_tag) if child is tag) + 1
        return f"{tag.name}:nth-of-type({position})"
    return tag.name


def _path_selector(tag: Tag) -> str:
    path: list[str] = []
    current: Tag | None = tag
    while current is not None and current.name not in {"body", "html"} and len(path) < MAX_PATH_DEPTH:
        path.insert(0, _path_segment(current))
        current = element_parent(current)
    return " > ".join(path)


def generate_selector(element: Tag) -> str:
    """Selector for ``element``: ``#id``, else ``tag.classes``, else a short path."""
    for strategy in (_id_selector, _class_selector, _path_selector):
        selector = strategy(element)
        if selector:
            return selector
    return element.name


def last_segment(selector: str) -> str:
    """Rightmost compound selector, used to re-find a field inside a container."""
    parts = selector.split()
    return parts[-1] if parts else ""
