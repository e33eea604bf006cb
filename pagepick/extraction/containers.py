"""Container inference — find the repeated card around an exemplar element.

Two heuristic passes, closest match first:

1. Class markers: an ancestor whose class mentions card/item/product/menu or
   a grid column, repeated at least twice under the same parent.
2. Layout: an ancestor laid out as grid/flex (or classed row/grid) with at
   least three children; its children are the cards.

If neither pass finds anything the exemplar is its own container and has no
siblings.
"""

from __future__ import annotations

import logging

from bs4 import Tag

from pagepick.config.settings import ContainerConfig
from pagepick.dom.document import PageDocument, class_tokens, contains, element_children, element_parent
from pagepick.extraction.models import ContainerCandidate, ContainerStrategy
from pagepick.extraction.selectors import stable_classes

logger = logging.getLogger(__name__)


def _marker_token(tokens: list[str], markers: tuple[str, ...]) -> str | None:
    for token in tokens:
        if any(marker in token for marker in markers):
            return token
    return None


def _repeated_siblings(candidate: Tag, parent: Tag) -> list[Tag]:
    tokens = set(stable_classes(candidate))
    return [
        child
        for child in element_children(parent)
        if tokens & set(stable_classes(child))
    ]


def _by_class_marker(
    exemplar: Tag, page: PageDocument, config: ContainerConfig
) -> ContainerCandidate | None:
    current: Tag | None = exemplar
    depth = 0
    while current is not None and depth < config.max_marker_depth:
        if page.is_page_root(current):
            break
        tokens = stable_classes(current)
        token = _marker_token(tokens, config.marker_tokens)
        parent = element_parent(current)
        if token and parent is not None:
            siblings = _repeated_siblings(current, parent)
            if len(siblings) >= config.min_marker_siblings:
                group = [child for child in siblings if token in class_tokens(child)]
                if not any(child is current for child in group):
                    group = siblings
                logger.debug(
                    "Container via class marker .%s at depth %d (%d siblings)",
                    token,
                    depth,
                    len(group),
                )
                return ContainerCandidate(
                    root=page.ref(current),
                    siblings=[page.ref(child) for child in group],
                    selector=f".{token}",
                    matched_class_token=token,
                    strategy=ContainerStrategy.CLASS_MARKER,
                )
        current = parent
        depth += 1
    return None


def _is_layout(tag: Tag, page: PageDocument, config: ContainerConfig) -> bool:
    if len(element_children(tag)) < config.min_layout_children:
        return False
    display = page.computed_style(tag).get("display", "").lower()
    if any(kind in display for kind in config.layout_displays):
        return True
    class_attr = " ".join(class_tokens(tag)).lower()
    return any(token in class_attr for token in config.layout_tokens)


def layout_selector(tag: Tag) -> str:
    tokens = class_tokens(tag)
    return tag.name + ("." + ".".join(tokens) if tokens else "")


def _by_layout(
    exemplar: Tag, page: PageDocument, config: ContainerConfig
) -> ContainerCandidate | None:
    child: Tag = exemplar
    current = element_parent(exemplar)
    depth = 0
    while current is not None and depth < config.max_layout_depth:
        if _is_layout(current, page, config):
            siblings = [c for c in element_children(current) if c.name == child.name]
            logger.debug(
                "Container via layout %s at depth %d (%d siblings)",
                layout_selector(current),
                depth,
                len(siblings),
            )
            return ContainerCandidate(
                root=page.ref(child),
                siblings=[page.ref(c) for c in siblings],
                selector=layout_selector(current),
                strategy=ContainerStrategy.LAYOUT,
            )
        if page.is_page_root(current):
            break
        child = current
        current = element_parent(current)
        depth += 1
    return None


def find_container(
    exemplar: Tag,
    page: PageDocument,
    config: ContainerConfig | None = None,
) -> ContainerCandidate:
    """Locate the repeating container of ``exemplar`` and its sibling set."""
    config = config or ContainerConfig()

    candidate = _by_class_marker(exemplar, page, config)
    if candidate is None:
        candidate = _by_layout(exemplar, page, config)
    if candidate is not None:
        return candidate

    logger.info("No repeating container found for <%s>; using the element itself", exemplar.name)
    return ContainerCandidate(
        root=page.ref(exemplar),
        siblings=[page.ref(exemplar)],
        selector=exemplar.name,
        strategy=ContainerStrategy.FALLBACK,
    )


def container_of(element: Tag, candidate: ContainerCandidate) -> Tag | None:
    """The sibling container that holds ``element``, if any."""
    for sibling_ref in candidate.siblings:
        sibling = sibling_ref.resolve()
        if sibling is not None and contains(sibling, element):
            return sibling
    return None
