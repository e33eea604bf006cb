"""Reversible DOM mutations applied by the extraction engine.

Every class, inline style, and inserted node the engine puts on a page goes
through a ``HighlightRegistry``. The registry remembers each touched
element's original ``class`` and ``style`` attributes the first time it sees
it, so ``restore_all()`` can put the page back exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import Tag

from pagepick.dom.document import class_tokens, format_style, parse_style

HOVER_CLASS = "extractor-hover"
SELECTED_CLASS = "extractor-selected"
SIMILAR_CLASS = "extractor-similar"
SELECTING_BODY_CLASS = "extractor-selecting"
OVERLAY_CLASS = "extractor-overlay"
OVERLAY_ID = "extractor-selection-overlay"

ENGINE_CLASS_PREFIX = "extractor-"

ENGINE_STYLESHEET = """
.extractor-selected {
  outline: 3px solid #4DEAC7 !important;
  outline-offset: 2px !important;
  background-color: rgba(77, 234, 199, 0.15) !important;
  position: relative !important;
}
.extractor-hover {
  outline: 2px solid #4DEAC7 !important;
  outline-offset: 2px !important;
  background-color: rgba(77, 234, 199, 0.1) !important;
  cursor: crosshair !important;
}
.extractor-similar {
  outline: 3px solid #34d399 !important;
  outline-offset: 2px !important;
  background-color: rgba(52, 211, 153, 0.15) !important;
  position: relative !important;
}
body.extractor-selecting {
  user-select: none !important;
  cursor: crosshair !important;
}
.extractor-overlay {
  position: fixed !important;
  top: 20px !important;
  left: 50% !important;
  transform: translateX(-50%) !important;
  pointer-events: none !important;
  z-index: 999999 !important;
}
"""


def is_engine_class(token: str) -> bool:
    return token.startswith(ENGINE_CLASS_PREFIX)


@dataclass
class _Original:
    tag: Tag
    classes: list[str] | None
    style: str | None


class HighlightRegistry:
    """Tracks and reverses engine-applied classes, styles, and nodes."""

    def __init__(self) -> None:
        self._originals: dict[int, _Original] = {}
        self._inserted: list[Tag] = []

    def __len__(self) -> int:
        return len(self._originals)

    def _remember(self, tag: Tag) -> None:
        key = id(tag)
        if key in self._originals:
            return
        raw_class = tag.get("class")
        raw_style = tag.get("style")
        self._originals[key] = _Original(
            tag=tag,
            classes=list(class_tokens(tag)) if raw_class is not None else None,
            style=raw_style if isinstance(raw_style, str) else None,
        )

    def add_class(self, tag: Tag, class_name: str) -> None:
        """Add ``class_name`` once; repeated calls do not stack."""
        self._remember(tag)
        tokens = class_tokens(tag)
        if class_name not in tokens:
            tag["class"] = tokens + [class_name]

    def remove_class(self, tag: Tag, class_name: str) -> None:
        tokens = class_tokens(tag)
        if class_name not in tokens:
            return
        remaining = [token for token in tokens if token != class_name]
        if remaining:
            tag["class"] = remaining
        else:
            del tag["class"]

    def has_class(self, tag: Tag, class_name: str) -> bool:
        return class_name in class_tokens(tag)

    def apply_style(self, tag: Tag, declarations: dict[str, str]) -> None:
        self._remember(tag)
        current = parse_style(tag.get("style"))
        current.update(declarations)
        tag["style"] = format_style(current)

    def reset_style(self, tag: Tag) -> None:
        """Put the element's inline style back to what the page had."""
        original = self._originals.get(id(tag))
        if original is None:
            return
        if original.style is None:
            if "style" in tag.attrs:
                del tag["style"]
        else:
            tag["style"] = original.style

    def insert(self, parent: Tag, node: Tag) -> Tag:
        parent.append(node)
        self._inserted.append(node)
        return node

    def remove_inserted(self, node: Tag) -> None:
        for index, inserted in enumerate(self._inserted):
            if inserted is node:
                del self._inserted[index]
                break
        node.decompose()

    def tagged(self, class_name: str) -> list[Tag]:
        return [
            original.tag
            for original in self._originals.values()
            if class_name in class_tokens(original.tag)
        ]

    def restore_all(self) -> int:
        """Undo every mutation; returns how many elements were restored."""
        for node in self._inserted:
            node.decompose()
        self._inserted.clear()

        restored = 0
        for original in self._originals.values():
            tag = original.tag
            if original.classes is None:
                if "class" in tag.attrs:
                    del tag["class"]
            else:
                tag["class"] = list(original.classes)
            if original.style is None:
                if "style" in tag.attrs:
                    del tag["style"]
            else:
                tag["style"] = original.style
            restored += 1
        self._originals.clear()
        return restored
