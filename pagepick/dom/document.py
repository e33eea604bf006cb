"""Page model — the rendered page the operator is extracting from.

A ``PageDocument`` wraps a BeautifulSoup tree of the page plus its URL.
Elements are plain ``bs4.Tag`` objects. Callers that need to remember an
element across calls hold an ``ElementRef``, which goes stale as soon as
the page is closed (navigation) and is never serialized.

bs4 compares tags structurally, so two identical product cards are ``==``.
Identity checks in this package always use ``is``.
"""

from __future__ import annotations

import itertools
import re
import weakref
from dataclasses import dataclass, field
from typing import Iterator

from bs4 import BeautifulSoup, Tag

ENGINE_STYLESHEET_ID = "extractor-styles"

# Computed values the browser stamps onto each element at capture time.
COMPUTED_DISPLAY_ATTR = "data-pp-display"
COMPUTED_BACKGROUND_ATTR = "data-pp-bg"
COMPUTED_STYLE_ATTRIBUTES = {
    "display": COMPUTED_DISPLAY_ATTR,
    "background-image": COMPUTED_BACKGROUND_ATTR,
}

_generation_counter = itertools.count(1)

_RULE_RE = re.compile(r"([^{}]+)\{([^{}]*)\}")
_SIMPLE_SELECTOR_RE = re.compile(r"^([a-zA-Z][\w-]*)?((?:[.#][\w-]+)*)$")


def element_children(tag: Tag) -> list[Tag]:
    """Element-only children, in document order."""
    return [child for child in tag.children if isinstance(child, Tag)]


def element_parent(tag: Tag) -> Tag | None:
    parent = tag.parent
    if isinstance(parent, BeautifulSoup) or not isinstance(parent, Tag):
        return None
    return parent


def child_index(tag: Tag) -> int:
    """Index of ``tag`` among its parent's element children, -1 without a parent."""
    parent = element_parent(tag)
    if parent is None:
        return -1
    for index, child in enumerate(element_children(parent)):
        if child is tag:
            return index
    return -1


def class_tokens(tag: Tag) -> list[str]:
    raw = tag.get("class")
    if not raw:
        return []
    if isinstance(raw, str):
        return [token for token in raw.split() if token]
    return [token for token in raw if token and token.strip()]


def text_content(tag: Tag) -> str:
    return tag.get_text()


def contains(ancestor: Tag, tag: Tag) -> bool:
    """True when ``tag`` is ``ancestor`` or one of its descendants."""
    current: Tag | None = tag
    while current is not None:
        if current is ancestor:
            return True
        current = element_parent(current)
    return False


def parse_style(value: str | None) -> dict[str, str]:
    """Parse ``prop: value; ...`` declarations into a dict (lower-cased props)."""
    declarations: dict[str, str] = {}
    if not value:
        return declarations
    for chunk in _split_declarations(value):
        if ":" not in chunk:
            continue
        prop, _, val = chunk.partition(":")
        prop = prop.strip().lower()
        val = val.strip()
        if val.lower().endswith("!important"):
            val = val[: -len("!important")].strip()
        if prop:
            declarations[prop] = val
    return declarations


def format_style(declarations: dict[str, str]) -> str:
    return "; ".join(f"{prop}: {val}" for prop, val in declarations.items())


def _split_declarations(value: str) -> Iterator[str]:
    # Semicolons inside url(...) or quotes must not split a declaration.
    depth = 0
    quote = ""
    start = 0
    for index, char in enumerate(value):
        if quote:
            if char == quote:
                quote = ""
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == ";" and depth == 0:
            yield value[start:index]
            start = index + 1
    yield value[start:]


@dataclass(frozen=True)
class _StyleRule:
    tag: str | None
    ids: tuple[str, ...]
    classes: tuple[str, ...]
    declarations: dict[str, str]
    order: int

    @property
    def specificity(self) -> tuple[int, int, int]:
        return (len(self.ids), len(self.classes), 1 if self.tag else 0)

    def matches(self, tag: Tag) -> bool:
        if self.tag and tag.name != self.tag:
            return False
        if self.ids and tag.get("id") not in self.ids:
            return False
        tokens = class_tokens(tag)
        return all(cls in tokens for cls in self.classes)


def _parse_stylesheet(css: str, start_order: int) -> list[_StyleRule]:
    rules: list[_StyleRule] = []
    order = start_order
    for selector_text, body in _RULE_RE.findall(css):
        declarations = parse_style(body)
        if not declarations:
            continue
        for selector in selector_text.split(","):
            match = _SIMPLE_SELECTOR_RE.match(selector.strip())
            if not match or not (match.group(1) or match.group(2)):
                continue
            parts = re.findall(r"[.#][\w-]+", match.group(2) or "")
            rules.append(
                _StyleRule(
                    tag=(match.group(1) or "").lower() or None,
                    ids=tuple(p[1:] for p in parts if p.startswith("#")),
                    classes=tuple(p[1:] for p in parts if p.startswith(".")),
                    declarations=declarations,
                    order=order,
                )
            )
            order += 1
    return rules


class ElementRef:
    """Weak, page-scoped reference to an element.

    ``resolve()`` returns ``None`` once the element has been garbage
    collected or its page has been closed.
    """

    __slots__ = ("_tag", "_document", "generation")

    def __init__(self, tag: Tag, document: PageDocument) -> None:
        self._tag = weakref.ref(tag)
        self._document = weakref.ref(document)
        self.generation = document.generation

    def resolve(self) -> Tag | None:
        document = self._document()
        if document is None or not document.is_open:
            return None
        return self._tag()

    def refers_to(self, tag: Tag) -> bool:
        return self.resolve() is tag

    def __repr__(self) -> str:
        tag = self.resolve()
        label = f"<{tag.name}>" if tag is not None else "stale"
        return f"ElementRef({label}, generation={self.generation})"


@dataclass(eq=False)
class PageDocument:
    """The page currently shown in the embedded browser surface."""

    soup: BeautifulSoup
    url: str = ""
    generation: int = field(default_factory=lambda: next(_generation_counter))
    is_open: bool = True
    _rules: list[_StyleRule] | None = field(default=None, repr=False)

    @classmethod
    def from_html(cls, html: str, url: str = "", parser: str = "lxml") -> PageDocument:
        return cls(soup=BeautifulSoup(html, parser), url=url)

    @property
    def root(self) -> Tag | None:
        return self.soup.find(True)

    @property
    def body(self) -> Tag:
        body = self.soup.body
        if body is None:
            body = self.soup.new_tag("body")
            root = self.root
            if root is not None and root.name == "html":
                root.append(body)
            else:
                self.soup.append(body)
        return body

    @property
    def head(self) -> Tag:
        head = self.soup.head
        if head is None:
            head = self.soup.new_tag("head")
            root = self.root
            if root is not None and root.name == "html":
                root.insert(0, head)
            else:
                self.soup.insert(0, head)
        return head

    def close(self) -> None:
        """Mark the page as unloaded; every ``ElementRef`` into it goes stale."""
        self.is_open = False

    def ref(self, tag: Tag) -> ElementRef:
        return ElementRef(tag, self)

    def is_page_root(self, tag: Tag) -> bool:
        return tag.name in {"html", "body"} or element_parent(tag) is None

    def query_one(self, selector: str) -> Tag | None:
        return self.soup.select_one(selector)

    def query_all(self, selector: str) -> list[Tag]:
        return list(self.soup.select(selector))

    def find_by_id(self, element_id: str) -> Tag | None:
        return self.soup.find(id=element_id)

    def element_at_path(self, path: list[int]) -> Tag | None:
        """Resolve a path of element-child indices starting at the root element."""
        current = self.root
        for index in path:
            if current is None:
                return None
            children = element_children(current)
            if index < 0 or index >= len(children):
                return None
            current = children[index]
        return current

    def path_of(self, tag: Tag) -> list[int]:
        path: list[int] = []
        current: Tag | None = tag
        while current is not None and element_parent(current) is not None:
            path.append(child_index(current))
            current = element_parent(current)
        path.reverse()
        return path

    def computed_style(self, tag: Tag) -> dict[str, str]:
        """Resolve the declarations that apply to ``tag``.

        Pages captured by the browser carry the live ``getComputedStyle``
        values as ``data-pp-*`` attributes, and those win. For HTML handed in
        directly, simple-selector rules from the page's ``<style>`` blocks
        are applied by specificity and source order, then the inline
        ``style`` attribute.
        """
        resolved: dict[str, str] = {}
        matching = [rule for rule in self._stylesheet_rules() if rule.matches(tag)]
        for rule in sorted(matching, key=lambda r: (r.specificity, r.order)):
            resolved.update(rule.declarations)
        resolved.update(parse_style(tag.get("style")))
        for prop, attr in COMPUTED_STYLE_ATTRIBUTES.items():
            captured = tag.get(attr)
            if captured is not None:
                resolved[prop] = str(captured)
        return resolved

    def _stylesheet_rules(self) -> list[_StyleRule]:
        if self._rules is None:
            rules: list[_StyleRule] = []
            for style in self.soup.find_all("style"):
                if style.get("id") == ENGINE_STYLESHEET_ID:
                    continue
                rules.extend(_parse_stylesheet(style.get_text(), len(rules)))
            self._rules = rules
        return self._rules

    def to_html(self) -> str:
        return str(self.soup)
