"""Document snapshot model.

The pipeline never talks to a rendering engine. It walks any tree that
satisfies the small DocumentNode protocol below, which makes the scanner
testable against synthetic trees built with element() and usable against
real markup through parse_html().

The two provenance helpers, nearest_heading() and structural_path(), are the
defaults; a host that owns a richer document model can inject its own.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Iterator, Protocol, runtime_checkable

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

_IGNORED_TAGS = frozenset({"script", "style", "noscript", "template"})


@runtime_checkable
class DocumentNode(Protocol):
    """Minimal tree-visitor interface over an element of a snapshot."""

    @property
    def tag(self) -> str: ...

    @property
    def attributes(self) -> Mapping[str, str]: ...

    @property
    def text(self) -> str: ...

    @property
    def children(self) -> Sequence["DocumentNode"]: ...

    @property
    def contents(self) -> Sequence["str | DocumentNode"]:
        """Text runs and child elements, interleaved in document order."""
        ...

    @property
    def previous_sibling(self) -> "DocumentNode | None": ...

    @property
    def parent(self) -> "DocumentNode | None": ...


@dataclass(eq=False)
class SnapshotNode:
    """In-memory element used for synthetic snapshots.

    Attributes:
        tag: Lower-case element name.
        attributes: Element attributes (``class`` as a space-joined string).
        own_text: Text directly inside the element, before its children.
        children: Child elements in document order.
    """

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    own_text: str = ""
    children: list["SnapshotNode"] = field(default_factory=list)
    parent: "SnapshotNode | None" = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.tag = self.tag.lower()
        for child in self.children:
            child.parent = self

    @property
    def text(self) -> str:
        parts = [self.own_text] + [child.text for child in self.children]
        return " ".join(part for part in parts if part)

    @property
    def contents(self) -> list["str | SnapshotNode"]:
        head: list[str | SnapshotNode] = [self.own_text] if self.own_text else []
        return head + list(self.children)

    @property
    def previous_sibling(self) -> "SnapshotNode | None":
        if self.parent is None:
            return None
        siblings = self.parent.children
        index = next(i for i, sibling in enumerate(siblings) if sibling is self)
        return siblings[index - 1] if index > 0 else None

    def append(self, child: "SnapshotNode") -> "SnapshotNode":
        child.parent = self
        self.children.append(child)
        return child


def element(tag: str, *children: SnapshotNode | str, **attributes: str) -> SnapshotNode:
    """Build a SnapshotNode.

    String positional arguments become the element's own text; node
    arguments become children. ``class_`` is accepted for ``class``.

    Example:
        >>> element("dl", element("dt", "Sector"), element("dd", "Technology"))
    """
    text_parts = [child for child in children if isinstance(child, str)]
    nodes = [child for child in children if not isinstance(child, str)]
    attrs = {name.rstrip("_"): value for name, value in attributes.items()}
    return SnapshotNode(
        tag=tag,
        attributes=attrs,
        own_text=" ".join(text_parts),
        children=nodes,
    )


class HtmlNode:
    """DocumentNode adapter over a BeautifulSoup element."""

    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    def __eq__(self, other: object) -> bool:
        return isinstance(other, HtmlNode) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        return f"HtmlNode(<{self.tag}>)"

    @property
    def tag(self) -> str:
        return (self._tag.name or "").lower()

    @property
    def attributes(self) -> Mapping[str, str]:
        attrs: dict[str, str] = {}
        for name, value in self._tag.attrs.items():
            attrs[name] = " ".join(value) if isinstance(value, list) else str(value)
        return attrs

    @property
    def text(self) -> str:
        return self._tag.get_text(" ", strip=True)

    @property
    def children(self) -> list["HtmlNode"]:
        return [
            HtmlNode(child)
            for child in self._tag.children
            if isinstance(child, Tag) and child.name not in _IGNORED_TAGS
        ]

    @property
    def contents(self) -> list["str | HtmlNode"]:
        items: list[str | HtmlNode] = []
        for child in self._tag.children:
            if isinstance(child, Tag):
                if child.name not in _IGNORED_TAGS:
                    items.append(HtmlNode(child))
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                items.append(str(child))
        return items

    @property
    def previous_sibling(self) -> "HtmlNode | None":
        sibling = self._tag.find_previous_sibling(
            lambda candidate: isinstance(candidate, Tag)
            and candidate.name not in _IGNORED_TAGS
        )
        return HtmlNode(sibling) if sibling is not None else None

    @property
    def parent(self) -> "HtmlNode | None":
        parent = self._tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return HtmlNode(parent)


def parse_html(markup: str) -> HtmlNode:
    """Parse markup into a DocumentNode rooted at ``<html>`` (or ``<body>``).

    Script, style and noscript contents are removed so they never reach
    the text strategies.
    """
    soup = BeautifulSoup(markup, "html.parser")
    for ignored in soup.find_all(list(_IGNORED_TAGS)):
        ignored.decompose()
    root = soup.find("html") or soup.find("body")
    if root is None:
        # Fragment without html/body: wrap it so the root is an element.
        wrapper = soup.new_tag("body")
        for child in list(soup.contents):
            wrapper.append(child.extract())
        soup.append(wrapper)
        root = wrapper
    return HtmlNode(root)


def iter_descendants(node: DocumentNode) -> Iterator[DocumentNode]:
    """Yield every descendant of ``node`` in document order (pre-order)."""
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def find_all(node: DocumentNode, *tags: str) -> list[DocumentNode]:
    """Return descendants whose tag is one of ``tags``, in document order."""
    wanted = frozenset(tags)
    return [child for child in iter_descendants(node) if child.tag in wanted]


def has_ancestor(node: DocumentNode, *tags: str) -> bool:
    """True when any ancestor of ``node`` has one of ``tags``."""
    wanted = frozenset(tags)
    parent = node.parent
    while parent is not None:
        if parent.tag in wanted:
            return True
        parent = parent.parent
    return False


def flow_text(node: DocumentNode, stop_tags: frozenset[str] = frozenset()) -> str:
    """Text of ``node`` in document order, skipping subtrees tagged ``stop_tags``.

    Example:
        >>> flow_text(parse_html("<div>Float: 2M<p>Sector: Tech</p></div>"), frozenset({"p"}))
        'Float: 2M'
    """
    parts: list[str] = []
    for item in node.contents:
        if isinstance(item, str):
            parts.append(item)
        elif item.tag not in stop_tags:
            parts.append(flow_text(item, stop_tags))
    return " ".join(" ".join(parts).split())


def _last_heading_within(node: DocumentNode) -> DocumentNode | None:
    if node.tag in HEADING_TAGS:
        return node
    headings = [child for child in iter_descendants(node) if child.tag in HEADING_TAGS]
    return headings[-1] if headings else None


def nearest_heading(node: DocumentNode) -> str | None:
    """Text of the closest heading preceding ``node``.

    Walks previous siblings (looking inside each for its last heading),
    then repeats from the parent, up to the root.
    """
    current: DocumentNode | None = node
    while current is not None:
        sibling = current.previous_sibling
        while sibling is not None:
            heading = _last_heading_within(sibling)
            if heading is not None:
                text = " ".join(heading.text.split())
                if text:
                    return text
            sibling = sibling.previous_sibling
        current = current.parent
    return None


def structural_path(node: DocumentNode) -> str:
    """Provenance path such as ``html>body>div:2>dl>dd``.

    Each segment carries the 1-based position among same-tag siblings when
    the parent has more than one child with that tag.
    """
    segments: list[str] = []
    current: DocumentNode | None = node
    while current is not None:
        parent = current.parent
        segment = current.tag
        if parent is not None:
            same_tag = [child for child in parent.children if child.tag == current.tag]
            if len(same_tag) > 1:
                position = next(i for i, child in enumerate(same_tag, start=1) if child == current)
                segment = f"{segment}:{position}"
        segments.append(segment)
        current = parent
    return ">".join(reversed(segments))
