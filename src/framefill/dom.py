"""Frame documents — parsed HTML trees with frame relationships.

A FramePage is the Python stand-in for an open browser tab: a tree of
FrameDocuments, one per frame, each parsed with BeautifulSoup and queried
with CSS selectors through soupsieve.  Every document knows the iframe that
embeds it and whether its parent can reach into it (same origin) or not
(cross-origin isolation).

Documents also carry a small value model (input values, checked state,
focus, clicks) and an event log so that replayed writes can be observed by
listeners and pushed back into a live browser.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import re
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import urljoin, urlparse

import soupsieve as sv
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger("framefill.dom")

# Frames nested deeper than this are not loaded
MAX_FRAME_DEPTH = 8

_HIDDEN_STYLE = re.compile(
    r"(display\s*:\s*none|visibility\s*:\s*hidden|opacity\s*:\s*0(\.0+)?\s*(;|$))",
    re.IGNORECASE,
)


class _Blocked:
    """Sentinel for a frame document that exists but cannot be read."""

    def __repr__(self) -> str:
        return "BLOCKED"

    def __bool__(self) -> bool:
        return False


BLOCKED = _Blocked()


@dataclasses.dataclass(frozen=True)
class Box:
    """Integer layout box in document coordinates."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def to_dict(self) -> dict[str, int]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class DomEvent:
    """A notification dispatched on an element (input, change, click, ...)."""

    type: str
    element: Tag


@dataclasses.dataclass
class FieldWrite:
    """A value written into a document, kept for push-back to a live page."""

    kind: str  # value, checked, click
    element: Tag
    value: Any = None


def origin_of(url: str) -> str:
    """Return scheme://host[:port] for *url*, or "" for opaque URLs."""
    parsed = urlparse(url or "")
    if parsed.scheme in ("http", "https", "ws", "wss"):
        return f"{parsed.scheme}://{parsed.netloc}"
    if parsed.scheme == "file":
        return "file://"
    return ""


def attr_text(element: Tag, name: str) -> str | None:
    """Return an attribute as a string; multi-valued attributes are space-joined."""
    value = element.get(name)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def class_list(element: Tag) -> list[str]:
    value = element.get("class") or []
    if isinstance(value, str):
        value = value.split()
    return [c for c in value if c.strip()]


def contains(elements: list[Tag], element: Tag) -> bool:
    """Identity membership (bs4 tags compare equal by markup)."""
    return any(e is element for e in elements)


def index_of(elements: list[Tag], element: Tag) -> int:
    """Identity-based index, -1 when absent."""
    for i, e in enumerate(elements):
        if e is element:
            return i
    return -1


class FrameDocument:
    """One frame's document: its tree, URL, origin and embedding iframe."""

    def __init__(
        self,
        soup: BeautifulSoup,
        url: str,
        frame_id: int = 0,
        parent: FrameDocument | None = None,
        frame_element: Tag | None = None,
        origin: str | None = None,
    ) -> None:
        self.soup = soup
        self.url = url
        self.frame_id = frame_id
        self.parent = parent
        self.frame_element = frame_element
        self.origin = origin if origin is not None else origin_of(url)
        self.children: dict[int, FrameDocument | None] = {}
        self.boxes: dict[int, Box] = {}
        self.events: list[DomEvent] = []
        self.writes: list[FieldWrite] = []
        self.active_element: Tag | None = None
        self._listeners: list[Callable[[DomEvent], None]] = []

    @classmethod
    def from_html(cls, html: str, url: str, **kwargs: Any) -> FrameDocument:
        return cls(BeautifulSoup(html or "", "lxml"), url, **kwargs)

    def __repr__(self) -> str:
        return f"FrameDocument(frame_id={self.frame_id}, url={self.url!r})"

    # -- Identity ------------------------------------------------------------

    @property
    def is_top(self) -> bool:
        return self.parent is None

    @property
    def title(self) -> str:
        if self.soup.title is None:
            return ""
        return self.soup.title.get_text(strip=True)

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    @property
    def base_url(self) -> str:
        """URL used to resolve relative references (srcdoc inherits the parent's)."""
        if self.url.startswith("about:") and self.parent is not None:
            return self.parent.base_url
        return self.url

    def same_origin(self, other: FrameDocument) -> bool:
        return bool(self.origin) and self.origin == other.origin

    # -- Queries -------------------------------------------------------------

    def query_all(self, selector: str) -> list[Tag]:
        """All matches for *selector*; invalid selectors match nothing."""
        if not selector or not selector.strip():
            return []
        try:
            return self.soup.select(selector)
        except (sv.SelectorSyntaxError, NotImplementedError, ValueError) as exc:
            logger.debug("Invalid selector %r: %s", selector, exc)
            return []

    def query(self, selector: str) -> Tag | None:
        matches = self.query_all(selector)
        return matches[0] if matches else None

    def count(self, selector: str) -> int:
        return len(self.query_all(selector))

    # -- Frames --------------------------------------------------------------

    def attach_child(self, iframe: Tag, child: FrameDocument | None) -> None:
        self.children[id(iframe)] = child
        if child is not None:
            child.parent = self
            child.frame_element = iframe

    def embedding_element(self) -> Tag | None:
        """The iframe embedding this document, or None at the top or across origins."""
        if self.parent is None or self.frame_element is None:
            return None
        if not self.same_origin(self.parent):
            return None
        return self.frame_element

    def content_document(self, iframe: Tag) -> FrameDocument | _Blocked | None:
        """The document inside *iframe*.

        Returns BLOCKED when the frame exists but belongs to another origin,
        and None when *iframe* has no document at all.
        """
        if iframe is None or iframe.name != "iframe":
            return None
        child = self.children.get(id(iframe))
        if child is not None:
            return child if self.same_origin(child) else BLOCKED
        src = attr_text(iframe, "src")
        if src and origin_of(urljoin(self.base_url, src)) not in ("", self.origin):
            return BLOCKED
        return None

    def iter_frames(self) -> Iterator[FrameDocument]:
        """This document and every loaded descendant frame, in document order."""
        yield self
        for iframe in self.soup.find_all("iframe"):
            child = self.children.get(id(iframe))
            if child is not None:
                yield from child.iter_frames()

    # -- Layout and visibility -----------------------------------------------

    def box(self, element: Tag) -> Box:
        return self.boxes.get(id(element), Box())

    def is_visible(self, element: Tag) -> bool:
        if element.name == "input" and (attr_text(element, "type") or "").lower() == "hidden":
            return False
        node: Any = element
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            if node.has_attr("hidden"):
                return False
            if _HIDDEN_STYLE.search(attr_text(node, "style") or ""):
                return False
            node = node.parent
        if self.boxes:
            box = self.box(element)
            return box.width > 0 and box.height > 0
        return True

    # -- Value model ---------------------------------------------------------

    @staticmethod
    def option_value(option: Tag) -> str:
        value = attr_text(option, "value")
        return value if value is not None else option.get_text(strip=True)

    def get_value(self, element: Tag) -> str:
        if element.name == "textarea":
            return element.get_text()
        if element.name == "select":
            options = element.find_all("option")
            for option in options:
                if option.has_attr("selected"):
                    return self.option_value(option)
            return self.option_value(options[0]) if options else ""
        return attr_text(element, "value") or ""

    def set_value(self, element: Tag, value: str) -> None:
        if element.name == "textarea":
            element.string = value
        elif element.name == "select":
            matched = False
            for option in element.find_all("option"):
                if not matched and self.option_value(option) == value:
                    option["selected"] = ""
                    matched = True
                elif option.has_attr("selected"):
                    del option["selected"]
        else:
            element["value"] = value
        self.writes.append(FieldWrite("value", element, value))

    @staticmethod
    def is_checked(element: Tag) -> bool:
        return element.has_attr("checked")

    def set_checked(self, element: Tag, checked: bool) -> None:
        if checked:
            element["checked"] = ""
        elif element.has_attr("checked"):
            del element["checked"]
        self.writes.append(FieldWrite("checked", element, checked))

    def focus(self, element: Tag) -> None:
        self.active_element = element
        self.dispatch("focus", element)

    def click(self, element: Tag) -> None:
        self.dispatch("click", element)
        self.writes.append(FieldWrite("click", element))

    # -- Events --------------------------------------------------------------

    def add_event_listener(self, callback: Callable[[DomEvent], None]) -> None:
        self._listeners.append(callback)

    def dispatch(self, event_type: str, element: Tag) -> None:
        event = DomEvent(event_type, element)
        self.events.append(event)
        for listener in list(self._listeners):
            listener(event)


class FramePage:
    """All frames of one open page, top frame first."""

    def __init__(self, top: FrameDocument) -> None:
        self.top = top

    @property
    def url(self) -> str:
        return self.top.url

    def frames(self) -> list[FrameDocument]:
        return list(self.top.iter_frames())

    def frame(self, frame_id: int) -> FrameDocument | None:
        for doc in self.frames():
            if doc.frame_id == frame_id:
                return doc
        return None


def load_page(html: str, url: str, resources: Mapping[str, str] | None = None) -> FramePage:
    """Build a FramePage from HTML.

    ``srcdoc`` frames are loaded as same-origin children.  ``src`` frames are
    resolved against the parent URL and loaded from *resources* (absolute URL
    -> HTML) when present; otherwise the frame has no document.
    """
    counter = itertools.count()
    top = _load_frame(html, url, None, None, resources or {}, counter, None, 0)
    return FramePage(top)


def _load_frame(
    html: str,
    url: str,
    parent: FrameDocument | None,
    iframe: Tag | None,
    resources: Mapping[str, str],
    counter: Iterator[int],
    origin: str | None,
    depth: int,
) -> FrameDocument:
    doc = FrameDocument.from_html(html, url, frame_id=next(counter), origin=origin)
    if parent is not None and iframe is not None:
        parent.attach_child(iframe, doc)
    if depth >= MAX_FRAME_DEPTH:
        logger.warning("Frame nesting deeper than %d at %s; not descending", MAX_FRAME_DEPTH, url)
        return doc

    for child_iframe in doc.soup.find_all("iframe"):
        srcdoc = attr_text(child_iframe, "srcdoc")
        if srcdoc is not None:
            _load_frame(srcdoc, "about:srcdoc", doc, child_iframe, resources, counter, doc.origin, depth + 1)
            continue
        src = attr_text(child_iframe, "src")
        if not src:
            doc.attach_child(child_iframe, None)
            continue
        child_url = urljoin(doc.base_url, src)
        child_html = resources.get(child_url)
        if child_html is None:
            logger.debug("No document for frame %s", child_url)
            doc.attach_child(child_iframe, None)
            continue
        _load_frame(child_html, child_url, doc, child_iframe, resources, counter, None, depth + 1)
    return doc
