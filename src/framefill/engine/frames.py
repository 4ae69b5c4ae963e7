"""Frame locators and the frame-context codec.

A frame locator identifies one iframe element from the perspective of its
parent document.  Locators are modelled as a small tagged variant
(ByIframeId, ByIframeName, ...) and serialized as a raw CSS selector.  For
storage and cross-frame instructions the raw selector is wrapped into a
canonical context string:

    document.querySelector('<raw>').contentWindow.document

``encode`` and ``decode`` convert between the two forms and round-trip for
any raw selector, including ones containing quote characters or
backslashes.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from urllib.parse import urljoin, urlparse

import soupsieve as sv

from framefill.dom import FrameDocument, attr_text, class_list, index_of
from framefill.models import TOP_FRAME

logger = logging.getLogger("framefill.engine.frames")

_PREFIX = "document.querySelector('"
_SUFFIX = "').contentWindow.document"

# Source patterns are truncated to this many characters when src cannot be parsed
SRC_TRUNCATE = 30


class FrameContextError(Exception):
    """Raised when a frame-context string is not in canonical form."""

    pass


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def is_top_context(context: str | None) -> bool:
    return context is None or not str(context).strip() or str(context).strip() == TOP_FRAME


def encode(raw: str | None) -> str:
    """Wrap a raw iframe locator into a canonical context string."""
    if is_top_context(raw):
        return TOP_FRAME
    escaped = raw.replace("\\", "\\\\").replace("'", "\\'")
    return f"{_PREFIX}{escaped}{_SUFFIX}"


def decode(context: str | None) -> str | None:
    """Extract the raw iframe locator from a canonical context string.

    Both quote styles are accepted; ``encode`` always writes single quotes.
    Returns None for the top-frame marker.  Raises FrameContextError when
    *context* is neither the marker nor a canonical string.
    """
    if is_top_context(context):
        return None
    text = str(context).strip()
    for quote in ("'", '"'):
        prefix = f"document.querySelector({quote}"
        suffix = f"{quote}).contentWindow.document"
        if text.startswith(prefix) and text.endswith(suffix) and len(text) > len(prefix) + len(suffix):
            return _unescape(text[len(prefix) : -len(suffix)], quote)
    raise FrameContextError(f"Not a frame context: {context!r}")


def raw_locator(context: str | None) -> str | None:
    """Like decode(), but treats a non-canonical string as an already-raw locator."""
    try:
        return decode(context)
    except FrameContextError:
        return str(context).strip()


def _unescape(text: str, quote: str = "'") -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in ("\\", quote):
            out.append(text[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Locator variants
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Clue:
    """One observable property a locator claims about its iframe."""

    kind: str  # id, bare_id, name, title, class, index, src
    value: str
    op: str = "="  # src only: *=, ^=, $=, =


# Order in which clues are tested against an embedding element
CLUE_ORDER = ("id", "bare_id", "name", "title", "class", "index", "src")


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class FrameLocator:
    """Base class of the locator variants."""

    def to_selector(self) -> str:
        raise NotImplementedError

    def clues(self) -> tuple[Clue, ...]:
        return ()

    def to_context(self) -> str:
        return encode(self.to_selector())


@dataclasses.dataclass(frozen=True)
class TopFrame(FrameLocator):
    def to_selector(self) -> str:
        return ""

    def to_context(self) -> str:
        return TOP_FRAME


@dataclasses.dataclass(frozen=True)
class ByIframeId(FrameLocator):
    id: str

    def to_selector(self) -> str:
        return f"iframe#{sv.escape(self.id)}"

    def clues(self) -> tuple[Clue, ...]:
        return (Clue("id", self.id),)


@dataclasses.dataclass(frozen=True)
class ByIframeName(FrameLocator):
    name: str

    def to_selector(self) -> str:
        return f"iframe[name={_quote(self.name)}]"

    def clues(self) -> tuple[Clue, ...]:
        return (Clue("name", self.name),)


@dataclasses.dataclass(frozen=True)
class ByIframeTitle(FrameLocator):
    title: str

    def to_selector(self) -> str:
        return f"iframe[title={_quote(self.title)}]"

    def clues(self) -> tuple[Clue, ...]:
        return (Clue("title", self.title),)


@dataclasses.dataclass(frozen=True)
class ByIframeClass(FrameLocator):
    class_name: str

    def to_selector(self) -> str:
        return f"iframe.{sv.escape(self.class_name)}"

    def clues(self) -> tuple[Clue, ...]:
        return (Clue("class", self.class_name),)


@dataclasses.dataclass(frozen=True)
class SrcPattern:
    op: str  # *=, ^=, $=, =
    value: str


@dataclasses.dataclass(frozen=True)
class ByIframeSrcPattern(FrameLocator):
    patterns: tuple[SrcPattern, ...]

    @property
    def kind(self) -> str:
        return self.patterns[0].op

    @property
    def value(self) -> str:
        return self.patterns[0].value

    def to_selector(self) -> str:
        return "iframe" + "".join(f"[src{p.op}{_quote(p.value)}]" for p in self.patterns)

    def clues(self) -> tuple[Clue, ...]:
        return tuple(Clue("src", p.value, p.op) for p in self.patterns)


@dataclasses.dataclass(frozen=True)
class ByIframeIndex(FrameLocator):
    index: int  # 1-based among sibling iframes

    def to_selector(self) -> str:
        return f"iframe:nth-of-type({self.index})"

    def clues(self) -> tuple[Clue, ...]:
        return (Clue("index", str(self.index)),)


@dataclasses.dataclass(frozen=True)
class GenericIframe(FrameLocator):
    def to_selector(self) -> str:
        return "iframe"


@dataclasses.dataclass(frozen=True)
class RawIframeSelector(FrameLocator):
    """Any other selector, e.g. one edited by hand."""

    selector: str

    def to_selector(self) -> str:
        return self.selector

    def clues(self) -> tuple[Clue, ...]:
        return extract_clues(self.selector)


# ---------------------------------------------------------------------------
# Parsing raw selectors
# ---------------------------------------------------------------------------

_QUOTED = r'"((?:[^"\\]|\\.)*)"'
_IDENT = r"((?:[A-Za-z0-9_\-]|\\[0-9a-fA-F]{1,6} ?|\\.|[^\x00-\x7f])+)"

_EXACT = [
    (re.compile(rf"^iframe#{_IDENT}$"), lambda v: ByIframeId(_css_unescape(v))),
    (re.compile(rf"^iframe\[name={_QUOTED}\]$"), lambda v: ByIframeName(_css_unescape(v))),
    (re.compile(rf"^iframe\[title={_QUOTED}\]$"), lambda v: ByIframeTitle(_css_unescape(v))),
    (re.compile(rf"^iframe\.{_IDENT}$"), lambda v: ByIframeClass(_css_unescape(v))),
    (re.compile(r"^iframe:nth-of-type\((\d+)\)$"), lambda v: ByIframeIndex(int(v))),
]
_SRC_EXACT = re.compile(rf'^iframe((?:\[src[*^$]?={_QUOTED}\])+)$')
_SRC_PART = re.compile(rf"\[src([*^$]?=){_QUOTED}\]")

# Heuristic clue extraction for arbitrary selectors
_RAW_ID = re.compile(r"^iframe#([A-Za-z0-9_-]+)")
_RAW_BARE_ID = re.compile(r"^#([\w-]+)")
_RAW_NAME = re.compile(r"\[name\s*=\s*['\"]([^'\"]+)['\"]\]")
_RAW_TITLE = re.compile(r"\[title\s*=\s*['\"]([^'\"]+)['\"]\]")
_RAW_CLASS = re.compile(r"^iframe\.([A-Za-z0-9_-]+)")
_RAW_INDEX = re.compile(r"^iframe:nth-of-type\((\d+)\)")
_RAW_SRC = re.compile(r"src\s*([*^$]?=)\s*['\"]([^'\"]+)['\"]")


def _css_unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 >= len(text):
            out.append(ch)
            i += 1
            continue
        hex_match = re.match(r"[0-9a-fA-F]{1,6}", text[i + 1 : i + 7])
        if hex_match:
            out.append(chr(int(hex_match.group(0), 16)))
            i += 1 + len(hex_match.group(0))
            if i < len(text) and text[i] == " ":
                i += 1
            continue
        out.append(text[i + 1])
        i += 2
    return "".join(out)


def parse_locator(raw: str | None) -> FrameLocator:
    """Map a raw iframe selector back to its locator variant."""
    if is_top_context(raw):
        return TopFrame()
    text = raw.strip()
    if text == "iframe":
        return GenericIframe()
    for pattern, build in _EXACT:
        match = pattern.match(text)
        if match:
            return build(match.group(1))
    if _SRC_EXACT.match(text):
        patterns = tuple(SrcPattern(op, _css_unescape(value)) for op, value in _SRC_PART.findall(text))
        return ByIframeSrcPattern(patterns)
    return RawIframeSelector(text)


def locator_from_context(context: str | None) -> FrameLocator:
    """Decode a canonical context string into a locator variant."""
    return parse_locator(decode(context))


def extract_clues(selector: str) -> tuple[Clue, ...]:
    """Pull id/name/title/class/index/src claims out of an arbitrary selector."""
    clues: list[Clue] = []
    if match := _RAW_ID.match(selector):
        clues.append(Clue("id", match.group(1)))
    if selector.startswith("#"):
        if match := _RAW_BARE_ID.match(selector):
            clues.append(Clue("bare_id", match.group(1)))
    if match := _RAW_NAME.search(selector):
        clues.append(Clue("name", match.group(1)))
    if match := _RAW_TITLE.search(selector):
        clues.append(Clue("title", match.group(1)))
    if match := _RAW_CLASS.match(selector):
        clues.append(Clue("class", match.group(1)))
    if match := _RAW_INDEX.match(selector):
        clues.append(Clue("index", match.group(1)))
    for op, value in _RAW_SRC.findall(selector):
        clues.append(Clue("src", value, op))
    return tuple(clues)


# ---------------------------------------------------------------------------
# Frame identification
# ---------------------------------------------------------------------------


def identify_frame(document: FrameDocument) -> FrameLocator:
    """Derive the locator of *document*'s own embedding iframe.

    Runs from the child's point of view.  Priority: id, name, title, first
    class, src pattern, index among sibling iframes, generic iframe.  When
    the embedding element is out of reach (cross-origin) the frame's own
    hostname is the only usable clue.
    """
    if document.is_top:
        return TopFrame()

    frame_element = document.embedding_element()
    if frame_element is None:
        host = urlparse(document.url).hostname
        if host:
            return ByIframeSrcPattern((SrcPattern("*=", host),))
        return GenericIframe()

    frame_id = attr_text(frame_element, "id")
    if frame_id and frame_id.strip():
        return ByIframeId(frame_id)

    name = attr_text(frame_element, "name")
    if name and name.strip():
        return ByIframeName(name)

    title = attr_text(frame_element, "title")
    if title and title.strip():
        return ByIframeTitle(title)

    classes = class_list(frame_element)
    if classes:
        return ByIframeClass(classes[0])

    src = attr_text(frame_element, "src")
    if src:
        parent_base = document.parent.base_url if document.parent is not None else ""
        parsed = urlparse(urljoin(parent_base, src))
        if parsed.hostname:
            segments = [p for p in parsed.path.split("/") if p]
            if segments:
                return ByIframeSrcPattern((SrcPattern("*=", parsed.hostname), SrcPattern("*=", segments[-1])))
            return ByIframeSrcPattern((SrcPattern("*=", parsed.hostname),))
        return ByIframeSrcPattern((SrcPattern("*=", src[:SRC_TRUNCATE]),))

    if frame_element.parent is not None:
        siblings = frame_element.parent.find_all("iframe", recursive=False)
        position = index_of(siblings, frame_element)
        if position >= 0:
            return ByIframeIndex(position + 1)

    return GenericIframe()


def frame_context(document: FrameDocument) -> str:
    """Canonical context string of *document* (the top marker at the top)."""
    return identify_frame(document).to_context()
