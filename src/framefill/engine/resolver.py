"""FrameFill Frame Resolver — Decides whether an instruction belongs to this frame.

Each frame answers independently, from inside its own document, whether an
instruction addressed to ``context_document`` should be handled here.  The
frame's embedding iframe is inspected when it is reachable (same origin);
otherwise the frame's own URL is matched against the locator's quoted
patterns.  A frame that cannot rule itself out handles the instruction, and
a context that is not a frame context at all is handled by every child
frame.

Every decision carries a reason string so routing can be traced in logs and
asserted in tests.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from urllib.parse import urljoin

from bs4 import Tag

from framefill.dom import FrameDocument, attr_text, class_list, index_of
from framefill.engine.frames import (
    CLUE_ORDER,
    Clue,
    FrameContextError,
    decode,
    extract_clues,
    parse_locator,
)

logger = logging.getLogger("framefill.engine.resolver")

_QUOTED_TOKEN = re.compile(r"['\"]([^'\"]+)['\"]")


@dataclasses.dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one routing check."""

    handle: bool
    reason: str
    # True when this (child) frame is itself the addressed frame, so the
    # instruction applies to its own document
    addressed_self: bool = False


def match_pattern(op: str, pattern: str, text: str) -> bool:
    """Evaluate a CSS attribute operator against *text*."""
    if op == "*=":
        return pattern in text
    if op == "^=":
        return text.startswith(pattern)
    if op == "$=":
        return text.endswith(pattern)
    return text == pattern


class FrameResolver:
    """Routing decisions for one frame's document."""

    def __init__(self, document: FrameDocument) -> None:
        self.document = document

    @property
    def is_top(self) -> bool:
        return self.document.is_top

    def should_handle(self, context_document: str | None) -> bool:
        return self.decide(context_document).handle

    def decide(self, context_document: str | None) -> RoutingDecision:
        try:
            raw = decode(context_document)
        except FrameContextError:
            # Unparseable contexts belong to every child frame, never the top
            decision = RoutingDecision(not self.is_top, "unparseable", addressed_self=not self.is_top)
            logger.debug("Frame %s: %r -> %s", self.document.frame_id, context_document, decision)
            return decision

        if raw is None:
            decision = RoutingDecision(self.is_top, "top-frame" if self.is_top else "top-frame-elsewhere")
        elif self.is_top:
            decision = RoutingDecision(False, "child-at-top")
        else:
            decision = self._decide_child(raw)
        logger.debug("Frame %s: %r -> %s", self.document.frame_id, context_document, decision)
        return decision

    # -- Child frames --------------------------------------------------------

    def _decide_child(self, raw: str) -> RoutingDecision:
        clues = _ordered(parse_locator(raw).clues() or extract_clues(raw))
        frame_element = self.document.embedding_element()

        if frame_element is not None:
            for clue in clues:
                if clue.kind != "src" and self._clue_matches(clue, frame_element):
                    return RoutingDecision(True, f"matched:{clue.kind}", addressed_self=True)
            src_clues = [c for c in clues if c.kind == "src"]
            if src_clues and all(self._src_matches(c, frame_element) for c in src_clues):
                return RoutingDecision(True, f"matched:src{src_clues[0].op}", addressed_self=True)

        return self._url_fallback(raw, clues)

    def _clue_matches(self, clue: Clue, frame_element: Tag) -> bool:
        if clue.kind in ("id", "bare_id"):
            return attr_text(frame_element, "id") == clue.value
        if clue.kind in ("name", "title"):
            return attr_text(frame_element, clue.kind) == clue.value
        if clue.kind == "class":
            classes = class_list(frame_element)
            return bool(classes) and classes[0] == clue.value
        if clue.kind == "index":
            parent = frame_element.parent
            if parent is None:
                return False
            siblings = parent.find_all("iframe", recursive=False)
            return index_of(siblings, frame_element) + 1 == int(clue.value)
        return False

    def _src_matches(self, clue: Clue, frame_element: Tag) -> bool:
        src = attr_text(frame_element, "src")
        if src is None:
            return False
        parent = self.document.parent
        resolved = urljoin(parent.base_url, src) if parent is not None else src
        return match_pattern(clue.op, clue.value, src) or match_pattern(clue.op, clue.value, resolved)

    def _url_fallback(self, raw: str, clues: tuple[Clue, ...]) -> RoutingDecision:
        url = self.document.url
        src_clues = [c for c in clues if c.kind == "src"]
        if src_clues:
            handle = all(match_pattern(c.op, c.value, url) for c in src_clues)
            return RoutingDecision(handle, f"url:src{src_clues[0].op}{src_clues[0].value}", addressed_self=handle)

        tokens = _QUOTED_TOKEN.findall(raw)
        if tokens:
            handle = any(token in url for token in tokens)
            return RoutingDecision(handle, f"url:{tokens[0]}", addressed_self=handle)

        return RoutingDecision(True, "url-fallback-default", addressed_self=True)


def _ordered(clues: tuple[Clue, ...]) -> tuple[Clue, ...]:
    return tuple(sorted(clues, key=lambda c: CLUE_ORDER.index(c.kind)))


def should_handle(context_document: str | None, document: FrameDocument) -> bool:
    """Convenience wrapper around FrameResolver.decide()."""
    return FrameResolver(document).should_handle(context_document)
