"""FrameFill Selector Synthesizer — Minimal, re-render tolerant CSS selectors.

Given an element and the document that owns it, produce the shortest
selector that picks out that element, trying in order:

1. ``#id`` when the id is unique in the document
2. ``[name="..."]`` when the name is unique
3. ``tag[type="..."]`` plus classes appended one at a time, accepted once
   the selector matches at most ``threshold`` nodes
4. a parent token (``#id``, ``.class`` or tag) joined with ``>``
5. a 1-based index among siblings with the same tag and type

Selectors for elements in a child frame are prefixed with the frame's own
locator and the descent marker, so that ``split_scoped`` can recover the
``(frame_context, selector)`` pair.
"""

from __future__ import annotations

import logging

import soupsieve as sv
from bs4 import BeautifulSoup, Tag

from framefill.dom import FrameDocument, attr_text, class_list, index_of
from framefill.engine.frames import encode, identify_frame
from framefill.models import DESCENT_MARKER, RELAXED_MATCH_THRESHOLD, TOP_FRAME

logger = logging.getLogger("framefill.engine.selectors")


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class SelectorSynthesizer:
    """Builds selectors scoped to one document."""

    def __init__(self, threshold: int = RELAXED_MATCH_THRESHOLD) -> None:
        self.threshold = threshold

    def synthesize(self, node: Tag, document: FrameDocument) -> str:
        """Return the most specific selector found for *node*.

        Never raises.  When no unique selector exists the last candidate is
        returned as a best effort.
        """
        element_id = attr_text(node, "id")
        if element_id and element_id.strip():
            selector = f"#{sv.escape(element_id)}"
            if document.count(selector) == 1:
                return selector

        name = attr_text(node, "name")
        if name and name.strip():
            selector = f"[name={_quote(name)}]"
            if document.count(selector) == 1:
                return selector

        element_type = attr_text(node, "type")
        base = node.name + (f"[type={_quote(element_type)}]" if element_type else "")
        selector = base
        for cls in class_list(node):
            selector = f"{selector}.{sv.escape(cls)}"
            if document.count(selector) <= self.threshold:
                break

        if document.count(selector) <= 1:
            return selector

        parent = node.parent
        if _is_element(parent) and parent.name != "body":
            selector = f"{_parent_token(parent)} > {selector}"
            if document.count(selector) == 1:
                return selector

        if _is_element(parent):
            indexed = _indexed(node, parent, selector, element_type)
            if indexed is not None:
                selector = indexed

        if document.count(selector) != 1:
            logger.debug("No unique selector for <%s>; using %r", node.name, selector)
        return selector

    def synthesize_scoped(self, node: Tag, document: FrameDocument) -> str:
        """Selector prefixed with the frame locator when *document* is a child frame."""
        selector = self.synthesize(node, document)
        if document.is_top:
            return selector
        return identify_frame(document).to_selector() + DESCENT_MARKER + selector


def _is_element(node) -> bool:
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup)


def _parent_token(parent: Tag) -> str:
    parent_id = attr_text(parent, "id")
    if parent_id and parent_id.strip():
        return f"#{sv.escape(parent_id)}"
    classes = class_list(parent)
    if classes:
        return f".{sv.escape(classes[0])}"
    return parent.name


def _same_type(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return not a and not b
    return a.lower() == b.lower()


def _indexed(node: Tag, parent: Tag, selector: str, element_type: str | None) -> str | None:
    same_tag = parent.find_all(node.name, recursive=False)
    siblings = [s for s in same_tag if _same_type(attr_text(s, "type"), element_type)]
    position = index_of(siblings, node)
    if position < 0:
        return None
    n = position + 1
    if element_type:
        return f"{selector}:nth-child({n} of {node.name}[type={_quote(element_type)}])"
    if len(siblings) == len(same_tag):
        return f"{selector}:nth-of-type({n})"
    # Untyped siblings include an empty type attribute
    return f"{selector}:nth-child({n} of {node.name}:is(:not([type]), [type=\"\"]))"


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

_default = SelectorSynthesizer()


def synthesize(node: Tag, document: FrameDocument, threshold: int = RELAXED_MATCH_THRESHOLD) -> str:
    synthesizer = _default if threshold == _default.threshold else SelectorSynthesizer(threshold)
    return synthesizer.synthesize(node, document)


def synthesize_scoped(node: Tag, document: FrameDocument, threshold: int = RELAXED_MATCH_THRESHOLD) -> str:
    return SelectorSynthesizer(threshold).synthesize_scoped(node, document)


def split_scoped(full: str) -> tuple[str, str]:
    """Split a scoped selector into ``(frame_context, selector)``.

    The frame context is canonical (encoded) or the top marker.
    """
    frame, marker, selector = full.partition(DESCENT_MARKER.strip())
    if not marker:
        return TOP_FRAME, full.strip()
    return encode(frame.strip()), selector.strip()


def validate_uniqueness(selector: str, document: FrameDocument) -> int:
    """Number of nodes *selector* matches now (0 for invalid selectors)."""
    return document.count(selector)
