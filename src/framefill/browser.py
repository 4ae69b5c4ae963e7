"""FrameFill browser bridge — Snapshots a live Playwright page and pushes writes back.

The operator keeps control of their own browser; FrameFill attaches over
CDP, copies every frame's DOM into a FramePage (with layout boxes), works on
that copy, and finally replays the recorded field writes into the live
frames with Playwright locators.
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any, Iterator

from framefill.dom import Box, FrameDocument, FramePage
from framefill.engine.selectors import SelectorSynthesizer

if TYPE_CHECKING:
    from playwright.sync_api import Frame, Page

logger = logging.getLogger("framefill.browser")

_BOXES_JS = """() => Array.from(document.querySelectorAll('*')).map(el => {
    const r = el.getBoundingClientRect();
    return [Math.round(r.left + window.scrollX), Math.round(r.top + window.scrollY),
            Math.round(r.width), Math.round(r.height)];
})"""

_IFRAME_INDEX_JS = "el => Array.from(el.ownerDocument.querySelectorAll('iframe')).indexOf(el)"


class BrowserSession:
    """Attach to an operator's Chromium over CDP."""

    def __init__(self, cdp_url: str) -> None:
        self._cdp_url = cdp_url
        self._playwright: Any = None
        self._browser: Any = None

    def start(self) -> None:
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.connect_over_cdp(self._cdp_url)
        logger.info("Connected to %s", self._cdp_url)

    def stop(self) -> None:
        """Disconnect.  The operator's browser keeps running."""
        try:
            if self._browser is not None:
                self._browser.close()
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._browser = None
            self._playwright = None

    def page(self, url_contains: str | None = None) -> Page:
        """The first open page, or the first whose URL contains *url_contains*."""
        pages = [p for context in self._browser.contexts for p in context.pages]
        for page in pages:
            if url_contains is None or url_contains in page.url:
                return page
        raise LookupError(f"No open page matches {url_contains!r}" if url_contains else "No open pages")


def _load_boxes(document: FrameDocument, frame: Frame) -> None:
    from playwright.sync_api import Error as PlaywrightError

    try:
        boxes = frame.evaluate(_BOXES_JS)
    except PlaywrightError as exc:
        logger.debug("No layout for %s: %s", frame.url, exc)
        return
    elements = document.soup.find_all(True)
    if len(elements) != len(boxes):
        logger.debug("Layout mismatch for %s (%d nodes vs %d boxes)", frame.url, len(elements), len(boxes))
        return
    for element, (x, y, width, height) in zip(elements, boxes):
        document.boxes[id(element)] = Box(int(x), int(y), int(width), int(height))


def _iframe_index(frame: Frame) -> int:
    from playwright.sync_api import Error as PlaywrightError

    try:
        return int(frame.frame_element().evaluate(_IFRAME_INDEX_JS))
    except PlaywrightError as exc:
        logger.debug("Cannot locate iframe of %s: %s", frame.url, exc)
        return -1


def _snapshot_frame(
    frame: Frame,
    parent: FrameDocument | None,
    counter: Iterator[int],
    frame_map: dict[int, Frame],
) -> FrameDocument:
    origin = parent.origin if parent is not None and frame.url.startswith("about:") else None
    document = FrameDocument.from_html(frame.content(), frame.url, frame_id=next(counter), origin=origin)
    frame_map[document.frame_id] = frame
    _load_boxes(document, frame)

    if parent is not None:
        iframes = parent.soup.find_all("iframe")
        index = _iframe_index(frame)
        if 0 <= index < len(iframes):
            parent.attach_child(iframes[index], document)
        else:
            document.parent = parent

    for child in frame.child_frames:
        _snapshot_frame(child, document, counter, frame_map)
    return document


def snapshot_page(page: Page) -> tuple[FramePage, dict[int, Frame]]:
    """Copy every frame of *page* into a FramePage.

    Returns the FramePage and a map from frame id to the live Playwright
    frame it was copied from.
    """
    frame_map: dict[int, Frame] = {}
    top = _snapshot_frame(page.main_frame, None, itertools.count(), frame_map)
    logger.info("Snapshot of %s: %d frames", page.url, len(frame_map))
    return FramePage(top), frame_map


def push_writes(snapshot: FramePage, frame_map: dict[int, Frame]) -> tuple[int, int]:
    """Replay recorded field writes into the live frames.

    Returns ``(pushed, failed)``.
    """
    from playwright.sync_api import Error as PlaywrightError

    synthesizer = SelectorSynthesizer()
    pushed = failed = 0
    for document in snapshot.frames():
        frame = frame_map.get(document.frame_id)
        if frame is None:
            continue
        for write in document.writes:
            element = write.element
            is_radio = element.name == "input" and (element.get("type") or "").lower() == "radio"
            if write.kind == "checked" and is_radio and not write.value:
                # Checking another radio of the group unchecks this one
                continue
            locator = frame.locator(synthesizer.synthesize(element, document)).first
            try:
                if write.kind == "click":
                    locator.click()
                elif write.kind == "checked":
                    locator.set_checked(bool(write.value))
                elif element.name == "select":
                    locator.select_option(str(write.value))
                else:
                    locator.fill(str(write.value))
                pushed += 1
            except PlaywrightError as exc:
                logger.warning("Frame %s: could not push %s write: %s", document.frame_id, write.kind, exc)
                failed += 1
    logger.info("Pushed %d writes (%d failed)", pushed, failed)
    return pushed, failed
