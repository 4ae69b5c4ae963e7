"""FrameFill Frame Agent — Per-frame message handling.

One FrameAgent runs for each frame of a page.  It owns that frame's
SelectionSession (the marked elements, manual mode, undo/redo history) and
answers coordinator messages such as EXTRACT_PART or RUN_ENTRY against its
own document only.  Agents share nothing with each other.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable

from bs4 import Tag

from framefill.config import FrameFillConfig
from framefill.dom import FrameDocument, contains
from framefill.engine.descriptors import (
    ElementDescriptor,
    build_descriptor,
    dedupe,
    default_page_name,
    dom_signature,
    generate_page_id,
)
from framefill.engine.replay import AccessorRegistry, Action, ActionReplayEngine
from framefill.engine.resolver import FrameResolver
from framefill.engine.selectors import SelectorSynthesizer
from framefill.models import INTERACTIVE_SELECTORS, LABEL_MODES, MessageAction
from framefill.storage import SessionStore

logger = logging.getLogger("framefill.engine.agent")

Notify = Callable[[MessageAction, dict[str, Any]], None]


def interactive_elements(document: FrameDocument) -> list[Tag]:
    """Visible interactive elements, grouped by INTERACTIVE_SELECTORS order."""
    elements: list[Tag] = []
    for selector in INTERACTIVE_SELECTORS:
        for element in document.query_all(selector):
            if document.is_visible(element) and not contains(elements, element):
                elements.append(element)
    return elements


@dataclasses.dataclass
class SelectionSession:
    """Selection state of one frame."""

    selected: list[Tag] = dataclasses.field(default_factory=list)
    manual_mode: bool = False
    undo_stack: list[tuple[str, Tag]] = dataclasses.field(default_factory=list)
    redo_stack: list[tuple[str, Tag]] = dataclasses.field(default_factory=list)
    extraction_count: int = 0
    label_mode: str = "original"
    page_id: str = ""

    def __len__(self) -> int:
        return len(self.selected)

    def is_selected(self, element: Tag) -> bool:
        return contains(self.selected, element)

    def add(self, element: Tag) -> bool:
        if self.is_selected(element):
            return False
        self.selected.append(element)
        return True

    def remove(self, element: Tag) -> bool:
        for i, e in enumerate(self.selected):
            if e is element:
                del self.selected[i]
                return True
        return False

    def toggle(self, element: Tag) -> str:
        """Add or remove *element*, recording the change for undo."""
        if self.is_selected(element):
            self.remove(element)
            change = "remove"
        else:
            self.add(element)
            change = "add"
        self.undo_stack.append((change, element))
        self.redo_stack.clear()
        return change

    def undo(self) -> bool:
        if not self.undo_stack:
            return False
        change, element = self.undo_stack.pop()
        if change == "add":
            self.remove(element)
        else:
            self.add(element)
        # Redo replays the original change
        self.redo_stack.append((change, element))
        return True

    def redo(self) -> bool:
        if not self.redo_stack:
            return False
        change, element = self.redo_stack.pop()
        if change == "add":
            self.add(element)
        else:
            self.remove(element)
        self.undo_stack.append((change, element))
        return True

    def ordered(self) -> list[Tag]:
        """Selected elements in document order."""
        if not self.selected:
            return []
        root = self.selected[0]
        while root.parent is not None:
            root = root.parent
        position = {id(el): i for i, el in enumerate(root.find_all(True))}
        return sorted(self.selected, key=lambda el: position.get(id(el), len(position)))

    def clear(self) -> None:
        self.selected.clear()

    def reset(self, page_id: str = "") -> None:
        self.clear()
        self.manual_mode = False
        self.undo_stack.clear()
        self.redo_stack.clear()
        self.extraction_count = 0
        self.page_id = page_id


class FrameAgent:
    """Answers coordinator messages for one frame."""

    def __init__(
        self,
        document: FrameDocument,
        store: SessionStore | None = None,
        notify: Notify | None = None,
        accessors: AccessorRegistry | None = None,
        config: FrameFillConfig | None = None,
    ) -> None:
        self.document = document
        self.store = store
        self.notify = notify
        self.accessors = accessors or AccessorRegistry()
        self.config = config or FrameFillConfig()
        self.synthesizer = SelectorSynthesizer(self.config.relaxed_match_threshold)
        self.resolver = FrameResolver(document)
        self.session = SelectionSession(label_mode=self.config.label_mode, page_id=self._new_page_id())
        self._handlers: dict[MessageAction, Callable[[dict[str, Any]], dict[str, Any]]] = {
            MessageAction.FRAME_READY: self._on_ping,
            MessageAction.PING: self._on_ping,
            MessageAction.AUTO_SELECT: self._on_auto_select,
            MessageAction.MANUAL_MODE_ON: self._on_manual_on,
            MessageAction.MANUAL_MODE_OFF: self._on_manual_off,
            MessageAction.TOGGLE_ELEMENT: self._on_toggle,
            MessageAction.UNDO: self._on_undo,
            MessageAction.REDO: self._on_redo,
            MessageAction.EXTRACT_PART: self._on_extract_part,
            MessageAction.SAVE_EXTRACTION: self._on_save_extraction,
            MessageAction.GET_SELECTED_SUMMARY: self._on_summary,
            MessageAction.GET_STATS: self._on_stats,
            MessageAction.VALIDATE_RAW_SELECTORS_FRAME: self._on_validate,
            MessageAction.RUN_ENTRY: self._on_run_entry,
            MessageAction.CLEAR_ALL: self._on_clear_all,
            MessageAction.SET_LABEL_MODE: self._on_set_label_mode,
        }

    @property
    def frame_id(self) -> int:
        return self.document.frame_id

    def _new_page_id(self) -> str:
        return generate_page_id(self.document.url, self.document.title, dom_signature(self.document))

    def announce(self) -> None:
        """Tell the coordinator this frame is ready."""
        if self.notify is not None:
            self.notify(MessageAction.FRAME_READY, {"frameId": self.frame_id, "url": self.document.url})

    def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        """Dispatch one message; failures come back as ``{"success": False}``."""
        try:
            action = MessageAction(message.get("action"))
        except ValueError:
            return {"success": False, "error": "Unknown action"}
        try:
            return self._handlers[action](message)
        except Exception as exc:
            logger.warning("Frame %s: %s failed: %s", self.frame_id, action.value, exc)
            return {"success": False, "error": str(exc) or f"{action.value} failed"}

    # -- Selection -----------------------------------------------------------

    def _on_ping(self, message: dict[str, Any]) -> dict[str, Any]:
        return {"ok": True, "frameId": self.frame_id}

    def _on_auto_select(self, message: dict[str, Any]) -> dict[str, Any]:
        self.session.clear()
        elements = interactive_elements(self.document)
        for element in elements:
            self.session.add(element)
        logger.info("Frame %s: auto-selected %d elements", self.frame_id, len(elements))
        return {"success": True, "count": len(elements)}

    def _on_manual_on(self, message: dict[str, Any]) -> dict[str, Any]:
        self.session.manual_mode = True
        return {"success": True}

    def _on_manual_off(self, message: dict[str, Any]) -> dict[str, Any]:
        self.session.manual_mode = False
        return {"success": True, "selectedCount": len(self.session)}

    def _on_toggle(self, message: dict[str, Any]) -> dict[str, Any]:
        if not self.session.manual_mode:
            return {"success": False, "error": "Manual mode is off"}
        if "contextDocument" in message and not self.resolver.should_handle(message["contextDocument"]):
            return {"success": False, "skipped": True}
        element = self.document.query(message.get("selector") or "")
        if element is None:
            return {"success": False, "error": "element not found"}
        # A container with exactly one selected descendant toggles that descendant
        if not self.session.is_selected(element):
            selected_children = [c for c in element.find_all(True) if self.session.is_selected(c)]
            if len(selected_children) == 1:
                element = selected_children[0]
        change = self.session.toggle(element)
        return {"success": True, "change": change, "selectedCount": len(self.session)}

    def _on_undo(self, message: dict[str, Any]) -> dict[str, Any]:
        return {"success": self.session.undo(), "selectedCount": len(self.session)}

    def _on_redo(self, message: dict[str, Any]) -> dict[str, Any]:
        return {"success": self.session.redo(), "selectedCount": len(self.session)}

    def _on_clear_all(self, message: dict[str, Any]) -> dict[str, Any]:
        self.session.reset(page_id=self._new_page_id())
        return {"success": True}

    def _on_set_label_mode(self, message: dict[str, Any]) -> dict[str, Any]:
        mode = message.get("mode")
        self.session.label_mode = mode if mode in LABEL_MODES else "original"
        return {"success": True, "mode": self.session.label_mode}

    # -- Extraction ----------------------------------------------------------

    def describe_selection(self) -> list[ElementDescriptor]:
        return [
            build_descriptor(element, self.document, self.session.label_mode, self.synthesizer)
            for element in self.session.ordered()
        ]

    def _on_extract_part(self, message: dict[str, Any]) -> dict[str, Any]:
        elements = self.describe_selection()
        return {
            "success": True,
            "frameId": self.frame_id,
            "frameUrl": self.document.url,
            "elements": [e.to_dict() for e in elements],
        }

    def _on_save_extraction(self, message: dict[str, Any]) -> dict[str, Any]:
        if not self.document.is_top:
            return {"success": False, "error": "Extractions are saved by the top frame only"}
        if self.store is None:
            return {"success": False, "error": "No session store configured"}
        elements = dedupe(ElementDescriptor.from_dict(e) for e in message.get("elements") or [])
        self.session.extraction_count += 1
        self.store.save_extraction(
            page_id=self.session.page_id,
            page_name=message.get("pageName") or default_page_name(self.document),
            url=self.document.url,
            dom_signature=dom_signature(self.document),
            group_id=self.session.extraction_count,
            elements=elements,
        )
        self.session.clear()
        return {
            "success": True,
            "count": len(elements),
            "pageId": self.session.page_id,
            "groupId": self.session.extraction_count,
        }

    def _on_summary(self, message: dict[str, Any]) -> dict[str, Any]:
        items = []
        by_type: dict[str, int] = {}
        for element in self.session.ordered():
            info = build_descriptor(element, self.document, self.session.label_mode, self.synthesizer)
            raw_selector = self.synthesizer.synthesize(element, self.document)
            items.append(
                {
                    "label": info.label,
                    "type": info.type,
                    "selector": info.selector,
                    "contextDocument": info.frame_context,
                    "rawSelector": raw_selector,
                    "matches": self.document.count(raw_selector),
                }
            )
            key = info.type.lower()
            by_type[key] = by_type.get(key, 0) + 1
        return {"success": True, "selectedCount": len(self.session), "byType": by_type, "items": items}

    def _on_stats(self, message: dict[str, Any]) -> dict[str, Any]:
        return {"selectedCount": len(self.session)}

    def _on_validate(self, message: dict[str, Any]) -> dict[str, Any]:
        selectors = message.get("rawSelectors")
        if not isinstance(selectors, list):
            selectors = []
        return {"success": True, "counts": {s: self.document.count(s) for s in selectors}}

    # -- Replay --------------------------------------------------------------

    def _on_run_entry(self, message: dict[str, Any]) -> dict[str, Any]:
        functions = message.get("functions") or {}
        if functions:
            logger.warning(
                "Frame %s: ignoring %d function bodies; register accessors instead",
                self.frame_id,
                len(functions),
            )
        actions = [Action.from_dict(a) for a in iter_actions(message)]
        engine = ActionReplayEngine(self.document, resolver=self.resolver, accessors=self.accessors)
        result = engine.replay(actions)
        return {"success": True, **result.to_dict()}


def iter_actions(message: dict[str, Any]) -> list[dict[str, Any]]:
    """Actions of a RUN_ENTRY message: ``dataGroups[*].Actions`` then ``actions``."""
    actions: list[dict[str, Any]] = []
    groups = message.get("dataGroups")
    if isinstance(groups, list):
        for group in groups:
            if isinstance(group, dict):
                actions.extend(a for a in group.get("Actions") or [] if isinstance(a, dict))
    extra = message.get("actions")
    if isinstance(extra, list):
        actions.extend(a for a in extra if isinstance(a, dict))
    return actions
