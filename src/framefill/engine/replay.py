"""FrameFill Action Replay Engine — Applies stored entry instructions to one frame.

Each frame runs its own engine over the whole batch.  Per action:

- actions without an input value are ignored entirely
- when a resolver is attached, actions addressed to another frame are
  counted as ``skipped_frame`` and go no further
- the action's frame context is resolved to a document: this frame's own
  document, the inner document of one of its iframes, or BLOCKED when that
  iframe belongs to another origin
- the target element is looked up by selector, or through a registered
  accessor when the selector looks like a call (``name()``)
- the value is written and input/change events are dispatched

Counters satisfy ``total == applied + missing + blocked`` for every run.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import re
from typing import Any, Callable, Iterable

from bs4 import Tag

from framefill.dom import BLOCKED, FrameDocument, attr_text
from framefill.engine.frames import raw_locator
from framefill.engine.resolver import FrameResolver, RoutingDecision
from framefill.models import DESCENT_MARKER, TOP_FRAME

logger = logging.getLogger("framefill.engine.replay")

_RADIO_NAME = re.compile(r'\[name\s*=\s*"((?:[^"\\]|\\.)+)"\]')


class ActionType(str, enum.Enum):
    """Kinds of entry instruction."""

    INPUT = "Input"
    SELECT = "Select"
    CHECKBOX = "Checkbox"
    RADIO_BUTTON = "RadioButton"
    BUTTON = "Button"

    @classmethod
    def parse(cls, value: Any) -> ActionType:
        """Accept enum values or names; anything unknown is treated as Input."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text in (member.value, member.name) or text.lower() == member.value.lower():
                return member
        return cls.INPUT


@dataclasses.dataclass
class Action:
    """One entry instruction."""

    target_element: str
    context_document: str = TOP_FRAME
    action_type: ActionType = ActionType.INPUT
    input_value: Any = None

    @property
    def has_value(self) -> bool:
        return self.input_value is not None and self.input_value != "null"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        """Build from persisted (PascalCase) or snake_case keys."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        value = pick("InputValue", "input_value", "inputValue")
        return cls(
            target_element=str(pick("TargetElement", "target_element", "targetElement") or ""),
            context_document=str(pick("ContextDocument", "context_document", "contextDocument") or TOP_FRAME),
            action_type=ActionType.parse(pick("ActionType", "action_type", "actionType")),
            input_value=None if value == "null" else value,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "TargetElement": self.target_element,
            "ContextDocument": self.context_document,
            "ActionType": self.action_type.value,
            "InputValue": self.input_value,
        }


@dataclasses.dataclass
class ActionOutcome:
    """What happened to one action in one frame."""

    target_element: str
    context_document: str
    status: str  # applied, missing, blocked, failed, skipped
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "targetElement": self.target_element,
            "contextDocument": self.context_document,
            "status": self.status,
            "reason": self.reason,
        }


@dataclasses.dataclass
class ReplayResult:
    """Counters for one replay run (or a merge of several)."""

    total_actions: int = 0
    applied_actions: int = 0
    missing_elements: int = 0
    blocked_contexts: int = 0
    skipped_frame: int = 0
    outcomes: list[ActionOutcome] = dataclasses.field(default_factory=list)

    _KEYS = (
        ("total_actions", "totalActions"),
        ("applied_actions", "appliedActions"),
        ("missing_elements", "missingElements"),
        ("blocked_contexts", "blockedContexts"),
        ("skipped_frame", "skippedFrame"),
    )

    @property
    def balanced(self) -> bool:
        return self.total_actions == self.applied_actions + self.missing_elements + self.blocked_contexts

    def merge(self, other: ReplayResult) -> ReplayResult:
        merged = ReplayResult(outcomes=[*self.outcomes, *other.outcomes])
        for attr, _ in self._KEYS:
            setattr(merged, attr, getattr(self, attr) + getattr(other, attr))
        return merged

    def counters(self) -> dict[str, int]:
        return {key: getattr(self, attr) for attr, key in self._KEYS}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = self.counters()
        data["outcomes"] = [o.to_dict() for o in self.outcomes]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplayResult:
        result = cls()
        for attr, key in cls._KEYS:
            result_value = data.get(key, data.get(attr, 0))
            setattr(result, attr, int(result_value or 0))
        for item in data.get("outcomes") or []:
            result.outcomes.append(
                ActionOutcome(
                    target_element=item.get("targetElement", ""),
                    context_document=item.get("contextDocument", TOP_FRAME),
                    status=item.get("status", ""),
                    reason=item.get("reason", ""),
                )
            )
        return result


Accessor = Callable[[FrameDocument], "Tag | None"]


class AccessorRegistry:
    """Named element lookups for selectors of the form ``name()``.

    Accessors are plain Python callables registered up front; they receive
    the resolved document and return the target element or None.
    """

    def __init__(self) -> None:
        self._accessors: dict[str, Accessor] = {}

    def register(self, name: str, accessor: Accessor | None = None):
        """Register *accessor* under *name*.  Usable as a decorator."""
        if accessor is None:

            def decorator(fn: Accessor) -> Accessor:
                self._accessors[name] = fn
                return fn

            return decorator
        self._accessors[name] = accessor
        return accessor

    def names(self) -> list[str]:
        return sorted(self._accessors)

    def __contains__(self, name: object) -> bool:
        return name in self._accessors

    def resolve(self, name: str, document: FrameDocument) -> Tag | None:
        accessor = self._accessors.get(name)
        if accessor is None:
            logger.warning("No accessor registered for %s()", name)
            return None
        return accessor(document)


def local_selector(selector: str) -> str:
    """The element part of a possibly frame-scoped selector."""
    return selector.split(DESCENT_MARKER.strip())[-1].strip()


class ActionReplayEngine:
    """Applies entry instructions within one frame."""

    def __init__(
        self,
        document: FrameDocument,
        resolver: FrameResolver | None = None,
        accessors: AccessorRegistry | None = None,
    ) -> None:
        self.document = document
        self.resolver = resolver
        self.accessors = accessors or AccessorRegistry()

    def replay(self, actions: Iterable[Action | dict[str, Any]]) -> ReplayResult:
        result = ReplayResult()
        for item in actions:
            action = item if isinstance(item, Action) else Action.from_dict(item)
            if not action.has_value:
                continue

            decision: RoutingDecision | None = None
            if self.resolver is not None:
                decision = self.resolver.decide(action.context_document)
                if not decision.handle:
                    result.skipped_frame += 1
                    result.outcomes.append(self._outcome(action, "skipped", decision.reason))
                    continue

            result.total_actions += 1
            status, reason = self._apply_action(action, decision)
            if status == "applied":
                result.applied_actions += 1
            elif status == "blocked":
                result.blocked_contexts += 1
                logger.warning("Frame %s: blocked context for %s", self.document.frame_id, action.target_element)
            else:
                result.missing_elements += 1
                logger.warning(
                    "Frame %s: %s %s (%s)", self.document.frame_id, status, action.target_element, reason
                )
            result.outcomes.append(self._outcome(action, status, reason))

        logger.info(
            "Frame %s replay: total=%d applied=%d missing=%d blocked=%d skipped=%d",
            self.document.frame_id,
            result.total_actions,
            result.applied_actions,
            result.missing_elements,
            result.blocked_contexts,
            result.skipped_frame,
        )
        return result

    @staticmethod
    def _outcome(action: Action, status: str, reason: str) -> ActionOutcome:
        return ActionOutcome(action.target_element, action.context_document, status, reason)

    # -- Resolution ----------------------------------------------------------

    def resolve_document(self, context_document: str, decision: RoutingDecision | None = None):
        """Document addressed by *context_document* from this frame.

        Returns a FrameDocument, BLOCKED for a cross-origin iframe, or None
        when the iframe cannot be found.
        """
        if decision is not None and decision.addressed_self:
            return self.document
        raw = raw_locator(context_document)
        if raw is None:
            return self.document
        iframe = self.document.query(raw)
        if iframe is None:
            logger.warning("Frame %s: iframe not found for %s", self.document.frame_id, raw)
            return None
        return self.document.content_document(iframe)

    def resolve_element(self, document: FrameDocument, selector: str) -> Tag | None:
        selector = local_selector(selector)
        if not selector:
            return None
        if selector.endswith("()"):
            return self.accessors.resolve(selector[:-2], document)
        return document.query(selector)

    # -- Application ---------------------------------------------------------

    def _apply_action(self, action: Action, decision: RoutingDecision | None) -> tuple[str, str]:
        document = self.resolve_document(action.context_document, decision)
        if document is BLOCKED:
            return "blocked", "cross-origin frame"
        if document is None:
            return "missing", "frame not found"

        try:
            element = self.resolve_element(document, action.target_element)
        except Exception as exc:
            logger.warning("Accessor for %s raised: %s", action.target_element, exc)
            return "failed", f"accessor error: {exc}"

        if element is None and action.action_type is not ActionType.BUTTON:
            return "missing", "element not found"

        try:
            self._apply(document, element, action)
        except Exception as exc:
            logger.warning("Error applying %s to %s: %s", action.action_type.value, action.target_element, exc)
            return "failed", str(exc)
        return "applied", ""

    def _apply(self, document: FrameDocument, element: Tag | None, action: Action) -> None:
        value = action.input_value
        kind = action.action_type
        if kind is ActionType.SELECT:
            set_select_value(document, element, str(value))
        elif kind is ActionType.CHECKBOX:
            set_checkbox_value(document, element, value)
        elif kind is ActionType.RADIO_BUTTON:
            set_radio_value(document, element, action.target_element, value)
        elif kind is ActionType.BUTTON:
            if element is not None:
                document.click(element)
        else:
            set_input_value(document, element, str(value))


def set_input_value(document: FrameDocument, element: Tag, value: str) -> None:
    document.focus(element)
    document.set_value(element, value)
    document.dispatch("input", element)
    document.dispatch("change", element)


def set_select_value(document: FrameDocument, element: Tag, value: str) -> None:
    for option in element.find_all("option"):
        if document.option_value(option) == value or option.get_text(strip=True) == value:
            document.set_value(element, document.option_value(option))
            break
    else:
        document.set_value(element, value)
    document.dispatch("change", element)


def set_checkbox_value(document: FrameDocument, element: Tag, value: Any) -> None:
    document.set_checked(element, value is True or str(value).lower() == "true")
    document.dispatch("change", element)


def set_radio_value(document: FrameDocument, element: Tag, selector: str, value: Any) -> None:
    """Check one radio button.

    When the selector names a group (``[name="..."]``), every radio of that
    group is updated: checked where its value or id equals *value*.
    """
    match = _RADIO_NAME.search(local_selector(selector))
    if match is None:
        document.set_checked(element, True)
        document.dispatch("change", element)
        return
    name = re.sub(r"\\(.)", r"\1", match.group(1))
    wanted = str(value)
    for radio in document.query_all("input[type=radio]"):
        if attr_text(radio, "name") != name:
            continue
        document.set_checked(radio, attr_text(radio, "value") == wanted or attr_text(radio, "id") == wanted)
        document.dispatch("change", radio)
