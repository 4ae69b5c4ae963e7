"""FrameFill Element Descriptors — Identity snapshots of selected elements.

An ElementDescriptor records everything needed to find and describe an
element later: a display label, its selector and frame context, a
``tag[type]`` string, key attributes, validation and accessibility hints,
and its layout box.  Descriptors are persisted with camelCase keys.
"""

from __future__ import annotations

import base64
import dataclasses
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable
from urllib.parse import urlparse

from bs4 import NavigableString, Tag

from framefill.dom import FrameDocument, attr_text, class_list
from framefill.engine.frames import identify_frame
from framefill.engine.selectors import SelectorSynthesizer, split_scoped
from framefill.models import KEY_ATTRIBUTES, TOP_FRAME

logger = logging.getLogger("framefill.engine.descriptors")

_CONTROLS = ["input", "select", "button", "textarea"]
_NEARBY_CLASS = re.compile(r"label|field|form")
_FOCUSABLE = ("input", "select", "textarea", "button")


@dataclasses.dataclass
class ElementDescriptor:
    """A selected element, as extracted from one frame."""

    label: str
    selector: str
    frame_context: str = TOP_FRAME
    type: str = ""
    attributes: dict[str, str] = dataclasses.field(default_factory=dict)
    validation: dict[str, Any] = dataclasses.field(default_factory=dict)
    accessibility: dict[str, Any] = dataclasses.field(default_factory=dict)
    position: dict[str, int] = dataclasses.field(default_factory=dict)
    html: str = ""
    group: str | None = None
    sample: Any = None
    frame: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.selector, self.label, self.type)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label": self.label,
            "selector": self.selector,
            "contextDocument": self.frame_context,
            "type": self.type,
            "html": self.html,
            "position": dict(self.position),
            "attributes": dict(self.attributes),
            "validation": dict(self.validation),
            "accessibility": dict(self.accessibility),
        }
        if self.frame:
            data["frame"] = dict(self.frame)
        if self.group is not None:
            data["group"] = self.group
        if self.sample is not None:
            data["sample"] = self.sample
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementDescriptor:
        return cls(
            label=str(data.get("label", "")),
            selector=str(data.get("selector", "")),
            frame_context=str(data.get("contextDocument") or data.get("frame_context") or TOP_FRAME),
            type=str(data.get("type", "")),
            attributes=dict(data.get("attributes") or {}),
            validation=dict(data.get("validation") or {}),
            accessibility=dict(data.get("accessibility") or {}),
            position=dict(data.get("position") or {}),
            html=str(data.get("html", "")),
            group=data.get("group"),
            sample=data.get("sample"),
            frame=dict(data.get("frame") or {}),
        )


# ---------------------------------------------------------------------------
# Element facts
# ---------------------------------------------------------------------------


def dom_type(element: Tag) -> str:
    """The DOM ``type`` property of form controls ("" for other elements)."""
    if element.name == "input":
        return (attr_text(element, "type") or "text").strip().lower() or "text"
    if element.name == "select":
        return "select-multiple" if element.has_attr("multiple") else "select-one"
    if element.name == "textarea":
        return "textarea"
    if element.name == "button":
        return (attr_text(element, "type") or "submit").strip().lower() or "submit"
    return ""


def element_type(element: Tag) -> str:
    """``tag[type]`` such as ``input[text]`` or ``select[select-one]``."""
    subtype = dom_type(element)
    return f"{element.name}[{subtype}]" if subtype else element.name


def key_attributes(element: Tag) -> dict[str, str]:
    return {name: attr_text(element, name) for name in KEY_ATTRIBUTES if element.has_attr(name)}


def validation_info(element: Tag) -> dict[str, Any]:
    validation: dict[str, Any] = {}
    if element.has_attr("required"):
        validation["required"] = True
    for attr, key in (("pattern", "pattern"), ("min", "min"), ("max", "max"), ("step", "step")):
        value = attr_text(element, attr)
        if value:
            validation[key] = value
    for attr, key in (("minlength", "minLength"), ("maxlength", "maxLength")):
        value = attr_text(element, attr)
        if value and value.strip().isdigit() and int(value) > 0:
            validation[key] = int(value)
    return validation


def tab_index(element: Tag) -> int:
    value = attr_text(element, "tabindex")
    if value is not None:
        try:
            return int(value.strip())
        except ValueError:
            pass
    if element.name in _FOCUSABLE or (element.name == "a" and element.has_attr("href")):
        return 0
    return -1


def accessibility_info(element: Tag) -> dict[str, Any]:
    info: dict[str, Any] = {}
    for attr, key in (("aria-label", "ariaLabel"), ("aria-describedby", "ariaDescribedby"), ("role", "role")):
        value = attr_text(element, attr)
        if value:
            info[key] = value
    info["tabIndex"] = tab_index(element)
    return info


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


def _text(node: Tag | None) -> str:
    return node.get_text().strip() if node is not None else ""


def _text_without(container: Tag, excluded: list[Tag]) -> str:
    skip = {id(node) for ex in excluded for node in ex.descendants}
    parts = [
        str(piece)
        for piece in container.descendants
        if type(piece) is NavigableString and id(piece) not in skip
    ]
    return "".join(parts).strip()


def _closest(element: Tag, predicate) -> Tag | None:
    node: Any = element
    while isinstance(node, Tag) and node.name != "[document]":
        if predicate(node):
            return node
        node = node.parent
    return None


def _element_siblings_before(element: Tag) -> list[Tag]:
    return [s for s in element.previous_siblings if isinstance(s, Tag)]


def _label_for(element: Tag, document: FrameDocument) -> str:
    element_id = attr_text(element, "id")
    if not element_id:
        return ""
    for label in document.soup.find_all("label"):
        if attr_text(label, "for") == element_id:
            return _text(label)
    return ""


def _wrapping_label(element: Tag) -> str:
    label = element.find_parent("label")
    if label is None:
        return ""
    control = label.find(_CONTROLS)
    return _text_without(label, [control] if control is not None else [])


def _aria_label(element: Tag, document: FrameDocument) -> str:
    label = attr_text(element, "aria-label") or ""
    if label:
        return label
    labelled_by = attr_text(element, "aria-labelledby")
    if labelled_by:
        return _text(document.soup.find(id=labelled_by))
    return ""


def _previous_sibling_text(element: Tag) -> str:
    for sibling in _element_siblings_before(element):
        text = _text(sibling)
        if text and sibling.name not in _CONTROLS and sibling.find(_CONTROLS) is None:
            return text
    return ""


def table_header_label(element: Tag) -> str:
    cell = element.find_parent("td")
    if cell is None or cell.parent is None:
        return ""
    row = cell.parent
    cells = [c for c in row.children if isinstance(c, Tag)]
    index = next((i for i, c in enumerate(cells) if c is cell), -1)
    table = row.find_parent("table")
    if table is None or index < 0:
        return ""
    head = table.find("thead")
    if head is None:
        return ""
    for header_row in head.find_all("tr"):
        header_cells = [c for c in header_row.children if isinstance(c, Tag)]
        if index < len(header_cells):
            return _text(header_cells[index])
    return ""


def fieldset_legend_label(element: Tag) -> str:
    fieldset = element.find_parent("fieldset")
    if fieldset is None:
        return ""
    return _text(fieldset.find("legend"))


def nearby_text_label(element: Tag) -> str:
    container = _closest(element, lambda n: bool(_NEARBY_CLASS.search(attr_text(n, "class") or "")))
    if container is not None:
        text = _text_without(container, container.find_all(_CONTROLS))
        if text:
            return text
    for sibling in _element_siblings_before(element)[:2]:
        text = _text(sibling)
        if text and sibling.find(_CONTROLS) is None:
            return text
    return ""


def derive_label(element: Tag, document: FrameDocument, mode: str = "original") -> str:
    """Display label for *element*.

    ``original`` mode tries, in order: ``label[for]``, a wrapping label,
    aria-label / aria-labelledby, placeholder, title, previous sibling text,
    the table column header, then button or link text.  ``enhanced`` mode
    also tries the fieldset legend and nearby label-like containers before
    the button or link text.
    """
    steps = [
        lambda: _label_for(element, document),
        lambda: _wrapping_label(element),
        lambda: _aria_label(element, document),
        lambda: attr_text(element, "placeholder") or "",
        lambda: attr_text(element, "title") or "",
        lambda: _previous_sibling_text(element),
        lambda: table_header_label(element),
    ]
    if mode == "enhanced":
        steps += [lambda: fieldset_legend_label(element), lambda: nearby_text_label(element)]
    steps.append(lambda: _text(element) if element.name in ("button", "a") else "")

    for step in steps:
        label = step().strip()
        if label:
            return label
    return f"{element.name}_{dom_type(element) or 'unknown'}"


# ---------------------------------------------------------------------------
# Descriptor building
# ---------------------------------------------------------------------------


def build_descriptor(
    element: Tag,
    document: FrameDocument,
    label_mode: str = "original",
    synthesizer: SelectorSynthesizer | None = None,
) -> ElementDescriptor:
    synthesizer = synthesizer or SelectorSynthesizer()
    frame_context, selector = split_scoped(synthesizer.synthesize_scoped(element, document))
    prefix = "" if document.is_top else identify_frame(document).to_selector()
    return ElementDescriptor(
        label=derive_label(element, document, label_mode),
        selector=selector,
        frame_context=frame_context,
        type=element_type(element),
        attributes=key_attributes(element),
        validation=validation_info(element),
        accessibility=accessibility_info(element),
        position=document.box(element).to_dict(),
        html=str(element),
        frame={"inFrame": not document.is_top, "url": document.url, "selectorPrefix": prefix},
    )


def dedupe(elements: Iterable[ElementDescriptor]) -> list[ElementDescriptor]:
    """Drop repeated (selector, label, type) identities, keeping the first."""
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for element in elements:
        if element.identity in seen:
            continue
        seen.add(element.identity)
        unique.append(element)
    return unique


# ---------------------------------------------------------------------------
# Page identity
# ---------------------------------------------------------------------------

_SIGNATURE_SELECTORS = ("form", '[role="main"]', "main", "#content", ".content")


def dom_signature(document: FrameDocument) -> str:
    for selector in _SIGNATURE_SELECTORS:
        element = document.query(selector)
        if element is None:
            continue
        element_id = attr_text(element, "id")
        classes = class_list(element)
        return element.name + (f"#{element_id}" if element_id else "") + (f".{classes[0]}" if classes else "")
    return f"body_{len(document.soup.find_all(True))}"


def generate_page_id(url: str, title: str, signature: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    digest = re.sub(r"[^a-zA-Z0-9]", "", base64.b64encode((url + title + signature).encode("utf-8")).decode("ascii"))
    return re.sub(r"[^a-zA-Z0-9_-]", "_", f"{title}_{timestamp}_{digest[:10]}")[:50]


def default_page_name(document: FrameDocument) -> str:
    segments = [p for p in urlparse(document.url).path.split("/") if p]
    path = segments[-1] if segments else "home"
    return re.sub(r"[^a-zA-Z0-9_-]", "_", f"{document.title[:30]}_{path}")
