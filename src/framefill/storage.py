"""FrameFill session store — Persisted extractions and pending overrides.

Layout of the JSON file::

    {
      "extractedData": {
        "<pageId>": {
          "pageId": ..., "pageName": ..., "url": ..., "domSignature": ...,
          "created": ..., "lastUpdated": ...,
          "extractions": [{"groupId": 1, "timestamp": ..., "elements": [...]}]
        }
      },
      "labelOverrides": {
        "<frameContext> >>> <selector>": {"label": ..., "group": ..., ...}
      }
    }

Saved descriptors are only changed by ``apply_changes``, which merges the
override table into them field by field.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from framefill.engine.descriptors import ElementDescriptor
from framefill.models import TOP_FRAME

logger = logging.getLogger("framefill.storage")

# Python keyword -> persisted override field
OVERRIDE_FIELDS = {
    "label": "label",
    "group": "group",
    "new_selector": "newSelector",
    "sample": "sample",
    "context_document": "contextDocument",
    "type": "type",
}


class SessionStoreError(Exception):
    """Raised when the session file cannot be read or an edit is invalid."""

    pass


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def override_key(context_document: str | None, selector: str | None) -> str:
    """Override table key: ``"<frameContext> >>> <selector>"``."""
    ctx = (str(context_document).strip() if context_document else "") or TOP_FRAME
    sel = str(selector).strip() if selector else ""
    return f"{ctx} >>> {sel}"


def find_override(descriptor: ElementDescriptor, overrides: dict[str, dict[str, Any]]) -> dict[str, Any] | None:
    """Override for *descriptor*; bare-selector keys are honoured as a fallback."""
    return overrides.get(override_key(descriptor.frame_context, descriptor.selector)) or overrides.get(
        descriptor.selector
    )


def override_changes(descriptor: ElementDescriptor, override: dict[str, Any]) -> dict[str, Any]:
    """Descriptor fields that *override* would change."""
    changes: dict[str, Any] = {}
    if override.get("label") and override["label"] != descriptor.label:
        changes["label"] = override["label"]
    if override.get("group") and override["group"] != descriptor.group:
        changes["group"] = override["group"]
    if override.get("newSelector") and override["newSelector"] != descriptor.selector:
        changes["selector"] = override["newSelector"]
    if override.get("sample") is not None and str(override["sample"]) != str(descriptor.sample or ""):
        changes["sample"] = override["sample"]
    if override.get("contextDocument") and override["contextDocument"] != descriptor.frame_context:
        changes["frame_context"] = override["contextDocument"]
    if override.get("type") and override["type"] != descriptor.type:
        changes["type"] = override["type"]
    return changes


def apply_overrides(descriptor: ElementDescriptor, overrides: dict[str, dict[str, Any]]) -> ElementDescriptor:
    """Return a new descriptor with pending edits merged in; unedited fields are kept."""
    override = find_override(descriptor, overrides)
    if not override:
        return descriptor
    changes = override_changes(descriptor, override)
    return dataclasses.replace(descriptor, **changes) if changes else descriptor


@dataclasses.dataclass
class ApplySummary:
    """What an apply-changes pass rewrote."""

    fields_updated: int = 0
    elements_changed: int = 0
    pages_impacted: list[str] = dataclasses.field(default_factory=list)


class SessionStore:
    """JSON-file backed store of page sessions and the override table."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # -- File access ---------------------------------------------------------

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"extractedData": {}, "labelOverrides": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise SessionStoreError(f"Session file is not valid JSON: {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SessionStoreError(f"Session file must contain an object: {self.path}")
        data.setdefault("extractedData", {})
        data.setdefault("labelOverrides", {})
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    # -- Pages ---------------------------------------------------------------

    def pages(self) -> dict[str, dict[str, Any]]:
        return self.load()["extractedData"]

    def page(self, page_id: str) -> dict[str, Any] | None:
        return self.pages().get(page_id)

    def delete_page(self, page_id: str) -> bool:
        data = self.load()
        if page_id not in data["extractedData"]:
            return False
        del data["extractedData"][page_id]
        self._write(data)
        logger.info("Deleted page %s", page_id)
        return True

    def clear(self) -> None:
        self._write({"extractedData": {}, "labelOverrides": {}})

    def save_extraction(
        self,
        page_id: str,
        page_name: str,
        url: str,
        dom_signature: str,
        group_id: int,
        elements: Iterable[ElementDescriptor | dict[str, Any]],
        timestamp: str | None = None,
    ) -> dict[str, Any]:
        """Insert or replace extraction group *group_id* of page *page_id*."""
        timestamp = timestamp or utc_timestamp()
        group = {
            "groupId": group_id,
            "timestamp": timestamp,
            "elements": [e.to_dict() if isinstance(e, ElementDescriptor) else dict(e) for e in elements],
        }
        data = self.load()
        record = data["extractedData"].get(page_id)
        if record is None:
            record = {
                "pageId": page_id,
                "pageName": page_name,
                "url": url,
                "domSignature": dom_signature,
                "created": timestamp,
                "lastUpdated": timestamp,
                "extractions": [group],
            }
        else:
            extractions = record.setdefault("extractions", [])
            for i, existing in enumerate(extractions):
                if existing.get("groupId") == group_id:
                    extractions[i] = group
                    break
            else:
                extractions.append(group)
            record["lastUpdated"] = timestamp
        data["extractedData"][page_id] = record
        self._write(data)
        logger.info("Saved %d elements to %s group %s", len(group["elements"]), page_id, group_id)
        return record

    def descriptors(self, page_id: str | None = None) -> list[ElementDescriptor]:
        """Saved descriptors of one page (or all pages), in storage order."""
        pages = self.pages()
        if page_id is None:
            selected = list(pages.values())
        else:
            selected = [pages[page_id]] if page_id in pages else []
        return [
            ElementDescriptor.from_dict(element)
            for record in selected
            for group in record.get("extractions", [])
            for element in group.get("elements", [])
        ]

    # -- Overrides -----------------------------------------------------------

    def overrides(self) -> dict[str, dict[str, Any]]:
        return self.load()["labelOverrides"]

    def set_override(self, context: str | None, selector: str, /, **fields: Any) -> dict[str, Any]:
        """Merge *fields* into the pending override for one element."""
        unknown = set(fields) - set(OVERRIDE_FIELDS)
        if unknown:
            raise SessionStoreError(
                f"Unknown override field(s): {', '.join(sorted(unknown))}. "
                f"Valid fields: {', '.join(OVERRIDE_FIELDS)}"
            )
        data = self.load()
        key = override_key(context, selector)
        entry = data["labelOverrides"].setdefault(key, {})
        for name, value in fields.items():
            if value is not None:
                entry[OVERRIDE_FIELDS[name]] = value
        self._write(data)
        return entry

    def delete_override(self, context_document: str | None, selector: str) -> bool:
        data = self.load()
        removed = data["labelOverrides"].pop(override_key(context_document, selector), None)
        if removed is None:
            return False
        self._write(data)
        return True

    def apply_changes(self, page_id: str | None = None) -> ApplySummary:
        """Rewrite saved descriptors with the pending overrides."""
        data = self.load()
        overrides = data["labelOverrides"]
        summary = ApplySummary()
        for pid, record in data["extractedData"].items():
            if page_id is not None and pid != page_id:
                continue
            page_changed = False
            for group in record.get("extractions", []):
                rewritten = []
                for element in group.get("elements", []):
                    descriptor = ElementDescriptor.from_dict(element)
                    override = find_override(descriptor, overrides)
                    changes = override_changes(descriptor, override) if override else {}
                    if changes:
                        summary.fields_updated += len(changes)
                        summary.elements_changed += 1
                        page_changed = True
                        merged = dict(element)
                        merged.update(dataclasses.replace(descriptor, **changes).to_dict())
                        rewritten.append(merged)
                    else:
                        rewritten.append(element)
                group["elements"] = rewritten
            if page_changed:
                record["lastUpdated"] = utc_timestamp()
                summary.pages_impacted.append(pid)
        self._write(data)
        logger.info(
            "Applied overrides: %d fields on %d elements across %d pages",
            summary.fields_updated,
            summary.elements_changed,
            len(summary.pages_impacted),
        )
        return summary
