"""Build entry instructions from saved extractions."""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlparse

from framefill.engine.descriptors import ElementDescriptor
from framefill.engine.replay import Action, ActionType
from framefill.storage import apply_overrides

logger = logging.getLogger("framefill.engine.entry")

UNKNOWN_DOMAIN = "unknown.domain.com"


def determine_action_type(element_type: str | None) -> ActionType:
    kind = (element_type or "").lower()
    # radio before button: "radiobutton" contains "button"
    if "radio" in kind:
        return ActionType.RADIO_BUTTON
    if "checkbox" in kind:
        return ActionType.CHECKBOX
    if "select" in kind:
        return ActionType.SELECT
    if "button" in kind or "submit" in kind:
        return ActionType.BUTTON
    return ActionType.INPUT


def extract_domain(url: str | None) -> str:
    if not url:
        return UNKNOWN_DOMAIN
    host = urlparse(url).hostname
    if host:
        return host
    match = re.match(r"https?://([^/]+)", url)
    return match.group(1) if match else UNKNOWN_DOMAIN


def descriptor_to_action(descriptor: ElementDescriptor) -> Action:
    """Descriptors without a sample become placeholder actions (no input value)."""
    sample = descriptor.sample
    value = str(sample) if sample is not None and str(sample) != "" else None
    return Action(
        target_element=descriptor.selector,
        context_document=descriptor.frame_context,
        action_type=determine_action_type(descriptor.type),
        input_value=value,
    )


def _pages_for(pages: dict[str, dict[str, Any]], url: str | None) -> list[dict[str, Any]]:
    records = list(pages.values())
    if url is None:
        return records
    domain = extract_domain(url)
    matching = [r for r in records if extract_domain(r.get("url")) == domain]
    if not matching:
        logger.info("No saved pages for %s; using all %d pages", domain, len(records))
        return records
    return matching


def build_data_groups(
    pages: dict[str, dict[str, Any]],
    overrides: dict[str, dict[str, Any]] | None = None,
    url: str | None = None,
) -> list[dict[str, Any]]:
    """One data group per saved extraction, in the RUN_ENTRY wire format."""
    overrides = overrides or {}
    groups = []
    for record in _pages_for(pages, url):
        page_name = record.get("pageName") or f"Extracted_Page_{record.get('pageId', '')}"
        for extraction in record.get("extractions", []):
            actions = [
                descriptor_to_action(apply_overrides(ElementDescriptor.from_dict(e), overrides)).to_dict()
                for e in extraction.get("elements", [])
            ]
            groups.append(
                {
                    "PageName": page_name,
                    "GroupName": f"Extracted_Group_{extraction.get('groupId')}",
                    "IsEntered": False,
                    "Actions": actions,
                }
            )
    return groups


def build_actions(
    pages: dict[str, dict[str, Any]],
    overrides: dict[str, dict[str, Any]] | None = None,
    url: str | None = None,
) -> list[Action]:
    return [Action.from_dict(a) for group in build_data_groups(pages, overrides, url) for a in group["Actions"]]
