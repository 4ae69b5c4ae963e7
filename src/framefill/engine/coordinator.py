"""FrameFill Frame Coordinator — Fans requests out to every frame of a page.

The coordinator knows which frames of each tab are alive (frames announce
themselves with FRAME_READY), sends one request per frame concurrently and
merges the answers.  A frame that errors or does not answer within
``frame_timeout`` contributes nothing; it never aborts the batch.  Only the
overall extraction deadline is fatal (AggregationTimeoutError), and in that
case nothing is saved.

The merge helpers are pure and order independent, so the same responses in
any order produce the same totals.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Protocol

from framefill.config import FrameFillConfig
from framefill.dom import FramePage
from framefill.engine.agent import FrameAgent
from framefill.engine.descriptors import ElementDescriptor, dedupe
from framefill.engine.replay import AccessorRegistry, ReplayResult
from framefill.models import (
    DEFAULT_EXTRACT_TIMEOUT,
    DEFAULT_FRAME_TIMEOUT,
    TOP_FRAME_ID,
    MessageAction,
)
from framefill.storage import SessionStore, apply_overrides

logger = logging.getLogger("framefill.engine.coordinator")


class AggregationTimeoutError(Exception):
    """Raised when a whole fan-out operation exceeds its deadline."""

    pass


class FrameTransport(Protocol):
    """Delivers one message to one frame and returns its response."""

    async def send(self, tab_id: int, frame_id: int, message: dict[str, Any]) -> dict[str, Any] | None: ...


class LocalTransport:
    """In-process transport to FrameAgents."""

    def __init__(self) -> None:
        self._agents: dict[tuple[int, int], FrameAgent] = {}

    def attach(self, tab_id: int, agent: FrameAgent) -> None:
        self._agents[(tab_id, agent.frame_id)] = agent

    def detach_tab(self, tab_id: int) -> None:
        for key in [k for k in self._agents if k[0] == tab_id]:
            del self._agents[key]

    def agents(self, tab_id: int) -> list[FrameAgent]:
        return [a for (t, _), a in sorted(self._agents.items()) if t == tab_id]

    async def send(self, tab_id: int, frame_id: int, message: dict[str, Any]) -> dict[str, Any] | None:
        agent = self._agents.get((tab_id, frame_id))
        if agent is None:
            raise LookupError(f"No frame {frame_id} in tab {tab_id}")
        # Yield first so frames are handled as independent tasks
        await asyncio.sleep(0)
        return agent.handle(message)


# ---------------------------------------------------------------------------
# Pure merge helpers
# ---------------------------------------------------------------------------


def _ok(response: dict[str, Any] | None) -> bool:
    return bool(response) and response.get("success", True) is not False


def merge_stats(responses: Iterable[dict[str, Any] | None]) -> dict[str, int]:
    return {"selectedCount": sum((r or {}).get("selectedCount", 0) or 0 for r in responses)}


def merge_summaries(responses: Iterable[dict[str, Any] | None]) -> dict[str, Any]:
    """Sum selected counts, concatenate items, add per-type counts."""
    selected = 0
    items: list[dict[str, Any]] = []
    by_type: dict[str, int] = {}
    for response in responses:
        if not _ok(response):
            continue
        selected += response.get("selectedCount", 0) or 0
        items.extend(response.get("items") or [])
        for key, count in (response.get("byType") or {}).items():
            by_type[key] = by_type.get(key, 0) + count
    return {"success": True, "selectedCount": selected, "byType": by_type, "items": items}


def merge_elements(responses: Iterable[dict[str, Any] | None]) -> list[ElementDescriptor]:
    """Concatenate per-frame element lists and drop duplicate identities.

    The first occurrence of an identity wins; broadcast() returns responses
    in frame-id order, so the result does not depend on response timing.
    """
    elements: list[ElementDescriptor] = []
    for response in responses:
        if _ok(response) and isinstance(response.get("elements"), list):
            elements.extend(ElementDescriptor.from_dict(e) for e in response["elements"])
    return dedupe(elements)


def merge_validation(selectors: list[str], responses: Iterable[dict[str, Any] | None]) -> dict[str, int]:
    """Per-selector match counts summed over frames."""
    totals = {s: 0 for s in selectors}
    for response in responses:
        if not _ok(response):
            continue
        for selector, count in (response.get("counts") or {}).items():
            totals[selector] = totals.get(selector, 0) + (count or 0)
    return totals


def merge_replay_results(responses: Iterable[dict[str, Any] | None]) -> ReplayResult:
    result = ReplayResult()
    for response in responses:
        if _ok(response):
            result = result.merge(ReplayResult.from_dict(response))
    return result


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class FrameCoordinator:
    """Tracks live frames per tab and aggregates fan-out requests."""

    def __init__(
        self,
        transport: FrameTransport,
        frame_timeout: float = DEFAULT_FRAME_TIMEOUT,
        extract_timeout: float = DEFAULT_EXTRACT_TIMEOUT,
    ) -> None:
        self.transport = transport
        self.frame_timeout = frame_timeout
        self.extract_timeout = extract_timeout
        self._frames: dict[int, set[int]] = {}

    # -- Registry ------------------------------------------------------------

    def register_frame(self, tab_id: int, frame_id: int) -> None:
        self._frames.setdefault(tab_id, set()).add(frame_id)
        logger.debug("Registered frame %s in tab %s", frame_id, tab_id)

    def on_message(self, tab_id: int, action: MessageAction | str, data: dict[str, Any]) -> None:
        """Handle a message sent by a frame (only FRAME_READY is meaningful)."""
        if action == MessageAction.FRAME_READY and "frameId" in data:
            self.register_frame(tab_id, int(data["frameId"]))

    def remove_tab(self, tab_id: int) -> None:
        self._frames.pop(tab_id, None)

    def frames(self, tab_id: int) -> list[int]:
        """Known frames of *tab_id*; an unknown tab is assumed to have only its top frame."""
        return sorted(self._frames.get(tab_id) or {TOP_FRAME_ID})

    # -- Fan-out -------------------------------------------------------------

    async def send_to_frame(self, tab_id: int, frame_id: int, message: dict[str, Any]) -> dict[str, Any] | None:
        try:
            return await asyncio.wait_for(self.transport.send(tab_id, frame_id, message), self.frame_timeout)
        except asyncio.TimeoutError:
            logger.warning("Frame %s of tab %s did not answer %s", frame_id, tab_id, message.get("action"))
        except Exception as exc:
            logger.warning("Frame %s of tab %s failed on %s: %s", frame_id, tab_id, message.get("action"), exc)
        return None

    async def broadcast(
        self,
        tab_id: int,
        target_action: MessageAction | str,
        payload: dict[str, Any] | None = None,
    ) -> dict[int, dict[str, Any] | None]:
        """Send one message to every known frame concurrently."""
        action = target_action.value if isinstance(target_action, MessageAction) else str(target_action)
        message = {"action": action, **(payload or {})}
        frame_ids = self.frames(tab_id)
        responses = await asyncio.gather(*(self.send_to_frame(tab_id, f, message) for f in frame_ids))
        return dict(zip(frame_ids, responses))

    # -- Aggregations --------------------------------------------------------

    async def get_stats_all(self, tab_id: int) -> dict[str, int]:
        responses = await self.broadcast(tab_id, MessageAction.GET_STATS)
        return merge_stats(responses.values())

    async def get_selected_summary_all(self, tab_id: int) -> dict[str, Any]:
        responses = await self.broadcast(tab_id, MessageAction.GET_SELECTED_SUMMARY)
        return merge_summaries(responses.values())

    async def validate_raw_selectors(self, tab_id: int, selectors: list[str]) -> dict[str, int]:
        responses = await self.broadcast(
            tab_id, MessageAction.VALIDATE_RAW_SELECTORS_FRAME, {"rawSelectors": list(selectors)}
        )
        return merge_validation(list(selectors), responses.values())

    async def run_entry(
        self,
        tab_id: int,
        data_groups: list[dict[str, Any]],
        functions: dict[str, str] | None = None,
    ) -> ReplayResult:
        responses = await self.broadcast(
            tab_id, MessageAction.RUN_ENTRY, {"dataGroups": data_groups, "functions": functions or {}}
        )
        result = merge_replay_results(responses.values())
        logger.info("Replay across %d frames: %s", len(responses), result.counters())
        return result

    async def extract_all(
        self,
        tab_id: int,
        page_name: str | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Extract every frame's selection and save it through the top frame.

        Raises AggregationTimeoutError when the whole operation exceeds
        ``extract_timeout``; nothing is saved in that case.
        """
        try:
            return await asyncio.wait_for(self._extract_all(tab_id, page_name, overrides or {}), self.extract_timeout)
        except asyncio.TimeoutError as exc:
            raise AggregationTimeoutError(f"Extraction timed out after {self.extract_timeout:g} seconds") from exc

    async def _extract_all(
        self,
        tab_id: int,
        page_name: str | None,
        overrides: dict[str, dict[str, Any]],
    ) -> dict[str, Any]:
        responses = await self.broadcast(tab_id, MessageAction.EXTRACT_PART)
        elements = [apply_overrides(e, overrides) for e in merge_elements(responses.values())]
        message = {
            "action": MessageAction.SAVE_EXTRACTION.value,
            "pageName": page_name,
            "elements": [e.to_dict() for e in elements],
        }
        response = await self.send_to_frame(tab_id, TOP_FRAME_ID, message)
        return response or {"success": False, "error": "Top frame did not answer", "count": 0}


def attach_page(
    page: FramePage,
    coordinator: FrameCoordinator,
    transport: LocalTransport,
    tab_id: int = 1,
    store: SessionStore | None = None,
    accessors: AccessorRegistry | None = None,
    config: FrameFillConfig | None = None,
) -> list[FrameAgent]:
    """Start one FrameAgent per frame of *page* and announce them."""
    agents = []
    for document in page.frames():
        agent = FrameAgent(
            document,
            store=store,
            notify=lambda action, data: coordinator.on_message(tab_id, action, data),
            accessors=accessors,
            config=config,
        )
        transport.attach(tab_id, agent)
        agent.announce()
        agents.append(agent)
    logger.info("Attached %d frames of %s as tab %s", len(agents), page.url, tab_id)
    return agents


def detach_page(coordinator: FrameCoordinator, transport: LocalTransport, tab_id: int) -> None:
    """Tear down a tab: its agents and their selection sessions go with it."""
    transport.detach_tab(tab_id)
    coordinator.remove_tab(tab_id)
