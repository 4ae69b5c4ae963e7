"""FrameFill engine — selector synthesis, frame routing and replay.

Provides the per-frame building blocks:
- SelectorSynthesizer: minimal unique selectors scoped to one document
- frames: frame-context codec and frame locator variants
- FrameResolver: decides whether an instruction belongs to a frame
- ActionReplayEngine: applies entry instructions and counts outcomes
- descriptors: element descriptors, labels and page identity

The agent, coordinator and entry modules depend on ``framefill.storage`` and
are imported directly from their modules:
  from framefill.engine.agent import FrameAgent
  from framefill.engine.coordinator import FrameCoordinator
"""

from framefill.engine.descriptors import ElementDescriptor
from framefill.engine.frames import FrameContextError, FrameLocator, decode, encode, identify_frame
from framefill.engine.replay import AccessorRegistry, Action, ActionReplayEngine, ActionType, ReplayResult
from framefill.engine.resolver import FrameResolver, RoutingDecision
from framefill.engine.selectors import SelectorSynthesizer, split_scoped

__all__ = [
    "AccessorRegistry",
    "Action",
    "ActionReplayEngine",
    "ActionType",
    "ElementDescriptor",
    "FrameContextError",
    "FrameLocator",
    "FrameResolver",
    "ReplayResult",
    "RoutingDecision",
    "SelectorSynthesizer",
    "decode",
    "encode",
    "identify_frame",
    "split_scoped",
]
