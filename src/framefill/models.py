"""Shared constants and message names."""

from __future__ import annotations

import enum

# Frame-context marker for the top document
TOP_FRAME = "document"

# Joins a frame locator and an element selector into one scoped selector
DESCENT_MARKER = " >>> "

# Class-based selectors are accepted once they match at most this many nodes
RELAXED_MATCH_THRESHOLD = 3

# Attributes captured verbatim on every element descriptor
KEY_ATTRIBUTES = (
    "id",
    "name",
    "class",
    "placeholder",
    "value",
    "maxlength",
    "required",
    "readonly",
    "disabled",
)

# Candidates for auto-selection, in priority order
INTERACTIVE_SELECTORS = (
    'input:not([type="hidden"])',
    "select",
    "button",
    "textarea",
    '[role="button"]',
    "[onclick]",
    "a[href]",
    '[contenteditable="true"]',
    '[tabindex]:not([tabindex="-1"])',
)

# Timeouts (seconds)
DEFAULT_EXTRACT_TIMEOUT = 10.0
DEFAULT_FRAME_TIMEOUT = 5.0

# Label derivation modes
LABEL_MODES = ("original", "enhanced")

# Identifier of the frame that persists merged extractions
TOP_FRAME_ID = 0


class MessageAction(str, enum.Enum):
    """Actions understood by per-frame agents."""

    FRAME_READY = "FRAME_READY"
    PING = "PING"
    AUTO_SELECT = "AUTO_SELECT"
    MANUAL_MODE_ON = "MANUAL_MODE_ON"
    MANUAL_MODE_OFF = "MANUAL_MODE_OFF"
    TOGGLE_ELEMENT = "TOGGLE_ELEMENT"
    UNDO = "UNDO"
    REDO = "REDO"
    EXTRACT_PART = "EXTRACT_PART"
    SAVE_EXTRACTION = "SAVE_EXTRACTION"
    GET_SELECTED_SUMMARY = "GET_SELECTED_SUMMARY"
    GET_STATS = "GET_STATS"
    VALIDATE_RAW_SELECTORS_FRAME = "VALIDATE_RAW_SELECTORS_FRAME"
    RUN_ENTRY = "RUN_ENTRY"
    CLEAR_ALL = "CLEAR_ALL"
    SET_LABEL_MODE = "SET_LABEL_MODE"
