"""Unit tests for framefill.models — shared constants and message names."""

from __future__ import annotations

import soupsieve as sv

from framefill.models import (
    DEFAULT_EXTRACT_TIMEOUT,
    DEFAULT_FRAME_TIMEOUT,
    DESCENT_MARKER,
    INTERACTIVE_SELECTORS,
    KEY_ATTRIBUTES,
    LABEL_MODES,
    RELAXED_MATCH_THRESHOLD,
    TOP_FRAME,
    MessageAction,
)


# ---------------------------------------------------------------------------
# 1. Markers
# ---------------------------------------------------------------------------

class TestMarkers:
    def test_top_frame_marker(self):
        assert TOP_FRAME == "document"

    def test_descent_marker_is_padded(self):
        assert DESCENT_MARKER == " >>> "
        assert DESCENT_MARKER.strip() == ">>>"


# ---------------------------------------------------------------------------
# 2. Selector constants
# ---------------------------------------------------------------------------

class TestSelectorConstants:
    """Constants consumed by selector synthesis and auto-selection."""

    def test_threshold_default(self):
        assert RELAXED_MATCH_THRESHOLD == 3

    def test_key_attributes(self):
        assert KEY_ATTRIBUTES[:3] == ("id", "name", "class")
        assert "required" in KEY_ATTRIBUTES
        assert len(set(KEY_ATTRIBUTES)) == len(KEY_ATTRIBUTES)

    def test_interactive_selectors_compile(self):
        for selector in INTERACTIVE_SELECTORS:
            sv.compile(selector)

    def test_hidden_inputs_are_not_interactive(self):
        assert 'input:not([type="hidden"])' in INTERACTIVE_SELECTORS
        assert "input" not in INTERACTIVE_SELECTORS


# ---------------------------------------------------------------------------
# 3. Defaults and message names
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_timeouts(self):
        assert DEFAULT_EXTRACT_TIMEOUT == 10.0
        assert DEFAULT_FRAME_TIMEOUT == 5.0
        assert DEFAULT_FRAME_TIMEOUT < DEFAULT_EXTRACT_TIMEOUT

    def test_label_modes(self):
        assert LABEL_MODES == ("original", "enhanced")

    def test_message_actions_are_their_own_names(self):
        for action in MessageAction:
            assert action.value == action.name

    def test_message_action_compares_to_wire_string(self):
        assert MessageAction("RUN_ENTRY") is MessageAction.RUN_ENTRY
        assert MessageAction.GET_STATS == "GET_STATS"
