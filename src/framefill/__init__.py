"""FrameFill — multi-frame element extraction and form-entry replay."""

__version__ = "0.1.0"
