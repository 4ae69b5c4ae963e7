"""FrameFill command-line interface."""
