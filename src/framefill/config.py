"""FrameFill configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from framefill.models import (
    DEFAULT_EXTRACT_TIMEOUT,
    DEFAULT_FRAME_TIMEOUT,
    LABEL_MODES,
    RELAXED_MATCH_THRESHOLD,
)


class FrameFillConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class FrameFillConfig:
    """Configuration for extraction and replay."""

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".framefill"))
    store_path: Path = field(default_factory=lambda: Path(".framefill/sessions.json"))

    # Selector synthesis
    relaxed_match_threshold: int = RELAXED_MATCH_THRESHOLD
    label_mode: str = "original"

    # Fan-out
    extract_timeout: float = DEFAULT_EXTRACT_TIMEOUT
    frame_timeout: float = DEFAULT_FRAME_TIMEOUT

    # Browser attachment
    cdp_url: str | None = None

    @classmethod
    def from_file(cls, config_path: Path) -> FrameFillConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise FrameFillConfigError(f"Config file not found: {config_path}\n\nTo fix: framefill init")
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise FrameFillConfigError(f"Config file must contain a mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> FrameFillConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        if "store_path" in data:
            config.store_path = project_dir / data["store_path"]
        else:
            config.store_path = project_dir / "sessions.json"

        if "relaxed_match_threshold" in data:
            threshold = int(data["relaxed_match_threshold"])
            if threshold < 1:
                raise FrameFillConfigError(f"relaxed_match_threshold must be >= 1, got {threshold}")
            config.relaxed_match_threshold = threshold
        if "label_mode" in data:
            mode = str(data["label_mode"])
            if mode not in LABEL_MODES:
                raise FrameFillConfigError(
                    f"Invalid label_mode: {mode}. Valid modes: {', '.join(LABEL_MODES)}"
                )
            config.label_mode = mode
        if "extract_timeout" in data:
            config.extract_timeout = float(data["extract_timeout"])
        if "frame_timeout" in data:
            config.frame_timeout = float(data["frame_timeout"])
        if "cdp_url" in data:
            config.cdp_url = str(data["cdp_url"]) or None

        return config

    @classmethod
    def discover(cls, start: Path | None = None) -> FrameFillConfig:
        """Find .framefill/config.yaml upward from *start* (default: cwd).

        Falls back to defaults rooted at ``<start>/.framefill`` when no
        config file exists.
        """
        current = (start or Path.cwd()).resolve()
        for base in [current, *current.parents]:
            candidate = base / ".framefill" / "config.yaml"
            if candidate.is_file():
                return cls.from_file(candidate)
        config = cls()
        config.project_dir = current / ".framefill"
        config.store_path = config.project_dir / "sessions.json"
        return config
