"""Unit tests for framefill.config — FrameFillConfig and discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from framefill.config import FrameFillConfig, FrameFillConfigError
from framefill.models import DEFAULT_EXTRACT_TIMEOUT, DEFAULT_FRAME_TIMEOUT, RELAXED_MATCH_THRESHOLD


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestFrameFillConfigDefaults:
    """FrameFillConfig should have sensible defaults for every field."""

    def test_default_threshold_matches_models_constant(self):
        cfg = FrameFillConfig()
        assert cfg.relaxed_match_threshold == RELAXED_MATCH_THRESHOLD == 3

    def test_default_timeouts_match_models_constants(self):
        cfg = FrameFillConfig()
        assert cfg.extract_timeout == DEFAULT_EXTRACT_TIMEOUT
        assert cfg.frame_timeout == DEFAULT_FRAME_TIMEOUT

    def test_default_label_mode_is_original(self):
        assert FrameFillConfig().label_mode == "original"

    def test_default_cdp_url_is_none(self):
        assert FrameFillConfig().cdp_url is None


# ---------------------------------------------------------------------------
# 2. from_file()
# ---------------------------------------------------------------------------

class TestFromFile:
    """FrameFillConfig.from_file() should load and validate YAML."""

    def test_from_file_with_valid_yaml(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = FrameFillConfig.from_file(config_file)

        assert cfg.project_dir == tmp_path
        assert cfg.store_path == tmp_path / "data" / "sessions.json"
        assert cfg.relaxed_match_threshold == 5
        assert cfg.label_mode == "enhanced"
        assert cfg.extract_timeout == 20.0
        assert cfg.frame_timeout == 2.5
        assert cfg.cdp_url == "http://localhost:9222"

    def test_store_path_defaults_next_to_config(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("label_mode: original\n", encoding="utf-8")
        cfg = FrameFillConfig.from_file(config_file)
        assert cfg.store_path == tmp_path / "sessions.json"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")
        cfg = FrameFillConfig.from_file(config_file)
        assert cfg.relaxed_match_threshold == RELAXED_MATCH_THRESHOLD

    def test_missing_file_raises_with_fix_hint(self, tmp_path: Path):
        with pytest.raises(FrameFillConfigError, match="framefill init"):
            FrameFillConfig.from_file(tmp_path / "nope.yaml")

    def test_non_mapping_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(FrameFillConfigError, match="mapping"):
            FrameFillConfig.from_file(config_file)

    def test_invalid_label_mode_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("label_mode: fancy\n", encoding="utf-8")
        with pytest.raises(FrameFillConfigError, match="Invalid label_mode"):
            FrameFillConfig.from_file(config_file)

    def test_threshold_below_one_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("relaxed_match_threshold: 0\n", encoding="utf-8")
        with pytest.raises(FrameFillConfigError, match="relaxed_match_threshold"):
            FrameFillConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 3. discover()
# ---------------------------------------------------------------------------

class TestDiscover:
    """discover() walks up from the start directory."""

    def test_finds_config_in_parent(self, tmp_project_dir: Path):
        nested = tmp_project_dir.parent / "a" / "b"
        nested.mkdir(parents=True)
        cfg = FrameFillConfig.discover(nested)
        assert cfg.project_dir == tmp_project_dir.resolve()
        assert cfg.store_path == tmp_project_dir.resolve() / "sessions.json"

    def test_falls_back_to_defaults(self, tmp_path: Path):
        cfg = FrameFillConfig.discover(tmp_path)
        assert cfg.project_dir == tmp_path.resolve() / ".framefill"
        assert cfg.store_path == tmp_path.resolve() / ".framefill" / "sessions.json"
        assert cfg.label_mode == "original"
