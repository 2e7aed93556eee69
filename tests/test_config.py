# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for configuration management, including legacy key migration and
playback value clamping.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from telepace.config import (
    DEFAULT_CONFIG,
    clamp_max_words_per_line,
    clamp_rsvp_speed,
    clamp_scroll_speed,
    load_config,
    migrate_config,
    save_config,
    update_config_playback,
    validate_mode,
)


def write_yaml(path: Path, data: object) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)


def test_default_playback_settings():
    """Verify the playback section of the default config."""
    assert DEFAULT_CONFIG["playback"] == {
        "mode": "continuous",
        "scroll_speed": 1.5,
        "rsvp_speed": 300,
        "max_words_per_line": 0,
        "cue_points": [],
    }


def test_load_config_missing_file_uses_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".telepace.yaml")
        assert config == DEFAULT_CONFIG


def test_load_config_merges_nested_sections():
    """Values from the file override defaults without dropping siblings."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        write_yaml(config_path, {
            "port": 9000,
            "voice": {"language": "fr-FR"},
            "playback": {"scroll_speed": 3.0},
        })

        config = load_config(config_path)
        assert config["port"] == 9000
        assert config["voice"]["language"] == "fr-FR"
        assert config["voice"]["search_window"] == 50
        assert config["playback"]["scroll_speed"] == 3.0
        assert config["playback"]["rsvp_speed"] == 300


def test_load_config_clamps_playback():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        write_yaml(config_path, {
            "playback": {
                "mode": "karaoke",
                "scroll_speed": 50,
                "rsvp_speed": "fast",
                "max_words_per_line": -4,
                "cue_points": [9, 2, 2, -1, "x"],
            },
        })

        playback = load_config(config_path)["playback"]
        assert playback == {
            "mode": "continuous",
            "scroll_speed": 8.0,
            "rsvp_speed": 300,
            "max_words_per_line": 0,
            "cue_points": [2, 9],
        }


def test_load_config_migrates_legacy_keys():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        write_yaml(config_path, {"scroll_speed": 2.5, "scroll_mode": "rsvp"})

        config = load_config(config_path)
        assert "scroll_speed" not in config
        assert "scroll_mode" not in config
        assert config["playback"]["scroll_speed"] == 2.5
        assert config["playback"]["mode"] == "rsvp"


def test_load_config_invalid_yaml_uses_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        config_path.write_text("playback: [unclosed", encoding="utf-8")

        assert load_config(config_path) == DEFAULT_CONFIG


def test_load_config_non_mapping_playback():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        write_yaml(config_path, {"playback": "fast"})

        assert load_config(config_path)["playback"] == DEFAULT_CONFIG["playback"]


def test_loaded_config_does_not_share_defaults():
    """Mutating a loaded config must never change DEFAULT_CONFIG."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".telepace.yaml")
        config["voice"]["language"] = "de-DE"
        config["timing"]["countdown_seconds"] = 0

    assert DEFAULT_CONFIG["voice"]["language"] == "en-US"
    assert DEFAULT_CONFIG["timing"]["countdown_seconds"] == 3


def test_save_and_reload():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".telepace.yaml"
        config = update_config_playback(DEFAULT_CONFIG, {"mode": "paging", "cue_points": [4]})

        assert save_config(config, config_path)
        assert load_config(config_path) == config


def test_save_config_unwritable_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert not save_config(DEFAULT_CONFIG, Path(tmpdir) / "missing" / "config.yaml")


def test_update_config_playback_returns_new_config():
    updated = update_config_playback(DEFAULT_CONFIG, {"rsvp_speed": 5000})

    assert updated["playback"]["rsvp_speed"] == 1000
    assert updated["playback"]["mode"] == "continuous"
    assert DEFAULT_CONFIG["playback"]["rsvp_speed"] == 300


def test_migrate_config_leaves_new_format_alone():
    config = {"playback": {"mode": "voice"}, "port": 1}
    assert migrate_config(dict(config)) == config


@pytest.mark.parametrize("speed, expected", [
    (0.0, 0.1),
    (1.54, 1.5),
    (9, 8.0),
    (float("nan"), 1.5),
    (None, 1.5),
])
def test_clamp_scroll_speed(speed, expected):
    assert clamp_scroll_speed(speed) == expected


def test_clamp_rsvp_speed():
    assert clamp_rsvp_speed(10) == 50
    assert clamp_rsvp_speed(1200) == 1000
    assert clamp_rsvp_speed(333.4) == 333


def test_clamp_max_words_per_line():
    assert clamp_max_words_per_line(7.9) == 7
    assert clamp_max_words_per_line(99) == 50
    assert clamp_max_words_per_line(-1) == 0


def test_validate_mode():
    assert validate_mode("rsvp") == "rsvp"
    assert validate_mode(None) == "continuous"
