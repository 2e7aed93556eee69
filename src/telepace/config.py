# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for Telepace.
Handles loading and saving settings from a YAML config file, and clamps
playback values into their supported ranges.
"""

import copy
import logging
import math
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".telepace.yaml"

PLAYBACK_MODES: tuple[str, ...] = ("continuous", "paging", "voice", "rsvp")

# Supported ranges (min, max)
SCROLL_SPEED_RANGE: tuple[float, float] = (0.1, 8.0)  # lines per second
SCROLL_SPEED_STEP: float = 0.1
RSVP_SPEED_RANGE: tuple[int, int] = (50, 1000)  # words per minute
MAX_WORDS_PER_LINE_RANGE: tuple[int, int] = (0, 50)


class PlaybackSettings(TypedDict):
    """Type definition for playback configuration settings."""
    mode: str  # "continuous", "paging", "voice" or "rsvp"
    scroll_speed: float  # lines per second
    rsvp_speed: int  # words per minute
    max_words_per_line: int  # 0 disables wrapping
    cue_points: list[int]


class TimingSettings(TypedDict):
    """Type definition for animation and timer constants."""
    countdown_seconds: int
    ramp_duration_ms: float
    end_threshold_px: float
    paging_overlap: float
    paging_transition_ms: float
    smooth_scroll_easing: float
    smooth_scroll_snap_px: float
    active_line_update_ms: float
    frame_interval_ms: float


class VoiceSettings(TypedDict):
    """Type definition for speech alignment settings."""
    language: str
    search_window: int
    max_fuzzy_distance: int
    max_restart_attempts: int
    initial_restart_delay_ms: float
    max_restart_delay_ms: float


class RSVPSettings(TypedDict):
    """Type definition for RSVP punctuation pauses."""
    major_multiplier: float
    minor_multiplier: float


class TranscriptionConfig(TypedDict):
    """Type definition for transcription configuration settings."""
    provider: str  # only "vosk" at present
    model_id: str | None  # None picks a model from the voice language
    model_path: str | None  # Optional custom path


class Config(TypedDict):
    """Type definition for the complete configuration."""
    playback: PlaybackSettings
    timing: TimingSettings
    voice: VoiceSettings
    rsvp: RSVPSettings
    transcription: TranscriptionConfig
    # Server settings
    host: str
    port: int
    audio_device: int | None
    chunk_ms: int


# Default configuration values
DEFAULT_CONFIG: Config = {
    "playback": {
        "mode": "continuous",
        "scroll_speed": 1.5,
        "rsvp_speed": 300,
        "max_words_per_line": 0,
        "cue_points": [],
    },

    "timing": {
        # 3-2-1 countdown before scrolling
        "countdown_seconds": 3,
        "ramp_duration_ms": 1000,
        # Pixels from the end of the content that count as "the end"
        "end_threshold_px": 5,
        # Each page re-shows the last 10% of the previous one
        "paging_overlap": 0.1,
        "paging_transition_ms": 400,
        "smooth_scroll_easing": 0.15,
        "smooth_scroll_snap_px": 0.5,
        "active_line_update_ms": 100,
        "frame_interval_ms": 16,
    },

    "voice": {
        "language": "en-US",
        # Lines searched forward from the last match
        "search_window": 50,
        "max_fuzzy_distance": 2,
        "max_restart_attempts": 5,
        "initial_restart_delay_ms": 500,
        "max_restart_delay_ms": 5000,
    },

    "rsvp": {
        "major_multiplier": 2.0,
        "minor_multiplier": 1.5,
    },

    "transcription": {
        "provider": "vosk",
        "model_id": None,
        "model_path": None,
    },

    # Server settings
    "host": "127.0.0.1",
    "port": 8000,
    "audio_device": None,
    "chunk_ms": 100,
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def clamp_scroll_speed(speed: float) -> float:
    """Clamp a lines-per-second speed into range, rounded to one decimal."""
    if not isinstance(speed, (int, float)) or math.isnan(speed):
        return DEFAULT_CONFIG["playback"]["scroll_speed"]
    return round(_clamp(float(speed), SCROLL_SPEED_RANGE), 1)


def clamp_rsvp_speed(wpm: float) -> int:
    """Clamp an RSVP words-per-minute speed into range."""
    if not isinstance(wpm, (int, float)) or math.isnan(wpm):
        return DEFAULT_CONFIG["playback"]["rsvp_speed"]
    return int(_clamp(round(wpm), RSVP_SPEED_RANGE))


def clamp_max_words_per_line(limit: float) -> int:
    """Clamp the wrap limit into range (0 disables wrapping)."""
    if not isinstance(limit, (int, float)) or math.isnan(limit):
        return DEFAULT_CONFIG["playback"]["max_words_per_line"]
    return int(_clamp(math.floor(limit), MAX_WORDS_PER_LINE_RANGE))


def validate_mode(mode: object) -> str:
    """Return mode if it is a known playback mode, else "continuous"."""
    return mode if mode in PLAYBACK_MODES else "continuous"  # type: ignore[return-value]


def validate_playback(playback: dict[str, Any]) -> PlaybackSettings:
    """
    Bring loaded playback settings back into their supported ranges.

    Values of the wrong type fall back to defaults rather than failing the load.
    """
    cue_points = playback.get("cue_points") or []
    return {
        "mode": validate_mode(playback.get("mode")),
        "scroll_speed": clamp_scroll_speed(playback.get("scroll_speed")),  # type: ignore[arg-type]
        "rsvp_speed": clamp_rsvp_speed(playback.get("rsvp_speed")),  # type: ignore[arg-type]
        "max_words_per_line": clamp_max_words_per_line(
            playback.get("max_words_per_line")),  # type: ignore[arg-type]
        "cue_points": sorted({int(c) for c in cue_points
                              if isinstance(c, int) and c >= 0}),
    }


def migrate_config(config: dict[str, Any]) -> dict[str, Any]:
    """
    Migrate the old flat playback keys into the playback section.

    Early config files stored scroll_speed, scroll_mode and rsvp_speed at the
    top level. They are moved under "playback" and removed from the top level.

    Args:
        config: Configuration dictionary (may be in old or new format)

    Returns:
        Migrated configuration dictionary
    """
    legacy_keys: dict[str, str] = {
        "scroll_speed": "scroll_speed",
        "scroll_mode": "mode",
        "rsvp_speed": "rsvp_speed",
        "max_words_per_line": "max_words_per_line",
    }
    moved: list[str] = []
    for old_key, new_key in legacy_keys.items():
        if old_key in config:
            config.setdefault("playback", {})[new_key] = config.pop(old_key)
            moved.append(old_key)

    if moved:
        logger.info("Migrated legacy config keys into playback: %s", ", ".join(moved))

    return config


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if file_config:
                    config = _deep_merge(config, migrate_config(file_config))
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

    playback = config.get("playback")
    if not isinstance(playback, dict):
        playback = copy.deepcopy(DEFAULT_CONFIG["playback"])
    config["playback"] = validate_playback(playback)

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def update_config_playback(config: Config, playback: dict[str, Any]) -> Config:
    """
    Merge new playback settings into the config. Returns a new config dict.

    Args:
        config: Current configuration.
        playback: Playback settings to merge in (validated before merging).

    Returns:
        New configuration with updated playback settings.
    """
    new_config: dict[str, Any] = copy.deepcopy(config)
    merged = _deep_merge(new_config.get("playback", {}), playback)
    new_config["playback"] = validate_playback(merged)
    return new_config  # type: ignore[return-value]
