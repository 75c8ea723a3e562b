# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for Cuesync.
Handles loading and saving settings from a YAML config file.
"""

import logging
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".cuesync.yaml"


class ScrollSettings(TypedDict):
    """Type definition for scroll animation settings."""
    speed: float  # pixels per second
    speed_min: float
    speed_max: float
    speed_step: float  # change per speed up/down command
    line_height: float  # pixels
    visible_height: float  # pixels
    frame_rate: float  # ticks per second
    auto_resume_after: float  # seconds paused after a jump
    highlight_duration: float  # seconds a jumped-to line stays highlighted


class MatchingSettings(TypedDict):
    """Type definition for voice matching settings."""
    min_sync_interval: float
    lookbehind: int
    lookahead: int
    recent_words: int
    max_line_jump: int
    min_score: float
    anchor_length: int


class TranscriptionConfig(TypedDict):
    """Type definition for transcription configuration settings."""
    provider: str  # "vosk"
    model_id: str  # Model identifier (e.g., "vosk-en-us-small")
    model_path: str | None  # Optional custom path


class Config(TypedDict):
    """Type definition for the complete configuration."""
    transcription: TranscriptionConfig
    # Server settings
    host: str
    port: int
    audio_device: int | None
    chunk_ms: int
    scroll: ScrollSettings
    matching: MatchingSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    "transcription": {
        "provider": "vosk",
        "model_id": "vosk-en-us-small",
        "model_path": None,
    },

    # Server settings
    "host": "127.0.0.1",
    "port": 8000,
    "audio_device": None,
    "chunk_ms": 100,

    "scroll": {
        "speed": 50.0,
        "speed_min": 10.0,
        "speed_max": 150.0,
        "speed_step": 10.0,
        "line_height": 28.0,
        "visible_height": 150.0,
        "frame_rate": 60.0,
        "auto_resume_after": 1.0,
        "highlight_duration": 0.5,
    },

    # Anti-jitter thresholds for voice sync
    "matching": {
        "min_sync_interval": 0.3,
        "lookbehind": 1,
        "lookahead": 20,
        # Only the most recent words of a transcript are matched
        "recent_words": 10,
        "max_line_jump": 3,
        "min_score": 0.6,
        # Words longer than this count as anchors
        "anchor_length": 6,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.
    """
    result = {
        key: _deep_merge(value, {}) if isinstance(value, dict) else value
        for key, value in base.items()
    }
    for key, value in override.items():
        if isinstance(result.get(key), dict):
            if isinstance(value, dict):
                result[key] = _deep_merge(result[key], value)
            elif value is not None:
                logger.warning("Ignoring config section %r: not a mapping", key)
        elif isinstance(value, dict):
            result[key] = _deep_merge(value, {})
        else:
            result[key] = value
    return result


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

    config: dict[str, Any] = _deep_merge({}, DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
                elif file_config is not None:
                    logger.warning("Ignoring config %s: top level is not a mapping", config_path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

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


def _section(config: Config, name: str) -> dict[str, Any]:
    # An empty YAML section ("scroll:") loads as None
    section: object = config.get(name)
    return section if isinstance(section, dict) else {}


def get_scroll_settings(config: Config) -> ScrollSettings:
    """Extract scroll settings from config."""
    return _deep_merge(DEFAULT_CONFIG["scroll"],
                       _section(config, "scroll"))  # type: ignore[return-value]


def get_matching_settings(config: Config) -> MatchingSettings:
    """Extract voice matching settings from config."""
    return _deep_merge(DEFAULT_CONFIG["matching"],
                       _section(config, "matching"))  # type: ignore[return-value]


def get_transcription_settings(config: Config) -> TranscriptionConfig:
    """Extract transcription settings from config."""
    return _deep_merge(DEFAULT_CONFIG["transcription"],
                       _section(config, "transcription"))  # type: ignore[return-value]
