#!/usr/bin/env python3
"""
Marketplace Path Validator - Common Module

Shared infrastructure for the marketplace path tools.
This module contains:
- Exit codes
- Configuration loading (CLI flags > environment > .mpv.yaml > defaults)
- Terminal color formatting

The validator, reporter, fixer and history search all import from here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # Every referenced path exists
EXIT_INVALID = 1  # Missing references, unreadable manifest, or runtime error

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_MANIFEST = Path(".claude-plugin") / "marketplace.json"
CONFIG_FILENAME = ".mpv.yaml"
DEFAULT_GIT_TIMEOUT = 30
DEFAULT_SIMILAR_LIMIT = 5

ENV_PROJECT_ROOT = "MPV_PROJECT_ROOT"
ENV_MANIFEST = "MPV_MANIFEST"
ENV_GIT_TIMEOUT = "MPV_GIT_TIMEOUT"


class ConfigError(Exception):
    """Raised when the configuration file or an override cannot be used."""


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class MarketplaceConfig:
    """Resolved settings shared by all marketplace path tools.

    Attributes:
        root: Project root against which manifest paths are resolved
        manifest_path: Location of marketplace.json (absolute or relative to cwd)
        git_timeout: Seconds allowed for each git subprocess
        similar_limit: Maximum number of similarly named files to report
        root_is_explicit: True when root came from --root or MPV_PROJECT_ROOT,
            or the config file chose the manifest
    """

    root: Path
    manifest_path: Path
    git_timeout: int = DEFAULT_GIT_TIMEOUT
    similar_limit: int = DEFAULT_SIMILAR_LIMIT
    root_is_explicit: bool = False

    @property
    def validator_root(self) -> Path | None:
        """Root to hand to the validator; None lets it infer one from the manifest location."""
        return self.root if self.root_is_explicit else None


def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """Load a YAML mapping from disk.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed mapping ({} for an empty file)

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML,
            or its top level is not a mapping
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {file_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{file_path} must contain a mapping, got {type(data).__name__}")
    return data


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def load_config(
    root: Path | None = None,
    config_path: Path | None = None,
    manifest: Path | None = None,
) -> MarketplaceConfig:
    """Resolve configuration from flags, environment, config file and defaults.

    Args:
        root: --root flag value, if given
        config_path: --config flag value, if given (must exist)
        manifest: positional manifest path, if given

    Returns:
        MarketplaceConfig with every field resolved

    Raises:
        ConfigError: On an unusable config file or invalid override
    """
    root_is_explicit = root is not None
    if root is None:
        env_root = os.environ.get(ENV_PROJECT_ROOT, "").strip()
        root_is_explicit = bool(env_root)
        root = Path(env_root) if env_root else Path.cwd()

    file_settings: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        file_settings = load_yaml_file(config_path)
    elif (root / CONFIG_FILENAME).is_file():
        file_settings = load_yaml_file(root / CONFIG_FILENAME)

    if manifest is None:
        env_manifest = os.environ.get(ENV_MANIFEST, "").strip()
        if env_manifest:
            manifest = Path(env_manifest)
        elif file_settings.get("manifest"):
            # Paths in the manifest stay relative to the root holding the config file
            manifest = root / str(file_settings["manifest"])
            root_is_explicit = True
        else:
            manifest = root / DEFAULT_MANIFEST

    git_timeout = os.environ.get(ENV_GIT_TIMEOUT, "").strip() or file_settings.get("git_timeout", DEFAULT_GIT_TIMEOUT)
    similar_limit = file_settings.get("similar_limit", DEFAULT_SIMILAR_LIMIT)

    return MarketplaceConfig(
        root=root,
        manifest_path=manifest,
        git_timeout=_positive_int(git_timeout, "git_timeout"),
        similar_limit=_positive_int(similar_limit, "similar_limit"),
        root_is_explicit=root_is_explicit,
    )


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "RED": "\033[91m",
    "GREEN": "\033[92m",
    "YELLOW": "\033[93m",
    "BLUE": "\033[94m",
    "CYAN": "\033[96m",
    "GRAY": "\033[90m",
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
}

_color_enabled = not os.environ.get("NO_COLOR")


def set_color_enabled(enabled: bool) -> None:
    """Turn ANSI coloring on or off for all subsequent colorize() calls."""
    global _color_enabled
    _color_enabled = enabled


def colorize(text: object, *styles: str) -> str:
    """Wrap text in one or more ANSI styles from COLORS."""
    if not _color_enabled or not styles:
        return str(text)
    prefix = "".join(COLORS.get(style, "") for style in styles)
    return f"{prefix}{text}{COLORS['RESET']}"
