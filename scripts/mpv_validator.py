#!/usr/bin/env python3
"""
Marketplace Path Validator.

Validates that every path referenced by a marketplace.json plugin entry
(commands, agents, mcpServers) exists on disk relative to a project root.

Checks:
- All command paths exist
- All agent paths exist
- All mcpServer paths exist

Every run returns a fresh PathValidationResult; the validator itself only
holds configuration, so one instance can be reused freely.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

# Reference fields in the order they are checked within a plugin
REFERENCE_FIELDS = ("commands", "agents", "mcpServers")

MANIFEST_FILENAME = "marketplace.json"
MANIFEST_DIRNAME = ".claude-plugin"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class PathError:
    """One missing reference, or the synthetic error for an unreadable manifest.

    Attributes:
        plugin: Name of the plugin declaring the path (None for manifest errors)
        field: Reference field the path was listed under (None for manifest errors)
        path: The path as written in the manifest, or the manifest path itself
        message: Human-readable description
    """

    plugin: str | None
    field: str | None
    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, str] = {}
        if self.plugin is not None:
            result["plugin"] = self.plugin
        if self.field is not None:
            result["field"] = self.field
        result["path"] = self.path
        result["message"] = self.message
        return result


@dataclass(frozen=True)
class PathStats:
    """Aggregate path counters for one validation run."""

    total_paths: int = 0
    valid_paths: int = 0
    invalid_paths: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalPaths": self.total_paths,
            "validPaths": self.valid_paths,
            "invalidPaths": self.invalid_paths,
        }


@dataclass(frozen=True)
class PathValidationResult:
    """Outcome of validating one manifest."""

    errors: tuple[PathError, ...] = ()
    validated_plugins: int = 0
    stats: PathStats = field(default_factory=PathStats)
    manifest_path: Path | None = None

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def manifest_unreadable(self) -> bool:
        """True when the run stopped because the manifest could not be loaded."""
        return any(e.plugin is None for e in self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "validatedPlugins": self.validated_plugins,
            "stats": self.stats.to_dict(),
        }


class PathExists(Protocol):
    """Capability used for every existence check."""

    def __call__(self, path: Path) -> bool: ...


# =============================================================================
# Helpers
# =============================================================================


def path_exists(path: Path) -> bool:
    """Single stat call; any failure (not found, permission denied, ...) counts as missing."""
    try:
        path.stat()
    except (OSError, ValueError):
        return False
    return True


def reference_paths(plugin: Any, field_name: str) -> list[str]:
    """Return the path strings a plugin lists under field_name.

    A bare string is a single path. Lists keep only their string entries.
    Anything else (missing, null, inline objects) yields no paths.
    """
    if not isinstance(plugin, dict):
        return []
    value = plugin.get(field_name)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [p for p in value if isinstance(p, str)]
    return []


def plugin_name(plugin: Any) -> str:
    """Name a plugin entry is reported under; a missing or non-string name is the empty string."""
    name = plugin.get("name") if isinstance(plugin, dict) else None
    return name if isinstance(name, str) else ""


def reference_target(root: Path, ref: str) -> Path:
    """Join a manifest path onto root; leading separators do not escape the root."""
    return root / ref.lstrip("/\\")


def resolve_manifest_path(manifest_path: Path) -> Path:
    """Accept either marketplace.json itself or a directory containing it."""
    if not manifest_path.is_dir():
        return manifest_path
    candidate = manifest_path / MANIFEST_FILENAME
    if candidate.exists():
        return candidate
    return manifest_path / MANIFEST_DIRNAME / MANIFEST_FILENAME


def infer_project_root(manifest_file: Path) -> Path:
    """Project root for a manifest: the parent of .claude-plugin/, else the manifest's directory."""
    parent = manifest_file.parent
    if parent.name == MANIFEST_DIRNAME:
        return parent.parent
    return parent


def load_manifest(manifest_file: Path) -> dict[str, Any]:
    """Read and parse a manifest, raising ValueError or OSError on failure."""
    with open(manifest_file, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"top level must be a JSON object, got {type(data).__name__}")
    return data


# =============================================================================
# Validator
# =============================================================================


class MarketplaceValidator:
    """Validates marketplace.json plugin path references.

    Args:
        root_dir: Directory that manifest paths are relative to. When None,
            validate() infers it from the manifest location.
        exists: Existence check, replaceable in tests.
    """

    def __init__(self, root_dir: Path | None = None, exists: PathExists = path_exists) -> None:
        self.root_dir = root_dir
        self.exists = exists

    def validate(self, manifest_path: Path) -> PathValidationResult:
        """Load marketplace.json from disk and validate its references.

        Args:
            manifest_path: Path to marketplace.json or a directory containing it

        Returns:
            PathValidationResult; an unreadable manifest yields a single error
        """
        manifest_file = resolve_manifest_path(Path(manifest_path))
        try:
            data = load_manifest(manifest_file)
        except (OSError, ValueError, RecursionError) as e:
            return PathValidationResult(
                errors=(
                    PathError(
                        plugin=None,
                        field=None,
                        path=str(manifest_file),
                        message=f"Failed to read or parse {manifest_file.name}: {e}",
                    ),
                ),
                manifest_path=manifest_file,
            )

        root = self.root_dir if self.root_dir is not None else infer_project_root(manifest_file)
        result = self.validate_data(data, root)
        return PathValidationResult(
            errors=result.errors,
            validated_plugins=result.validated_plugins,
            stats=result.stats,
            manifest_path=manifest_file,
        )

    def validate_data(self, data: Any, root_dir: Path | None = None) -> PathValidationResult:
        """Validate already-parsed manifest data.

        Args:
            data: Parsed marketplace.json content (not modified)
            root_dir: Directory paths are resolved against; defaults to the
                validator's root_dir, then the current directory

        Returns:
            PathValidationResult with errors in manifest order
        """
        if root_dir is None:
            root_dir = self.root_dir if self.root_dir is not None else Path(".")
        root = Path(root_dir)

        plugins = data.get("plugins") if isinstance(data, dict) else None
        if not isinstance(plugins, list):
            plugins = []

        errors: list[PathError] = []
        valid = 0
        for plugin in plugins:
            name = plugin_name(plugin)
            for field_name in REFERENCE_FIELDS:
                for ref in reference_paths(plugin, field_name):
                    if self.exists(reference_target(root, ref)):
                        valid += 1
                    else:
                        errors.append(
                            PathError(
                                plugin=name,
                                field=field_name,
                                path=ref,
                                message=f"File does not exist: {ref}",
                            )
                        )

        return PathValidationResult(
            errors=tuple(errors),
            validated_plugins=len(plugins),
            stats=PathStats(
                total_paths=valid + len(errors),
                valid_paths=valid,
                invalid_paths=len(errors),
            ),
        )


def group_errors_by_plugin(errors: tuple[PathError, ...] | list[PathError]) -> dict[str, list[PathError]]:
    """Group missing-reference errors by plugin name, in first-appearance order.

    Manifest-level errors (no plugin) are left out.
    """
    grouped: dict[str, list[PathError]] = {}
    for error in errors:
        if error.plugin is None:
            continue
        grouped.setdefault(error.plugin, []).append(error)
    return grouped
