#!/usr/bin/env python3
"""
Marketplace.json Fixer.

Removes commands/agents/mcpServers references that point to files which do
not exist, after saving a backup of the original manifest.

Usage:
    python3 fix_marketplace_paths.py [manifest_path] [--root DIR] [--dry-run]

Options:
    --dry-run   Show what would be removed without touching any file

Exit Codes:
  0 - Manifest is valid (already, or after fixing)
  1 - Issues remain, the manifest is unreadable, or a runtime error occurred
"""

from __future__ import annotations

import argparse
import copy
import json
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mpv_common import (
    EXIT_INVALID,
    EXIT_OK,
    ConfigError,
    colorize,
    load_config,
    set_color_enabled,
)
from mpv_validator import (
    REFERENCE_FIELDS,
    MarketplaceValidator,
    PathValidationResult,
    group_errors_by_plugin,
    load_manifest,
    plugin_name,
)

BACKUP_SUFFIX = ".backup"


@dataclass
class FixSummary:
    """What remove_invalid_references() changed."""

    removed: int = 0
    emptied_fields: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class FixOutcome:
    """Result of a complete fix run.

    Attributes:
        before: Validation result that drove the fix
        after: Re-validation after writing (None if nothing was written)
        summary: References removed and fields deleted
        backup_path: Copy of the original manifest (None if nothing was written)
    """

    before: PathValidationResult
    after: PathValidationResult | None = None
    summary: FixSummary = field(default_factory=FixSummary)
    backup_path: Path | None = None

    @property
    def valid(self) -> bool:
        final = self.after if self.after is not None else self.before
        return final.valid


def _find_plugin(manifest: dict[str, Any], name: str) -> dict[str, Any] | None:
    plugins = manifest.get("plugins")
    if not isinstance(plugins, list):
        return None
    for plugin in plugins:
        if isinstance(plugin, dict) and plugin_name(plugin) == name:
            return plugin
    return None


def remove_invalid_references(manifest: dict[str, Any], result: PathValidationResult) -> FixSummary:
    """Remove every (plugin, field, path) listed in result.errors from manifest, in place.

    Fields left as empty lists are deleted. A field holding a single string
    path is deleted when that path is invalid.
    """
    summary = FixSummary()

    for name, errors in group_errors_by_plugin(result.errors).items():
        plugin = _find_plugin(manifest, name)
        if plugin is None:
            continue

        for error in errors:
            value = plugin.get(error.field)
            if isinstance(value, list) and error.path in value:
                value.remove(error.path)
                summary.removed += 1
            elif isinstance(value, str) and value == error.path:
                del plugin[error.field]
                summary.removed += 1
                summary.emptied_fields.append((name, error.field))

        for field_name in REFERENCE_FIELDS:
            value = plugin.get(field_name)
            if isinstance(value, list) and not value:
                del plugin[field_name]
                summary.emptied_fields.append((name, field_name))

    return summary


def backup_manifest(manifest_file: Path) -> Path:
    """Copy manifest_file to <manifest_file>.backup and return the backup path."""
    backup_path = manifest_file.with_name(manifest_file.name + BACKUP_SUFFIX)
    shutil.copy2(manifest_file, backup_path)
    return backup_path


def write_manifest(manifest_file: Path, data: dict[str, Any]) -> None:
    """Write JSON data atomically using temp file + rename.

    Output is pretty-printed with a 2-space indent and a trailing newline.
    """
    fd, tmp_path_str = tempfile.mkstemp(
        dir=str(manifest_file.parent),
        prefix=".mpv_fix_tmp_",
        suffix=".json",
    )
    tmp_path = Path(tmp_path_str)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            json.dump(data, tmp_file, indent=2, ensure_ascii=False)
            tmp_file.write("\n")
        os.replace(tmp_path, manifest_file)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def fix_manifest(
    manifest_path: Path,
    validator: MarketplaceValidator,
    dry_run: bool = False,
) -> FixOutcome:
    """Validate, strip dangling references, back up, rewrite and re-validate.

    Nothing is written when the manifest is already valid, cannot be read,
    or dry_run is set.
    """
    before = validator.validate(manifest_path)
    if before.valid or before.manifest_unreadable or before.manifest_path is None:
        return FixOutcome(before=before)

    manifest_file = before.manifest_path
    manifest = load_manifest(manifest_file)
    if dry_run:
        manifest = copy.deepcopy(manifest)
    summary = remove_invalid_references(manifest, before)

    if dry_run:
        return FixOutcome(before=before, summary=summary)

    backup_path = backup_manifest(manifest_file)
    write_manifest(manifest_file, manifest)
    after = validator.validate(manifest_file)
    return FixOutcome(before=before, after=after, summary=summary, backup_path=backup_path)


def print_outcome(outcome: FixOutcome, dry_run: bool) -> None:
    """Print the removals, backup location and final status."""
    before = outcome.before

    if before.valid:
        print(colorize("No issues found! Marketplace.json is valid.\n", "GREEN"))
        return

    if before.manifest_unreadable:
        for error in before.errors:
            print(colorize(f"Error: {error.message}", "RED"), file=sys.stderr)
        return

    print(colorize(f"Found {len(before.errors)} invalid path references.\n", "YELLOW"))
    verb = "would be" if dry_run else "will be"
    print(colorize(f"The following invalid references {verb} removed:\n", "CYAN"))

    emptied = set(outcome.summary.emptied_fields)
    for name, errors in group_errors_by_plugin(before.errors).items():
        print(colorize(f"  {name}:", "YELLOW"))
        for error in errors:
            print(colorize(f"    {error.field}: {error.path}", "GRAY"))
        for field_name in REFERENCE_FIELDS:
            if (name, field_name) in emptied:
                print(colorize(f"    (removed empty {field_name} array)", "DIM"))
        print()

    if dry_run:
        print(colorize(f"[DRY RUN] Would remove {outcome.summary.removed} invalid path references.\n", "CYAN"))
        return

    print(colorize(f"Removed {outcome.summary.removed} invalid path references.\n", "GREEN"))
    if outcome.backup_path is not None:
        print(colorize(f"Backup created: {outcome.backup_path}\n", "CYAN"))
    print(colorize(f"Updated {before.manifest_path}\n", "GREEN"))

    if outcome.after is not None and outcome.after.valid:
        print(colorize("Marketplace.json is now valid!\n", "GREEN", "BOLD"))
    elif outcome.after is not None:
        print(colorize(f"Still has {len(outcome.after.errors)} issues. Re-run to fix.\n", "YELLOW"))


def main(argv: list[str] | None = None) -> int:
    """Entry point for the fixer CLI.

    Returns:
        Exit code: 0 when the manifest ends up valid, 1 otherwise.
    """
    parser = argparse.ArgumentParser(
        description="Remove marketplace.json references to files that do not exist.",
    )
    parser.add_argument(
        "manifest_path",
        nargs="?",
        type=Path,
        help="Path to marketplace.json or a directory containing it",
    )
    parser.add_argument("--root", type=Path, help="Project root that manifest paths are relative to")
    parser.add_argument("--config", type=Path, help="YAML config file (default: <root>/.mpv.yaml)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be removed without modifying the manifest",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    args = parser.parse_args(argv)

    if args.no_color:
        set_color_enabled(False)

    print(colorize("\nMarketplace.json Fixer\n", "BLUE", "BOLD"))

    try:
        config = load_config(root=args.root, config_path=args.config, manifest=args.manifest_path)
        validator = MarketplaceValidator(root_dir=config.validator_root)
        outcome = fix_manifest(config.manifest_path, validator, dry_run=args.dry_run)
        print_outcome(outcome, args.dry_run)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except Exception as e:
        print(colorize("\nError:", "RED"), e, file=sys.stderr)
        return EXIT_INVALID

    if args.dry_run:
        return EXIT_OK if outcome.before.valid else EXIT_INVALID
    return EXIT_OK if outcome.valid else EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
