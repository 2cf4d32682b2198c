#!/usr/bin/env python3
"""
Marketplace.json Path Validation CLI.

Reports every commands/agents/mcpServers path in marketplace.json that does
not exist on disk, grouped by plugin, with validation statistics.

Usage:
    python3 validate_marketplace_paths.py [manifest_path] [--root DIR] [--json]

Exit Codes:
  0 - All paths are valid
  1 - Missing paths, unreadable manifest, or runtime error
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from mpv_common import (
    EXIT_INVALID,
    EXIT_OK,
    ConfigError,
    colorize,
    load_config,
    set_color_enabled,
)
from mpv_validator import MarketplaceValidator, PathValidationResult, group_errors_by_plugin


def format_report(result: PathValidationResult, verbose: bool = False) -> str:
    """Format a validation result for terminal output."""
    lines: list[str] = []

    lines.append(colorize("\nMarketplace.json Validation\n", "BLUE", "BOLD"))
    if verbose and result.manifest_path is not None:
        lines.append(f"   Manifest: {result.manifest_path}")

    lines.append(colorize("Statistics:", "CYAN"))
    lines.append(f"   Plugins validated: {result.validated_plugins}")
    lines.append(f"   Total paths checked: {result.stats.total_paths}")
    lines.append(f"   Valid paths: {colorize(result.stats.valid_paths, 'GREEN')}")
    lines.append(f"   Invalid paths: {colorize(result.stats.invalid_paths, 'RED')}")
    lines.append("")

    if result.valid:
        lines.append(colorize("All paths are valid!\n", "GREEN", "BOLD"))
        return "\n".join(lines)

    if result.manifest_unreadable:
        for error in result.errors:
            lines.append(colorize(f"Error: {error.message}", "RED", "BOLD"))
            lines.append(f"   {error.path}")
        lines.append("")
        return "\n".join(lines)

    lines.append(colorize(f"Found {len(result.errors)} invalid path(s):", "RED", "BOLD"))
    for plugin_name, plugin_errors in group_errors_by_plugin(result.errors).items():
        lines.append(colorize(f"\n  {plugin_name or '(unnamed plugin)'}:", "YELLOW"))
        for error in plugin_errors:
            lines.append(f"    {colorize(error.field, 'GRAY')}: {colorize(error.path, 'RED')}")

    manifest = result.manifest_path or "marketplace.json"
    lines.append(colorize(f"\nTip: Update the paths in {manifest} or create the missing files.\n", "YELLOW"))
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Validate that marketplace.json plugin paths point to existing files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - All paths are valid
  1 - Invalid paths found (or the manifest could not be read)

Examples:
  %(prog)s
  %(prog)s ./.claude-plugin/marketplace.json --root .
  %(prog)s ./my-marketplace --json
        """,
    )
    parser.add_argument(
        "manifest_path",
        nargs="?",
        type=Path,
        help="Path to marketplace.json or a directory containing it (default: <root>/.claude-plugin/marketplace.json)",
    )
    parser.add_argument("--root", type=Path, help="Project root that manifest paths are relative to")
    parser.add_argument("--config", type=Path, help="YAML config file (default: <root>/.mpv.yaml)")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show the manifest location")
    args = parser.parse_args(argv)

    if args.no_color:
        set_color_enabled(False)

    try:
        config = load_config(root=args.root, config_path=args.config, manifest=args.manifest_path)
        validator = MarketplaceValidator(root_dir=config.validator_root)
        result = validator.validate(config.manifest_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except Exception as e:
        print(colorize("\nError running validation:", "RED"), e, file=sys.stderr)
        return EXIT_INVALID

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_report(result, args.verbose))

    return EXIT_OK if result.valid else EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
