#!/usr/bin/env python3
"""
Git History Search for Missing Marketplace Files.

For every path marketplace.json references that no longer exists, searches
git history to tell whether the file never existed, was deleted (and by
which commit), or may have been renamed or moved. Prints the commands
needed to restore deleted files.

Usage:
    python3 find_missing_files.py [manifest_path] [--root DIR]

Exit Codes:
  0 - Report printed (including when nothing is missing)
  1 - Manifest could not be read, or a runtime error occurred
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from mpv_common import (
    DEFAULT_GIT_TIMEOUT,
    DEFAULT_SIMILAR_LIMIT,
    EXIT_INVALID,
    EXIT_OK,
    ConfigError,
    colorize,
    load_config,
    set_color_enabled,
)
from mpv_validator import MarketplaceValidator, PathError, infer_project_root

LOG_FORMAT = "--pretty=format:%H|%ai|%an|%s"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class CommitInfo:
    """One commit from git log."""

    hash: str
    date: str
    author: str
    message: str

    @property
    def short_hash(self) -> str:
        return self.hash[:8]


@dataclass
class FileHistory:
    """What git history knows about a path.

    Attributes:
        commits: Commits touching the path, newest first
        last_commit: Last revision touching the path (git rev-list -n 1)
        deleted: Most recent commit that deleted the path, if any
    """

    commits: list[CommitInfo]
    last_commit: str
    deleted: CommitInfo | None = None

    @property
    def latest(self) -> CommitInfo:
        return self.deleted or self.commits[0]

    @property
    def restore_revision(self) -> str:
        """Revision that still contains the file."""
        if self.deleted is not None:
            return f"{self.deleted.hash}^"
        return self.last_commit


@dataclass
class HistoryFindings:
    """Missing files classified by what git history says about them."""

    never_existed: list[PathError] = field(default_factory=list)
    deleted: list[tuple[PathError, FileHistory]] = field(default_factory=list)
    possibly_moved: list[tuple[PathError, list[str]]] = field(default_factory=list)


# =============================================================================
# Git Queries
# =============================================================================


def run_git_command(cwd: Path, *args: str, timeout: int = DEFAULT_GIT_TIMEOUT) -> tuple[bool, str]:
    """Run a git command and return success status and output.

    Args:
        cwd: Working directory for the command
        *args: Git command arguments
        timeout: Seconds before the command is abandoned

    Returns:
        Tuple of (success, stdout); on failure the second item is the error text
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        return False, str(e)
    if result.returncode != 0:
        return False, result.stderr
    return True, result.stdout


def git_pathspec(file_path: str) -> str:
    """Manifest paths are usually written as ./x/y.md or /x/y.md; git wants x/y.md."""
    file_path = file_path.lstrip("/\\")
    while file_path.startswith("./"):
        file_path = file_path[2:].lstrip("/")
    return file_path


def parse_log_line(line: str) -> CommitInfo | None:
    parts = line.split("|", 3)
    if len(parts) != 4:
        return None
    return CommitInfo(*parts)


def search_git_history(repo_root: Path, file_path: str, timeout: int = DEFAULT_GIT_TIMEOUT) -> FileHistory | None:
    """Look a path up in git history.

    Args:
        repo_root: Repository working tree
        file_path: Path as written in the manifest
        timeout: Seconds allowed per git call

    Returns:
        FileHistory, or None if the path never appears in history
    """
    spec = git_pathspec(file_path)

    ok, logs = run_git_command(repo_root, "log", "--all", "--full-history", LOG_FORMAT, "--", spec, timeout=timeout)
    if not ok or not logs.strip():
        return None

    commits = [c for c in (parse_log_line(line) for line in logs.strip().splitlines()) if c is not None]
    if not commits:
        return None

    deleted = None
    ok, deletion_log = run_git_command(
        repo_root, "log", "--all", "--diff-filter=D", LOG_FORMAT, "--", spec, timeout=timeout
    )
    if ok and deletion_log.strip():
        deleted = parse_log_line(deletion_log.strip().splitlines()[0])

    ok, last_commit = run_git_command(repo_root, "rev-list", "-n", "1", "--all", "--", spec, timeout=timeout)
    last = last_commit.strip() if ok else ""

    return FileHistory(commits=commits, last_commit=last or commits[0].hash, deleted=deleted)


def find_similar_files(
    repo_root: Path,
    file_path: str,
    limit: int = DEFAULT_SIMILAR_LIMIT,
    timeout: int = DEFAULT_GIT_TIMEOUT,
) -> list[str]:
    """Tracked files whose name contains the missing file's base name (case-insensitive)."""
    ok, output = run_git_command(repo_root, "ls-files", timeout=timeout)
    if not ok:
        return []

    spec = git_pathspec(file_path)
    basename = PurePosixPath(spec).name.lower()
    if not basename:
        return []

    similar = [f for f in output.splitlines() if f and f != spec and basename in f.lower()]
    return similar[:limit]


def classify_missing(
    errors: tuple[PathError, ...] | list[PathError],
    repo_root: Path,
    similar_limit: int = DEFAULT_SIMILAR_LIMIT,
    timeout: int = DEFAULT_GIT_TIMEOUT,
    verbose: bool = True,
) -> HistoryFindings:
    """Sort missing references into never-existed / deleted / possibly-moved.

    A file can be both deleted and possibly moved.
    """
    findings = HistoryFindings()

    for error in errors:
        if error.plugin is None:
            continue
        if verbose:
            print(colorize(f"Searching: {error.path}", "GRAY"))

        history = search_git_history(repo_root, error.path, timeout=timeout)
        if history is None:
            findings.never_existed.append(error)
            if verbose:
                print(colorize("  Never existed in git history\n", "RED"))
            continue

        findings.deleted.append((error, history))
        if verbose:
            if history.deleted is not None:
                print(colorize(f"  Deleted: {history.deleted.date}", "YELLOW"))
                print(colorize(f"     Commit: {history.deleted.short_hash}", "GRAY"))
                print(colorize(f"     Author: {history.deleted.author}", "GRAY"))
                print(colorize(f"     Message: {history.deleted.message}", "GRAY"))
            else:
                print(colorize(f"  Last seen: {history.commits[0].date}", "YELLOW"))
                print(colorize(f"     Commit: {history.commits[0].short_hash}", "GRAY"))

        similar = find_similar_files(repo_root, error.path, limit=similar_limit, timeout=timeout)
        if similar:
            findings.possibly_moved.append((error, similar))
            if verbose:
                print(colorize("  Similar files found:", "CYAN"))
                for s in similar[:3]:
                    print(colorize(f"     - {s}", "CYAN"))
        if verbose:
            print()

    return findings


def restore_commands(error: PathError, history: FileHistory) -> list[str]:
    """Shell commands that bring a deleted file back or show its last content."""
    spec = git_pathspec(error.path)
    rev = history.restore_revision
    return [
        f"git checkout {rev} -- {spec}",
        f"git show {rev}:{spec}",
    ]


def print_summary(findings: HistoryFindings) -> None:
    """Print the classification summary and restore instructions."""
    print(colorize("\nSummary:\n", "BLUE", "BOLD"))

    if findings.deleted:
        print(colorize(f"{len(findings.deleted)} files existed but are now missing:", "YELLOW"))
        for error, history in findings.deleted:
            info = history.latest
            print(colorize(f"   {error.path}", "GRAY"))
            print(colorize(f"   └─ {info.short_hash} - {info.message}\n", "GRAY"))

    if findings.possibly_moved:
        print(colorize(f"{len(findings.possibly_moved)} files might have been renamed/moved:", "CYAN"))
        for error, similar in findings.possibly_moved:
            print(colorize(f"   {error.path}", "GRAY"))
            for s in similar[:2]:
                print(colorize(f"   └─ Maybe: {s}", "CYAN"))
            print()

    if findings.never_existed:
        print(colorize(f"{len(findings.never_existed)} files never existed in git:", "RED"))
        for error in findings.never_existed:
            print(colorize(f"   {error.path}", "GRAY"))
        print()

    if findings.deleted:
        error, history = findings.deleted[0]
        checkout, show = restore_commands(error, history)
        print(colorize("\nTo restore deleted files:\n", "GREEN", "BOLD"))
        print("# Restore a specific file from its last commit:")
        print(colorize(checkout, "CYAN"))
        print()
        print("# Or view the file content:")
        print(colorize(show, "CYAN"))
        print()


def main(argv: list[str] | None = None) -> int:
    """Entry point for the history search CLI."""
    parser = argparse.ArgumentParser(
        description="Search git history for files that marketplace.json references but are missing.",
    )
    parser.add_argument(
        "manifest_path",
        nargs="?",
        type=Path,
        help="Path to marketplace.json or a directory containing it",
    )
    parser.add_argument("--root", type=Path, help="Project root (and git working tree)")
    parser.add_argument("--config", type=Path, help="YAML config file (default: <root>/.mpv.yaml)")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    args = parser.parse_args(argv)

    if args.no_color:
        set_color_enabled(False)

    print(colorize("\nSearching Git History for Missing Files\n", "BLUE", "BOLD"))

    try:
        config = load_config(root=args.root, config_path=args.config, manifest=args.manifest_path)
        validator = MarketplaceValidator(root_dir=config.validator_root)
        result = validator.validate(config.manifest_path)

        if result.manifest_unreadable:
            for error in result.errors:
                print(colorize(f"Error: {error.message}", "RED"), file=sys.stderr)
            return EXIT_INVALID

        if result.valid:
            print(colorize("No missing files to search for!\n", "GREEN"))
            return EXIT_OK

        repo_root = config.validator_root or infer_project_root(result.manifest_path or config.manifest_path)

        print(colorize(f"Found {len(result.errors)} missing files. Searching git history...\n", "YELLOW"))
        findings = classify_missing(
            result.errors,
            repo_root,
            similar_limit=config.similar_limit,
            timeout=config.git_timeout,
        )
        print_summary(findings)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except Exception as e:
        print(colorize("\nError:", "RED"), e, file=sys.stderr)
        return EXIT_INVALID

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
