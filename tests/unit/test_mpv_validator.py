#!/usr/bin/env python3
"""Tests for mpv_validator.py - marketplace.json path existence checks."""

import copy
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from mpv_validator import (
    MarketplaceValidator,
    PathError,
    path_exists,
    reference_paths,
    resolve_manifest_path,
)


class FakeFilesystem:
    """Existence double: only the listed paths exist; records every query."""

    def __init__(self, *existing: Path) -> None:
        self.existing = set(existing)
        self.queries: list[Path] = []

    def __call__(self, path: Path) -> bool:
        self.queries.append(path)
        return path in self.existing


class TestMissingReferences:
    """Missing files are reported per field with the plugin name."""

    @pytest.mark.parametrize(
        "field_name, ref",
        [
            ("commands", "./components/commands/nonexistent.md"),
            ("agents", "./components/agents/nonexistent.md"),
            ("mcpServers", "./components/mcps/nonexistent.json"),
        ],
    )
    def test_detects_missing_file_in_each_field(self, tmp_path: Path, field_name: str, ref: str) -> None:
        """A missing path under any reference field becomes one error for that field."""
        data = {"plugins": [{"name": "test-plugin", field_name: [ref]}]}

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is False
        assert result.errors == (
            PathError(plugin="test-plugin", field=field_name, path=ref, message=f"File does not exist: {ref}"),
        )

    def test_missing_command_in_empty_root(self, tmp_path: Path) -> None:
        """Single missing command against an empty root gives 1 total, 0 valid, 1 invalid."""
        data = {"plugins": [{"name": "p", "commands": ["./missing.md"]}]}

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is False
        assert len(result.errors) == 1
        error = result.errors[0]
        assert (error.plugin, error.field, error.path) == ("p", "commands", "./missing.md")
        assert (result.stats.total_paths, result.stats.valid_paths, result.stats.invalid_paths) == (1, 0, 1)

    def test_reports_all_invalid_paths_across_plugins(self, tmp_path: Path) -> None:
        """Errors accumulate across plugins instead of stopping at the first one."""
        data = {
            "plugins": [
                {"name": "plugin-1", "commands": ["./invalid1.md"]},
                {"name": "plugin-2", "agents": ["./invalid2.md"]},
            ]
        }

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is False
        assert len(result.errors) == 2
        assert result.validated_plugins == 2

    def test_error_order_follows_manifest(self, tmp_path: Path) -> None:
        """Errors come out plugin by plugin, commands then agents then mcpServers, in list order."""
        data = {
            "plugins": [
                {
                    "name": "a",
                    "mcpServers": ["./m1.json"],
                    "agents": ["./a1.md", "./a2.md"],
                    "commands": ["./c1.md"],
                },
                {"name": "b", "commands": ["./c2.md"]},
            ]
        }

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert [(e.plugin, e.field, e.path) for e in result.errors] == [
            ("a", "commands", "./c1.md"),
            ("a", "agents", "./a1.md"),
            ("a", "agents", "./a2.md"),
            ("a", "mcpServers", "./m1.json"),
            ("b", "commands", "./c2.md"),
        ]


class TestValidReferences:
    """Existing files count as valid paths."""

    def test_existing_paths_are_valid(self, tmp_path: Path, make_files: Callable[..., None]) -> None:
        """Paths that exist relative to the root produce no errors."""
        make_files("components/commands/git/feature.md", "components/agents/git/git-flow-manager.md")
        data = {
            "plugins": [
                {
                    "name": "test-plugin",
                    "commands": ["./components/commands/git/feature.md"],
                    "agents": ["./components/agents/git/git-flow-manager.md"],
                }
            ]
        }

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is True
        assert result.stats.total_paths == 2
        assert result.stats.valid_paths == 2
        assert result.stats.invalid_paths == 0

    def test_one_valid_one_invalid_across_plugins(self, tmp_path: Path, make_files: Callable[..., None]) -> None:
        """A valid command in one plugin and a missing agent in another are counted separately."""
        make_files("commands/ok.md")
        data = {
            "plugins": [
                {"name": "good", "commands": ["./commands/ok.md"]},
                {"name": "bad", "agents": ["./agents/gone.md"]},
            ]
        }

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.stats.valid_paths == 1
        assert result.stats.invalid_paths == 1
        assert result.stats.total_paths == 2
        assert [e.plugin for e in result.errors] == ["bad"]

    def test_plugin_without_path_fields(self, tmp_path: Path) -> None:
        """A plugin with no reference fields is counted but contributes no paths."""
        data = {"plugins": [{"name": "p", "description": "x"}]}

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is True
        assert result.validated_plugins == 1
        assert result.stats.total_paths == 0

    def test_missing_plugins_key(self, tmp_path: Path) -> None:
        """A manifest without plugins validates as empty."""
        result = MarketplaceValidator().validate_data({"name": "market"}, tmp_path)

        assert result.valid is True
        assert result.validated_plugins == 0
        assert result.stats.total_paths == 0

    def test_absolute_entry_resolves_inside_root(self, tmp_path: Path, make_files: Callable[..., None]) -> None:
        make_files("commands/x.md")
        data = {"plugins": [{"name": "p", "commands": ["/commands/x.md"]}]}

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.valid is True
        assert result.stats.valid_paths == 1

    def test_absolute_entry_outside_root_is_missing(self, tmp_path: Path) -> None:
        """A file that exists outside the root does not satisfy an absolute entry."""
        root = tmp_path / "root"
        root.mkdir()
        outside = tmp_path / "outside.md"
        outside.write_text("x")

        result = MarketplaceValidator().validate_data({"plugins": [{"name": "p", "agents": [str(outside)]}]}, root)

        assert [e.path for e in result.errors] == [str(outside)]
        assert result.stats.valid_paths == 0


class TestFieldShapes:
    """Reference fields that are not plain lists of strings."""

    def test_string_field_is_single_path(self) -> None:
        assert reference_paths({"commands": "./one.md"}, "commands") == ["./one.md"]

    def test_inline_object_yields_no_paths(self) -> None:
        assert reference_paths({"mcpServers": {"server": {"command": "node"}}}, "mcpServers") == []

    def test_non_string_entries_skipped(self) -> None:
        assert reference_paths({"agents": ["./a.md", 3, None]}, "agents") == ["./a.md"]

    def test_null_field_yields_no_paths(self) -> None:
        assert reference_paths({"agents": None}, "agents") == []

    def test_non_object_plugin_is_counted(self, tmp_path: Path) -> None:
        """Malformed plugin entries still count toward validated_plugins."""
        result = MarketplaceValidator().validate_data({"plugins": ["not-a-plugin", None]}, tmp_path)

        assert result.valid is True
        assert result.validated_plugins == 2
        assert result.stats.total_paths == 0

    def test_null_name_reported_as_empty_string(self, tmp_path: Path) -> None:
        data = {"plugins": [{"name": None, "commands": ["./gone.md"]}]}

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.errors[0].plugin == ""


class TestProperties:
    """Invariants that hold for every run."""

    MANIFESTS: list[dict[str, Any]] = [
        {},
        {"plugins": []},
        {"plugins": [{"name": "p"}]},
        {"plugins": [{"name": "p", "commands": ["./x.md", "./y.md"], "agents": ["./z.md"]}]},
        {"plugins": [{"name": "p", "commands": ["./exists.md"]}, {"name": "q", "mcpServers": ["./none.json"]}]},
    ]

    @pytest.mark.parametrize("data", MANIFESTS)
    def test_counters_and_validity_agree(self, tmp_path: Path, make_files: Callable[..., None], data: dict) -> None:
        make_files("exists.md")

        result = MarketplaceValidator().validate_data(data, tmp_path)

        assert result.stats.total_paths == result.stats.valid_paths + result.stats.invalid_paths
        assert result.valid == (len(result.errors) == 0)
        assert result.validated_plugins == len(data.get("plugins", []))

    @pytest.mark.parametrize("data", MANIFESTS)
    def test_repeated_runs_are_identical(self, tmp_path: Path, data: dict) -> None:
        """Reusing one validator on unchanged input yields equal results."""
        validator = MarketplaceValidator()

        assert validator.validate_data(data, tmp_path) == validator.validate_data(data, tmp_path)

    def test_input_is_not_mutated(self, tmp_path: Path) -> None:
        data = {"plugins": [{"name": "p", "commands": ["./a.md"], "agents": []}]}
        snapshot = copy.deepcopy(data)

        MarketplaceValidator().validate_data(data, tmp_path)

        assert data == snapshot

    def test_previous_run_does_not_leak(self, tmp_path: Path) -> None:
        """Errors from an earlier run are not carried into the next."""
        validator = MarketplaceValidator()
        validator.validate_data({"plugins": [{"name": "p", "commands": ["./gone.md"]}]}, tmp_path)

        result = validator.validate_data({"plugins": [{"name": "q"}]}, tmp_path)

        assert result.errors == ()
        assert result.stats.total_paths == 0


class TestExistenceCapability:
    """The existence check is injectable and sees root-joined paths."""

    def test_uses_injected_check(self, tmp_path: Path) -> None:
        fs = FakeFilesystem(tmp_path / "./present.md")
        validator = MarketplaceValidator(exists=fs)
        data = {"plugins": [{"name": "p", "commands": ["./present.md", "./absent.md"]}]}

        result = validator.validate_data(data, tmp_path)

        assert fs.queries == [tmp_path / "present.md", tmp_path / "absent.md"]
        assert [e.path for e in result.errors] == ["./absent.md"]

    def test_validator_root_used_by_default(self, tmp_path: Path) -> None:
        fs = FakeFilesystem()
        validator = MarketplaceValidator(root_dir=tmp_path, exists=fs)

        validator.validate_data({"plugins": [{"name": "p", "agents": ["a.md"]}]})

        assert fs.queries == [tmp_path / "a.md"]

    def test_stat_failure_counts_as_missing(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Permission errors are reported the same as a missing file."""
        target = tmp_path / "locked.md"
        target.write_text("x")
        real_stat = Path.stat

        def deny(self: Path, *args: Any, **kwargs: Any) -> Any:
            if self == target:
                raise PermissionError("denied")
            return real_stat(self, *args, **kwargs)

        monkeypatch.setattr(Path, "stat", deny)

        assert path_exists(target) is False

    def test_nul_byte_counts_as_missing(self, tmp_path: Path) -> None:
        assert path_exists(tmp_path / "bad\x00name.md") is False

    def test_leading_slash_joined_under_root(self, tmp_path: Path) -> None:
        fs = FakeFilesystem()
        validator = MarketplaceValidator(exists=fs)

        validator.validate_data({"plugins": [{"name": "p", "commands": ["/commands/x.md"]}]}, tmp_path)

        assert fs.queries == [tmp_path / "commands" / "x.md"]


class TestValidateFile:
    """Loading marketplace.json from disk."""

    def test_missing_manifest(self, tmp_path: Path) -> None:
        """A manifest that does not exist yields one synthetic error and no plugins."""
        result = MarketplaceValidator().validate(tmp_path / "marketplace.json")

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.validated_plugins == 0
        assert result.stats.total_paths == 0
        assert result.manifest_unreadable is True
        assert result.errors[0].plugin is None
        assert result.errors[0].path == str(tmp_path / "marketplace.json")
        assert "Failed to read or parse" in result.errors[0].message

    def test_invalid_json(self, tmp_path: Path) -> None:
        manifest = tmp_path / "marketplace.json"
        manifest.write_text("{not json", encoding="utf-8")

        result = MarketplaceValidator().validate(manifest)

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.validated_plugins == 0

    def test_deeply_nested_json_is_unreadable(self, tmp_path: Path) -> None:
        manifest = tmp_path / "marketplace.json"
        depth = 100_000
        manifest.write_text('{"plugins": ' + "[" * depth + "]" * depth + "}", encoding="utf-8")

        result = MarketplaceValidator().validate(manifest)

        assert result.manifest_unreadable is True
        assert len(result.errors) == 1

    def test_top_level_array_rejected(self, tmp_path: Path) -> None:
        manifest = tmp_path / "marketplace.json"
        manifest.write_text("[]", encoding="utf-8")

        result = MarketplaceValidator().validate(manifest)

        assert result.manifest_unreadable is True
        assert "JSON object" in result.errors[0].message

    def test_root_inferred_from_claude_plugin_dir(
        self,
        tmp_path: Path,
        write_marketplace: Callable[[dict], Path],
        make_files: Callable[..., None],
    ) -> None:
        """A manifest under .claude-plugin/ resolves paths against the directory above it."""
        make_files("commands/hello.md")
        manifest = write_marketplace({"plugins": [{"name": "p", "commands": ["./commands/hello.md"]}]})

        result = MarketplaceValidator().validate(manifest)

        assert result.valid is True
        assert result.stats.valid_paths == 1
        assert result.manifest_path == manifest

    def test_explicit_root_overrides_inference(
        self, tmp_path: Path, write_marketplace: Callable[[dict], Path]
    ) -> None:
        other_root = tmp_path / "elsewhere"
        (other_root / "commands").mkdir(parents=True)
        (other_root / "commands" / "hello.md").write_text("hi")
        manifest = write_marketplace({"plugins": [{"name": "p", "commands": ["commands/hello.md"]}]})

        result = MarketplaceValidator(root_dir=other_root).validate(manifest)

        assert result.valid is True

    def test_directory_argument(self, tmp_path: Path, write_marketplace: Callable[[dict], Path]) -> None:
        """Passing the project directory finds .claude-plugin/marketplace.json."""
        manifest = write_marketplace({"plugins": []})

        assert resolve_manifest_path(tmp_path) == manifest
        assert MarketplaceValidator().validate(tmp_path).valid is True

    def test_to_dict_uses_manifest_field_names(self, tmp_path: Path) -> None:
        manifest = tmp_path / "marketplace.json"
        manifest.write_text(json.dumps({"plugins": [{"name": "p", "mcpServers": ["./m.json"]}]}))

        payload = MarketplaceValidator().validate(manifest).to_dict()

        assert payload == {
            "valid": False,
            "errors": [
                {"plugin": "p", "field": "mcpServers", "path": "./m.json", "message": "File does not exist: ./m.json"}
            ],
            "validatedPlugins": 1,
            "stats": {"totalPaths": 1, "validPaths": 0, "invalidPaths": 1},
        }
