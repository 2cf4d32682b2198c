"""Shared fixtures for marketplace path validator tests."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

import mpv_common


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's MPV_* / NO_COLOR settings out of every test."""
    for var in (mpv_common.ENV_PROJECT_ROOT, mpv_common.ENV_MANIFEST, mpv_common.ENV_GIT_TIMEOUT, "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(mpv_common, "_color_enabled", False)


@pytest.fixture
def write_marketplace(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    """Write a marketplace.json under <tmp_path>/.claude-plugin/ and return its path."""

    def _write(data: dict[str, Any]) -> Path:
        manifest = tmp_path / ".claude-plugin" / "marketplace.json"
        manifest.parent.mkdir(parents=True, exist_ok=True)
        manifest.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return manifest

    return _write


@pytest.fixture
def make_files(tmp_path: Path) -> Callable[..., None]:
    """Create empty files at the given root-relative paths."""

    def _make(*rel_paths: str) -> None:
        for rel in rel_paths:
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("# placeholder\n", encoding="utf-8")

    return _make
