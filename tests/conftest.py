from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from dotlink.config import Settings, load_settings


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("DOTLINK_REPO", raising=False)
    monkeypatch.delenv("DOTLINK_HOME", raising=False)
    return home


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def settings(repo_dir: Path, fake_home: Path) -> Settings:
    return load_settings(repo_dir, fake_home)


@pytest.fixture
def write_manifest(settings: Settings) -> Callable[[list[dict[str, Any]]], Path]:
    def _write(groups: list[dict[str, Any]]) -> Path:
        settings.manifest_path.write_text(json.dumps({"groups": groups}, indent=2))
        return settings.manifest_path

    return _write
