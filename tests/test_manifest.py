from __future__ import annotations

import json
from pathlib import Path

import pytest

from dotlink.errors import DuplicateGroup, GroupNotFound, InvalidName, ManifestMalformed, ManifestMissing
from dotlink.manifest import (
    Group,
    Manifest,
    Source,
    SourceKind,
    SymlinkMode,
    add_group,
    load_manifest,
    remove_group,
    save_manifest,
    validate_group_name,
)
from dotlink.platforms import Platform


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload))
    return path


def test_load_manifest_happy_path(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "dotfiles.json",
        {
            "groups": [
                {
                    "name": "shell",
                    "sources": [
                        {"path": "~/.bashrc", "type": "file", "platforms": ["linux", "wsl"]},
                        {"path": "~/.config/fish", "type": "directory", "symlink_mode": "directory"},
                        {
                            "path": "~/.claude.json",
                            "type": "file",
                            "extract": {"field": "mcpServers", "target": "mcp.json"},
                        },
                    ],
                }
            ]
        },
    )

    manifest = load_manifest(path)

    assert manifest.names() == ["shell"]
    bashrc, fish, claude = manifest.get("shell").sources
    assert bashrc.kind is SourceKind.FILE
    assert bashrc.platforms == (Platform.LINUX, Platform.WSL)
    assert fish.effective_symlink_mode is SymlinkMode.DIRECTORY
    assert claude.extract.field == "mcpServers"
    assert claude.extract.target == "mcp.json"


def test_load_manifest_missing(tmp_path: Path) -> None:
    with pytest.raises(ManifestMissing):
        load_manifest(tmp_path / "dotfiles.json")


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        {"groups": [{"name": "shell", "sources": [{"path": "~/.bashrc"}]}]},
        {"groups": [{"name": "shell", "sources": [{"path": "~/.bashrc", "type": "socket"}]}]},
        {"groups": [{"name": "shell", "sources": [{"path": "~/.bashrc", "type": "file", "mode": 1}]}]},
        {"groups": [{"name": "bad name", "sources": []}]},
        {"groups": [{"name": "a", "sources": []}, {"name": "a", "sources": []}]},
        {"groups": [{"name": "x", "sources": [{"path": "~/.x", "type": "file", "platforms": ["windows"]}]}]},
        {
            "groups": [
                {
                    "name": "x",
                    "sources": [
                        {"path": "~/.x", "type": "directory", "extract": {"field": "a", "target": "a.json"}}
                    ],
                }
            ]
        },
        {
            "groups": [
                {
                    "name": "x",
                    "sources": [
                        {"path": "~/.x", "type": "file", "extract": {"field": "a", "target": "../a.json"}}
                    ],
                }
            ]
        },
        {"groups": [{"name": "x", "sources": [{"path": "~/.x", "type": "file", "symlink_mode": "directory"}]}]},
        {"groups": [{"name": "x", "sources": [{"path": "~/.x", "kind": "file"}]}]},
    ],
)
def test_load_manifest_rejects_malformed_documents(tmp_path: Path, payload: object) -> None:
    path = tmp_path / "dotfiles.json"
    if isinstance(payload, str):
        path.write_text(payload)
    else:
        _write(path, payload)

    with pytest.raises(ManifestMalformed):
        load_manifest(path)


def test_load_manifest_rejects_non_utf8_bytes(tmp_path: Path) -> None:
    path = tmp_path / "dotfiles.json"
    path.write_bytes(b'{"groups": [{"name": "\xff", "sources": []}]}')

    with pytest.raises(ManifestMalformed, match="UTF-8"):
        load_manifest(path)


def test_save_manifest_uses_type_key_and_omits_unset_options(tmp_path: Path) -> None:
    path = tmp_path / "dotfiles.json"
    manifest = Manifest(
        groups=(
            Group(name="shell", sources=(Source(path="~/.bashrc", type=SourceKind.FILE),)),
        )
    )

    save_manifest(manifest, path)

    raw = json.loads(path.read_text())
    assert raw == {"groups": [{"name": "shell", "sources": [{"path": "~/.bashrc", "type": "file"}]}]}
    assert path.read_text().endswith("\n")
    assert load_manifest(path) == manifest


def test_add_and_remove_group() -> None:
    group = Group(name="git", sources=(Source(path="~/.gitconfig", type=SourceKind.FILE),))

    manifest = add_group(Manifest(), group)
    assert manifest.names() == ["git"]

    with pytest.raises(DuplicateGroup):
        add_group(manifest, group)

    assert remove_group(manifest, "git").names() == []
    with pytest.raises(GroupNotFound):
        remove_group(manifest, "missing")


@pytest.mark.parametrize("name", ["", "has space", "semi;colon", "dot.name"])
def test_validate_group_name_rejects(name: str) -> None:
    with pytest.raises(InvalidName):
        validate_group_name(name)


def test_validate_group_name_accepts_allowed_characters() -> None:
    assert validate_group_name("nvim_config-2") == "nvim_config-2"
