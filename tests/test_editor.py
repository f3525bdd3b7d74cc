from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.config import Settings
from dotlink.editor import GroupEditor, parse_extract_spec, parse_platforms
from dotlink.errors import DuplicateGroup, GroupNotFound, InvalidArgument, InvalidName, ManifestMissing
from dotlink.manifest import ExtractSpec, SourceKind, load_manifest
from dotlink.models import RemoveAction
from dotlink.platforms import Platform


def test_add_registers_group_and_copies_files(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".bashrc").write_text("export X=1\n")
    nvim = fake_home / ".config" / "nvim"
    nvim.mkdir(parents=True)
    (nvim / "init.lua").write_text("-- init\n")

    added = GroupEditor(settings).add("shell", ["~/.bashrc", str(nvim)])

    manifest = load_manifest(settings.manifest_path)
    sources = manifest.get("shell").sources
    assert [(source.path, source.kind) for source in sources] == [
        ("~/.bashrc", SourceKind.FILE),
        ("~/.config/nvim", SourceKind.DIRECTORY),
    ]
    storage = settings.files_root / "shell"
    assert (storage / ".bashrc").read_text() == "export X=1\n"
    assert (storage / "nvim" / "init.lua").read_text() == "-- init\n"
    assert [item.kind for item in added] == [SourceKind.FILE, SourceKind.DIRECTORY]
    assert all(item.copied_to is not None for item in added)


def test_add_creates_manifest_when_missing(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".gitconfig").write_text("[user]\n")
    assert not settings.manifest_path.exists()

    GroupEditor(settings).add("git", ["~/.gitconfig"])

    assert load_manifest(settings.manifest_path).names() == ["git"]


def test_add_with_extract_skips_copy(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".claude.json").write_text('{"mcpServers": {}}')
    (fake_home / ".bashrc").write_text("x")

    added = GroupEditor(settings).add(
        "claude",
        ["~/.claude.json", "~/.bashrc"],
        extract=[ExtractSpec(field="mcpServers", target="mcp.json")],
    )

    claude, bashrc = load_manifest(settings.manifest_path).get("claude").sources
    assert claude.extract == ExtractSpec(field="mcpServers", target="mcp.json")
    assert bashrc.extract is None
    assert added[0].extract
    assert added[0].copied_to is None
    storage = settings.files_root / "claude"
    assert sorted(child.name for child in storage.iterdir()) == [".bashrc"]


def test_add_with_platforms(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".bashrc").write_text("x")

    GroupEditor(settings).add("bash", ["~/.bashrc"], platforms=(Platform.LINUX, Platform.WSL))

    (source,) = load_manifest(settings.manifest_path).get("bash").sources
    assert source.platforms == (Platform.LINUX, Platform.WSL)


def test_add_rejects_extract_without_file_paths(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".config").mkdir()

    with pytest.raises(InvalidArgument):
        GroupEditor(settings).add("cfg", ["~/.config"], extract=[ExtractSpec(field="a", target="a.json")])
    assert not settings.manifest_path.exists()


def test_add_rejects_duplicates_and_bad_names(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".bashrc").write_text("x")
    editor = GroupEditor(settings)
    editor.add("shell", ["~/.bashrc"])

    with pytest.raises(DuplicateGroup):
        editor.add("shell", ["~/.bashrc"])
    with pytest.raises(InvalidName):
        editor.add("bad name", ["~/.bashrc"])
    with pytest.raises(InvalidArgument):
        editor.add("empty", [])


def test_add_rejects_sources_sharing_a_repository_path(settings: Settings, fake_home: Path) -> None:
    for name, content in (("a", "AAA"), ("b", "BBB")):
        config = fake_home / ".config" / name / "config"
        config.parent.mkdir(parents=True)
        config.write_text(content)

    with pytest.raises(InvalidArgument, match="config"):
        GroupEditor(settings).add("tools", ["~/.config/a/config", "~/.config/b/config"])

    assert not settings.manifest_path.exists()
    assert not (settings.files_root / "tools").exists()
    assert (fake_home / ".config" / "a" / "config").read_text() == "AAA"


def test_add_rejects_extract_target_matching_another_basename(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".claude.json").write_text('{"mcpServers": {}}')
    (fake_home / "mcp.json").write_text("{}")

    with pytest.raises(InvalidArgument):
        GroupEditor(settings).add(
            "claude",
            ["~/.claude.json", "~/mcp.json"],
            extract=[ExtractSpec(field="mcpServers", target="mcp.json")],
        )
    assert not settings.manifest_path.exists()


def test_add_missing_path_asks_for_confirmation(settings: Settings, fake_home: Path) -> None:
    asked: list[Path] = []

    def decline(path: Path) -> bool:
        asked.append(path)
        return False

    with pytest.raises(InvalidArgument):
        GroupEditor(settings).add("later", ["~/.not-yet"], confirm_missing=decline)
    assert asked == [settings.home / ".not-yet"]
    assert not settings.manifest_path.exists()

    added = GroupEditor(settings).add("later", ["~/.not-yet"], confirm_missing=lambda path: True)

    assert added[0].copied_to is None
    (source,) = load_manifest(settings.manifest_path).get("later").sources
    assert source.kind is SourceKind.FILE


def test_add_keeps_existing_repository_copy(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".vimrc").write_text("home\n")
    existing = settings.files_root / "vim" / ".vimrc"
    existing.parent.mkdir(parents=True)
    existing.write_text("repo\n")

    GroupEditor(settings).add("vim", ["~/.vimrc"])

    assert existing.read_text() == "repo\n"


def test_remove_unlinks_archives_and_updates_manifest(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".bashrc").write_text("x")
    (fake_home / ".inputrc").write_text("y")
    editor = GroupEditor(settings)
    editor.add("shell", ["~/.bashrc", "~/.inputrc", "~/.profile"], confirm_missing=lambda path: True)
    bashrc = fake_home / ".bashrc"
    bashrc.unlink()
    bashrc.symlink_to(settings.files_root / "shell" / ".bashrc")

    removal = editor.remove("shell")

    actions = {result.path.name: result.action for result in removal.results}
    assert actions == {
        ".bashrc": RemoveAction.UNLINKED,
        ".inputrc": RemoveAction.KEPT,
        ".profile": RemoveAction.ABSENT,
    }
    assert not bashrc.is_symlink()
    assert (fake_home / ".inputrc").read_text() == "y"
    assert removal.archive is not None
    assert (removal.archive / "shell" / ".bashrc").read_text() == "x"
    assert not (settings.files_root / "shell").exists()
    assert load_manifest(settings.manifest_path).names() == []


def test_remove_unknown_group(settings: Settings, write_manifest) -> None:
    write_manifest([])

    with pytest.raises(GroupNotFound):
        GroupEditor(settings).remove("ghost")


def test_remove_without_manifest(settings: Settings) -> None:
    with pytest.raises(ManifestMissing):
        GroupEditor(settings).remove("ghost")


def test_parse_extract_spec() -> None:
    assert parse_extract_spec("mcpServers:mcp.json") == ExtractSpec(field="mcpServers", target="mcp.json")

    for raw in ("mcpServers", ":mcp.json", "field:", "field:dir/mcp.json"):
        with pytest.raises(InvalidArgument):
            parse_extract_spec(raw)


def test_parse_platforms() -> None:
    assert parse_platforms(["linux,WSL", "linux"]) == (Platform.LINUX, Platform.WSL)
    assert parse_platforms([]) == ()

    with pytest.raises(InvalidArgument):
        parse_platforms(["linux,windows"])
    with pytest.raises(InvalidArgument):
        parse_platforms(["linux,"])
