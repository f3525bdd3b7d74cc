from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.errors import BackupFailed
from dotlink.snapshots import SnapshotService


def test_backup_of_missing_path_is_a_no_op(tmp_path: Path) -> None:
    service = SnapshotService(tmp_path / "backups")

    handle = service.backup(tmp_path / "nope", "shell")

    assert handle.path is None
    assert not (tmp_path / "backups").exists()
    assert service.current_root is None


def test_backups_share_one_root_per_service(tmp_path: Path) -> None:
    first = tmp_path / ".bashrc"
    first.write_text("a")
    second = tmp_path / ".vimrc"
    second.write_text("b")
    service = SnapshotService(tmp_path / "backups")

    one = service.backup(first, "shell")
    two = service.backup(second, "vim")

    assert one.path == service.current_root / "shell" / ".bashrc"
    assert two.path == service.current_root / "vim" / ".vimrc"
    assert service.roots() == [service.current_root]


def test_backup_dereferences_symlinks(tmp_path: Path) -> None:
    real_dir = tmp_path / "real"
    real_dir.mkdir()
    (real_dir / "init.lua").write_text("print(1)")
    (tmp_path / "target.txt").write_text("target")
    (real_dir / "link.txt").symlink_to(tmp_path / "target.txt")
    service = SnapshotService(tmp_path / "backups")

    handle = service.backup(real_dir, "nvim")

    assert handle.path is not None
    copied_link = handle.path / "link.txt"
    assert not copied_link.is_symlink()
    assert copied_link.read_text() == "target"


def test_same_name_twice_gets_a_suffix(tmp_path: Path) -> None:
    left = tmp_path / "a" / "config"
    right = tmp_path / "b" / "config"
    left.parent.mkdir()
    right.parent.mkdir()
    left.write_text("left")
    right.write_text("right")
    service = SnapshotService(tmp_path / "backups")

    one = service.backup(left, "app")
    two = service.backup(right, "app")

    assert one.path != two.path
    assert two.path.name == "config-dup2"
    assert two.path.read_text() == "right"


def test_prune_keeps_newest_roots_and_ignores_other_directories(tmp_path: Path) -> None:
    backups = tmp_path / "backups"
    names = [f"2024-03-0{day}_120000_000000" for day in range(1, 8)]
    for name in names:
        (backups / name).mkdir(parents=True)
    (backups / "2023-12-31_235959").mkdir()
    (backups / "removed_20240101_000000_shell").mkdir()
    (backups / "notes").mkdir()
    service = SnapshotService(backups, retention=5)

    pruned = service.prune()

    assert [path.name for path in pruned] == ["2023-12-31_235959", names[0], names[1]]
    remaining = sorted(path.name for path in backups.iterdir())
    assert remaining == sorted([*names[2:], "removed_20240101_000000_shell", "notes"])


def test_prune_honours_configured_retention(tmp_path: Path) -> None:
    backups = tmp_path / "backups"
    for day in range(1, 4):
        (backups / f"2024-03-0{day}_120000_000000").mkdir(parents=True)
    service = SnapshotService(backups, retention=1)

    pruned = service.prune()

    assert len(pruned) == 2
    assert not any(path.exists() for path in pruned)
    assert [path.name for path in backups.iterdir()] == ["2024-03-03_120000_000000"]


def test_backup_of_directory_with_dangling_link(tmp_path: Path) -> None:
    nvim = tmp_path / "nvim"
    nvim.mkdir()
    (nvim / "init.lua").write_text("-- init\n")
    (nvim / "stale.lua").symlink_to(tmp_path / "gone.lua")
    service = SnapshotService(tmp_path / "backups")

    handle = service.backup(nvim, "nvim")

    assert handle.path is not None
    assert (handle.path / "init.lua").read_text() == "-- init\n"
    assert not (handle.path / "stale.lua").is_symlink()
    assert not (handle.path / "stale.lua").exists()


def test_archive_group_moves_storage_aside(tmp_path: Path) -> None:
    storage = tmp_path / "files" / "shell"
    storage.mkdir(parents=True)
    (storage / ".bashrc").write_text("x")
    service = SnapshotService(tmp_path / "backups")

    archive = service.archive_group(storage, "shell")

    assert archive is not None
    assert archive.name.startswith("removed_")
    assert archive.name.endswith("_shell")
    assert (archive / "shell" / ".bashrc").read_text() == "x"
    assert not storage.exists()
    assert service.roots() == []


def test_archive_group_without_storage_returns_none(tmp_path: Path) -> None:
    service = SnapshotService(tmp_path / "backups")

    assert service.archive_group(tmp_path / "files" / "ghost", "ghost") is None


def test_backup_failure_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / ".bashrc"
    source.write_text("x")
    service = SnapshotService(tmp_path / "backups")

    def boom(src, dst):
        raise OSError("no space left on device")

    monkeypatch.setattr("dotlink.snapshots.copy_dereferenced", boom)

    with pytest.raises(BackupFailed):
        service.backup(source, "shell")
    assert source.read_text() == "x"
