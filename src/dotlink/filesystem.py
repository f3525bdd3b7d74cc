"""Filesystem helpers for dotlink."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """Return ``True`` for anything at ``path``, dangling symlinks included."""

    return path.exists() or path.is_symlink()


def copy_entry(source: Path, destination: Path, *, merge: bool = False) -> None:
    """Copy ``source`` to ``destination``, following a symlink at ``source`` itself.

    Symlinks nested inside a copied directory are preserved as links. With
    ``merge`` a directory is copied into an existing ``destination``.
    """

    ensure_parent(destination)
    if source.is_dir():
        shutil.copytree(
            source,
            destination,
            symlinks=True,
            copy_function=shutil.copy2,
            dirs_exist_ok=merge,
        )
    else:
        shutil.copy2(source, destination)


def copy_dereferenced(source: Path, destination: Path) -> None:
    """Copy ``source`` to ``destination`` resolving every symlink along the way.

    Dangling symlinks inside a directory have nothing to copy; they are left
    out with a warning.
    """

    ensure_parent(destination)
    if source.is_dir():
        shutil.copytree(
            source,
            destination,
            symlinks=False,
            ignore=_skip_dangling_links,
            copy_function=shutil.copy2,
        )
    else:
        shutil.copy2(source, destination)


def _skip_dangling_links(directory: str, names: list[str]) -> list[str]:
    skipped = []
    for name in names:
        path = Path(directory) / name
        if path.is_symlink() and not path.exists():
            logger.warning("Skipping dangling symlink %s -> %s", path, os.readlink(path))
            skipped.append(name)
    return skipped


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``."""

    if not source.is_symlink():
        return False
    current = Path(os.readlink(source))
    current_resolved = (source.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not lexists(path):
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


def is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to a temporary sibling of ``path`` and rename it into place."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotlink-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def dump_json(data: Any) -> str:
    """Serialise ``data`` the way dotlink writes every JSON file: two-space indent."""

    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def write_json_atomic(path: Path, data: Any) -> None:
    write_text_atomic(path, dump_json(data))
