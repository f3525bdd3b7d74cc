"""Naming conventions that map manifest sources onto home and repository paths.

Install, update, ``manage list`` and ``manage add`` all derive paths through
these functions so the conventions cannot drift between them.
"""

from __future__ import annotations

from pathlib import Path

from .manifest import Source, SourceKind, SymlinkMode
from .models import ExtractionState


def expand_home(raw: str, home: Path) -> Path:
    """Map a manifest path onto the filesystem.

    A leading ``~`` stands for ``home``; other relative paths are also taken
    relative to ``home``.
    """

    if raw == "~":
        return home
    if raw.startswith("~/"):
        return home / raw[2:]
    path = Path(raw)
    if path.is_absolute():
        return path
    return home / path


def contract_home(path: Path, home: Path) -> str:
    """Inverse of ``expand_home`` for paths under ``home``; others are returned as-is."""

    try:
        relative = path.relative_to(home)
    except ValueError:
        return str(path)
    if relative == Path("."):
        return "~"
    return f"~/{relative.as_posix()}"


def group_storage_dir(files_root: Path, group: str) -> Path:
    return files_root / group


def repository_path(files_root: Path, group: str, source: Source) -> Path:
    """Where the repository copy of ``source`` lives.

    * file: ``files/<group>/<basename>``
    * file with extract: ``files/<group>/<extract.target>``
    * directory, contents mode: ``files/<group>/<basename>``
    * directory, directory mode: ``files/<group>``
    """

    group_dir = group_storage_dir(files_root, group)
    if source.kind is SourceKind.FILE:
        if source.extract is not None:
            return group_dir / source.extract.target
        return group_dir / Path(source.path).name
    if source.effective_symlink_mode is SymlinkMode.DIRECTORY:
        return group_dir
    return group_dir / Path(source.path).name


def extraction_state(repo_target: Path) -> ExtractionState:
    """The repository target file existing is the durable marker of a populated field."""

    if repo_target.is_file():
        return ExtractionState.POPULATED
    return ExtractionState.UNINITIALIZED
