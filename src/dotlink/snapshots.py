"""Timestamped backups taken before dotlink overwrites or removes anything."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import BackupFailed
from .filesystem import copy_dereferenced, lexists

logger = logging.getLogger(__name__)

ROOT_FORMAT = "%Y-%m-%d_%H%M%S_%f"
LEGACY_ROOT_FORMAT = "%Y-%m-%d_%H%M%S"
ARCHIVE_PREFIX = "removed_"


@dataclass(frozen=True, slots=True)
class BackupHandle:
    """Location of one backed-up path; ``path`` is ``None`` when nothing needed saving."""

    source: Path
    path: Path | None = None


class SnapshotService:
    """Creates backup roots under ``backup_root`` and prunes old ones.

    All backups taken through one instance share a single timestamped root, so a
    run produces at most one root. Archives of removed groups live beside the
    roots with a ``removed_`` prefix and are never pruned.
    """

    def __init__(self, backup_root: Path, *, retention: int = 5) -> None:
        self.backup_root = backup_root
        self.retention = retention
        self._current_root: Path | None = None

    @property
    def current_root(self) -> Path | None:
        return self._current_root

    def backup(self, source: Path, group: str) -> BackupHandle:
        """Copy ``source`` (dereferencing symlinks) into this run's backup root."""

        if not source.exists():
            return BackupHandle(source=source)

        try:
            group_dir = self._root() / group
            group_dir.mkdir(parents=True, exist_ok=True)
            destination = _unique_child(group_dir, source.name)
            copy_dereferenced(source, destination)
        except OSError as exc:
            logger.error("Failed to backup %s: %s", source, exc)
            raise BackupFailed(f"Failed to backup '{source}': {exc}") from exc

        logger.info("Backed up %s to %s", source, destination)
        return BackupHandle(source=source, path=destination)

    def roots(self) -> list[Path]:
        """Backup roots, oldest first."""

        if not self.backup_root.is_dir():
            return []
        return sorted(
            (child for child in self.backup_root.iterdir() if _is_backup_root(child)),
            key=lambda child: child.name,
        )

    def prune(self) -> list[Path]:
        """Delete all but the newest ``retention`` roots and return the deleted ones."""

        keep = self.retention
        roots = self.roots()
        if len(roots) <= keep:
            return []

        doomed = roots[: len(roots) - keep]
        logger.info("Cleaning up old backups (keeping last %d)", keep)
        for root in doomed:
            shutil.rmtree(root)
            logger.debug("Removed backup root %s", root)
        return doomed

    def archive_group(self, group_dir: Path, group: str) -> Path | None:
        """Move a removed group's storage directory into ``removed_<timestamp>_<group>``."""

        if not lexists(group_dir):
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        archive_dir = _unique_child(self.backup_root, f"{ARCHIVE_PREFIX}{timestamp}_{group}")
        try:
            archive_dir.mkdir(parents=True)
            shutil.move(str(group_dir), str(archive_dir / group_dir.name))
        except OSError as exc:
            raise BackupFailed(f"Failed to archive '{group_dir}': {exc}") from exc

        logger.info("Archived %s to %s", group_dir, archive_dir)
        return archive_dir

    def _root(self) -> Path:
        if self._current_root is None:
            name = datetime.now().strftime(ROOT_FORMAT)
            root = _unique_child(self.backup_root, name)
            root.mkdir(parents=True)
            self._current_root = root
        return self._current_root


def _is_backup_root(path: Path) -> bool:
    if not path.is_dir() or path.is_symlink() or path.name.startswith(ARCHIVE_PREFIX):
        return False
    stamp = path.name.split("-dup", 1)[0]
    for fmt in (ROOT_FORMAT, LEGACY_ROOT_FORMAT):
        try:
            datetime.strptime(stamp, fmt)
        except ValueError:
            continue
        return True
    return False


def _unique_child(parent: Path, name: str) -> Path:
    candidate = parent / name
    counter = 1
    while lexists(candidate):
        counter += 1
        candidate = parent / f"{name}-dup{counter}"
    return candidate
