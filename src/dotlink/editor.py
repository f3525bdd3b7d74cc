"""Adding and removing configuration groups."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Sequence

from pydantic import ValidationError

from .config import Settings
from .errors import DuplicateGroup, GroupNotFound, InvalidArgument, ManifestMissing
from .filesystem import copy_entry, lexists
from .layout import contract_home, expand_home, group_storage_dir, repository_path
from .manifest import (
    ExtractSpec,
    Group,
    Manifest,
    Source,
    SourceKind,
    add_group,
    load_manifest,
    remove_group,
    save_manifest,
    validate_group_name,
)
from .models import AddedPath, GroupRemoval, RemoveAction, RemoveResult
from .platforms import Platform
from .snapshots import SnapshotService

logger = logging.getLogger(__name__)

EXTRACT_SPEC_PATTERN = re.compile(r"^([^:]+):(.+)$")


def parse_extract_spec(raw: str) -> ExtractSpec:
    """Parse ``field:target`` as given to ``--extract``."""

    match = EXTRACT_SPEC_PATTERN.fullmatch(raw.strip())
    if match is None:
        raise InvalidArgument(f"Invalid --extract value '{raw}': expected FIELD:TARGET")
    try:
        return ExtractSpec(field=match.group(1), target=match.group(2))
    except ValidationError as exc:
        raise InvalidArgument(f"Invalid --extract value '{raw}': {exc.errors()[0]['msg']}") from exc


def parse_platforms(values: Iterable[str]) -> tuple[Platform, ...]:
    """Parse one or more comma-separated ``--platform`` values, dropping duplicates."""

    platforms: list[Platform] = []
    for value in values:
        for item in value.split(","):
            tag = item.strip().lower()
            if not tag:
                raise InvalidArgument(f"Invalid --platform value '{value}': empty platform name")
            try:
                platform = Platform(tag)
            except ValueError:
                valid = ", ".join(p.value for p in Platform)
                raise InvalidArgument(f"Unknown platform '{tag}' (expected one of: {valid})") from None
            if platform not in platforms:
                platforms.append(platform)
    return tuple(platforms)


def _check_storage_clashes(files_root: Path, group: str, sources: Sequence[Source]) -> None:
    """Refuse sources that would share one repository path inside the group."""

    claimed: dict[Path, str] = {}
    for source in sources:
        destination = repository_path(files_root, group, source)
        if destination in claimed:
            raise InvalidArgument(
                f"'{source.path}' and '{claimed[destination]}' would both be stored as "
                f"{destination.relative_to(files_root)}; put them in separate groups"
            )
        claimed[destination] = source.path


class GroupEditor:
    """Mutates the manifest and the repository storage tree together."""

    def __init__(self, settings: Settings, *, snapshots: SnapshotService | None = None) -> None:
        self.settings = settings
        self.snapshots = snapshots or SnapshotService(settings.backup_root, retention=settings.backup_retention)

    def add(
        self,
        name: str,
        paths: Sequence[str],
        *,
        extract: Sequence[ExtractSpec] = (),
        platforms: Sequence[Platform] = (),
        confirm_missing: Callable[[Path], bool] | None = None,
    ) -> list[AddedPath]:
        """Register a new group and copy its current files into the repository.

        Each path is classified as file or directory from what is on disk now.
        Extract specs are paired, in order, with the file paths; those files are
        not copied and get populated by the next install instead.

        Args:
            name: Group name (letters, digits, ``_`` and ``-``).
            paths: Home paths, either absolute or starting with ``~``.
            extract: ``--extract`` specs.
            platforms: Restrict every source to these platforms.
            confirm_missing: Asked about paths that do not exist; returning
                ``False`` aborts the add. Missing paths are kept when omitted.
        """

        validate_group_name(name)
        if not paths:
            raise InvalidArgument("No paths specified")

        manifest = self._load_or_empty()
        if manifest.get(name) is not None:
            raise DuplicateGroup(f"Configuration '{name}' already exists")

        home = self.settings.home
        resolved: list[tuple[str, Path, SourceKind]] = []
        for raw in paths:
            expanded = expand_home(raw, home) if raw.startswith("~") else Path(raw).expanduser().absolute()
            if not lexists(expanded):
                logger.warning("Path does not exist: %s", expanded)
                if confirm_missing is not None and not confirm_missing(expanded):
                    raise InvalidArgument(f"Path does not exist: {expanded}")
            kind = SourceKind.DIRECTORY if expanded.is_dir() else SourceKind.FILE
            resolved.append((contract_home(expanded, home), expanded, kind))

        file_slots = [index for index, (_, _, kind) in enumerate(resolved) if kind is SourceKind.FILE]
        if len(extract) > len(file_slots):
            raise InvalidArgument(
                f"{len(extract)} --extract value(s) given but only {len(file_slots)} file path(s) to extract from"
            )
        extract_for = dict(zip(file_slots, extract))

        sources = tuple(
            Source(
                path=stored,
                type=kind,
                platforms=tuple(platforms) or None,
                extract=extract_for.get(index),
            )
            for index, (stored, _, kind) in enumerate(resolved)
        )
        _check_storage_clashes(self.settings.files_root, name, sources)
        group = Group(name=name, sources=sources)
        save_manifest(add_group(manifest, group), self.settings.manifest_path)
        logger.info("Added configuration '%s' to manifest", name)

        storage = group_storage_dir(self.settings.files_root, name)
        storage.mkdir(parents=True, exist_ok=True)

        added: list[AddedPath] = []
        for source, (_, expanded, _) in zip(sources, resolved):
            if source.extract is not None:
                logger.info("Skipping copy of %s (will use extraction instead)", expanded)
                added.append(AddedPath(expanded, source.kind, None, extract=True))
                continue

            destination = repository_path(self.settings.files_root, name, source)
            if not expanded.exists():
                added.append(AddedPath(expanded, source.kind, None))
                continue
            if lexists(destination):
                logger.warning("%s already exists in the repository; keeping it", destination)
                added.append(AddedPath(expanded, source.kind, destination))
                continue

            copy_entry(expanded, destination)
            logger.info("Copied %s -> %s", expanded, destination)
            added.append(AddedPath(expanded, source.kind, destination))

        return added

    def remove(self, name: str) -> GroupRemoval:
        """Unlink a group's symlinks, archive its storage and drop it from the manifest.

        Home paths that are not symlinks are left in place.
        """

        manifest = load_manifest(self.settings.manifest_path)
        group = manifest.get(name)
        if group is None:
            raise GroupNotFound(f"Configuration '{name}' does not exist")

        results: list[RemoveResult] = []
        for source in group.sources:
            path = expand_home(source.path, self.settings.home)
            if path.is_symlink():
                path.unlink()
                logger.info("Removed symlink: %s", path)
                results.append(RemoveResult(path, RemoveAction.UNLINKED))
            elif path.exists():
                logger.warning("Not a symlink, skipping: %s", path)
                results.append(RemoveResult(path, RemoveAction.KEPT))
            else:
                results.append(RemoveResult(path, RemoveAction.ABSENT))

        archive = self.snapshots.archive_group(group_storage_dir(self.settings.files_root, name), name)

        save_manifest(remove_group(manifest, name), self.settings.manifest_path)
        logger.info("Removed configuration '%s' from manifest", name)
        return GroupRemoval(name=name, results=tuple(results), archive=archive)

    def _load_or_empty(self) -> Manifest:
        try:
            return load_manifest(self.settings.manifest_path)
        except ManifestMissing:
            logger.info("Creating new manifest at %s", self.settings.manifest_path)
            return Manifest()
